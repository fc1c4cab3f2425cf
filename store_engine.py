"""
store_engine.py
===============
Persist surveys, consultation results, chat sessions and registered users
as JSON arrays under the store directory (ADVISOR_STORE_DIR, default data/store/).

Storage files
-------------
surveys.json        – one record per submitted survey
results.json        – one consultation result per survey submission
chat_sessions.json  – {"session_id", "messages": [...], "created_at", "updated_at"}
users.json          – registered users {"id", "name", "email", "phone", ...}

Public API
----------
save_survey(survey)                      -> dict
get_survey(survey_id)                    -> dict | None
save_result(survey_id, analysis)         -> dict
get_result(result_id)                    -> dict | None
list_results(page, limit)                -> dict
get_chat_session(session_id)             -> dict | None
append_chat_messages(session_id, msgs)   -> dict
delete_chat_session(session_id)          -> bool
register_user(name, email, phone)        -> (dict, bool)
get_user(user_id)                        -> dict | None
update_user(user_id, changes)            -> dict | None
user_history(user_id)                    -> list[dict]

A missing, empty or corrupt file reads as an empty table.
"""

from __future__ import annotations

import json
import logging
import math
import os
import threading
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)

# ── Storage paths ─────────────────────────────────────────────────────────────
_STORE_DIR = os.environ.get(
    "ADVISOR_STORE_DIR",
    os.path.join(os.path.dirname(__file__), "data", "store"),
)

_SURVEYS  = "surveys.json"
_RESULTS  = "results.json"
_SESSIONS = "chat_sessions.json"
_USERS    = "users.json"

# Serialises read-modify-write cycles between request threads
_LOCK = threading.RLock()


def configure(store_dir: str) -> None:
    """Point the store at *store_dir* (used by app start-up and tests)."""
    global _STORE_DIR
    _STORE_DIR = store_dir


def _path(name: str) -> str:
    return os.path.join(_STORE_DIR, name)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Table I/O ─────────────────────────────────────────────────────────────────

def _load(table: str) -> list[dict]:
    """
    Records stored in the *table* file (e.g. ``surveys.json``).

    An absent file is an empty table. A file that cannot be parsed, or that
    holds anything but a JSON array, is logged and also treated as empty so
    a damaged store degrades instead of failing the request.
    """
    path = _path(table)
    if not os.path.exists(path):
        return []
    try:
        with open(path, "r", encoding="utf-8") as fh:
            content = fh.read().strip()
        records = json.loads(content) if content else []
    except (OSError, ValueError) as exc:
        logger.error("store: cannot read %s (%s)", path, exc)
        return []
    if not isinstance(records, list):
        logger.error("store: %s does not hold a JSON array", path)
        return []
    return records


def _dump(table: str, records: list[dict]) -> bool:
    """Replace *table* with *records* via a sibling temp file; False if that failed."""
    path    = _path(table)
    staging = f"{path}.{os.getpid()}.tmp"
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(staging, "w", encoding="utf-8") as fh:
            json.dump(records, fh, indent=2, ensure_ascii=False)
        os.replace(staging, path)
    except (OSError, TypeError, ValueError) as exc:
        logger.error("store: cannot write %s (%s)", path, exc)
        if os.path.exists(staging):
            os.remove(staging)
        return False
    return True


def _find(records: list[dict], key: str, value: Any) -> Optional[dict]:
    if not value:
        return None
    for record in records:
        if record.get(key) == value:
            return record
    return None


# ── Surveys ───────────────────────────────────────────────────────────────────

def save_survey(survey: dict) -> dict:
    """
    Persist a normalised survey (see survey_engine.normalise_survey) and
    return the stored record including its generated ``id``.
    """
    record = {
        "id":               str(uuid4()),
        "name":             survey.get("name", ""),
        "age":              survey.get("age"),
        "current_grade":    survey.get("current_grade", ""),
        "interests":        list(survey.get("interests") or []),
        "skills":           list(survey.get("skills") or []),
        "academic_scores":  dict(survey.get("academic_scores") or {}),
        "career_goals":     survey.get("career_goals", ""),
        "learning_style":   survey.get("learning_style", ""),
        "work_environment": survey.get("work_environment", ""),
        "user_id":          survey.get("user_id"),
        "completed_at":     _now(),
    }
    with _LOCK:
        records = _load(_SURVEYS)
        records.append(record)
        if not _dump(_SURVEYS, records):
            logger.error("save_survey: failed to persist survey %s", record["id"])

    logger.info("save_survey: stored survey %s for '%s'", record["id"], record["name"])
    return record


def get_survey(survey_id: str) -> dict | None:
    return _find(_load(_SURVEYS), "id", survey_id)


# ── Consultation results ──────────────────────────────────────────────────────

def save_result(survey_id: str, analysis: dict) -> dict:
    """
    Persist the consultation payload produced by advisor_service for
    *survey_id* and return the stored record.
    """
    record = {
        "id":                 str(uuid4()),
        "survey_id":          survey_id,
        "recommended_majors": analysis.get("recommendedMajors", []),
        "analysis_summary":   analysis.get("analysisSummary", ""),
        "strengths":          analysis.get("strengths", []),
        "recommendations":    analysis.get("recommendations", []),
        "confidence_score":   analysis.get("confidenceScore", 0.0),
        "source":             analysis.get("source", "rules"),
        "ai_response":        analysis.get("fullResponse"),
        "created_at":         _now(),
    }
    with _LOCK:
        records = _load(_RESULTS)
        records.append(record)
        if not _dump(_RESULTS, records):
            logger.error("save_result: failed to persist result %s", record["id"])

    logger.info("save_result: stored result %s (survey %s, source=%s)",
                record["id"], survey_id, record["source"])
    return record


def get_result(result_id: str) -> dict | None:
    return _find(_load(_RESULTS), "id", result_id)


def list_results(page: int = 1, limit: int = 10) -> dict:
    """
    Newest-first page of result summaries joined with the survey's name.

    Returns
    -------
    dict:
        results (list[dict]) – {id, survey_id, user_name, analysis_summary,
                                confidence_score, created_at}
        page, limit, total, pages (int)
    """
    page  = max(1, int(page))
    limit = max(1, min(int(limit), 100))

    results = sorted(_load(_RESULTS),
                     key=lambda r: r.get("created_at", ""), reverse=True)
    surveys = {s.get("id"): s for s in _load(_SURVEYS)}

    start = (page - 1) * limit
    items = []
    for record in results[start:start + limit]:
        survey = surveys.get(record.get("survey_id")) or {}
        items.append({
            "id":               record.get("id"),
            "survey_id":        record.get("survey_id"),
            "user_name":        survey.get("name"),
            "analysis_summary": record.get("analysis_summary"),
            "confidence_score": record.get("confidence_score"),
            "created_at":       record.get("created_at"),
        })

    return {
        "results": items,
        "page":    page,
        "limit":   limit,
        "total":   len(results),
        "pages":   math.ceil(len(results) / limit) if results else 0,
    }


# ── Chat sessions ─────────────────────────────────────────────────────────────

def get_chat_session(session_id: str) -> dict | None:
    return _find(_load(_SESSIONS), "session_id", session_id)


def append_chat_messages(session_id: str, messages: list[dict]) -> dict:
    """
    Append *messages* to *session_id*, creating the session if needed.
    Returns the updated session record.
    """
    now = _now()
    with _LOCK:
        records = _load(_SESSIONS)
        session = _find(records, "session_id", session_id)
        if session is None:
            session = {"session_id": session_id, "messages": [],
                       "created_at": now, "updated_at": now}
            records.append(session)
        session["messages"] = list(session.get("messages") or []) + list(messages)
        session["updated_at"] = now
        if not _dump(_SESSIONS, records):
            logger.error("append_chat_messages: failed to persist session %s", session_id)
    return session


def delete_chat_session(session_id: str) -> bool:
    """Remove *session_id*. Returns False when it did not exist."""
    with _LOCK:
        records = _load(_SESSIONS)
        kept    = [r for r in records if r.get("session_id") != session_id]
        if len(kept) == len(records):
            return False
        _dump(_SESSIONS, kept)
    logger.info("delete_chat_session: removed %s", session_id)
    return True


# ── Users ─────────────────────────────────────────────────────────────────────

_USER_FIELDS = ("name", "email", "phone")


def register_user(name: str, email: Optional[str] = None,
                  phone: Optional[str] = None) -> tuple[dict, bool]:
    """
    Create a user, or return the existing one registered with the same email.

    Returns (record, created).
    """
    email = (email or "").strip() or None
    with _LOCK:
        records = _load(_USERS)
        if email:
            existing = next((r for r in records
                             if (r.get("email") or "").lower() == email.lower()), None)
            if existing is not None:
                return existing, False

        now    = _now()
        record = {
            "id":         str(uuid4()),
            "name":       name.strip(),
            "email":      email,
            "phone":      (phone or "").strip() or None,
            "created_at": now,
            "updated_at": now,
        }
        records.append(record)
        if not _dump(_USERS, records):
            logger.error("register_user: failed to persist user %s", record["id"])

    logger.info("register_user: created user %s", record["id"])
    return record, True


def get_user(user_id: str) -> dict | None:
    return _find(_load(_USERS), "id", user_id)


def update_user(user_id: str, changes: dict) -> dict | None:
    """
    Overwrite name/email/phone with the non-empty values in *changes*;
    other keys are ignored. Returns the updated record, or None if unknown.
    """
    with _LOCK:
        records = _load(_USERS)
        user    = _find(records, "id", user_id)
        if user is None:
            return None
        for key in _USER_FIELDS:
            value = changes.get(key)
            if isinstance(value, str) and value.strip():
                user[key] = value.strip()
        user["updated_at"] = _now()
        if not _dump(_USERS, records):
            logger.error("update_user: failed to persist user %s", user_id)
    return user


def user_history(user_id: str) -> list[dict]:
    """
    The user's surveys, newest first, each with its consultation result
    (``result_id`` etc. are None while a survey has no result).
    """
    surveys = [s for s in _load(_SURVEYS) if user_id and s.get("user_id") == user_id]
    results = {r.get("survey_id"): r for r in _load(_RESULTS)}
    surveys.sort(key=lambda s: s.get("completed_at", ""), reverse=True)

    history = []
    for survey in surveys:
        result = results.get(survey.get("id")) or {}
        history.append({
            "survey_id":         survey.get("id"),
            "name":              survey.get("name"),
            "completed_at":      survey.get("completed_at"),
            "result_id":         result.get("id"),
            "confidence_score":  result.get("confidence_score"),
            "result_created_at": result.get("created_at"),
        })
    return history
