"""
survey_engine.py
----------------
Survey Scoring Engine – ranks fields of study from a structured survey.

For every field in data/fields.json:
  score = base + Σ delta(rule)  for each rule whose condition holds
  score = min(score, ceiling)    (ceilings differ per field)
Fields are stable-sorted by descending score (declaration order breaks
ties); the top N come back with 2–3 reasons each – the reasons attached to
the rules that fired, padded with the shared generic reasons.
"""

import logging
from typing import Any, Optional

from catalog_engine import Catalog, FieldRule, FieldSpec, get_catalog
from match_engine import normalize_text

logger = logging.getLogger(__name__)

TOP_N               = 3
MAX_REASONS         = 3
FALLBACK_CONFIDENCE = 0.8

_SURVEY_KEYS = {
    "name":             ("name",),
    "age":              ("age",),
    "current_grade":    ("current_grade", "currentGrade"),
    "interests":        ("interests",),
    "skills":           ("skills",),
    "academic_scores":  ("academic_scores", "academicScores"),
    "career_goals":     ("career_goals", "careerGoals"),
    "learning_style":   ("learning_style", "learningStyle"),
    "work_environment": ("work_environment", "workEnvironmentPreference",
                         "work_environment_preference"),
}


# --------------------------------------------------------------------------- #
#  Input normalisation                                                         #
# --------------------------------------------------------------------------- #

def _pick(raw: dict, field: str) -> Any:
    for key in _SURVEY_KEYS[field]:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _as_list(value: Any) -> list:
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    elif not isinstance(value, (list, tuple)):
        logger.debug("ignoring non-list survey answer %r", value)
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def _as_scores(value: Any) -> dict:
    scores = {}
    if not isinstance(value, dict):
        return scores
    for subject, score in value.items():
        try:
            scores[normalize_text(str(subject).strip())] = float(score)
        except (TypeError, ValueError):
            logger.debug("ignoring non-numeric score %r for %s", score, subject)
    return scores


def normalise_survey(raw: Optional[dict]) -> dict:
    """
    Coerce a survey payload (camelCase API keys or snake_case) into the
    shape the scorer reads. Missing optional answers become empty values.
    """
    raw = raw or {}
    return {
        "name":             str(_pick(raw, "name") or "").strip(),
        "age":              _pick(raw, "age"),
        "current_grade":    str(_pick(raw, "current_grade") or "").strip(),
        "interests":        _as_list(_pick(raw, "interests")),
        "skills":           _as_list(_pick(raw, "skills")),
        "academic_scores":  _as_scores(_pick(raw, "academic_scores")),
        "career_goals":     str(_pick(raw, "career_goals") or ""),
        "learning_style":   str(_pick(raw, "learning_style") or "").strip(),
        "work_environment": str(_pick(raw, "work_environment") or "").strip(),
    }


# --------------------------------------------------------------------------- #
#  Scoring                                                                     #
# --------------------------------------------------------------------------- #

def _rule_holds(rule: FieldRule, survey: dict) -> bool:
    value = normalize_text(rule.value)
    if rule.kind == "interest":
        return value in {normalize_text(i) for i in survey["interests"]}
    if rule.kind == "skill":
        return value in {normalize_text(s) for s in survey["skills"]}
    if rule.kind == "subject_min":
        score = survey["academic_scores"].get(value)
        return score is not None and score >= rule.threshold
    if rule.kind == "goal_keyword":
        return value in normalize_text(survey["career_goals"])
    if rule.kind == "learning_style":
        return value == normalize_text(survey["learning_style"])
    if rule.kind == "work_environment":
        return value == normalize_text(survey["work_environment"])
    return False


def score_field(spec: FieldSpec, survey: dict) -> tuple:
    """
    Score one field.

    Returns (capped_score, fired_rules).
    """
    score = spec.base
    fired = []
    for rule in spec.rules:
        if _rule_holds(rule, survey):
            score += rule.delta
            fired.append(rule)
    return min(score, spec.ceiling), fired


def _reasons(fired: list, generic: tuple) -> list:
    reasons = []
    for rule in fired:
        if rule.reason and rule.reason not in reasons:
            reasons.append(rule.reason)
    reasons = reasons[:MAX_REASONS]
    for reason in generic:
        if len(reasons) >= MAX_REASONS:
            break
        if reason not in reasons:
            reasons.append(reason)
    return reasons


def rank_fields(
    survey:  dict,
    top_n:   int               = TOP_N,
    catalog: Optional[Catalog] = None,
) -> list:
    """
    Rank fields of study for a survey.

    Parameters
    ----------
    survey  : dict – raw or normalised survey answers
    top_n   : int  – how many fields to return (never more than 3)

    Returns
    -------
    list of dicts (sorted by score, descending):
        field    (str)       – field code, e.g. "IT"
        field_id (int)
        name     (str)
        score    (int 0-100)
        reasons  (list[str]) – 2–3 entries
    """
    catalog = catalog or get_catalog()
    survey  = normalise_survey(survey)
    top_n   = max(0, min(top_n, TOP_N))

    scored = []
    for spec in catalog.fields:
        score, fired = score_field(spec, survey)
        scored.append({
            "field":    spec.code,
            "field_id": spec.field_id,
            "name":     spec.name,
            "score":    int(round(score)),
            "reasons":  _reasons(fired, catalog.generic_reasons),
        })

    scored.sort(key=lambda x: x["score"], reverse=True)
    logger.debug("field scores: %s", [(s["field"], s["score"]) for s in scored])
    return scored[:top_n]


def build_fallback_analysis(survey: dict, catalog: Optional[Catalog] = None) -> dict:
    """
    Full consultation payload produced without the live model.

    Returns
    -------
    dict:
        recommended_fields (list) – rank_fields() output
        analysis_summary   (str)
        strengths          (list[str])
        recommendations    (list[str])
        confidence_score   (float)
        source             (str)  – always "rules"
    """
    catalog = catalog or get_catalog()
    survey  = normalise_survey(survey)
    ranked  = rank_fields(survey, catalog=catalog)

    specific = {rule.reason for spec in catalog.fields for rule in spec.rules if rule.reason}
    strengths = []
    for entry in ranked:
        for reason in entry["reasons"]:
            if reason in specific and reason not in strengths:
                strengths.append(reason)
    strengths = strengths[:MAX_REASONS] or list(catalog.default_strengths)

    name = survey["name"] or "bạn"
    return {
        "recommended_fields": ranked,
        "analysis_summary":   catalog.summary_template.replace("{name}", name),
        "strengths":          strengths,
        "recommendations":    list(catalog.default_recommendations),
        "confidence_score":   FALLBACK_CONFIDENCE,
        "source":             "rules",
    }
