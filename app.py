"""
app.py
------
Flask entry point for the career-guidance advisor backend.

Routes
------
POST   /api/ai/chat               → One chat turn (live model, else rule engine)
GET    /api/ai/chat/<session_id>  → Message history of a chat session
DELETE /api/ai/chat/<session_id>  → Forget a chat session
GET    /api/ai/status             → Live-model availability / fallback mode
POST   /api/survey/submit         → Store survey, analyse, store + return result
GET    /api/survey/<id>           → Stored survey
GET    /api/results               → Newest-first paginated result summaries
GET    /api/results/<id>          → Consultation result joined with its survey
POST   /api/auth/register         → Register a user (existing email → that user)
GET    /api/auth/user/<id>        → Registered user
PUT    /api/auth/user/<id>        → Update name / email / phone
GET    /api/auth/user/<id>/history → The user's surveys with their results
GET    /health                    → Simple health-check endpoint
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

import store_engine
from advisor_service import analyze_career_fit, generate_chat_reply, service_status
from catalog_engine import get_catalog
from llm_client import DEFAULT_BASE_URL, DEFAULT_MODEL, DEFAULT_TIMEOUT, build_client
from survey_engine import normalise_survey

# --------------------------------------------------------------------------- #
#  App configuration                                                           #
# --------------------------------------------------------------------------- #

logging.basicConfig(
    level  = logging.INFO,
    format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = os.environ.get("FLASK_SECRET", "dev-secret-change-in-prod")
app.json.ensure_ascii = False

# Live language model; without a real key every answer comes from the rules
CLIENT = build_client(
    api_key  = os.environ.get("OPENAI_API_KEY"),
    model    = os.environ.get("OPENAI_MODEL", DEFAULT_MODEL),
    base_url = os.environ.get("OPENAI_BASE_URL", DEFAULT_BASE_URL),
    timeout  = float(os.environ.get("LLM_TIMEOUT", DEFAULT_TIMEOUT)),
)

if os.environ.get("ADVISOR_STORE_DIR"):
    store_engine.configure(os.environ["ADVISOR_STORE_DIR"])

# Fail at start-up, not mid-request, if a content table is broken
get_catalog()

# random.Random used to pick among equal replies; None → fresh randomness per call
app.config.setdefault("ADVISOR_RNG", None)


# --------------------------------------------------------------------------- #
#  Helpers                                                                     #
# --------------------------------------------------------------------------- #

def _ok(data, status: int = 200, **extra):
    return jsonify({"success": True, "data": data, **extra}), status


def _fail(error: str, status: int):
    return jsonify({"success": False, "error": error}), status


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _message(role: str, content: str) -> dict:
    return {"id": str(uuid4()), "role": role, "content": content, "timestamp": _now()}


def _parse_age(raw) -> Optional[int]:
    """
    Accept an int or an integer-looking string.
    Returns None for anything else (bools, floats with a fraction, text).
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
        return int(raw.strip())
    return None


def _survey_shape_error(body: dict) -> Optional[str]:
    """Error message for optional survey answers of the wrong type, else None."""
    for key in ("interests", "skills"):
        value = body.get(key)
        if value is not None and not isinstance(value, (list, str)):
            return f"{key} must be a list or a comma-separated string"

    for key in ("academicScores", "academic_scores"):
        value = body.get(key)
        if value is not None and not isinstance(value, dict):
            return "academicScores must be an object"

    for key in ("currentGrade", "careerGoals", "learningStyle", "workEnvironmentPreference"):
        value = body.get(key)
        if value is not None and not isinstance(value, (str, int, float)):
            return f"{key} must be text"

    user_id = body.get("userId")
    if user_id is not None and not isinstance(user_id, str):
        return "userId must be a string"
    return None


def _result_payload(result: dict, survey: Optional[dict]) -> dict:
    survey = survey or {}
    return {
        "id":                result["id"],
        "surveyId":          result["survey_id"],
        "recommendedMajors": result.get("recommended_majors", []),
        "analysisSummary":   result.get("analysis_summary", ""),
        "strengths":         result.get("strengths", []),
        "recommendations":   result.get("recommendations", []),
        "confidenceScore":   result.get("confidence_score"),
        "source":            result.get("source"),
        "createdAt":         result.get("created_at"),
        "userName":          survey.get("name"),
        "userAge":           survey.get("age"),
        "userGrade":         survey.get("current_grade"),
    }


def _survey_payload(survey: dict) -> dict:
    return {
        "id":                        survey["id"],
        "name":                      survey.get("name"),
        "age":                       survey.get("age"),
        "currentGrade":              survey.get("current_grade"),
        "interests":                 survey.get("interests", []),
        "skills":                    survey.get("skills", []),
        "academicScores":            survey.get("academic_scores", {}),
        "careerGoals":               survey.get("career_goals"),
        "learningStyle":             survey.get("learning_style"),
        "workEnvironmentPreference": survey.get("work_environment"),
        "userId":                    survey.get("user_id"),
        "completedAt":               survey.get("completed_at"),
    }


# --------------------------------------------------------------------------- #
#  Routes – Chat                                                               #
# --------------------------------------------------------------------------- #

@app.route("/api/ai/chat", methods=["POST"])
def chat():
    """
    JSON body:
        message   – string (required, non-blank)
        sessionId – string (optional; a new session is created when absent)
    """
    body       = request.get_json(silent=True) or {}
    message    = body.get("message")
    session_id = body.get("sessionId")

    if not isinstance(message, str) or not message.strip():
        return _fail("Message is required", 400)
    if session_id is not None and not isinstance(session_id, str):
        return _fail("sessionId must be a string", 400)

    session_id = session_id or str(uuid4())
    existing   = store_engine.get_chat_session(session_id)
    history    = existing["messages"] if existing else []

    reply = generate_chat_reply(message, history=history, client=CLIENT,
                                rng=app.config["ADVISOR_RNG"])

    user_msg      = _message("user", message)
    assistant_msg = _message("assistant", reply["response"])
    store_engine.append_chat_messages(session_id, [user_msg, assistant_msg])

    logger.info("chat: session=%s source=%s stage=%s",
                session_id, reply["source"], reply["stage"])
    return _ok({
        "response":  reply["response"],
        "sessionId": session_id,
        "messageId": assistant_msg["id"],
        "source":    reply["source"],
        "stage":     reply["stage"],
    })


@app.route("/api/ai/chat/<session_id>", methods=["GET"])
def chat_history(session_id: str):
    session = store_engine.get_chat_session(session_id)
    if session is None:
        return _fail("Chat session not found", 404)
    return _ok(session["messages"])


@app.route("/api/ai/chat/<session_id>", methods=["DELETE"])
def chat_delete(session_id: str):
    if not store_engine.delete_chat_session(session_id):
        return _fail("Chat session not found", 404)
    return jsonify({"success": True, "message": "Chat session deleted successfully"})


@app.route("/api/ai/status", methods=["GET"])
def ai_status():
    return _ok(service_status(CLIENT))


# --------------------------------------------------------------------------- #
#  Routes – Users                                                              #
# --------------------------------------------------------------------------- #

def _user_payload(user: dict) -> dict:
    return {
        "id":        user["id"],
        "name":      user.get("name"),
        "email":     user.get("email"),
        "phone":     user.get("phone"),
        "createdAt": user.get("created_at"),
        "updatedAt": user.get("updated_at"),
    }


def _contact_error(body: dict) -> Optional[str]:
    for key in ("name", "email", "phone"):
        value = body.get(key)
        if value is not None and not isinstance(value, str):
            return f"{key} must be a string"
    return None


@app.route("/api/auth/register", methods=["POST"])
def user_register():
    """
    JSON body: name (required), email, phone.
    A known email returns the existing user instead of creating a new one.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _fail("Name is required", 400)
    contact_error = _contact_error(body)
    if contact_error:
        return _fail(contact_error, 400)
    name = body.get("name")
    if not name or not name.strip():
        return _fail("Name is required", 400)

    user, created = store_engine.register_user(name, body.get("email"), body.get("phone"))
    if not created:
        return _ok(_user_payload(user), message="User already exists")
    return _ok(_user_payload(user), 201, message="User created successfully")


@app.route("/api/auth/user/<user_id>", methods=["GET"])
def user_get(user_id: str):
    user = store_engine.get_user(user_id)
    if user is None:
        return _fail("User not found", 404)
    return _ok(_user_payload(user))


@app.route("/api/auth/user/<user_id>", methods=["PUT"])
def user_update(user_id: str):
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _fail("Expected a JSON object", 400)
    contact_error = _contact_error(body)
    if contact_error:
        return _fail(contact_error, 400)

    user = store_engine.update_user(user_id, body)
    if user is None:
        return _fail("User not found", 404)
    return _ok(_user_payload(user), message="User updated successfully")


@app.route("/api/auth/user/<user_id>/history", methods=["GET"])
def user_history(user_id: str):
    if store_engine.get_user(user_id) is None:
        return _fail("User not found", 404)
    return _ok(store_engine.user_history(user_id))


# --------------------------------------------------------------------------- #
#  Routes – Survey & results                                                   #
# --------------------------------------------------------------------------- #

@app.route("/api/survey/submit", methods=["POST"])
def survey_submit():
    """
    JSON body (camelCase, as sent by the survey form):
        name, age (required), currentGrade, interests, skills, academicScores,
        careerGoals, learningStyle, workEnvironmentPreference,
        userId (optional; links the survey to a registered user)
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _fail("Name and age are required", 400)

    name = body.get("name")
    age  = _parse_age(body.get("age"))
    if not isinstance(name, str) or not name.strip() or body.get("age") in (None, ""):
        return _fail("Name and age are required", 400)
    if age is None:
        return _fail("Age must be an integer", 400)
    shape_error = _survey_shape_error(body)
    if shape_error:
        return _fail(shape_error, 400)

    user_id = body.get("userId")
    if user_id and store_engine.get_user(user_id) is None:
        return _fail("User not found", 404)

    survey            = normalise_survey(body)
    survey["age"]     = age
    survey["user_id"] = user_id or None
    stored            = store_engine.save_survey(survey)

    analysis = analyze_career_fit(survey, client=CLIENT)
    result   = store_engine.save_result(stored["id"], analysis)

    logger.info("survey_submit: survey=%s result=%s source=%s",
                stored["id"], result["id"], result["source"])
    return _ok(_result_payload(result, stored),
               message="Survey submitted and analyzed successfully")


@app.route("/api/survey/<survey_id>", methods=["GET"])
def survey_get(survey_id: str):
    survey = store_engine.get_survey(survey_id)
    if survey is None:
        return _fail("Survey not found", 404)
    return _ok(_survey_payload(survey))


@app.route("/api/results", methods=["GET"])
def results_list():
    page  = request.args.get("page",  1,  type=int)
    limit = request.args.get("limit", 10, type=int)
    return _ok(store_engine.list_results(page=page, limit=limit))


@app.route("/api/results/<result_id>", methods=["GET"])
def result_get(result_id: str):
    result = store_engine.get_result(result_id)
    if result is None:
        return _fail("Consultation result not found", 404)
    survey  = store_engine.get_survey(result["survey_id"])
    payload = _result_payload(result, survey)
    payload["user"] = _survey_payload(survey) if survey else None
    return _ok(payload)


@app.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok", "service": "career-advisor-backend"})


# --------------------------------------------------------------------------- #
#  Error handlers                                                              #
# --------------------------------------------------------------------------- #

@app.errorhandler(404)
def not_found(e):
    return _fail("Endpoint not found.", 404)


@app.errorhandler(405)
def method_not_allowed(e):
    return _fail("Method not allowed.", 405)


@app.errorhandler(Exception)
def server_error(e):
    if isinstance(e, HTTPException):
        return _fail(e.description or e.name, e.code or 500)
    logger.exception("Unhandled error: %s", e)
    return _fail("Internal server error.", 500)


# --------------------------------------------------------------------------- #
#  Entry point                                                                 #
# --------------------------------------------------------------------------- #

if __name__ == "__main__":
    port  = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "false").lower() == "true"
    app.run(host="0.0.0.0", port=port, debug=debug)
