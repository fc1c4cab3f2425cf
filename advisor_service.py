"""
advisor_service.py
------------------
Orchestrates one chat turn or one survey analysis:

  1. ask the live language model (if the injected client has one)
  2. on any failure, answer with the rule engines
     – chat   → chatbot_engine.classify_chat_message
     – survey → survey_engine.build_fallback_analysis

The output shapes are the camelCase payloads the HTTP layer returns, so the
caller never needs to know which strategy answered.
"""

import json
import logging
import random
import re
from typing import Optional

from catalog_engine import get_catalog
from chatbot_engine import classify_chat_message
from llm_client import DisabledClient, LanguageModelClient
from match_engine import clamp
from survey_engine import build_fallback_analysis, normalise_survey

logger = logging.getLogger(__name__)

HISTORY_WINDOW       = 5
LIVE_CONFIDENCE      = 0.85
SURVEY_MAX_TOKENS    = 1500
CHAT_MAX_TOKENS      = 500

CHAT_SYSTEM_PROMPT = (
    "Bạn là chatbot tư vấn giáo dục và hướng nghiệp cho học sinh Việt Nam.\n"
    "Hãy trả lời các câu hỏi về:\n"
    "- Các ngành học và chương trình đào tạo\n"
    "- Tư vấn định hướng nghề nghiệp\n"
    "- Thông tin tuyển sinh\n"
    "- Cơ hội việc làm sau tốt nghiệp\n\n"
    "Trả lời bằng tiếng Việt, thân thiện và hữu ích."
)

SURVEY_SYSTEM_PROMPT = (
    "You are an expert career counselor for Vietnamese students. "
    "Provide detailed, accurate analysis in Vietnamese language."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# --------------------------------------------------------------------------- #
#  Chat                                                                        #
# --------------------------------------------------------------------------- #

def generate_chat_reply(
    message: str,
    history: Optional[list]                = None,
    client:  Optional[LanguageModelClient] = None,
    rng:     Optional[random.Random]       = None,
) -> dict:
    """
    Answer one chat message.

    Parameters
    ----------
    message : str                 – raw user text (already validated non-blank)
    history : list[dict]          – prior {"role", "content"} messages
    client  : LanguageModelClient – live model; defaults to the disabled client

    Returns
    -------
    dict:
        response   (str)
        source     (str)       – model name, or "rules"
        stage      (str|None)  – selector stage when the rules answered
        category   (str|None)
        confidence (float|None)
    """
    client = client or DisabledClient()
    recent = list(history or [])[-HISTORY_WINDOW:]

    if client.available:
        text = client.try_complete(CHAT_SYSTEM_PROMPT, message, history=recent,
                                   max_tokens=CHAT_MAX_TOKENS)
        if text:
            return {"response": text, "source": client.name,
                    "stage": None, "category": None, "confidence": None}
        logger.info("Live model gave no chat answer – using rule-based reply")

    result = classify_chat_message(message, rng=rng)
    return {
        "response":   result["response"],
        "source":     "rules",
        "stage":      result["stage"],
        "category":   result["category"],
        "confidence": result["confidence"],
    }


# --------------------------------------------------------------------------- #
#  Survey analysis                                                             #
# --------------------------------------------------------------------------- #

def _survey_prompt(survey: dict) -> str:
    fields = "\n".join(f"- {spec.name} ({spec.code})" for spec in get_catalog().fields)
    return (
        "Analyze this student's career fit based on their survey data:\n\n"
        f"Name: {survey['name']}\n"
        f"Age: {survey['age']}\n"
        f"Current Grade: {survey['current_grade']}\n"
        f"Interests: {', '.join(survey['interests'])}\n"
        f"Skills: {', '.join(survey['skills'])}\n"
        f"Academic Scores: {json.dumps(survey['academic_scores'], ensure_ascii=False)}\n"
        f"Career Goals: {survey['career_goals']}\n"
        f"Learning Style: {survey['learning_style']}\n"
        f"Work Environment Preference: {survey['work_environment']}\n\n"
        f"Available Majors:\n{fields}\n\n"
        "Please provide a detailed analysis in JSON format with the keys "
        "recommendedMajors (top 3, each with majorName, majorCode, matchScore "
        "0-100 and reasons), analysisSummary (Vietnamese), strengths, "
        "recommendations and confidenceScore (0-1).\n"
        "Format the response as valid JSON."
    )


def parse_live_analysis(text: Optional[str]) -> Optional[dict]:
    """
    Decode the model's survey answer.

    Returns the decoded object, or None unless it is a JSON object with a
    non-empty ``recommendedMajors`` list.
    """
    if not text:
        return None
    try:
        data = json.loads(_FENCE_RE.sub("", text.strip()))
    except ValueError as exc:
        logger.warning("Live survey analysis is not valid JSON: %s", exc)
        return None
    if not isinstance(data, dict):
        return None
    majors = data.get("recommendedMajors")
    if not isinstance(majors, list) or not majors:
        logger.warning("Live survey analysis has no recommendedMajors")
        return None
    return data


def _confidence(value) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return LIVE_CONFIDENCE
    if value > 1:
        value /= 100.0
    return clamp(value)


def _from_rules(analysis: dict) -> dict:
    majors = [
        {
            "majorId":    entry["field_id"],
            "majorName":  entry["name"],
            "majorCode":  entry["field"],
            "matchScore": entry["score"],
            "reasons":    entry["reasons"],
        }
        for entry in analysis["recommended_fields"]
    ]
    return {
        "recommendedMajors": majors,
        "analysisSummary":   analysis["analysis_summary"],
        "strengths":         analysis["strengths"],
        "recommendations":   analysis["recommendations"],
        "confidenceScore":   analysis["confidence_score"],
        "source":            analysis["source"],
        "fullResponse":      {"method": "fallback-rule-based"},
    }


def _from_live(data: dict, survey: dict, source: str) -> dict:
    defaults = build_fallback_analysis(survey)
    return {
        "recommendedMajors": data["recommendedMajors"][:3],
        "analysisSummary":   data.get("analysisSummary") or defaults["analysis_summary"],
        "strengths":         data.get("strengths") or defaults["strengths"],
        "recommendations":   data.get("recommendations") or defaults["recommendations"],
        "confidenceScore":   _confidence(data.get("confidenceScore")),
        "source":            source,
        "fullResponse":      data,
    }


def analyze_career_fit(survey: dict, client: Optional[LanguageModelClient] = None) -> dict:
    """
    Produce the consultation payload for a survey.

    Returns
    -------
    dict (camelCase, ready for JSON):
        recommendedMajors – list of {majorId, majorName, majorCode, matchScore, reasons}
        analysisSummary, strengths, recommendations, confidenceScore,
        source ("rules" or the model name), fullResponse
    """
    client = client or DisabledClient()
    survey = normalise_survey(survey)

    if client.available:
        logger.info("Requesting live career analysis for %s", survey["name"] or "(anonymous)")
        data = parse_live_analysis(
            client.try_complete(SURVEY_SYSTEM_PROMPT, _survey_prompt(survey),
                                max_tokens=SURVEY_MAX_TOKENS)
        )
        if data is not None:
            return _from_live(data, survey, client.name)
        logger.info("Live career analysis unusable – using rule-based scoring")

    return _from_rules(build_fallback_analysis(survey))


def service_status(client: Optional[LanguageModelClient] = None) -> dict:
    client = client or DisabledClient()
    live   = client.available
    return {
        "aiServiceAvailable": live,
        "model":              client.name if live else "fallback",
        "features": {
            "careerAnalysis": True,
            "chatBot":        True,
            "fallbackMode":   not live,
        },
    }
