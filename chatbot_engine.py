"""
chatbot_engine.py  –  Career advisor fallback chatbot
=====================================================
Answers free-text questions when the live language model is unavailable.

Selection pipeline (most → least specific, first qualifying stage wins):
  1. TEMPLATE_CHECK    – Template Matcher,             confidence ≥ 0.5
  2. CONTEXTUAL_CHECK  – Contextual Analyzer + priority, confidence ≥ 0.7
  3. PROFILE_SYNTH     – any profile tag extracted from the message
  4. GENERIC_FALLBACK  – open-ended encouragement

All randomness goes through the ``rng`` argument, so a seeded
``random.Random`` makes every reply reproducible.
"""

import logging
import random
from typing import Optional

from catalog_engine import Catalog, get_catalog
from contextual_engine import analyze_contextual_patterns, resolve_category_priority
from match_engine import normalize_text
from profile_engine import analyze_user_profile, profile_is_empty, synthesize_profile_response
from template_engine import match_templates

logger = logging.getLogger(__name__)

TEMPLATE_CHECK   = "TEMPLATE_CHECK"
CONTEXTUAL_CHECK = "CONTEXTUAL_CHECK"
PROFILE_SYNTH    = "PROFILE_SYNTH"
GENERIC_FALLBACK = "GENERIC_FALLBACK"

TEMPLATE_THRESHOLD   = 0.5
CONTEXTUAL_THRESHOLD = 0.7

# Used only if the catalog itself cannot be consulted
_LAST_RESORT = (
    "Mình luôn sẵn sàng hỗ trợ bạn! Hãy kể cho mình nghe bạn thích môn học "
    "hay hoạt động nào, mình sẽ gợi ý ngành học phù hợp nhé."
)


def _trace(stage: str, confidence: float, category: Optional[str], accepted: bool) -> dict:
    return {"stage": stage, "confidence": round(confidence, 4),
            "category": category, "accepted": accepted}


def _result(response: str, stage: str, confidence: float, category: Optional[str],
            profile: dict, trace: list) -> dict:
    return {
        "response":   response,
        "stage":      stage,
        "confidence": confidence,
        "category":   category,
        "profile":    profile,
        "trace":      trace,
    }


def _classify(message: str, rng: random.Random, catalog: Catalog) -> dict:
    msg   = normalize_text(message)
    trace = []

    # ── Stage 1: templates ─────────────────────────────────────────────────
    template = match_templates(msg, rng=rng, catalog=catalog)
    if template is not None:
        accepted = template["confidence"] >= TEMPLATE_THRESHOLD
        trace.append(_trace(TEMPLATE_CHECK, template["confidence"], template["category"], accepted))
        if accepted:
            return _result(template["response"], TEMPLATE_CHECK, template["confidence"],
                           template["category"], {}, trace)
    else:
        trace.append(_trace(TEMPLATE_CHECK, 0.0, None, False))

    # ── Stage 2: contextual categories ────────────────────────────────────
    ranked = resolve_category_priority(
        analyze_contextual_patterns(msg, rng=rng, catalog=catalog), catalog=catalog,
    )
    if ranked:
        top      = ranked[0]
        accepted = top["confidence"] >= CONTEXTUAL_THRESHOLD
        trace.append(_trace(CONTEXTUAL_CHECK, top["confidence"], top["category"], accepted))
        if accepted:
            return _result(top["response"], CONTEXTUAL_CHECK, top["confidence"],
                           top["category"], {}, trace)
    else:
        trace.append(_trace(CONTEXTUAL_CHECK, 0.0, None, False))

    # ── Stage 3: profile synthesis ────────────────────────────────────────
    profile = analyze_user_profile(msg, catalog=catalog)
    if not profile_is_empty(profile):
        synth = synthesize_profile_response(profile, rng=rng, catalog=catalog)
        trace.append(_trace(PROFILE_SYNTH, 1.0, synth["rule"], True))
        return _result(synth["response"], PROFILE_SYNTH, 1.0, synth["rule"], profile, trace)
    trace.append(_trace(PROFILE_SYNTH, 0.0, None, False))

    # ── Stage 4: generic encouragement ────────────────────────────────────
    trace.append(_trace(GENERIC_FALLBACK, 0.0, None, True))
    return _result(rng.choice(catalog.generic_fallback), GENERIC_FALLBACK, 0.0,
                   None, profile, trace)


def classify_chat_message(
    message: Optional[str],
    rng:     Optional[random.Random] = None,
    catalog: Optional[Catalog]       = None,
) -> dict:
    """
    Pick a reply for *message* with the rule engine.

    Parameters
    ----------
    message : str            – raw user text (any length, any Unicode)
    rng     : random.Random  – source for choosing among equal responses
    catalog : Catalog        – content tables (defaults to data/*.json)

    Returns
    -------
    dict:
        response   (str)        – never empty
        stage      (str)        – stage that produced the reply
        confidence (float 0-1)  – confidence reported by that stage
        category   (str|None)   – template/contextual category or profile rule
        profile    (dict)       – extracted tags (empty before PROFILE_SYNTH)
        trace      (list[dict]) – one entry per stage visited
    """
    rng = rng or random.Random()
    try:
        catalog = catalog or get_catalog()
        result  = _classify(message or "", rng, catalog)
    except Exception as exc:
        logger.exception("classify_chat_message failed: %s", exc)
        return _result(_LAST_RESORT, GENERIC_FALLBACK, 0.0, None, {},
                       [_trace(GENERIC_FALLBACK, 0.0, None, True)])

    logger.info("chat reply via %s (category=%s, confidence=%.3f)",
                result["stage"], result["category"], result["confidence"])
    return result
