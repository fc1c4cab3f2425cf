"""
template_engine.py
------------------
Template Matcher – resolves a normalised message against the Template
Catalog (data/templates.json).

Matching pipeline per pattern:
  1. Exact substring of the placeholder-free pattern  → 0.95 immediately
  2. Partial match – when at least two and ≥75% of the pattern's content
     words are present, they run through the shared keyword scorer, capped
     below the exact-match confidence
Slot-bearing groups only fire when one of the slot's enumerated values is
present in the message; the value is substituted into the pattern before
scoring and decides which response pool is used.
"""

import logging
import random
import re
from typing import Optional

from catalog_engine import Catalog, PatternGroup, get_catalog
from match_engine import keyword_confidence, pattern_tokens

logger = logging.getLogger(__name__)

EXACT_MATCH_CONFIDENCE = 0.95
PARTIAL_MATCH_CEILING  = 0.9
MIN_PARTIAL_TOKENS     = 2
PARTIAL_COVERAGE       = 0.75

_PLACEHOLDER_RE = re.compile(r"\{[^}]+\}")


def _strip_placeholders(pattern: str) -> str:
    return " ".join(_PLACEHOLDER_RE.sub(" ", pattern).split())


def score_template_pattern(message: str, pattern: str) -> float:
    """
    Confidence in [0, 1] that *message* matches a single template *pattern*.

    Any ``{slot}`` placeholders left in *pattern* are removed first.
    """
    clean = _strip_placeholders(pattern)
    if not clean or not message:
        return 0.0

    if clean in message:
        return EXACT_MATCH_CONFIDENCE

    tokens = pattern_tokens(clean)
    if len(tokens) < MIN_PARTIAL_TOKENS:
        return 0.0

    matched = sum(1 for token in tokens if token in message)
    if matched < MIN_PARTIAL_TOKENS or matched < PARTIAL_COVERAGE * len(tokens):
        return 0.0
    return min(keyword_confidence(message, tokens), PARTIAL_MATCH_CEILING)


def _best_plain_match(message: str, group: PatternGroup) -> Optional[dict]:
    best = None
    for pattern in group.patterns:
        score = score_template_pattern(message, pattern)
        if score > 0 and (best is None or score > best["confidence"]):
            best = {"confidence": score, "pattern": pattern,
                    "pool": group.responses, "fill": {}}
    return best


def _best_slot_match(message: str, group: PatternGroup) -> Optional[dict]:
    best = None
    for slot in group.slots:
        placeholder = "{" + slot.name + "}"
        for value_key, alias in slot.iter_aliases():
            if alias not in message:
                continue
            pool = group.pool_for(value_key)
            if not pool:
                continue
            for pattern in group.patterns:
                filled = pattern.replace(placeholder, alias)
                score  = score_template_pattern(message, filled)
                if score > 0 and (best is None or score > best["confidence"]):
                    best = {"confidence": score, "pattern": filled,
                            "pool": pool, "fill": {slot.name: alias}}
    return best


def _render(response: str, fill: dict) -> str:
    for name, value in fill.items():
        response = response.replace("{" + name + "}", value)
    return response


def match_templates(
    message: str,
    rng:     Optional[random.Random] = None,
    catalog: Optional[Catalog]       = None,
) -> Optional[dict]:
    """
    Best template match for a normalised *message*.

    Returns
    -------
    dict | None:
        response   (str)   – chosen from the winning pool, slots substituted
        confidence (float) – in [0, 1]
        category   (str)   – template category id
        pattern    (str)   – the (filled) pattern that won
    None when no pattern scored above zero.
    """
    catalog = catalog or get_catalog()
    rng     = rng or random.Random()

    best = None
    for category in catalog.templates:
        for group in category.groups:
            match = _best_slot_match(message, group) if group.slots \
                else _best_plain_match(message, group)
            if match is None:
                continue
            logger.debug("template %s scored %.3f on %r",
                         category.id, match["confidence"], match["pattern"])
            if best is None or match["confidence"] > best["confidence"]:
                best = dict(match, category=category.id)

    if best is None:
        return None

    return {
        "response":   _render(rng.choice(best["pool"]), best["fill"]),
        "confidence": best["confidence"],
        "category":   best["category"],
        "pattern":    best["pattern"],
    }
