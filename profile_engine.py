"""
profile_engine.py
-----------------
Profile-Based Synthesizer.

Used only when neither the templates nor the contextual categories are
confident enough. Tags are pure keyword membership tests over four families
(concerns, interests, personality, demographics); the reply is picked by the
first rule in PROFILE_RULES whose required tags are all present.
"""

import logging
import random
from typing import Optional

from catalog_engine import PROFILE_TAGS, Catalog, get_catalog

logger = logging.getLogger(__name__)

# (rule id, {family: tag}) – evaluated top to bottom, first hit wins
PROFILE_RULES = (
    ("academic_weakness_technology", {"concerns": "academic_weakness", "interests": "technology"}),
    ("academic_weakness_design",     {"concerns": "academic_weakness", "interests": "design"}),
    ("financial",                    {"concerns": "financial"}),
    ("age",                          {"concerns": "age"}),
    ("female_technology",            {"demographics": "female", "interests": "technology"}),
    ("technology",                   {"interests": "technology"}),
    ("design",                       {"interests": "design"}),
    ("business",                     {"interests": "business"}),
    ("creative",                     {"personality": "creative"}),
    ("analytical",                   {"personality": "analytical"}),
    ("social",                       {"personality": "social"}),
)


def analyze_user_profile(message: str, catalog: Optional[Catalog] = None) -> dict:
    """
    Extract tag sets from a normalised *message*.

    Returns
    -------
    dict with keys concerns / interests / personality / demographics, each a
    list of tag names in catalog order.
    """
    catalog = catalog or get_catalog()
    profile = {family: [] for family in PROFILE_TAGS}
    if not message:
        return profile

    for family, tags in PROFILE_TAGS.items():
        keywords = catalog.profile_keywords[family]
        for tag in tags:
            if any(keyword in message for keyword in keywords[tag]):
                profile[family].append(tag)
    return profile


def profile_is_empty(profile: dict) -> bool:
    return not any(profile.get(family) for family in PROFILE_TAGS)


def select_profile_rule(profile: dict) -> Optional[str]:
    for rule_id, required in PROFILE_RULES:
        if all(tag in profile.get(family, ()) for family, tag in required.items()):
            return rule_id
    return None


def synthesize_profile_response(
    profile: dict,
    rng:     Optional[random.Random] = None,
    catalog: Optional[Catalog]       = None,
) -> dict:
    """
    Compose a reply for *profile*.

    Returns
    -------
    dict:
        response (str)
        rule     (str) – the rule id that fired, or "encouragement" when only
                         tags without a dedicated rule were present
    """
    catalog = catalog or get_catalog()
    rng     = rng or random.Random()

    rule_id = select_profile_rule(profile)
    if rule_id is None:
        return {"response": rng.choice(catalog.profile_encouragement),
                "rule": "encouragement"}

    logger.debug("profile rule %s fired for %s", rule_id, profile)
    return {"response": rng.choice(catalog.profile_responses[rule_id]), "rule": rule_id}
