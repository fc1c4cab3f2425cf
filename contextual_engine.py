"""
contextual_engine.py
--------------------
Contextual Pattern Analyzer and Category Priority Resolver.

A second, independent scoring pass over the keyword groups in
data/contextual.json:
  1. Every group in a category is scored with the shared keyword scorer;
     the best group represents the category.
  2. Categories at or below the relevance floor are dropped.
  3. Survivors are re-weighted once by their category's priority multiplier
     and sorted (unclamped adjusted confidence, then raw confidence, then
     declaration order – all descending except declaration order). Only the
     reported confidence is clamped to [0, 1].
"""

import logging
import random
from typing import Optional

from catalog_engine import Catalog, get_catalog
from match_engine import clamp, keyword_confidence

logger = logging.getLogger(__name__)

RELEVANCE_FLOOR = 0.3


def analyze_contextual_patterns(
    message: str,
    rng:     Optional[random.Random] = None,
    catalog: Optional[Catalog]       = None,
) -> list:
    """
    Raw (pre-priority) candidates for a normalised *message*.

    Returns
    -------
    list of dicts, in category declaration order:
        response   (str)
        confidence (float) – raw keyword confidence, > RELEVANCE_FLOOR
        category   (str)
        order      (int)   – category declaration index
    """
    catalog    = catalog or get_catalog()
    rng        = rng or random.Random()
    candidates = []

    for category in catalog.contextual:
        best_conf  = 0.0
        best_group = None
        for group in category.groups:
            conf = keyword_confidence(message, group.keywords, group.weights)
            if conf > best_conf:
                best_conf, best_group = conf, group

        if best_group is None or best_conf <= RELEVANCE_FLOOR:
            continue

        logger.debug("contextual %s scored %.3f", category.id, best_conf)
        candidates.append({
            "response":   rng.choice(best_group.responses),
            "confidence": best_conf,
            "category":   category.id,
            "order":      category.order,
        })

    return candidates


def resolve_category_priority(candidates: list, catalog: Optional[Catalog] = None) -> list:
    """
    Apply each category's priority multiplier (once) and sort best-first.

    The input list is not modified. Each returned dict carries the adjusted
    value in ``confidence`` and the untouched score in ``raw_confidence``.
    """
    catalog  = catalog or get_catalog()
    weighted = []
    for cand in candidates:
        category = catalog.contextual_category(cand["category"])
        priority = category.priority if category else 1.0
        adjusted = cand["confidence"] * priority
        weighted.append((adjusted, dict(
            cand,
            raw_confidence = cand["confidence"],
            confidence     = clamp(adjusted),
        )))

    # Ordered on the unclamped product so saturated candidates keep their priority
    weighted.sort(key=lambda w: (-w[0], -w[1]["raw_confidence"], w[1]["order"]))
    return [cand for _, cand in weighted]
