"""
match_engine.py
---------------
Text normalisation and the keyword/phrase confidence scorer shared by every
matcher in the advisor.

Scoring shape (identical for template and contextual matching):
  1. ratio      – Σ weight(matched keyword) / total keywords in the group
  2. phrase     – +0.2 when a matched keyword is a multi-word phrase
  3. multi      – +0.1 × (matched_count − 1) when two or more keywords hit
  4. context    – +0.15 when an intent word ("học", "ngành", "how" …) is
                  present alongside at least one group keyword
The result is clamped to [0, 1].
"""

import re
import unicodedata
from typing import Iterable, Mapping, Optional

PHRASE_BONUS      = 0.2
MULTI_MATCH_STEP  = 0.1
CONTEXT_BONUS     = 0.15
DEFAULT_WEIGHT    = 1.0

# Words that signal the user is asking about study / career direction
INTENT_WORDS = (
    "học", "ngành", "nghề", "tương lai", "định hướng", "tư vấn",
    "có thể", "được không", "làm sao",
    "study", "major", "career", "can i", "how",
)

# Function words dropped before partial template scoring so that
# "học ngành it" does not match every message containing "học ngành".
STOP_WORDS = frozenset({
    "tôi", "mình", "em", "bạn", "có", "không", "được", "là",
    "và", "của", "cho", "với", "thì", "mà", "nhưng", "muốn", "nên", "học",
    "ngành", "gì", "nào", "như", "thế", "làm", "sao", "để", "về", "này",
    "đó", "rất", "quá", "hay", "hoặc", "bị", "đã", "sẽ", "đang", "những",
    "các", "một", "ở", "khi", "nếu", "vẫn", "lại", "ra", "vào",
    "the", "a", "an", "is", "are", "to", "of", "and", "or", "for", "in",
    "on", "i", "me", "my", "you", "do", "does", "what", "which", "how",
    "can", "should", "vs",
})

_WORD_RE = re.compile(r"[^\W_]+(?:[/'-][^\W_]+)*", re.UNICODE)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def normalize_text(text: Optional[str]) -> str:
    """
    Lower-case and NFC-normalise *text*.

    ``None`` and non-string input normalise to ``""``, which simply matches
    nothing downstream.
    """
    if not text or not isinstance(text, str):
        return ""
    return unicodedata.normalize("NFC", text.lower())


def pattern_tokens(pattern: str) -> list:
    """
    Content words of *pattern*, in order, without stop words or
    single-character tokens.
    """
    tokens = []
    for word in _WORD_RE.findall(normalize_text(pattern)):
        if len(word) < 2 or word in STOP_WORDS:
            continue
        if word not in tokens:
            tokens.append(word)
    return tokens


def has_context_relevance(message: str, keywords: Iterable[str]) -> bool:
    """True when *message* holds an intent word AND at least one keyword."""
    if not any(word in message for word in INTENT_WORDS):
        return False
    return any(keyword in message for keyword in keywords)


def keyword_confidence(
    message:  str,
    keywords: Iterable[str],
    weights:  Optional[Mapping[str, float]] = None,
) -> float:
    """
    Score *message* (already normalised) against a keyword/phrase list.

    Parameters
    ----------
    message  : str                – normalised user message
    keywords : iterable[str]      – lowercase keywords or multi-word phrases
    weights  : dict[str, float]   – optional per-keyword weight (default 1.0)

    Returns
    -------
    float in [0, 1]
    """
    keywords = list(keywords)
    if not message or not keywords:
        return 0.0

    weights        = weights or {}
    raw_score      = 0.0
    matched_count  = 0
    phrase_matched = False

    for keyword in keywords:
        if keyword and keyword in message:
            matched_count += 1
            raw_score     += weights.get(keyword, DEFAULT_WEIGHT)
            if " " in keyword:
                phrase_matched = True

    if matched_count == 0:
        return 0.0

    confidence = raw_score / len(keywords)

    if phrase_matched:
        confidence += PHRASE_BONUS

    if matched_count >= 2:
        confidence += MULTI_MATCH_STEP * (matched_count - 1)

    if has_context_relevance(message, keywords):
        confidence += CONTEXT_BONUS

    return clamp(confidence)
