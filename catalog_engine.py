"""
catalog_engine.py
-----------------
Loads and validates the read-only content tables the advisor runs on:

  data/templates.json   – Template Catalog (patterns, slots, response pools)
  data/contextual.json  – Contextual categories (priority, keyword groups)
  data/profile.json     – Profile tag keywords + synthesizer response pools
  data/fallback.json    – Generic encouragement pool
  data/fields.json      – Fields of study and their additive scoring rules

Every structural defect raises ``CatalogError`` while loading, so a broken
content edit stops the process at start-up instead of surfacing mid-request.
The returned ``Catalog`` is immutable and shared by all requests.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from match_engine import normalize_text

logger = logging.getLogger(__name__)

_DATA_DIR = os.path.join(os.path.dirname(__file__), "data")

_PLACEHOLDER_RE = re.compile(r"\{([a-z_][a-z0-9_]*)\}")

DEFAULT_PRIORITY = 1.0
DEFAULT_POOL     = "default"

# Tag families extracted by profile_engine, in the order they are reported
PROFILE_TAGS = {
    "concerns":     ("academic_weakness", "financial", "age"),
    "interests":    ("technology", "design", "business"),
    "personality":  ("creative", "analytical", "social"),
    "demographics": ("female",),
}

# Synthesizer rules that need a response pool in profile.json
PROFILE_RULE_IDS = (
    "academic_weakness_technology",
    "academic_weakness_design",
    "financial",
    "age",
    "female_technology",
    "technology",
    "design",
    "business",
    "creative",
    "analytical",
    "social",
)

FIELD_RULE_KINDS = (
    "interest", "skill", "subject_min", "goal_keyword",
    "learning_style", "work_environment",
)


class CatalogError(ValueError):
    """Raised when a content table is structurally invalid."""


# --------------------------------------------------------------------------- #
#  Catalog types                                                               #
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class Slot:
    """A named placeholder and its enumerated fill values.

    ``values`` is an ordered tuple of ``(value_key, aliases)``; the key picks
    the response pool, the alias is what must appear in the message.
    """
    name:   str
    values: tuple

    def iter_aliases(self):
        for key, aliases in self.values:
            for alias in aliases:
                yield key, alias


@dataclass(frozen=True)
class PatternGroup:
    patterns:        tuple = ()
    keywords:        tuple = ()
    weights:         Mapping[str, float] = field(default_factory=dict)
    slots:           tuple = ()
    responses:       tuple = ()
    value_responses: Mapping[str, tuple] = field(default_factory=dict)

    def pool_for(self, value_key: Optional[str] = None) -> tuple:
        if value_key is not None and value_key in self.value_responses:
            return self.value_responses[value_key]
        return self.responses


@dataclass(frozen=True)
class Category:
    id:       str
    priority: float
    groups:   tuple
    order:    int


@dataclass(frozen=True)
class FieldRule:
    kind:      str
    value:     str
    delta:     float
    threshold: float = 0.0
    reason:    Optional[str] = None


@dataclass(frozen=True)
class FieldSpec:
    code:     str
    field_id: int
    name:     str
    base:     float
    ceiling:  float
    rules:    tuple


@dataclass(frozen=True)
class Catalog:
    templates:               tuple
    contextual:              tuple
    profile_keywords:        Mapping[str, Mapping[str, tuple]]
    profile_responses:       Mapping[str, tuple]
    profile_encouragement:   tuple
    generic_fallback:        tuple
    fields:                  tuple
    generic_reasons:         tuple
    summary_template:        str
    default_strengths:       tuple
    default_recommendations: tuple

    def contextual_category(self, category_id: str) -> Optional[Category]:
        return next((c for c in self.contextual if c.id == category_id), None)


# --------------------------------------------------------------------------- #
#  Validation helpers                                                          #
# --------------------------------------------------------------------------- #

def _require(condition: bool, where: str, message: str) -> None:
    if not condition:
        raise CatalogError(f"{where}: {message}")


def _string_list(value: Any, where: str, allow_empty: bool = False) -> tuple:
    _require(isinstance(value, list), where, "expected a list of strings")
    items = []
    for item in value:
        _require(isinstance(item, str) and item.strip() != "", where,
                 f"invalid entry {item!r}")
        items.append(item)
    _require(allow_empty or bool(items), where, "list must not be empty")
    return tuple(items)


def _response_pool(value: Any, where: str) -> tuple:
    return _string_list(value, where)


def _lower_list(value: Any, where: str) -> tuple:
    return tuple(normalize_text(item) for item in _string_list(value, where))


def _priority(raw: Mapping, where: str) -> float:
    priority = raw.get("priority", DEFAULT_PRIORITY)
    _require(isinstance(priority, (int, float)) and priority > 0, where,
             f"priority must be a positive number, got {priority!r}")
    return float(priority)


def _weights(raw: Any, keywords: tuple, where: str) -> Mapping[str, float]:
    if raw is None:
        return MappingProxyType({})
    _require(isinstance(raw, dict), where, "weights must be an object")
    weights = {}
    for keyword, weight in raw.items():
        _require(normalize_text(keyword) in keywords, where,
                 f"weight for unknown keyword {keyword!r}")
        _require(isinstance(weight, (int, float)) and weight > 0, where,
                 f"weight for {keyword!r} must be positive")
        weights[normalize_text(keyword)] = float(weight)
    return MappingProxyType(weights)


def _slots(raw: Any, where: str) -> tuple:
    if raw is None:
        return ()
    _require(isinstance(raw, dict) and raw, where, "slots must be a non-empty object")
    slots = []
    for name, spec in raw.items():
        slot_where = f"{where}.slots.{name}"
        _require(bool(_PLACEHOLDER_RE.fullmatch("{" + name + "}")), slot_where,
                 "invalid slot name")
        if isinstance(spec, list):
            values = tuple((normalize_text(alias), (normalize_text(alias),))
                           for alias in _string_list(spec, slot_where))
        else:
            _require(isinstance(spec, dict) and spec, slot_where,
                     "slot values must be a list or an object of alias lists")
            values = tuple((normalize_text(key), _lower_list(aliases, f"{slot_where}.{key}"))
                           for key, aliases in spec.items())
        slots.append(Slot(name=name, values=values))
    return tuple(slots)


# --------------------------------------------------------------------------- #
#  Section builders                                                            #
# --------------------------------------------------------------------------- #

def _template_group(raw: Any, where: str) -> PatternGroup:
    _require(isinstance(raw, dict), where, "group must be an object")
    patterns   = _lower_list(raw.get("patterns"), f"{where}.patterns")
    slots      = _slots(raw.get("slots"), where)
    slot_names = {slot.name for slot in slots}

    for pattern in patterns:
        for name in _PLACEHOLDER_RE.findall(pattern):
            _require(name in slot_names, where,
                     f"pattern {pattern!r} uses undeclared slot {{{name}}}")
        stripped = _PLACEHOLDER_RE.sub("", pattern).strip()
        _require(bool(stripped) or bool(slots), where,
                 f"pattern {pattern!r} is empty once placeholders are removed")

    raw_responses = raw.get("responses")
    if isinstance(raw_responses, list):
        responses, value_responses = _response_pool(raw_responses, f"{where}.responses"), {}
    else:
        _require(isinstance(raw_responses, dict) and raw_responses, where,
                 "responses must be a list or an object of pools")
        value_responses = {
            normalize_text(key): _response_pool(pool, f"{where}.responses.{key}")
            for key, pool in raw_responses.items() if key != DEFAULT_POOL
        }
        responses = ()
        if DEFAULT_POOL in raw_responses:
            responses = _response_pool(raw_responses[DEFAULT_POOL],
                                       f"{where}.responses.{DEFAULT_POOL}")

    if not slots:
        _require(bool(responses), where,
                 "a group without slots needs a flat response list or a 'default' pool")
    elif not responses:
        for slot in slots:
            for key, _ in slot.values:
                _require(key in value_responses, where,
                         f"slot value {key!r} has no response pool and no default")

    return PatternGroup(
        patterns        = patterns,
        slots           = slots,
        responses       = responses,
        value_responses = MappingProxyType(value_responses),
    )


def _contextual_group(raw: Any, where: str) -> PatternGroup:
    _require(isinstance(raw, dict), where, "group must be an object")
    keywords = _lower_list(raw.get("keywords"), f"{where}.keywords")
    return PatternGroup(
        keywords  = keywords,
        weights   = _weights(raw.get("weights"), keywords, where),
        responses = _response_pool(raw.get("responses"), f"{where}.responses"),
    )


def _categories(raw: Any, source: str, group_builder) -> tuple:
    _require(isinstance(raw, dict) and isinstance(raw.get("categories"), list),
             source, "expected {'categories': [...]}")
    categories = []
    seen = set()
    for order, entry in enumerate(raw["categories"]):
        _require(isinstance(entry, dict) and isinstance(entry.get("id"), str),
                 source, f"category #{order} needs an 'id'")
        where = f"{source}:{entry['id']}"
        _require(entry["id"] not in seen, where, "duplicate category id")
        seen.add(entry["id"])
        groups = entry.get("groups")
        _require(isinstance(groups, list) and groups, where, "needs at least one group")
        categories.append(Category(
            id       = entry["id"],
            priority = _priority(entry, where),
            groups   = tuple(group_builder(g, f"{where}#{i}") for i, g in enumerate(groups)),
            order    = order,
        ))
    _require(bool(categories), source, "no categories defined")
    return tuple(categories)


def _profile(raw: Any) -> tuple:
    source = "profile.json"
    _require(isinstance(raw, dict), source, "expected an object")

    tags = raw.get("tags")
    _require(isinstance(tags, dict), source, "missing 'tags'")
    keywords = {}
    for family, names in PROFILE_TAGS.items():
        family_raw = tags.get(family)
        _require(isinstance(family_raw, dict), source, f"missing tag family {family!r}")
        keywords[family] = MappingProxyType({
            name: _lower_list(family_raw.get(name), f"{source}:tags.{family}.{name}")
            for name in names
        })

    rules = raw.get("rules")
    _require(isinstance(rules, dict), source, "missing 'rules'")
    responses = {
        rule_id: _response_pool(rules.get(rule_id), f"{source}:rules.{rule_id}")
        for rule_id in PROFILE_RULE_IDS
    }
    encouragement = _response_pool(raw.get("encouragement"), f"{source}:encouragement")
    return MappingProxyType(keywords), MappingProxyType(responses), encouragement


def _field_rule(raw: Any, where: str) -> FieldRule:
    _require(isinstance(raw, dict), where, "rule must be an object")
    kind = raw.get("when")
    _require(kind in FIELD_RULE_KINDS, where, f"unknown rule type {kind!r}")
    delta = raw.get("delta")
    _require(isinstance(delta, (int, float)), where, "rule needs a numeric 'delta'")
    reason = raw.get("reason")
    _require(reason is None or (isinstance(reason, str) and reason.strip()), where,
             "reason must be a non-empty string")

    if kind == "subject_min":
        subject   = raw.get("subject")
        threshold = raw.get("min")
        _require(isinstance(subject, str) and subject, where, "subject_min needs 'subject'")
        _require(isinstance(threshold, (int, float)), where, "subject_min needs numeric 'min'")
        return FieldRule(kind, subject, float(delta), float(threshold), reason)

    value = raw.get("value")
    _require(isinstance(value, str) and value.strip(), where, f"{kind} needs a 'value'")
    return FieldRule(kind, value, float(delta), 0.0, reason)


def _fields(raw: Any) -> tuple:
    source = "fields.json"
    _require(isinstance(raw, dict) and isinstance(raw.get("fields"), list), source,
             "expected {'fields': [...]}")
    fields = []
    codes = set()
    for entry in raw["fields"]:
        _require(isinstance(entry, dict) and isinstance(entry.get("code"), str), source,
                 "each field needs a 'code'")
        where = f"{source}:{entry['code']}"
        _require(entry["code"] not in codes, where, "duplicate field code")
        codes.add(entry["code"])
        base, ceiling = entry.get("base"), entry.get("ceiling")
        _require(isinstance(base, (int, float)) and isinstance(ceiling, (int, float)),
                 where, "needs numeric 'base' and 'ceiling'")
        _require(0 <= base <= ceiling <= 100, where,
                 "expected 0 <= base <= ceiling <= 100")
        rules = entry.get("rules", [])
        _require(isinstance(rules, list), where, "'rules' must be a list")
        fields.append(FieldSpec(
            code     = entry["code"],
            field_id = int(entry.get("id", len(fields) + 1)),
            name     = str(entry.get("name", entry["code"])),
            base     = float(base),
            ceiling  = float(ceiling),
            rules    = tuple(_field_rule(r, f"{where}#{i}") for i, r in enumerate(rules)),
        ))
    _require(bool(fields), source, "no fields defined")
    reasons = _string_list(raw.get("generic_reasons"), f"{source}:generic_reasons")

    analysis = raw.get("analysis")
    _require(isinstance(analysis, dict), source, "missing 'analysis' block")
    summary = analysis.get("summary")
    _require(isinstance(summary, str) and summary.strip(), source, "analysis.summary must be text")
    strengths       = _string_list(analysis.get("strengths"), f"{source}:analysis.strengths")
    recommendations = _string_list(analysis.get("recommendations"),
                                   f"{source}:analysis.recommendations")
    return tuple(fields), reasons, summary, strengths, recommendations


# --------------------------------------------------------------------------- #
#  Public API                                                                  #
# --------------------------------------------------------------------------- #

def build_catalog(
    templates:  dict,
    contextual: dict,
    profile:    dict,
    fallback:   dict,
    fields:     dict,
) -> Catalog:
    """Validate already-parsed content tables and freeze them into a Catalog."""
    profile_keywords, profile_responses, encouragement = _profile(profile)
    field_specs, generic_reasons, summary, strengths, recommendations = _fields(fields)
    _require(isinstance(fallback, dict), "fallback.json", "expected an object")

    return Catalog(
        templates               = _categories(templates, "templates.json", _template_group),
        contextual              = _categories(contextual, "contextual.json", _contextual_group),
        profile_keywords        = profile_keywords,
        profile_responses       = profile_responses,
        profile_encouragement   = encouragement,
        generic_fallback        = _response_pool(fallback.get("responses"), "fallback.json:responses"),
        fields                  = field_specs,
        generic_reasons         = generic_reasons,
        summary_template        = summary,
        default_strengths       = strengths,
        default_recommendations = recommendations,
    )


def _read_table(data_dir: str, name: str) -> Any:
    path = os.path.join(data_dir, name)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise CatalogError(f"{name}: could not be read ({exc})") from exc


def load_catalog(data_dir: Optional[str] = None) -> Catalog:
    """
    Read and validate every content table under *data_dir* (default: the
    package's ``data/`` directory).

    Raises
    ------
    CatalogError – on any missing file or structural defect.
    """
    data_dir = data_dir or _DATA_DIR
    catalog = build_catalog(
        templates  = _read_table(data_dir, "templates.json"),
        contextual = _read_table(data_dir, "contextual.json"),
        profile    = _read_table(data_dir, "profile.json"),
        fallback   = _read_table(data_dir, "fallback.json"),
        fields     = _read_table(data_dir, "fields.json"),
    )
    logger.info(
        "Catalog loaded: %d template categories, %d contextual categories, %d fields",
        len(catalog.templates), len(catalog.contextual), len(catalog.fields),
    )
    return catalog


_CATALOG: Optional[Catalog] = None


def get_catalog() -> Catalog:
    """Return the process-wide catalog, loading it on first use."""
    global _CATALOG
    if _CATALOG is None:
        _CATALOG = load_catalog()
    return _CATALOG
