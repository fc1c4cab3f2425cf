"""Tests for loading and validating the content tables."""

import dataclasses
import json

import pytest

from catalog_engine import CatalogError, build_catalog, load_catalog


class TestShippedCatalog:

    def test_loads(self, catalog):
        assert catalog.templates
        assert catalog.generic_fallback
        assert [c.id for c in catalog.contextual][:2] == ["specific_concerns", "academic_support"]

    def test_contextual_priorities(self, catalog):
        priorities = {c.id: c.priority for c in catalog.contextual}
        assert priorities["specific_concerns"] > priorities["greetings"]
        assert priorities["greetings"] > priorities["encouragement"]

    def test_field_ceilings_within_range(self, catalog):
        for spec in catalog.fields:
            assert 0 <= spec.base <= spec.ceiling <= 100

    def test_it_field(self, catalog):
        it = next(spec for spec in catalog.fields if spec.code == "IT")
        assert (it.base, it.ceiling) == (60, 98)

    def test_is_frozen(self, catalog):
        with pytest.raises(dataclasses.FrozenInstanceError):
            catalog.templates = ()
        with pytest.raises(TypeError):
            catalog.profile_responses["financial"] = ("x",)


class TestBuildCatalog:

    def test_minimal_tables(self, small_catalog):
        assert [c.id for c in small_catalog.templates] == ["weak_subject", "money"]
        group = small_catalog.templates[0].groups[0]
        assert group.pool_for("toán") == ("Toán: {subject}",)
        assert group.pool_for("văn") == ("Môn {subject}",)

    def test_weights_are_normalised(self, tables):
        tables["contextual"]["categories"][0]["groups"][0]["weights"] = {"Lo Lắng": 2}
        catalog = build_catalog(**tables)
        assert catalog.contextual[0].groups[0].weights == {"lo lắng": 2.0}

    def test_list_slot_values(self, tables):
        group = tables["templates"]["categories"][0]["groups"][0]
        group["slots"] = {"subject": ["Toán", "văn"]}
        catalog = build_catalog(**tables)
        slot = catalog.templates[0].groups[0].slots[0]
        assert list(slot.iter_aliases()) == [("toán", "toán"), ("văn", "văn")]


def _ctx_group(t):
    return t["contextual"]["categories"][0]["groups"][0]


def _tpl_group(t):
    return t["templates"]["categories"][0]["groups"][0]


@pytest.mark.parametrize("mutate", [
    pytest.param(lambda t: _ctx_group(t).update(keywords=[]), id="empty-keywords"),
    pytest.param(lambda t: _ctx_group(t).update(keywords=["lo", " "]), id="blank-keyword"),
    pytest.param(lambda t: _ctx_group(t).update(weights={"khác": 2}), id="unknown-weight"),
    pytest.param(lambda t: _ctx_group(t).update(weights={"sợ": 0}), id="zero-weight"),
    pytest.param(lambda t: _ctx_group(t).update(responses=[]), id="empty-pool"),
    pytest.param(lambda t: t["contextual"]["categories"][0].update(priority=0), id="zero-priority"),
    pytest.param(lambda t: t["contextual"]["categories"].append(
        t["contextual"]["categories"][0]), id="duplicate-category"),
    pytest.param(lambda t: t["contextual"].pop("categories"), id="bad-shape"),
    pytest.param(lambda t: _tpl_group(t).update(patterns=["kém {mon}"]), id="undeclared-slot"),
    pytest.param(lambda t: t["templates"]["categories"][1]["groups"][0].update(
        patterns=["   "]), id="blank-pattern"),
    pytest.param(lambda t: _tpl_group(t)["responses"].pop("default"), id="slot-value-without-pool"),
    pytest.param(lambda t: t["templates"]["categories"][1]["groups"][0].update(
        responses={"x": ["y"]}), id="plain-group-without-default"),
    pytest.param(lambda t: t["profile"]["rules"].pop("financial"), id="missing-profile-rule"),
    pytest.param(lambda t: t["profile"]["tags"].pop("demographics"), id="missing-tag-family"),
    pytest.param(lambda t: t["fallback"].update(responses=[]), id="empty-fallback"),
    pytest.param(lambda t: t["fields"]["fields"][0].update(ceiling=120), id="ceiling-over-100"),
    pytest.param(lambda t: t["fields"]["fields"][0].update(base=95), id="base-over-ceiling"),
    pytest.param(lambda t: t["fields"]["fields"][0]["rules"].append(
        {"when": "zodiac", "value": "leo", "delta": 5}), id="unknown-rule-kind"),
    pytest.param(lambda t: t["fields"]["fields"][0]["rules"].append(
        {"when": "subject_min", "subject": "math", "delta": 5}), id="subject-without-min"),
    pytest.param(lambda t: t["fields"]["fields"].append(
        dict(t["fields"]["fields"][0])), id="duplicate-field"),
    pytest.param(lambda t: t["fields"].pop("analysis"), id="missing-analysis"),
])
def test_structural_defects_raise(tables, mutate):
    mutate(tables)
    with pytest.raises(CatalogError):
        build_catalog(**tables)


class TestLoadCatalog:

    def test_missing_directory(self, tmp_path):
        with pytest.raises(CatalogError, match="templates.json"):
            load_catalog(str(tmp_path))

    def test_malformed_json(self, tmp_path, tables):
        for name in ("contextual", "profile", "fallback", "fields"):
            (tmp_path / f"{name}.json").write_text(json.dumps(tables[name]), encoding="utf-8")
        (tmp_path / "templates.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(CatalogError, match="could not be read"):
            load_catalog(str(tmp_path))

    def test_round_trip_from_disk(self, tmp_path, tables):
        for name, table in tables.items():
            (tmp_path / f"{name}.json").write_text(
                json.dumps(table, ensure_ascii=False), encoding="utf-8")
        catalog = load_catalog(str(tmp_path))
        assert catalog.generic_fallback == ("G",)
