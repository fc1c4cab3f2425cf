"""Tests for the Profile-Based Synthesizer."""

import pytest

from profile_engine import (
    PROFILE_RULES,
    analyze_user_profile,
    profile_is_empty,
    select_profile_rule,
    synthesize_profile_response,
)


def _profile(**tags):
    profile = {"concerns": [], "interests": [], "personality": [], "demographics": []}
    for family, values in tags.items():
        profile[family] = list(values)
    return profile


class TestAnalyzeUserProfile:

    def test_empty_message(self, catalog):
        profile = analyze_user_profile("", catalog=catalog)
        assert profile_is_empty(profile)

    def test_tags_from_shipped_keywords(self, catalog):
        profile = analyze_user_profile("em là con gái, muốn theo công nghệ", catalog=catalog)
        assert profile["demographics"] == ["female"]
        assert profile["interests"] == ["technology"]
        assert profile["concerns"] == []

    def test_tags_keep_catalog_order(self, small_catalog):
        profile = analyze_user_profile("tuổi này còn nghèo", catalog=small_catalog)
        assert profile["concerns"] == ["financial", "age"]

    def test_unrelated_text_has_no_tags(self, catalog):
        assert profile_is_empty(analyze_user_profile("qwerty zxcv", catalog=catalog))


class TestSelectProfileRule:

    @pytest.mark.parametrize("profile, expected", [
        (_profile(concerns=["academic_weakness"], interests=["technology"]),
         "academic_weakness_technology"),
        (_profile(concerns=["academic_weakness"], interests=["design"]), "academic_weakness_design"),
        (_profile(concerns=["financial", "age"]), "financial"),
        (_profile(concerns=["age"], interests=["technology"]), "age"),
        (_profile(demographics=["female"], interests=["technology"]), "female_technology"),
        (_profile(interests=["technology", "design"]), "technology"),
        (_profile(interests=["business"], personality=["creative"]), "business"),
        (_profile(personality=["analytical", "social"]), "analytical"),
        (_profile(personality=["social"]), "social"),
    ])
    def test_first_matching_rule_wins(self, profile, expected):
        assert select_profile_rule(profile) == expected

    @pytest.mark.parametrize("profile", [
        _profile(),
        _profile(concerns=["academic_weakness"]),
        _profile(demographics=["female"]),
    ])
    def test_no_dedicated_rule(self, profile):
        assert select_profile_rule(profile) is None

    def test_every_rule_has_a_unique_id(self):
        ids = [rule_id for rule_id, _ in PROFILE_RULES]
        assert len(ids) == len(set(ids))


class TestSynthesizeProfileResponse:

    def test_uses_rule_pool(self, small_catalog, rng):
        result = synthesize_profile_response(_profile(concerns=["financial"]),
                                             rng=rng, catalog=small_catalog)
        assert result == {"response": "R:financial", "rule": "financial"}

    def test_falls_back_to_encouragement(self, small_catalog, rng):
        result = synthesize_profile_response(_profile(demographics=["female"]),
                                             rng=rng, catalog=small_catalog)
        assert result == {"response": "E", "rule": "encouragement"}

    def test_shipped_pool(self, catalog, rng):
        result = synthesize_profile_response(_profile(concerns=["age"]), rng=rng, catalog=catalog)
        assert result["rule"] == "age"
        assert result["response"] in catalog.profile_responses["age"]
