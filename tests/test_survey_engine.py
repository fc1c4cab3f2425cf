"""Tests for the Survey Scoring Engine."""

import pytest

from survey_engine import (
    FALLBACK_CONFIDENCE,
    build_fallback_analysis,
    normalise_survey,
    rank_fields,
    score_field,
)

IT_SURVEY = {
    "name":           "An",
    "age":            17,
    "interests":      ["Công nghệ thông tin"],
    "skills":         ["Lập trình"],
    "academicScores": {"math": 9},
}


class TestNormaliseSurvey:

    def test_camel_case_keys(self):
        survey = normalise_survey({
            "currentGrade": "12", "careerGoals": "Làm lập trình viên",
            "learningStyle": "visual", "workEnvironmentPreference": "office",
            "academicScores": {"Math": "8.5"},
        })
        assert survey["current_grade"] == "12"
        assert survey["career_goals"] == "Làm lập trình viên"
        assert survey["learning_style"] == "visual"
        assert survey["work_environment"] == "office"
        assert survey["academic_scores"] == {"math": 8.5}

    def test_comma_separated_lists(self):
        survey = normalise_survey({"interests": "Marketing, Kế toán ,", "skills": None})
        assert survey["interests"] == ["Marketing", "Kế toán"]
        assert survey["skills"] == []

    @pytest.mark.parametrize("value", [5, 2.5, True, {"a": 1}])
    def test_non_list_answers_become_empty(self, value):
        survey = normalise_survey({"interests": value, "skills": value})
        assert (survey["interests"], survey["skills"]) == ([], [])

    def test_non_numeric_scores_are_skipped(self):
        survey = normalise_survey({"academic_scores": {"math": "chín", "physics": 7}})
        assert survey["academic_scores"] == {"physics": 7.0}

    @pytest.mark.parametrize("raw", [None, {}])
    def test_empty_payload(self, raw):
        survey = normalise_survey(raw)
        assert survey["name"] == ""
        assert survey["interests"] == []
        assert survey["academic_scores"] == {}


class TestScoreField:

    def test_ceiling_caps_score(self, catalog):
        it = next(spec for spec in catalog.fields if spec.code == "IT")
        score, fired = score_field(it, normalise_survey(IT_SURVEY))
        assert score == 98
        assert len(fired) == 4

    def test_rules_compare_case_insensitively(self, catalog):
        gd = next(spec for spec in catalog.fields if spec.code == "GD")
        score, _ = score_field(gd, normalise_survey({"skills": ["sáng tạo"],
                                                     "learningStyle": "Visual"}))
        assert score == 80

    def test_goal_keyword_is_a_substring_test(self, catalog):
        ba = next(spec for spec in catalog.fields if spec.code == "BA")
        score, _ = score_field(ba, normalise_survey({"careerGoals": "Muốn làm Quản lý dự án"}))
        assert score == 75


class TestRankFields:

    def test_it_profile(self, catalog):
        ranked = rank_fields(IT_SURVEY, catalog=catalog)
        assert [(r["field"], r["score"]) for r in ranked] == [("IT", 98), ("BA", 65), ("ACC", 60)]
        assert ranked[0]["reasons"] == [
            "Yêu thích công nghệ thông tin",
            "Đã có kỹ năng lập trình",
            "Điểm toán cao",
        ]

    def test_empty_survey_uses_bases(self, catalog):
        ranked = rank_fields({}, catalog=catalog)
        assert [(r["field"], r["score"]) for r in ranked] == [("BA", 65), ("IT", 60), ("MKT", 55)]
        for entry in ranked:
            assert entry["reasons"] == list(catalog.generic_reasons)

    def test_ties_keep_declaration_order(self, small_catalog):
        ranked = rank_fields({}, catalog=small_catalog)
        assert [r["field"] for r in ranked] == ["A", "B"]

    def test_fired_reason_comes_first(self, small_catalog):
        ranked = rank_fields({"interests": ["X"]}, catalog=small_catalog)
        assert ranked[0] == {"field": "A", "field_id": 1, "name": "Alpha", "score": 80,
                             "reasons": ["Thích X", "g1", "g2"]}

    @pytest.mark.parametrize("top_n, expected", [(0, 0), (1, 1), (3, 3), (10, 3)])
    def test_top_n_is_bounded(self, catalog, top_n, expected):
        assert len(rank_fields({}, top_n=top_n, catalog=catalog)) == expected

    def test_scores_within_range(self, catalog):
        survey = {"interests": ["Công nghệ thông tin", "Marketing", "Kế toán"],
                  "skills": ["Giao tiếp", "Lãnh đạo", "Tính toán"],
                  "academicScores": {"math": 10, "physics": 10, "english": 10}}
        for entry in rank_fields(survey, catalog=catalog):
            assert 0 <= entry["score"] <= 100


class TestBuildFallbackAnalysis:

    def test_it_profile(self, catalog):
        analysis = build_fallback_analysis(IT_SURVEY, catalog=catalog)
        assert analysis["source"] == "rules"
        assert analysis["confidence_score"] == FALLBACK_CONFIDENCE
        assert "An" in analysis["analysis_summary"]
        assert analysis["recommended_fields"][0]["field"] == "IT"
        assert analysis["strengths"] == [
            "Yêu thích công nghệ thông tin",
            "Đã có kỹ năng lập trình",
            "Điểm toán cao",
        ]
        assert analysis["recommendations"] == list(catalog.default_recommendations)

    def test_no_specific_reasons_uses_default_strengths(self, catalog):
        analysis = build_fallback_analysis({}, catalog=catalog)
        assert analysis["strengths"] == list(catalog.default_strengths)
        assert "bạn" in analysis["analysis_summary"]
