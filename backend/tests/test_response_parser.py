"""LLM 响应解析、JSON 修复与兜底结果测试"""

import json

import pytest

from conftest import CV_TEXT, valid_response

from hr_ats.core.response_parser import (
    clean_email,
    extract_json_block,
    is_extraction_failure,
    parse_analysis_response,
    repair_json,
    strip_code_fences,
)

REPAIR_SAMPLES = [
    '{"a": 1,, "b": 2}',
    '{"a": 1, , , "b": 2}',
    '{"a": , "b": 2}',
    '{"a":,}',
    '{"list": [1, 2, 3,], "b": {"c": 1,},}',
    '{"a": 1,\n  ,\n "b": [,]}',
    '{"score": 80, "summary": "ok"}',
    ",,,,",
    ":,:,:,",
    "",
]


class TestRepairJson:
    """JSON 修复规则"""

    @pytest.mark.parametrize("sample", REPAIR_SAMPLES)
    def test_repair_is_idempotent(self, sample):
        once = repair_json(sample)
        assert repair_json(once) == once

    def test_collapses_duplicate_commas(self):
        assert repair_json('{"a": 1,, "b": 2}') == '{"a": 1, "b": 2}'

    def test_missing_value_becomes_null(self):
        assert repair_json('{"a": , "b": 2}') == '{"a": null, "b": 2}'

    def test_trailing_commas_removed(self):
        assert repair_json('{"a": [1, 2,], "b": 1,}') == '{"a": [1, 2], "b": 1}'

    def test_valid_json_untouched(self):
        text = valid_response()
        assert repair_json(text) == text


class TestExtraction:
    """从模型原始输出中定位 JSON"""

    def test_strip_json_fence(self):
        assert strip_code_fences('```json\n{"score": 1}\n```').strip() == '{"score": 1}'

    def test_strip_plain_fence(self):
        assert strip_code_fences('```\n{"score": 1}\n```').strip() == '{"score": 1}'

    def test_extract_block_from_prose(self):
        text = '以下是分析结果：{"score": 70, "extra": {"x": 1}} 希望对您有帮助'
        assert extract_json_block(text) == '{"score": 70, "extra": {"x": 1}}'

    def test_extract_block_without_braces(self):
        assert extract_json_block("no json here") == "no json here"

    @pytest.mark.parametrize("raw, expected", [
        ("  john@example.com ", "john@example.com"),
        ("mailto:john.doe@mail.example.org", "john.doe@mail.example.org"),
        ("<<john@example.com>>", "john@example.com"),
        ("--not-an-email", "not-an-email"),
    ])
    def test_clean_email(self, raw, expected):
        assert clean_email(raw) == expected


class TestParseAnalysisResponse:
    """完整解析为 AnalysisResult"""

    def test_valid_response(self):
        result = parse_analysis_response(valid_response(score=82), CV_TEXT)

        assert result.score == 82
        assert result.is_fallback is False
        assert result.hr_decision.recommendation == "INTERVIEW"
        assert result.skills_match.technical == 85
        assert result.extracted_data.name == "张三"
        assert result.raw_response == valid_response(score=82)

    def test_fenced_response_with_trailing_commas(self):
        raw = '```json\n{"score": "75%", "summary": "不错", "strengths": "沟通能力",}\n```'

        result = parse_analysis_response(raw, CV_TEXT)

        assert result.score == 75
        assert result.strengths == ["沟通能力"]
        assert not result.is_fallback

    def test_score_is_clamped(self):
        assert parse_analysis_response('{"score": 140, "summary": "x"}', CV_TEXT).score == 100
        assert parse_analysis_response('{"score": -5, "summary": "x"}', CV_TEXT).score == 0

    def test_extracted_email_is_cleaned(self):
        raw = '{"score": 60, "summary": "x", "extractedData": {"email": "Email: li@example.com"}}'

        result = parse_analysis_response(raw, CV_TEXT)

        assert result.extracted_data.email == "li@example.com"

    def test_unparseable_output_scores_25(self):
        result = parse_analysis_response("抱歉，我无法完成这个请求。", CV_TEXT)

        assert result.score == 25
        assert result.is_fallback
        assert result.raw_response == "抱歉，我无法完成这个请求。"

    def test_unparseable_output_with_short_cv_scores_0(self):
        result = parse_analysis_response("not json", "too short")

        assert result.score == 0
        assert result.is_fallback

    @pytest.mark.parametrize("cv_text", [
        "[PDF extraction failed] File: scan.pdf",
        "[PDF processing error] File: broken.pdf - Error: EOF marker not found",
    ])
    def test_unparseable_output_with_extraction_marker_scores_0(self, cv_text):
        assert parse_analysis_response("{broken", cv_text).score == 0

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_output_falls_back(self, raw):
        assert parse_analysis_response(raw, CV_TEXT).score == 25

    def test_fallback_is_deterministic(self):
        first = parse_analysis_response("???", CV_TEXT)
        second = parse_analysis_response("???", CV_TEXT)

        assert first.model_dump() == second.model_dump()

    def test_is_extraction_failure(self):
        assert is_extraction_failure("")
        assert is_extraction_failure("x" * 19)
        assert not is_extraction_failure("x" * 20)

    def test_json_array_uses_embedded_object(self):
        result = parse_analysis_response('[{"score": 90}]', CV_TEXT)

        assert result.score == 90
        assert not result.is_fallback


class TestLenientSubFields:
    """子字段类型不符时只丢弃该字段，保留得分"""

    @pytest.mark.parametrize("confidence, expected", [
        ("high", None),
        ("85%", 85),
        ("70", 70),
        (True, None),
    ])
    def test_hr_decision_confidence(self, confidence, expected):
        raw = json.dumps({"score": 82, "summary": "x", "hrDecision": {"recommendation": "HIRE", "confidence": confidence}})

        result = parse_analysis_response(raw, CV_TEXT)

        assert result.score == 82
        assert not result.is_fallback
        assert result.hr_decision.recommendation == "HIRE"
        assert result.hr_decision.confidence == expected

    def test_skills_match_text_values_dropped(self):
        raw = json.dumps({"score": 82, "skillsMatch": {"technical": "strong", "overall": "90%"}})

        result = parse_analysis_response(raw, CV_TEXT)

        assert result.score == 82
        assert result.skills_match.technical is None
        assert result.skills_match.overall == 90

    def test_education_and_experience_as_objects(self):
        raw = json.dumps({
            "score": 82,
            "extractedData": {
                "name": "张三",
                "education": {"degree": "MSc", "school": "清华大学"},
                "experience": {"years": 5},
            },
        })

        result = parse_analysis_response(raw, CV_TEXT)

        assert result.score == 82
        assert not result.is_fallback
        assert result.extracted_data.education == {"degree": "MSc", "school": "清华大学"}
        assert result.extracted_data.experience == {"years": 5}

    @pytest.mark.parametrize("section", ["hrDecision", "skillsMatch"])
    def test_non_object_section_becomes_none(self, section):
        raw = json.dumps({"score": 82, section: "INTERVIEW"})

        result = parse_analysis_response(raw, CV_TEXT)

        assert result.score == 82
        assert not result.is_fallback
        assert getattr(result, "hr_decision" if section == "hrDecision" else "skills_match") is None

    def test_non_object_extracted_data_becomes_empty(self):
        result = parse_analysis_response(json.dumps({"score": 82, "extractedData": ["张三"]}), CV_TEXT)

        assert result.score == 82
        assert not result.is_fallback
        assert result.extracted_data.name is None
        assert result.extracted_data.skills == []

    def test_unexpected_contact_types_ignored(self):
        raw = json.dumps({"score": 82, "extractedData": {"name": ["张三"], "phone": 13800000000}})

        result = parse_analysis_response(raw, CV_TEXT)

        assert result.extracted_data.name is None
        assert result.extracted_data.phone == "13800000000"
