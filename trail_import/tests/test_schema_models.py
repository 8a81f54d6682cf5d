from __future__ import annotations

import pytest
from pydantic import ValidationError

from trail_import.schema_models import (
    CaseAnalysisData,
    ImportResult,
    ParsedModule,
    ParsedTrail,
    parse_result_json_schema,
    validate_parse_result_payload,
)


def test_parse_result_schema_exposes_camel_case_fields():
    schema = parse_result_json_schema()

    assert "success" in schema.get("required", [])
    assert {"parseMethod", "confidenceDetails", "trails"}.issubset(schema["properties"])


def test_validate_parse_result_payload_accepts_wire_payload():
    payload = {
        "success": True,
        "trails": [
            {
                "title": "Vibe Coding",
                "slug": "vibe-coding",
                "modules": [
                    {
                        "title": "Intro",
                        "slug": "intro",
                        "type": "PRACTICE",
                        "points": 75,
                        "requiresSubmission": False,
                        "questions": [{"question": "Q?", "options": ["a", "b"], "correctAnswer": 1}],
                    }
                ],
            }
        ],
        "parseMethod": "ai",
    }

    validated = validate_parse_result_payload(payload)

    module = validated["trails"][0]["modules"][0]
    assert module["questions"][0]["correctAnswer"] == 1
    assert module["requiresSubmission"] is False
    assert validated["trails"][0]["color"] == "#6366f1"
    assert validated["parseMethod"] == "ai"


def test_validate_parse_result_payload_rejects_unknown_module_type():
    payload = {
        "success": True,
        "trails": [{"title": "T", "slug": "t", "modules": [{"title": "M", "slug": "m", "type": "LECTURE"}]}],
    }

    with pytest.raises(ValidationError):
        validate_parse_result_payload(payload)


def test_case_analysis_requires_at_least_one_correct_answer():
    with pytest.raises(ValidationError):
        CaseAnalysisData(options=[], min_correct_required=0)


def test_to_dict_omits_unset_optionals_and_uses_aliases():
    module = ParsedModule(title="Intro", slug="intro", requires_submission=True)

    payload = module.to_dict()

    assert payload["requiresSubmission"] is True
    assert "level" not in payload
    assert payload["type"] == "THEORY"


def test_import_result_counts_modules():
    result = ImportResult(
        success=True,
        trails=[
            ParsedTrail(title="A", slug="a", modules=[ParsedModule(title="1", slug="1"), ParsedModule(title="2", slug="2")]),
            ParsedTrail(title="B", slug="b"),
        ],
        detected_format="txt",
    )

    assert result.module_count() == 2
    assert result.to_dict()["detectedFormat"] == "txt"
