"""
Tests for JSON repair functionality
"""
import pytest

from utils.parsing.json import repair_and_parse_json

# Test cases for JSON repair function
REPAIRABLE = [
    ("valid", '{"overall_score": 30, "summary": "Solid"}'),
    ("trailing comma", '{"overall_score": 30, "summary": "Solid",}'),
    ("single-line comment", '{"overall_score": 30, // on a 0-40 scale\n"summary": "Solid"}'),
    ("multi-line comment", '{"overall_score": 30, /* comment */ "summary": "Solid"}'),
    ("markdown code block", '```json\n{"overall_score": 30, "summary": "Solid"}\n```'),
    ("prose around object", 'Here is the analysis:\n{"overall_score": 30, "summary": "Solid"}\nHope this helps!'),
    ("mixed issues", '{"overall_score": 30, "summary": "Solid",} // done'),
]


@pytest.mark.parametrize("name, text", REPAIRABLE, ids=[case[0] for case in REPAIRABLE])
def test_repairable_responses(name, text):
    result = repair_and_parse_json(text)

    assert result["overall_score"] == 30
    assert result["summary"] == "Solid"


def test_url_inside_string_survives():
    result = repair_and_parse_json('{"source": "https://acme.example/pricing", "overall_score": 1,}')

    assert result["source"] == "https://acme.example/pricing"


@pytest.mark.parametrize("text", ["", "   ", "this is definitely { not json"])
def test_unparseable_responses_raise(text):
    with pytest.raises(ValueError):
        repair_and_parse_json(text)


def test_non_object_json_is_rejected():
    with pytest.raises(ValueError, match="JSON object"):
        repair_and_parse_json("[1, 2, 3]")
