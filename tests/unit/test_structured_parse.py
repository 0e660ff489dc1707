"""
Unit tests for best-effort JSON extraction from model output.
"""
import pytest

from shared.structured_parse import extract_json_object, require_keys


# =============================================================================
# extract_json_object Tests
# =============================================================================

class TestExtractJsonObject:
    """Tests for pulling a JSON object out of free text."""

    def test_plain_object(self):
        assert extract_json_object('{"to": "a@b.co"}') == {"to": "a@b.co"}

    def test_object_wrapped_in_prose(self):
        text = 'Sure! Here you go:\n{"time": "30m", "message": "check the oven"}\nAnything else?'
        assert extract_json_object(text) == {"time": "30m", "message": "check the oven"}

    def test_object_in_code_fence(self):
        text = '```json\n{"to": "bo@x.io", "subject": "Lunch", "body": "Noon?"}\n```'
        assert extract_json_object(text)["subject"] == "Lunch"

    def test_braces_inside_strings_do_not_break_balance(self):
        text = 'Result: {"body": "use {curly} braces and \\"quotes\\"", "to": "x@y.z"} done'
        parsed = extract_json_object(text)
        assert parsed == {"body": 'use {curly} braces and "quotes"', "to": "x@y.z"}

    def test_first_valid_region_wins(self):
        text = 'bad {not json} then {"to": "first@x.io"} and {"to": "second@x.io"}'
        assert extract_json_object(text) == {"to": "first@x.io"}

    def test_nested_object(self):
        parsed = extract_json_object('{"to": "a@b.co", "meta": {"cc": ["c@d.co"]}}')
        assert parsed["meta"] == {"cc": ["c@d.co"]}

    @pytest.mark.parametrize("text", [None, "", "no json here", "[1, 2, 3]", "{broken", "{'single': 'quotes'}"])
    def test_returns_none_when_nothing_parses(self, text):
        assert extract_json_object(text) is None


# =============================================================================
# require_keys Tests
# =============================================================================

class TestRequireKeys:
    """Tests for required-field checks on parsed payloads."""

    def test_all_present(self):
        assert require_keys({"time": "5m", "message": "stretch"}, ["time", "message"]) is True

    def test_missing_key(self):
        assert require_keys({"subject": "Hi"}, ["to"]) is False

    def test_empty_value_counts_as_missing(self):
        assert require_keys({"to": ""}, ["to"]) is False

    def test_none_payload(self):
        assert require_keys(None, ["to"]) is False
