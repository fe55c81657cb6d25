"""
Tests for input validation and sanitization (validation.py).
"""

from src.utils.validation import (
    MAX_NESTING_DEPTH,
    ValidationResult,
    sanitize_object,
    sanitize_string,
    validate_email,
    validate_required_fields,
)


class TestValidationResult:

    def test_success(self):
        result = ValidationResult.success(warnings=["heads up"])
        assert result.is_valid
        assert result.errors == []
        assert result.warnings == ["heads up"]

    def test_from_messages(self):
        assert not ValidationResult.from_messages(["bad"], []).is_valid
        assert ValidationResult.from_messages([], ["meh"]).is_valid

    def test_to_dict(self):
        assert ValidationResult.failure(["x"]).to_dict() == {"valid": False, "errors": ["x"], "warnings": []}


class TestValidators:

    def test_validate_email(self):
        assert validate_email("dev@example.com")
        assert not validate_email("not-an-email")
        assert not validate_email("")

    def test_required_fields_present(self):
        assert validate_required_fields({"a": "x", "b": 0}, ["a", "b"]).is_valid

    def test_required_fields_missing_or_blank(self):
        result = validate_required_fields({"a": "  ", "c": None}, ["a", "b", "c"])

        assert not result.is_valid
        assert result.errors == [
            "Missing required field: a",
            "Missing required field: b",
            "Missing required field: c",
        ]


class TestSanitization:

    def test_strips_script_tags(self):
        assert sanitize_string("hi<script>alert(1)</script> there") == "hi there"

    def test_strips_event_handlers_and_js_urls(self):
        cleaned = sanitize_string('<a href="javascript:alert(1)" onclick="x()">link</a>')
        assert "onclick" not in cleaned
        assert "javascript:" not in cleaned

    def test_strips_control_characters_keeps_newlines(self):
        assert sanitize_string("a\x00b\nc\x07") == "ab\nc"

    def test_truncates(self):
        assert sanitize_string("x" * 50, max_length=10) == "x" * 10

    def test_non_string_passthrough(self):
        assert sanitize_string(42) == 42

    def test_sanitize_object_recurses(self):
        data = {"text": "<script>bad()</script>ok", "items": ["a\x00", {"n": 1}]}

        assert sanitize_object(data) == {"text": "ok", "items": ["a", {"n": 1}]}

    def test_sanitize_object_drops_deep_nesting(self):
        nested = "leaf"
        for _ in range(MAX_NESTING_DEPTH + 2):
            nested = [nested]

        result = sanitize_object(nested)
        depth = 0
        while isinstance(result, list):
            result = result[0]
            depth += 1
        assert result is None
        assert depth == MAX_NESTING_DEPTH + 1
