"""
Tests for decoding service payloads into records.
"""

from dictanote.correction.models import CorrectionResult, NotionMetadata, Segment, Suggestion


class TestSuggestion:

    def test_from_dict(self):
        suggestion = Suggestion.from_dict({"target_substring": "teh", "candidates": ["the"], "reason": "typo"})
        assert suggestion == Suggestion("teh", ("the",), "typo")

    def test_missing_fields_default_to_empty(self):
        assert Suggestion.from_dict({}) == Suggestion("", (), "")

    def test_non_string_values_are_coerced(self):
        suggestion = Suggestion.from_dict({"target_substring": 42, "candidates": [1, None, "two"], "reason": None})
        assert suggestion == Suggestion("42", ("1", "two"), "")

    def test_candidates_must_be_a_list(self):
        assert Suggestion.from_dict({"target_substring": "a", "candidates": "b"}).candidates == ()


class TestSegment:

    def test_to_dict_matches_payload_shape(self):
        payload = {
            "original_text": "teh cat",
            "suggestions": [{"target_substring": "teh", "candidates": ["the"], "reason": ""}],
        }
        assert Segment.from_dict(payload).to_dict() == payload

    def test_missing_suggestions(self):
        assert Segment.from_dict({"original_text": "ok"}) == Segment("ok")


class TestCorrectionResult:

    def test_missing_segment_list_is_an_error(self):
        result = CorrectionResult.from_dict({"segments": "nope"})
        assert not result.ok
        assert result.segments == ()

    def test_empty_segment_list_is_ok(self):
        result = CorrectionResult.from_dict({"segments": []})
        assert result.ok
        assert result.segments == ()


class TestNotionMetadata:

    def test_from_dict(self):
        metadata = NotionMetadata.from_dict({"title": "T", "summary": "S", "tags": ["a", None, 3]})
        assert metadata == NotionMetadata("T", "S", ["a", "3"])

    def test_tags_default_to_empty(self):
        assert NotionMetadata.from_dict({"title": "T", "summary": "S", "tags": "x"}).tags == []

    def test_fields_are_editable(self):
        metadata = NotionMetadata("T", "S")
        metadata.title = "New"
        assert metadata.to_dict() == {"title": "New", "summary": "S", "tags": []}
