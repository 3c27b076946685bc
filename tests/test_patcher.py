"""
Tests for suggestion patching: span partitioning, resolution and the
correction editor built on top of them.
"""

import pytest

from dictanote.correction.models import CorrectionResult, Segment, Suggestion
from dictanote.correction.patcher import (
    CorrectionEditor,
    ReviewState,
    Span,
    full_text,
    partition_spans,
    resolve,
)


def sug(target, *candidates, reason=""):
    return Suggestion(target_substring=target, candidates=tuple(candidates), reason=reason)


def joined(spans):
    return "".join(span.text for span in spans)


class TestPartitionSpans:
    """Rendering a segment into plain and marked spans."""

    def test_empty_suggestion_list_is_one_plain_span(self):
        spans = partition_spans("nothing to fix here", [])
        assert spans == [Span("nothing to fix here")]

    def test_marks_targets_in_text_order(self):
        text = "I like appple and bannana a lot"
        suggestions = [sug("bannana", "banana"), sug("appple", "apple")]

        spans = partition_spans(text, suggestions)

        assert spans == [
            Span("I like "),
            Span("appple", 1),
            Span(" and "),
            Span("bannana", 0),
            Span(" a lot"),
        ]

    def test_missing_target_is_skipped(self):
        spans = partition_spans("hello there", [sug("nowhere", "x"), sug("there", "here")])
        assert spans == [Span("hello "), Span("there", 1)]

    def test_empty_target_is_never_marked(self):
        spans = partition_spans("abc", [sug("", "x")])
        assert spans == [Span("abc")]

    def test_duplicate_targets_claim_successive_occurrences(self):
        spans = partition_spans("go go", [sug("go", "a"), sug("go", "b")])
        assert spans == [Span("go", 0), Span(" "), Span("go", 1)]

    def test_target_only_in_consumed_text_is_skipped(self):
        # "ab" claims 0..2; "b" only occurs inside it, so it is not rendered
        spans = partition_spans("abc", [sug("ab", "x"), sug("b", "y")])
        assert spans == [Span("ab", 0), Span("c")]

    def test_overlapping_targets_do_not_overlap_in_output(self):
        text = "the cat sat on the mat"
        spans = partition_spans(text, [sug("cat sat", "x"), sug("sat on", "y"), sug("mat", "z")])
        marked = [span for span in spans if span.is_marked]
        assert [span.text for span in marked] == ["cat sat", "mat"]

    @pytest.mark.parametrize("text,targets", [
        ("go go go", ["go", "go", "go", "go"]),
        ("aaaa", ["aa", "a", "aa"]),
        ("hello world", ["world", "hello", "lo wo", "zzz"]),
        ("", ["x"]),
        ("repeat repeat repeat", ["peat", "repeat", "at r"]),
    ])
    def test_spans_concatenate_back_to_text(self, text, targets):
        spans = partition_spans(text, [sug(t) for t in targets])
        assert joined(spans) == text

    @pytest.mark.parametrize("text,targets", [
        ("go go go", ["go", "go", "go"]),
        ("abcabcabc", ["bc", "abc", "ca", "c"]),
        ("one two one two", ["two", "one", "two", "one"]),
    ])
    def test_marked_spans_advance_monotonically(self, text, targets):
        suggestions = [sug(t) for t in targets]
        spans = partition_spans(text, suggestions)

        position = 0
        last_end = 0
        for span in spans:
            if span.is_marked:
                assert position >= last_end
                assert span.text == suggestions[span.suggestion_index].target_substring
                last_end = position + len(span.text)
            position += len(span.text)


class TestResolve:
    """Applying one suggestion to a review state."""

    def make_state(self, text, *suggestions):
        return ReviewState(segments=(Segment(text, tuple(suggestions)),))

    def test_replaces_first_occurrence_and_removes_suggestion(self):
        state = self.make_state("I like appple", sug("appple", "apple"))

        new_state = resolve(state, 0, 0, "apple")

        assert new_state.segments[0].original_text == "I like apple"
        assert new_state.segments[0].suggestions == ()

    def test_returns_new_state_and_bumps_version(self):
        state = self.make_state("a b", sug("a", "x"))

        new_state = resolve(state, 0, 0, "x")

        assert new_state is not state
        assert new_state.version == state.version + 1
        assert state.segments[0].original_text == "a b"
        assert len(state.segments[0].suggestions) == 1

    def test_missing_target_still_removes_suggestion(self):
        keep = sug("b", "y")
        state = self.make_state("a b", sug("zzz", "x"), keep)

        new_state = resolve(state, 0, 0, "x")

        assert new_state.segments[0].original_text == "a b"
        assert new_state.segments[0].suggestions == (keep,)

    def test_removes_by_index_not_by_value(self):
        first, second = sug("go", "a"), sug("go", "a")
        state = self.make_state("go go", first, second)

        new_state = resolve(state, 0, 1, "a")

        assert len(new_state.segments[0].suggestions) == 1
        assert new_state.segments[0].suggestions[0] is first

    def test_empty_target_leaves_text_unchanged(self):
        state = self.make_state("abc", sug("", "x"))
        new_state = resolve(state, 0, 0, "x")
        assert new_state.segments[0].original_text == "abc"
        assert new_state.segments[0].suggestions == ()

    def test_other_segments_untouched(self):
        other = Segment("untouched go", (sug("go", "x"),))
        state = ReviewState(segments=(Segment("go", (sug("go", "y"),)), other))

        new_state = resolve(state, 0, 0, "y")

        assert new_state.segments[1] is other

    def test_out_of_range_index_raises(self):
        state = self.make_state("abc")
        with pytest.raises(IndexError):
            resolve(state, 0, 0, "x")

    def test_render_and_resolve_pick_different_occurrences(self):
        state = self.make_state("go go", sug("go", "A"), sug("go", "B"))

        spans = partition_spans(state.segments[0].original_text, state.segments[0].suggestions)
        marked_positions = []
        position = 0
        for span in spans:
            if span.is_marked:
                marked_positions.append((span.suggestion_index, position))
            position += len(span.text)
        assert marked_positions == [(0, 0), (1, 3)]

        # The second suggestion is rendered at position 3, but resolving it
        # rewrites the first occurrence.
        after_second = resolve(state, 0, 1, "B")
        assert after_second.segments[0].original_text == "B go"

        # Resolving both in order also always hits the first remaining match.
        after_first = resolve(state, 0, 0, "A")
        assert after_first.segments[0].original_text == "A go"
        after_both = resolve(after_first, 0, 0, "B")
        assert after_both.segments[0].original_text == "A B"


class TestFullText:

    def test_joins_segments_with_single_space(self):
        state = ReviewState(segments=(Segment("First part."), Segment("Second part.")))
        assert full_text(state) == "First part. Second part."

    def test_segment_text_is_joined_verbatim(self):
        state = ReviewState(segments=(Segment("One.\n\n"), Segment("Two.")))
        assert full_text(state) == "One.\n\n Two."

    def test_empty_state(self):
        assert full_text(ReviewState(segments=())) == ""


class TestCorrectionEditor:

    def make_editor(self):
        return CorrectionEditor(CorrectionResult(segments=(
            Segment("I like appple and bannana.", (
                sug("bannana", "banana", "bandana", reason="typo"),
                sug("appple", "apple", reason="typo"),
            )),
            Segment("This is fine."),
        )))

    def test_markable_lists_suggestions_in_display_order(self):
        editor = self.make_editor()
        marks = editor.markable()
        assert [(seg, idx, s.target_substring) for seg, idx, s in marks] == [
            (0, 1, "appple"),
            (0, 0, "bannana"),
        ]

    def test_apply_candidate(self):
        editor = self.make_editor()
        editor.apply_suggestion(0, 0, 1)
        assert editor.segments[0].original_text == "I like appple and bandana."
        assert editor.pending_count() == 1

    def test_manual_edit(self):
        editor = self.make_editor()
        editor.manual_edit(0, 1, "pear")
        assert editor.full_text() == "I like pear and bannana. This is fine."

    def test_resolved_suggestion_never_renders_again(self):
        editor = self.make_editor()
        editor.apply_suggestion(0, 1, 0)
        rendered = editor.render()
        marked = [span.text for span in rendered[0] if span.is_marked]
        assert marked == ["bannana"]
        assert rendered[1] == [Span("This is fine.")]

    def test_state_version_advances(self):
        editor = self.make_editor()
        editor.apply_suggestion(0, 0, 0)
        editor.apply_suggestion(0, 0, 0)
        assert editor.state.version == 2
        assert editor.pending_count() == 0
        assert editor.full_text() == "I like apple and banana. This is fine."
