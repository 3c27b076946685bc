"""
Suggestion patching for the correction editor.

Maps the substrings an LLM flagged back onto a segment's free text, which
may contain the same substring several times, and applies the replacement
the user picks. Rendering and resolution use different occurrence rules:

- ``partition_spans`` walks the text with an advancing cursor, so two
  suggestions targeting the same word mark two different occurrences.
- ``resolve`` always rewrites the first occurrence in the segment.

With duplicated targets the highlighted occurrence and the rewritten one
can differ.
"""

from typing import List, Optional, Sequence, Tuple
from dataclasses import dataclass, replace
import logging

from .models import CorrectionResult, Segment, Suggestion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Span:
    """A slice of segment text; marked spans carry their suggestion index."""
    text: str
    suggestion_index: Optional[int] = None

    @property
    def is_marked(self) -> bool:
        return self.suggestion_index is not None


def partition_spans(text: str, suggestions: Sequence[Suggestion]) -> List[Span]:
    """
    Split text into plain and marked spans, left to right, without overlap.

    Suggestions are ranked by the first occurrence of their target anywhere
    in the text. Each one then claims the next occurrence at or after the end
    of the previously claimed span. Suggestions whose target is missing (or
    only occurs in text already claimed) are skipped.

    Args:
        text: Current segment text
        suggestions: The segment's pending suggestions, in stored order

    Returns:
        Spans whose concatenation is exactly ``text``.
    """
    ranked: List[Tuple[int, int]] = []
    for index, suggestion in enumerate(suggestions):
        target = suggestion.target_substring
        if not target:
            continue
        first = text.find(target)
        if first != -1:
            ranked.append((first, index))

    # sort() is stable, so ties keep their stored order
    ranked.sort(key=lambda item: item[0])

    if not ranked:
        return [Span(text)] if text else []

    spans: List[Span] = []
    cursor = 0
    for _, index in ranked:
        target = suggestions[index].target_substring
        start = text.find(target, cursor)
        if start == -1:
            continue

        if start > cursor:
            spans.append(Span(text[cursor:start]))
        spans.append(Span(text[start:start + len(target)], index))
        cursor = start + len(target)

    if cursor < len(text):
        spans.append(Span(text[cursor:]))

    return spans


@dataclass(frozen=True)
class ReviewState:
    """Immutable snapshot of a correction review session."""
    segments: Tuple[Segment, ...]
    version: int = 0

    @classmethod
    def from_result(cls, result: CorrectionResult) -> "ReviewState":
        return cls(segments=tuple(result.segments))


def resolve(
    state: ReviewState,
    segment_index: int,
    suggestion_index: int,
    replacement: str
) -> ReviewState:
    """
    Apply one suggestion and return the next state.

    The first occurrence of the suggestion's target in the segment text is
    replaced. The suggestion is removed by index whether or not its target
    was found, so it never renders again.

    Raises:
        IndexError: If either index is out of range.
    """
    segment = state.segments[segment_index]
    suggestion = segment.suggestions[suggestion_index]
    target = suggestion.target_substring

    text = segment.original_text
    if target and target in text:
        text = text.replace(target, replacement, 1)
    else:
        logger.debug(f"Target {target!r} not found in segment {segment_index}; dropping suggestion")

    remaining = segment.suggestions[:suggestion_index] + segment.suggestions[suggestion_index + 1:]
    new_segment = replace(segment, original_text=text, suggestions=remaining)

    segments = list(state.segments)
    segments[segment_index] = new_segment
    return ReviewState(segments=tuple(segments), version=state.version + 1)


def full_text(state: ReviewState) -> str:
    """Join all segment texts with a single space (paragraph breaks are lost)."""
    return " ".join(segment.original_text for segment in state.segments)


class CorrectionEditor:
    """
    Interactive wrapper around a ReviewState.

    Holds the current snapshot and swaps it for a new one on every
    resolution. The terminal UI reads ``render()`` and ``markable()`` to draw
    and number highlighted suggestions.
    """

    def __init__(self, result: CorrectionResult):
        self.state = ReviewState.from_result(result)

    @property
    def segments(self) -> Tuple[Segment, ...]:
        return self.state.segments

    def render(self) -> List[List[Span]]:
        """Partition every segment for display."""
        return [
            partition_spans(segment.original_text, segment.suggestions)
            for segment in self.state.segments
        ]

    def markable(self) -> List[Tuple[int, int, Suggestion]]:
        """
        List highlighted suggestions in display order.

        Returns:
            ``(segment_index, suggestion_index, suggestion)`` for each marked span.
        """
        marks = []
        for seg_idx, spans in enumerate(self.render()):
            suggestions = self.state.segments[seg_idx].suggestions
            for span in spans:
                if span.is_marked:
                    marks.append((seg_idx, span.suggestion_index, suggestions[span.suggestion_index]))
        return marks

    def apply_suggestion(self, segment_index: int, suggestion_index: int, candidate_index: int) -> None:
        """Resolve a suggestion with one of its candidates (0-based)."""
        suggestion = self.state.segments[segment_index].suggestions[suggestion_index]
        candidate = suggestion.candidates[candidate_index]
        self.state = resolve(self.state, segment_index, suggestion_index, candidate)

    def manual_edit(self, segment_index: int, suggestion_index: int, text: str) -> None:
        """Resolve a suggestion with user-typed replacement text."""
        self.state = resolve(self.state, segment_index, suggestion_index, text)

    def pending_count(self) -> int:
        return sum(len(segment.suggestions) for segment in self.state.segments)

    def full_text(self) -> str:
        return full_text(self.state)
