"""
Data records for transcript correction and export.

Segments and suggestions are produced once by the correction service and
then only ever replaced, never mutated. NotionMetadata stays mutable because
the user edits it field by field before export.
"""

from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


def _as_str(value: Any) -> str:
    """Coerce a JSON scalar to a string, mapping None to ''."""
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@dataclass(frozen=True)
class Suggestion:
    """A proposed correction for one substring of a segment."""
    target_substring: str
    candidates: Tuple[str, ...] = ()
    reason: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Suggestion":
        raw_candidates = data.get("candidates")
        if isinstance(raw_candidates, (list, tuple)):
            candidates = tuple(_as_str(c) for c in raw_candidates if c is not None)
        else:
            candidates = ()
        return cls(
            target_substring=_as_str(data.get("target_substring")),
            candidates=candidates,
            reason=_as_str(data.get("reason")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_substring": self.target_substring,
            "candidates": list(self.candidates),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Segment:
    """A chunk of transcript text with its pending suggestions."""
    original_text: str
    suggestions: Tuple[Suggestion, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Segment":
        raw_suggestions = data.get("suggestions")
        suggestions = []
        if isinstance(raw_suggestions, list):
            for item in raw_suggestions:
                if isinstance(item, dict):
                    suggestions.append(Suggestion.from_dict(item))
                else:
                    logger.debug(f"Dropping malformed suggestion: {item!r}")
        return cls(
            original_text=_as_str(data.get("original_text")),
            suggestions=tuple(suggestions),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_text": self.original_text,
            "suggestions": [s.to_dict() for s in self.suggestions],
        }


@dataclass(frozen=True)
class CorrectionResult:
    """Ordered segments returned by the correction service, or an error."""
    segments: Tuple[Segment, ...] = ()
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CorrectionResult":
        """
        Build a result from the decoded JSON payload.

        Malformed segment entries are dropped rather than failing the whole
        result; a payload without a segment list is reported as an error.
        """
        raw_segments = data.get("segments")
        if not isinstance(raw_segments, list):
            return cls(error="Correction response has no segment list")

        segments = []
        for item in raw_segments:
            if isinstance(item, dict):
                segments.append(Segment.from_dict(item))
            else:
                logger.debug(f"Dropping malformed segment: {item!r}")
        return cls(segments=tuple(segments))

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class NotionMetadata:
    """Title, summary and tags attached to an exported page."""
    title: str
    summary: str
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotionMetadata":
        raw_tags = data.get("tags")
        if isinstance(raw_tags, list):
            tags = [_as_str(t) for t in raw_tags if t is not None]
        else:
            tags = []
        return cls(
            title=_as_str(data.get("title")),
            summary=_as_str(data.get("summary")),
            tags=tags,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "summary": self.summary, "tags": list(self.tags)}
