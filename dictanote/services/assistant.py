"""
Transcript assistance services.

Wraps a completion provider with the three prompts the app needs:
segment-level correction suggestions, ranked alternatives for a single
sentence, and export metadata (title, summary, tags). Each service turns
provider failures and malformed JSON into an error result (or an empty list
for alternatives) instead of raising.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass
import json
import logging
import re

from ..correction.models import CorrectionResult, NotionMetadata
from .providers import CompletionProvider, CompletionRequest

logger = logging.getLogger(__name__)

EMPTY_TEXT_ERROR = "Empty text provided"

CORRECTION_PROMPT = """You are a professional proofreading editor for dictated text.
The text you receive was produced by speech recognition and may contain typos,
misrecognized words, or expressions that do not fit the context.

Read the whole text first so you understand its full context, then split it into
logical segments of 3 to 5 sentences each.

Within each segment, find the parts that need fixing (ungrammatical phrasing,
typos, more natural expressions) and answer in this JSON format. Segments that
need no changes return only original_text with an empty suggestions array.

{
  "segments": [
    {
      "original_text": "The original segment text...",
      "suggestions": [
        {
          "target_substring": "The word or phrase to fix (MUST occur verbatim in original_text)",
          "candidates": ["fix 1", "fix 2", "fix 3"],
          "reason": "Why this change is suggested"
        }
      ]
    }
  ]
}

Write candidates and reasons in the same language as the text."""

ALTERNATIVES_PROMPT = """You are a real-time speech correction assistant.
User input: one sentence produced by speech recognition.
Task: provide 3 phonetically similar or corrected alternatives, in the same language.
Constraint: ALWAYS return a valid JSON object with an array of 3 strings under the key "alternatives".
Order: rank by likelihood (option 1 = most likely intended sentence).
Example: { "alternatives": ["most_likely", "second_likely", "third_likely"] }"""

SUMMARY_PROMPT = """Analyze the following text and create metadata for saving it as a Notion page.
1. An intuitive title covering the whole content (20 characters or fewer)
2. A three-line summary of the key points
3. Three related tags

Write everything in the same language as the text and answer in JSON:
{
  "title": "Title",
  "summary": "Summary...",
  "tags": ["tag1", "tag2", "tag3"]
}"""

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def parse_json_payload(text: str) -> Any:
    """
    Decode an LLM response as JSON, tolerating markdown code fences.

    Raises:
        ValueError: If the text is not valid JSON.
    """
    cleaned = _FENCE_RE.sub("", text).strip()
    return json.loads(cleaned)


@dataclass
class SummaryResult:
    """Export metadata from the summary service, or an error."""
    metadata: Optional[NotionMetadata] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.metadata is not None


class CorrectionService:
    """Asks the provider for per-segment correction suggestions."""

    def __init__(self, provider: CompletionProvider, temperature: float = 0.3):
        self.provider = provider
        self.temperature = temperature

    async def correct(self, full_text: str) -> CorrectionResult:
        """
        Request correction suggestions for a full transcript.

        Returns:
            CorrectionResult with segments, or with ``error`` set.
        """
        if not full_text.strip():
            return CorrectionResult(error=EMPTY_TEXT_ERROR)

        result = await self.provider.complete(CompletionRequest(
            system_prompt=CORRECTION_PROMPT,
            user_content=full_text,
            temperature=self.temperature
        ))
        if result.error:
            logger.error(f"Correction error: {result.error}")
            return CorrectionResult(error="Failed to correct text")

        try:
            payload = parse_json_payload(result.text)
        except ValueError as e:
            logger.error(f"Correction response is not valid JSON: {e}")
            return CorrectionResult(error="Failed to correct text")

        if not isinstance(payload, dict):
            logger.error(f"Correction response is not an object: {type(payload).__name__}")
            return CorrectionResult(error="Failed to correct text")

        correction = CorrectionResult.from_dict(payload)
        if correction.error:
            logger.error(f"Correction error: {correction.error}")
            return CorrectionResult(error="Failed to correct text")

        logger.info(
            f"Correction returned {len(correction.segments)} segment(s) "
            f"in {result.processing_time:.2f}s"
        )
        return correction


class SuggestionService:
    """Produces up to three ranked alternatives for one finalized sentence."""

    MIN_LENGTH = 2
    MAX_ALTERNATIVES = 3

    def __init__(self, provider: CompletionProvider, temperature: float = 0.7, max_tokens: int = 300):
        self.provider = provider
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def suggest(self, sentence: str) -> List[str]:
        """
        Get alternatives for a sentence, most likely first.

        Returns:
            Up to three strings; an empty list on any failure.
        """
        if not sentence or len(sentence.strip()) < self.MIN_LENGTH:
            return []

        try:
            result = await self.provider.complete(CompletionRequest(
                system_prompt=ALTERNATIVES_PROMPT,
                user_content=sentence,
                temperature=self.temperature,
                max_tokens=self.max_tokens
            ))
        except Exception as e:
            logger.error(f"Suggestion generation failed: {e}")
            return []

        if result.error or not result.text:
            logger.error(f"Suggestion generation failed: {result.error}")
            return []

        try:
            payload = parse_json_payload(result.text)
        except ValueError as e:
            logger.error(f"Failed to parse suggestion JSON: {e}")
            return []

        candidates = payload if isinstance(payload, list) else None
        if isinstance(payload, dict):
            candidates = payload.get("alternatives")

        if not isinstance(candidates, list):
            return []

        alternatives = [c.strip() for c in candidates if isinstance(c, str) and c.strip()]
        return alternatives[:self.MAX_ALTERNATIVES]


class SummaryService:
    """Generates export metadata (title, summary, tags) for a transcript."""

    def __init__(self, provider: CompletionProvider, temperature: float = 0.5):
        self.provider = provider
        self.temperature = temperature

    async def summarize(self, text: str) -> SummaryResult:
        if not text.strip():
            return SummaryResult(error=EMPTY_TEXT_ERROR)

        result = await self.provider.complete(CompletionRequest(
            system_prompt=SUMMARY_PROMPT,
            user_content=text,
            temperature=self.temperature
        ))
        if result.error:
            logger.error(f"Summary generation error: {result.error}")
            return SummaryResult(error="Failed to generate summary")

        try:
            payload = parse_json_payload(result.text)
        except ValueError as e:
            logger.error(f"Summary response is not valid JSON: {e}")
            return SummaryResult(error="Failed to generate summary")

        if not isinstance(payload, dict):
            return SummaryResult(error="Failed to generate summary")

        return SummaryResult(metadata=NotionMetadata.from_dict(payload))


class TranscriptAssistant:
    """
    Bundles the three services.

    Correction and summaries share ``provider``. Live alternatives are
    requested once per sentence, so they may go to a separate, cheaper
    ``suggestion_provider``; without one they use ``provider`` too.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        suggestion_provider: Optional[CompletionProvider] = None
    ):
        self.provider = provider
        self.suggestion_provider = suggestion_provider or provider
        self.corrections = CorrectionService(provider)
        self.suggestions = SuggestionService(self.suggestion_provider)
        self.summaries = SummaryService(provider)

    async def correct(self, text: str) -> CorrectionResult:
        return await self.corrections.correct(text)

    async def suggest(self, sentence: str) -> List[str]:
        return await self.suggestions.suggest(sentence)

    async def summarize(self, text: str) -> SummaryResult:
        return await self.summaries.summarize(text)

    def get_usage_stats(self) -> Dict[str, Any]:
        """Usage across both providers, counted once when they are the same."""
        stats = self.provider.get_usage_stats()
        if self.suggestion_provider is not self.provider:
            for key, value in self.suggestion_provider.get_usage_stats().items():
                stats[key] = stats.get(key, 0) + value
        return stats
