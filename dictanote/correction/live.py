"""
Live replacement of the most recently finalized sentence.

While recording, each finalized sentence is appended to the transcript and
sent off for alternatives. The user can then swap the sentence for one of
the (up to three) alternatives by pressing 1-3, as long as the transcript
still ends with that sentence.
"""

from typing import Callable, List, Optional, Protocol, Set, Tuple
import asyncio
import logging

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3


class AlternativeSource(Protocol):
    """Anything that can propose alternatives for a sentence."""

    async def suggest(self, sentence: str) -> List[str]:
        ...


class LiveReplacementTracker:
    """
    Tracks the pending sentence and its alternatives for quick replacement.

    All mutation happens on the event loop thread. Alternatives fetched for
    a sentence that has since been superseded are dropped by the relevance
    check in ``apply_alternatives``; requests are never cancelled.

    Args:
        source: Service returning ranked alternatives for a sentence
        on_change: Optional callback invoked after every state change
    """

    def __init__(
        self,
        source: AlternativeSource,
        on_change: Optional[Callable[["LiveReplacementTracker"], None]] = None
    ):
        self.source = source
        self.on_change = on_change

        self.accumulated_text = ""
        self.pending_sentence: Optional[str] = None
        self.alternatives: Tuple[str, ...] = ()
        self.recording = True

        self._tasks: Set[asyncio.Task] = set()

    @property
    def can_select(self) -> bool:
        """Whether a numeric selection would currently be considered."""
        return self.recording and bool(self.pending_sentence) and bool(self.alternatives)

    def on_sentence_finalized(self, sentence: str) -> Optional[asyncio.Task]:
        """
        Record a newly finalized sentence and request alternatives for it.

        Must be called from within a running event loop.

        Returns:
            The task fetching alternatives, or None for a blank sentence.
        """
        if not sentence or not sentence.strip():
            return None

        if self.accumulated_text:
            self.accumulated_text = f"{self.accumulated_text} {sentence}"
        else:
            self.accumulated_text = sentence
        self.pending_sentence = sentence
        self.alternatives = ()
        self._notify()

        task = asyncio.create_task(self._fetch_alternatives(sentence))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _fetch_alternatives(self, sentence: str) -> None:
        try:
            alternatives = await self.source.suggest(sentence)
        except Exception as e:
            # sources are expected to return [] on failure
            logger.error(f"Alternative lookup failed: {e}")
            return
        self.apply_alternatives(sentence, alternatives)

    def apply_alternatives(self, sentence: str, alternatives: List[str]) -> bool:
        """
        Attach alternatives fetched for ``sentence``.

        Returns:
            False (and leaves state alone) when ``sentence`` is no longer pending.
        """
        if self.pending_sentence != sentence:
            logger.debug(f"Discarding stale alternatives for {sentence!r}")
            return False

        self.alternatives = tuple(alternatives[:MAX_ALTERNATIVES])
        self._notify()
        return True

    def select(self, position: int) -> bool:
        """
        Replace the pending sentence with alternative ``position`` (1-based).

        The replacement only happens if the transcript, right-trimmed, still
        ends with the pending sentence. When the tail no longer matches the
        text is left alone and the stale suggestion is cleared.

        Returns:
            True if the transcript was rewritten.
        """
        if not self.can_select:
            return False
        if not 1 <= position <= len(self.alternatives):
            return False

        sentence = self.pending_sentence
        replacement = self.alternatives[position - 1]
        trimmed = self.accumulated_text.rstrip()

        if trimmed.endswith(sentence):
            self.accumulated_text = trimmed[:len(trimmed) - len(sentence)] + replacement
            applied = True
        else:
            logger.info("Transcript no longer ends with the pending sentence; clearing suggestion")
            applied = False

        self.pending_sentence = None
        self.alternatives = ()
        self._notify()
        return applied

    def set_text(self, text: str) -> None:
        """Replace the transcript with manually edited text."""
        self.accumulated_text = text
        self._notify()

    def set_recording(self, recording: bool) -> None:
        """Enable or disable selection (disabled outside recording mode)."""
        self.recording = recording
        self._notify()

    def reset(self) -> None:
        self.accumulated_text = ""
        self.pending_sentence = None
        self.alternatives = ()
        self._notify()

    async def wait_idle(self) -> None:
        """Wait for all in-flight alternative lookups to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
