"""
Main application entry point for Dictanote.

Provides the command-line interface and orchestrates recording, rolling
transcription, AI correction, live sentence alternatives and Notion export.
"""

from enum import Enum
from typing import Optional, Union
import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .audio.recorder import AudioRecorder, AudioRecorderError, has_speech_payload
from .audio.transcriber import OpenAITranscriber, WhisperTranscriber, DEFAULT_LANGUAGE
from .correction.live import LiveReplacementTracker
from .correction.models import NotionMetadata
from .correction.patcher import CorrectionEditor
from .export.notion import NotionExporter
from .services.assistant import TranscriptAssistant, EMPTY_TEXT_ERROR
from .services.providers import SUGGESTION_MODELS, create_provider
from .ui.terminal import TerminalUI

logger = logging.getLogger(__name__)


class SessionMode(Enum):
    RECORDING = "recording"
    CORRECTION = "correction"
    SUMMARY = "summary"


class PreconditionError(Exception):
    """Raised when an action is requested without the input it needs."""
    pass


class DictationApp:
    """
    Main application class that coordinates all components.

    Owns the transcript and the current mode. Every external call happens
    one at a time from the user's point of view: the next prompt is only
    shown once the call has returned, and a failed call leaves the
    transcript as it was.
    """

    def __init__(
        self,
        assistant: Optional[TranscriptAssistant] = None,
        transcriber: Optional[Union[OpenAITranscriber, WhisperTranscriber]] = None,
        exporter: Optional[NotionExporter] = None,
        ui: Optional[TerminalUI] = None,
        recorder: Optional[AudioRecorder] = None,
        chunk_seconds: float = 10.0
    ):
        self.assistant = assistant or TranscriptAssistant(create_provider("openai"))
        self.transcriber = transcriber or OpenAITranscriber()
        self.exporter = exporter or NotionExporter()
        self.ui = ui or TerminalUI()
        self.recorder = recorder or AudioRecorder()
        self.chunk_seconds = chunk_seconds

        self.transcript = ""
        self.mode = SessionMode.RECORDING
        self.editor: Optional[CorrectionEditor] = None
        self.metadata: Optional[NotionMetadata] = None

    # -- transcript ---------------------------------------------------------

    def append_transcript(self, text: str) -> None:
        """Append transcribed text, space-separated."""
        text = text.strip()
        if not text:
            return
        self.transcript = f"{self.transcript} {text}" if self.transcript else text

    def reset_transcript(self) -> None:
        self.transcript = ""

    async def transcribe_chunk(self, audio_data: bytes) -> Optional[str]:
        """
        Transcribe one recorded chunk and append it to the transcript.

        Failed chunks are logged and skipped; the transcript is untouched.
        """
        if not has_speech_payload(audio_data):
            return None

        result = await self.transcriber.transcribe(audio_data)
        if result.error:
            logger.error(f"Transcription failed: {result.error}")
            return None

        self.append_transcript(result.text)
        return result.text

    # -- correction ---------------------------------------------------------

    async def start_correction(self) -> CorrectionEditor:
        """
        Ask for correction suggestions and enter correction mode.

        Raises:
            PreconditionError: If the transcript is blank (no call is made).
            RuntimeError: If the correction service reports an error.
        """
        if not self.transcript.strip():
            raise PreconditionError(EMPTY_TEXT_ERROR)

        with self.ui.status("Analyzing transcript for corrections..."):
            result = await self.assistant.correct(self.transcript)

        if result.error:
            raise RuntimeError(result.error)

        self.editor = CorrectionEditor(result)
        self.mode = SessionMode.CORRECTION
        return self.editor

    def finish_correction(self, final_text: Optional[str]) -> None:
        """Leave correction mode, keeping ``final_text`` unless it is None (cancel)."""
        if final_text is not None:
            self.transcript = final_text
        self.editor = None
        self.mode = SessionMode.RECORDING

    # -- export -------------------------------------------------------------

    async def generate_summary(self) -> NotionMetadata:
        """
        Generate export metadata and enter summary mode.

        Raises:
            PreconditionError: If the transcript is blank (no call is made).
            RuntimeError: If the summary service reports an error.
        """
        if not self.transcript.strip():
            raise PreconditionError(EMPTY_TEXT_ERROR)

        with self.ui.status("Summarizing transcript..."):
            result = await self.assistant.summarize(self.transcript)

        if not result.ok:
            raise RuntimeError(result.error or "Failed to generate summary")

        self.metadata = result.metadata
        self.mode = SessionMode.SUMMARY
        return self.metadata

    async def save_to_notion(self, metadata: NotionMetadata) -> str:
        """
        Save the transcript with ``metadata`` and return the page URL.

        On failure summary mode is kept so the user can retry or cancel.

        Raises:
            RuntimeError: If the export fails.
        """
        with self.ui.status("Saving to Notion..."):
            result = await self.exporter.save(self.transcript, metadata)

        if result.error:
            raise RuntimeError(result.error)

        self.metadata = None
        self.mode = SessionMode.RECORDING
        return result.url or ""

    def cancel_summary(self) -> None:
        self.metadata = None
        self.mode = SessionMode.RECORDING

    # -- interactive flows --------------------------------------------------

    async def record(self, tracker: Optional[LiveReplacementTracker] = None) -> None:
        """
        Record until the user submits an empty line.

        Audio is drained and transcribed every ``chunk_seconds``; the last
        partial chunk is transcribed after recording stops. With a tracker,
        each recognized sentence is handed to it and typed digits select
        alternatives.
        """
        await self.recorder.start_recording()
        self.ui.show_recording_status(self.chunk_seconds)

        stop = asyncio.Event()
        worker = asyncio.create_task(self._transcribe_periodically(stop, tracker))

        try:
            while True:
                line = (await self.ui.prompt_stop_recording()).strip()
                if not line:
                    break
                if tracker is not None and line.isdecimal():
                    if not tracker.select(int(line)):
                        self.ui.console.print("[yellow]No alternative applied.[/yellow]")
        finally:
            stop.set()
            try:
                await worker
            finally:
                final_chunk = await self.recorder.stop_recording()
                self.ui.show_recording_stopped()

        with self.ui.status("Transcribing final chunk..."):
            await self._handle_chunk(final_chunk, tracker)
        if tracker is not None:
            await tracker.wait_idle()

    async def _transcribe_periodically(
        self,
        stop: asyncio.Event,
        tracker: Optional[LiveReplacementTracker]
    ) -> None:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.chunk_seconds)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                return
            await self._handle_chunk(self.recorder.drain_chunk(), tracker)

    async def _handle_chunk(self, audio_data: bytes, tracker: Optional[LiveReplacementTracker]) -> None:
        if tracker is None:
            text = await self.transcribe_chunk(audio_data)
            if text:
                self.ui.show_chunk_text(text)
            return

        if not has_speech_payload(audio_data):
            return
        result = await self.transcriber.transcribe(audio_data)
        if result.error:
            logger.error(f"Transcription failed: {result.error}")
            return
        for sentence in result.segments:
            tracker.on_sentence_finalized(sentence)

    async def run_correction(self) -> None:
        editor = await self.start_correction()
        final_text = await self.ui.review_corrections(editor)
        self.finish_correction(final_text)
        if final_text is not None:
            self.ui.show_success("Corrections applied.")

    async def run_export(self) -> None:
        metadata = await self.generate_summary()
        reviewed = await self.ui.review_metadata(metadata)
        if reviewed is None:
            self.cancel_summary()
            return
        try:
            url = await self.save_to_notion(reviewed)
        except RuntimeError:
            self.cancel_summary()
            raise
        self.ui.show_success(f"Successfully saved to Notion! {url}".strip())

    async def run_session(self, live: bool = False) -> None:
        """
        Run an interactive session until the user quits.

        Errors from any single action are shown and the session continues.
        """
        self.ui.show_welcome("live" if live else "batch")

        if not await self.ui.prompt_start_recording():
            return

        action = "record"
        while action != "quit":
            try:
                await self._dispatch(action, live)
            except (PreconditionError, AudioRecorderError, RuntimeError) as e:
                self.mode = SessionMode.RECORDING
                self.ui.show_error(e)
            except Exception as e:
                logger.error(f"Unexpected error during '{action}': {e}", exc_info=True)
                self.mode = SessionMode.RECORDING
                self.ui.show_error(e)

            self.ui.show_transcript(self.transcript)
            action = await self.ui.prompt_transcript_action(bool(self.transcript.strip()))

    async def _dispatch(self, action: str, live: bool) -> None:
        if action == "record":
            if live:
                await self._record_live()
            else:
                await self.record()
        elif action == "correct":
            await self.run_correction()
        elif action == "export":
            await self.run_export()
        elif action == "edit":
            self.transcript = await self.ui.prompt_manual_text(self.transcript)
        elif action == "reset":
            self.reset_transcript()

    async def _record_live(self) -> None:
        tracker = LiveReplacementTracker(self.assistant, on_change=self.ui.make_live_callback())
        tracker.set_text(self.transcript)
        try:
            await self.record(tracker)
        finally:
            tracker.set_recording(False)
            self.transcript = tracker.accumulated_text


def configure_logging(verbose: bool, console: Optional[Console] = None) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console or Console(stderr=True), rich_tracebacks=True)]
    )


@click.command()
@click.version_option(version=__version__)
@click.option(
    '--mode',
    default='batch',
    help='batch: record then review; live: pick alternatives sentence by sentence',
    type=click.Choice(['batch', 'live'])
)
@click.option(
    '--provider',
    default='openai',
    help='LLM used for correction, alternatives and summaries',
    type=click.Choice(['openai', 'claude'])
)
@click.option('--model', default=None, help='Override the LLM model name')
@click.option(
    '--suggestion-model',
    default=None,
    help='Model for live sentence alternatives (default: a smaller model of the same provider)'
)
@click.option(
    '--backend',
    default='openai',
    help='Transcription backend',
    type=click.Choice(['openai', 'local'])
)
@click.option('--language', default=DEFAULT_LANGUAGE, show_default=True, help='Source language tag')
@click.option('--transcription-model', default='whisper-1', show_default=True, help='OpenAI transcription model')
@click.option(
    '--model-size',
    default='base',
    help='Local Whisper model size',
    type=click.Choice(WhisperTranscriber.AVAILABLE_MODELS)
)
@click.option('--chunk-seconds', default=10.0, show_default=True, type=click.FloatRange(min=1.0),
              help='Seconds of audio per transcription request while recording')
@click.option('--verbose', '-v', is_flag=True, help='Enable info logging')
def main(
    mode: str,
    provider: str,
    model: Optional[str],
    suggestion_model: Optional[str],
    backend: str,
    language: str,
    transcription_model: str,
    model_size: str,
    chunk_seconds: float,
    verbose: bool
) -> None:
    """
    Dictanote - AI-powered dictation, correction and Notion export.

    Records audio, transcribes it in rolling chunks, lets you apply AI
    correction suggestions and exports the result to a Notion database.
    """
    configure_logging(verbose)

    try:
        if backend == "local":
            transcriber = WhisperTranscriber(model_size=model_size, language=language)
        else:
            transcriber = OpenAITranscriber(model=transcription_model, language=language)

        app = DictationApp(
            assistant=TranscriptAssistant(
                create_provider(provider, model),
                create_provider(provider, suggestion_model or SUGGESTION_MODELS[provider])
            ),
            transcriber=transcriber,
            chunk_seconds=chunk_seconds
        )
        asyncio.run(app.run_session(live=(mode == "live")))

    except KeyboardInterrupt:
        click.echo("\nApplication interrupted by user.")
        sys.exit(0)
    except Exception as e:
        logger.debug("Fatal error", exc_info=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
