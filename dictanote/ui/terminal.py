"""
Rich-based terminal user interface.

Renders the transcript, the correction editor with highlighted suggestions,
the export review form and the live alternatives bar, and collects user
choices without blocking the event loop.
"""

from typing import Callable, List, Optional, Tuple
import asyncio
import time

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt, Confirm
from rich.table import Table
from rich.text import Text
from rich import box

from ..correction.live import LiveReplacementTracker
from ..correction.models import NotionMetadata, Suggestion
from ..correction.patcher import CorrectionEditor

MARK_STYLE = "black on yellow"
MARK_NUMBER_STYLE = "bold blue"


def build_correction_text(editor: CorrectionEditor) -> Tuple[Text, List[Tuple[int, int, Suggestion]]]:
    """
    Render all segments with suggestions highlighted and numbered.

    Returns:
        The styled text and the numbered marks, where mark ``n`` (1-based)
        is ``marks[n - 1]``.
    """
    text = Text()
    marks = editor.markable()
    numbers = {(seg_idx, sug_idx): n for n, (seg_idx, sug_idx, _) in enumerate(marks, start=1)}

    for seg_idx, spans in enumerate(editor.render()):
        for span in spans:
            if span.is_marked:
                text.append(span.text, style=MARK_STYLE)
                text.append(f"[{numbers[(seg_idx, span.suggestion_index)]}]", style=MARK_NUMBER_STYLE)
            else:
                text.append(span.text)
        text.append(" ")

    text.rstrip()
    return text, marks


class TerminalUI:
    """
    Rich terminal interface for the dictation application.

    All prompts run in the default executor so background transcription
    and alternative lookups keep running while the user is typing.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._recording_start_time: Optional[float] = None

    async def _ask(self, prompt: str, **kwargs) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: Prompt.ask(prompt, console=self.console, **kwargs))

    async def _confirm(self, prompt: str, default: bool = True) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: Confirm.ask(prompt, console=self.console, default=default)
        )

    def show_welcome(self, mode: str) -> None:
        welcome_text = Text()
        welcome_text.append("🎙️  Dictanote", style="bold magenta")
        welcome_text.append("\n\nAI-powered dictation, correction and Notion export\n")

        self.console.print(Panel(
            welcome_text,
            title="Welcome",
            title_align="center",
            border_style="cyan",
            padding=(1, 2)
        ))
        if mode == "live":
            self.console.print("  • Speak naturally; each sentence appears as it is recognized")
            self.console.print("  • Type [bold]1[/bold]-[bold]3[/bold] + Enter to swap the last sentence for an alternative")
            self.console.print("  • Press [bold red]Enter[/bold red] on an empty line to stop")
        else:
            self.console.print("  • Press [bold green]Enter[/bold green] to start recording")
            self.console.print("  • Press [bold red]Enter[/bold red] again to stop")
            self.console.print("  • Then correct, edit or export the transcript")
        self.console.print()

    async def prompt_start_recording(self) -> bool:
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, lambda: input("Press Enter to start recording (or Ctrl+C to quit): "))
            return True
        except (KeyboardInterrupt, EOFError):
            return False

    def show_recording_status(self, chunk_seconds: float) -> None:
        self._recording_start_time = time.time()
        self.console.print(Panel(
            Text("🔴 RECORDING", style="bold red")
            + Text(f"\n\nAuto-transcribing every {chunk_seconds:g}s... Press Enter to stop", style="white"),
            title="Recording Audio",
            title_align="center",
            border_style="red",
            padding=(1, 2)
        ))

    async def prompt_stop_recording(self) -> str:
        """Wait for a line of input while recording and return it."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, input)
        except (KeyboardInterrupt, EOFError):
            return ""

    def show_recording_stopped(self) -> None:
        if self._recording_start_time:
            duration = time.time() - self._recording_start_time
            self.console.print(f"⏹️  Recording stopped ({duration:.1f}s)")
        else:
            self.console.print("⏹️  Recording stopped")
        self._recording_start_time = None

    def show_chunk_text(self, text: str) -> None:
        self.console.print(f"[dim]…[/dim] {text}")

    def status(self, message: str):
        """Spinner shown while a network call is outstanding."""
        return self.console.status(f"🤖 {message}", spinner="dots")

    def show_transcript(self, transcript: str) -> None:
        body = Text(transcript) if transcript.strip() else Text("Transcription will appear here...", style="dim")
        self.console.print(Panel(body, title="Transcript", border_style="cyan", padding=(1, 2)))

    async def prompt_transcript_action(self, has_text: bool) -> str:
        """
        Ask what to do with the transcript.

        Returns:
            One of 'record', 'correct', 'export', 'edit', 'reset', 'quit'.
        """
        options = {"r": "record", "q": "quit"}
        if has_text:
            options.update({"c": "correct", "x": "export", "e": "edit", "z": "reset"})

        labels = {
            "r": "[r]ecord more", "c": "[c]orrect", "x": "e[x]port to Notion",
            "e": "[e]dit", "z": "reset ([z])", "q": "[q]uit"
        }
        self.console.print("  ".join(labels[key] for key in labels if key in options))
        choice = await self._ask("Action", choices=list(options), default="q" if not has_text else "c")
        return options[choice]

    async def prompt_manual_text(self, current: str) -> str:
        return await self._ask("Edit transcript", default=current)

    def show_suggestion(self, number: int, suggestion: Suggestion) -> None:
        table = Table(
            title=f"Suggestion {number}: “{suggestion.target_substring}”",
            title_style="bold cyan",
            caption=suggestion.reason or None,
            box=box.ROUNDED,
            show_header=True,
            header_style="bold white"
        )
        table.add_column("#", style="cyan", width=3)
        table.add_column("Replacement", style="white")
        for i, candidate in enumerate(suggestion.candidates, start=1):
            table.add_row(str(i), candidate)
        table.add_row(str(len(suggestion.candidates) + 1), "[dim]Manual edit[/dim]")
        self.console.print(table)

    async def review_corrections(self, editor: CorrectionEditor) -> Optional[str]:
        """
        Let the user work through highlighted suggestions.

        Returns:
            The finalized full text, or None if the user cancelled.
        """
        while True:
            text, marks = build_correction_text(editor)
            self.console.print(Panel(text, title="AI Correction", border_style="yellow", padding=(1, 2)))

            if not marks:
                self.console.print("[green]No highlighted suggestions left.[/green]")
            else:
                self.console.print("Pick a highlighted number to review it.")

            choices = [str(n) for n in range(1, len(marks) + 1)] + ["f", "c"]
            choice = await self._ask(
                "Suggestion number, [f]inalize & save or [c]ancel",
                choices=choices,
                show_choices=False,
                default="1" if marks else "f"
            )
            if choice == "f":
                return editor.full_text()
            if choice == "c":
                return None

            number = int(choice)
            seg_idx, sug_idx, suggestion = marks[number - 1]
            self.show_suggestion(number, suggestion)

            manual_option = len(suggestion.candidates) + 1
            pick = await self._ask(
                "Replacement number (Enter to skip)",
                choices=[str(n) for n in range(1, manual_option + 1)] + [""],
                show_choices=False,
                default=""
            )
            if not pick:
                continue
            if int(pick) == manual_option:
                manual = await self._ask("Type correction")
                editor.manual_edit(seg_idx, sug_idx, manual)
            else:
                editor.apply_suggestion(seg_idx, sug_idx, int(pick) - 1)

    async def review_metadata(self, metadata: NotionMetadata) -> Optional[NotionMetadata]:
        """
        Show the generated export metadata and let the user edit it.

        Returns:
            The (possibly edited) metadata to save, or None if cancelled.
        """
        table = Table(title="Review Notion Export", box=box.ROUNDED, show_header=False)
        table.add_column("Field", style="magenta", width=10)
        table.add_column("Value", style="white")
        table.add_row("Title", metadata.title)
        table.add_row("Summary", metadata.summary)
        table.add_row("Tags", ", ".join(metadata.tags))
        self.console.print(table)

        if await self._confirm("Edit before saving?", default=False):
            title = await self._ask("Title", default=metadata.title)
            summary = await self._ask("Summary", default=metadata.summary)
            tags = []
            for i, tag in enumerate(metadata.tags, start=1):
                tags.append(await self._ask(f"Tag {i}", default=tag))
            metadata = NotionMetadata(title=title, summary=summary, tags=tags)

        if not await self._confirm("Save to Notion?", default=True):
            return None
        return metadata

    def show_live_state(self, tracker: LiveReplacementTracker) -> None:
        """Print the pending sentence and its numbered alternatives."""
        if not tracker.pending_sentence:
            return
        line = Text("▶ ", style="bold red")
        line.append(tracker.pending_sentence, style="bold")
        if tracker.alternatives:
            for i, alternative in enumerate(tracker.alternatives, start=1):
                line.append(f"   {i}. ", style=MARK_NUMBER_STYLE)
                line.append(alternative)
        else:
            line.append("   (looking for alternatives…)", style="dim")
        self.console.print(line)

    def make_live_callback(self) -> Callable[[LiveReplacementTracker], None]:
        """Callback that redraws only when the pending suggestion changes."""
        last: List[Optional[Tuple[Optional[str], Tuple[str, ...]]]] = [None]

        def redraw(tracker: LiveReplacementTracker) -> None:
            key = (tracker.pending_sentence, tracker.alternatives)
            if key != last[0]:
                last[0] = key
                self.show_live_state(tracker)

        return redraw

    def show_error(self, error: Exception) -> None:
        error_message = str(error)

        if "microphone" in error_message.lower() or "audio" in error_message.lower():
            guidance = "\n\n💡 Check that a microphone is connected and your terminal may use it."
        elif "api key" in error_message.lower() or "notion" in error_message.lower():
            guidance = "\n\n💡 Check your API keys and NOTION_DATABASE_ID."
        else:
            guidance = ""

        self.console.print(Panel(
            Text(f"❌ {error_message}{guidance}", style="red"),
            title="Error",
            title_align="center",
            border_style="red",
            padding=(1, 2)
        ))

    def show_success(self, message: str) -> None:
        self.console.print(Panel(
            f"✅ {message}",
            title="Success",
            title_align="center",
            border_style="green",
            padding=(1, 2)
        ))
