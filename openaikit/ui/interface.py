import os
from typing import Iterable, List

import pyperclip
from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.styles import Style
from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.spinner import Spinner
from rich.table import Table

from ..config import Config
from ..core.errors import APIError
from ..core.models import Batch, FileObject, ModelInfo
from .banner import Banner


class UI:
    """Terminal user interface using Rich"""

    def __init__(self, console: Console = None):
        self.console = console or Console()
        self.pt_style = Style.from_dict({
            'prompt': 'ansicyan bold',
        })
        self._session = None

    @property
    def session(self) -> PromptSession:
        # Created lazily so one-shot commands never touch the history file
        if self._session is None:
            self._session = PromptSession(history=FileHistory(os.path.expanduser(f"~/{Config.HISTORY_FILE}")))
        return self._session

    def clear(self):
        self.console.clear()

    def banner(self, base_url: str = None, model: str = None):
        self.clear()
        Banner.print_banner(self.console, base_url=base_url, model=model)

    def show_msg(self, title: str, content: str, color: str = "white"):
        self.console.print(Panel(content, title=f"[bold]{title}[/]", border_style=color, padding=(1, 2)))

    def show_error(self, error: APIError):
        details = error.user_message
        if error.user_message != error.message:
            details += f"\n\n[dim]{error.message}[/]"
        if error.requires_user_action:
            details += "\n\n[yellow]Check your input or credentials before retrying.[/]"
        self.show_msg(error.title, details, color="red")

    def show_help(self):
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Command", style="bold yellow")
        table.add_column("Action", style="bright_white")
        table.add_row("/exit", "Leave the session")
        table.add_row("/clear", "Forget the conversation (system prompt is kept)")
        table.add_row("/copy", "Copy the last reply to the clipboard")
        table.add_row("/model NAME", "Switch model")
        table.add_row("/save FILE", "Save the conversation as JSON")
        table.add_row("/help", "Show this list")
        self.console.print(Panel(table, title="[bold cyan]Commands[/]", border_style="bright_blue"))

    def get_input(self, label: str = "YOU", multiline: bool = False) -> str:
        """Read a line with prompt_toolkit; Esc+Enter inserts a newline in multiline mode."""
        kb = KeyBindings()

        if multiline:
            @kb.add('enter')
            def _(event):
                event.current_buffer.validate_and_handle()

            @kb.add('escape', 'enter')
            def _(event):
                event.current_buffer.insert_text('\n')

        self.console.print(f"[bold bright_cyan]◆ {label}[/]")
        try:
            return self.session.prompt(
                [('class:prompt', ' ╰─> ')],
                style=self.pt_style,
                multiline=multiline,
                key_bindings=kb if multiline else None,
                prompt_continuation=lambda width, line_number, is_soft_wrap: ' ' * (width - 1) + '│',
            )
        except EOFError:
            return "/exit"

    def stream_markdown(self, title: str, content_generator: Iterable[str]) -> str:
        """Render Markdown as it streams; returns the full text."""
        full_response = ""
        theme = Config.code_theme()

        self.console.print(Rule(f"[bold bright_cyan]{title}[/bold bright_cyan]", style="bright_blue"))

        with Live(
            Spinner("dots", text="Waiting for the model...", style="bright_cyan"),
            console=self.console,
            refresh_per_second=15,
            transient=True,
        ) as live:
            for chunk in content_generator:
                if not chunk:
                    continue
                full_response += chunk
                thinking, answer, still_thinking = split_thinking(full_response)

                elements = []
                if thinking:
                    elements.append(Panel(
                        thinking,
                        title="[italic dim bright_cyan]Reasoning[/]",
                        border_style="dim blue",
                        subtitle="[dim]thinking...[/]" if still_thinking else None,
                        padding=(0, 1),
                    ))
                if answer:
                    elements.append(Markdown(answer, code_theme=theme))
                live.update(Group(*elements) if elements else
                            Spinner("dots", text="Generating response...", style="bright_cyan"))

        thinking, answer, _ = split_thinking(full_response)
        if thinking:
            self.console.print(Panel(thinking, title="[bold bright_cyan]Reasoning[/]",
                                     border_style="bright_blue", style="dim", padding=(1, 2)))
        if answer:
            self.console.print(Markdown(answer, code_theme=theme))
        else:
            self.console.print("[bold red]✗ The model returned an empty reply.[/]")
        self.console.print(Rule(style="dim bright_blue"))
        return full_response

    def copy_to_clipboard(self, text: str) -> bool:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as e:
            self.console.print(f"[bold red]✗ Clipboard unavailable: {e}[/]")
            return False
        self.console.print(f"[bold green]✓ Copied {len(text)} characters to the clipboard[/]")
        return True

    # -- tables ---------------------------------------------------------------

    def models_table(self, models: List[ModelInfo]):
        table = Table(show_header=True, header_style="bold magenta", border_style="dim white")
        table.add_column("Model", style="cyan")
        table.add_column("Owned by", style="green")
        table.add_column("Created", style="yellow", justify="right")
        for model in sorted(models, key=lambda m: m.id or ""):
            table.add_row(model.id, model.owned_by or "", str(model.created or ""))
        self.console.print(table)

    def files_table(self, files: List[FileObject]):
        table = Table(show_header=True, header_style="bold magenta", border_style="dim white")
        table.add_column("ID", style="cyan")
        table.add_column("Filename", style="bright_white")
        table.add_column("Purpose", style="green")
        table.add_column("Bytes", style="yellow", justify="right")
        for f in files:
            table.add_row(f.id, f.filename or "", f.purpose or "", str(f.bytes))
        self.console.print(table)

    def batch_panel(self, batch: Batch):
        counts = batch.request_counts
        color = "green" if batch.status == "completed" else "red" if batch.is_finished else "yellow"
        lines = [
            f"[bold]Status:[/] [{color}]{batch.status}[/]",
            f"[bold]Endpoint:[/] {batch.endpoint}",
            f"[bold]Requests:[/] {counts.completed} done, {counts.failed} failed, {counts.total} total "
            f"({batch.completion_percentage:.1f}%)",
        ]
        if batch.output_file_id:
            lines.append(f"[bold]Output file:[/] {batch.output_file_id}")
        if batch.error_file_id:
            lines.append(f"[bold]Error file:[/] {batch.error_file_id}")
        self.show_msg(f"Batch {batch.id}", "\n".join(lines), color=color)


def split_thinking(text: str):
    """Split ``<think>...</think>`` reasoning from the answer: ``(thinking, answer, still_thinking)``."""
    if "<think>" not in text:
        return "", text.strip(), False
    if "</think>" in text:
        thinking, answer = text.split("</think>", 1)
        return thinking.replace("<think>", "").strip(), answer.strip(), False
    return text.replace("<think>", "").strip(), "", True
