from rich.align import Align
from rich.text import Text

from ..__version__ import __version__


class Banner:
    @staticmethod
    def get_ascii_art():
        return """
[bold bright_cyan] ___  ___  ___ _ __  [/][bold bright_green]  __ _ (_)[/][bold bright_cyan] | | _(_) |_ [/]
[bold bright_cyan]/ _ \\| _ \\/ -_) '  \\ [/][bold bright_green] / _` || |[/][bold bright_cyan] | |/ / |  _|[/]
[bold bright_cyan]\\___/| .__/\\___|_||_|[/][bold bright_green] \\__,_||_|[/][bold bright_cyan] |_|\\_\\_|\\__|[/]
[bold bright_cyan]     |_|             [/]
        """

    @staticmethod
    def print_banner(console, base_url: str = None, model: str = None):
        tagline = Text(f"openaikit v{__version__}", style="bold bright_white")
        details = " | ".join(part for part in (
            f"MODEL: {model}" if model else None,
            f"ENDPOINT: {base_url}" if base_url else None,
        ) if part)

        console.print(Align.center(Banner.get_ascii_art()))
        console.print(Align.center(tagline))
        if details:
            console.print(Align.center(Text(details, style="italic dim green")))
        console.print(Align.center(Text("━" * 50, style="dim cyan")))
        console.print("")
