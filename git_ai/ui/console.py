"""
Console output with Rich components.
"""

from typing import List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.markup import escape
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from ..config.settings import Settings
from ..core import GenerationResult


class GitAIConsole:
    """Console interface for the git-ai commands."""

    def __init__(self, settings: Settings, stderr: bool = False):
        """Initialize console with settings."""
        self.settings = settings
        self._setup_styles()
        self.console = Console(
            color_system="auto" if settings.ui.use_colors else None,
            theme=self.theme,
            stderr=stderr,
        )

    def _setup_styles(self) -> None:
        """Setup custom styles for consistent theming."""
        self.styles = {
            "title": "bold blue",
            "success": "bold green",
            "warning": "bold yellow",
            "error": "bold red",
            "info": "blue",
            "muted": "dim",
            "strategy": "bold magenta",
        }

        self.theme = Theme(self.styles)

    def show_ai_backend_info(self, backend_type: str, api_url: str, model: str) -> None:
        """Show which backend answers the requests."""
        self.console.print(f"[muted]Backend:[/muted] {backend_type}  [muted]URL:[/muted] {api_url}  "
                           f"[muted]Model:[/muted] {model}")

    def show_result(self, result: GenerationResult) -> None:
        """Show generated messages, one panel per candidate."""
        self.show_advisories(result)

        for i, message in enumerate(result.messages, 1):
            title = f"Option {i}" if len(result.messages) > 1 else "Commit message"
            self.console.print(Panel(
                Text(message),
                title=f"[title]{title}[/title]",
                subtitle=f"[strategy]{result.strategy_used.value}[/strategy]",
                box=box.ROUNDED,
            ))

        if result.diff and result.diff.ignored_paths:
            self.print_info(f"Diff omitted for {len(result.diff.ignored_paths)} ignored file(s)")
        if result.diff and result.diff.truncated:
            self.print_warning("Diff was truncated to fit the model context")

    def show_advisories(self, result: GenerationResult) -> None:
        for advisory in result.advisories:
            self.print_warning(f"{escape(str(advisory))}. Fell back to direct generation.")

    def show_configuration(self) -> None:
        """Show current configuration with the API key masked."""
        ai = self.settings.ai
        table = Table(title="git-ai Configuration", box=box.SIMPLE, show_header=False)
        table.add_column("Key", style="info")
        table.add_column("Value")

        rows = [
            ("Provider", ai.provider or "(custom)"),
            ("Base URL", ai.base_url or "(preset)"),
            ("Model", ai.model or "(preset)"),
            ("Agent model", self.settings.agent_model or "(preset)"),
            ("API key", self._mask(ai.api_key)),
            ("Locale", ai.locale),
            ("Timeout", f"{ai.timeout}s"),
            ("Footer", str(ai.enable_footer)),
            ("Max diff chars", str(self.settings.git.max_diff_chars)),
            ("Ignore file", self.settings.git.ignore_file),
            ("Auto enrichment", str(self.settings.agent.auto_enrichment)),
            ("Enriched strategy", self.settings.agent.enriched_strategy),
            ("Tool call budget", str(self.settings.agent.tool_call_budget)),
            ("Iteration cap", str(self.settings.agent.iteration_cap)),
            ("Fatal errors", ", ".join(kind.value for kind in self.settings.agent.fatal_errors)),
        ]
        for key, value in rows:
            table.add_row(key, value)

        self.console.print(table)

    def show_model_list(self, models: List[str]) -> None:
        if not models:
            self.print_warning("Backend did not report any models")
            return
        self.console.print("[bold]Available models:[/bold]")
        for model in models:
            self.console.print(f"  • {model}")

    @staticmethod
    def _mask(api_key: str) -> str:
        if not api_key:
            return "(not set)"
        if len(api_key) <= 8:
            return "****"
        return f"{api_key[:3]}****{api_key[-3:]}"

    def show_progress_spinner(self, description: str):
        """Create a progress spinner context manager."""
        return self.console.status(f"[blue]{description}...[/blue]", spinner="dots")

    def print_success(self, message: str) -> None:
        """Print success message."""
        self.console.print(f"[success]✓ {message}[/success]")

    def print_warning(self, message: str) -> None:
        """Print warning message."""
        self.console.print(f"[warning]⚠ {message}[/warning]")

    def print_error(self, message: str) -> None:
        """Print error message."""
        self.console.print(f"[error]✗ {message}[/error]")

    def print_info(self, message: str) -> None:
        """Print info message."""
        self.console.print(f"[info]ℹ {message}[/info]")
