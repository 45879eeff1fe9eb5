"""
Command line interface using Typer with Rich integration.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console

from .agent.strategy import Strategy
from .ai_backends.factory import BackendFactory
from .config.settings import Settings
from .core import GenerationOrchestrator, GenerationResult
from .errors import GitAIError
from .ui.console import GitAIConsole


# Create Typer app
app = typer.Typer(
    name="git-ai",
    help="AI-generated Git commit messages from staged changes",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True
)

# Global console for error handling
console = Console(stderr=True)

MESSAGE_DELIMITER = "---END---"


def setup_logging(log_level: str = "WARNING", log_file: Optional[Path] = None):
    """Setup logging configuration."""
    logger.remove()  # Remove default handler

    # Console logging with colors
    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        colorize=True
    )

    # File logging
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation="1 MB",
            retention="7 days"
        )


def _load_settings(config_file: Optional[Path], repo_path: Optional[Path], verbose: bool, debug: bool) -> Settings:
    settings = Settings.load(repo_path=repo_path, config_file=config_file)

    # Debug overrides verbose
    if debug:
        log_level = "DEBUG"
    elif verbose:
        log_level = "INFO"
    else:
        log_level = settings.ui.log_level
    setup_logging(log_level, settings.log_file)
    return settings


@app.command()
def msg(
    num: int = typer.Option(
        1, "--num", "-n", min=1, max=10,
        help="Number of candidate messages to generate"
    ),
    as_json: bool = typer.Option(
        False, "--json",
        help="Print a JSON document instead of plain text"
    ),
    strategy: Optional[Strategy] = typer.Option(
        None, "--strategy", "-s",
        help="Force a generation strategy (direct, heuristic, tool_agent)"
    ),
    no_enrich: bool = typer.Option(
        False, "--no-enrich",
        help="Disable automatic enriched strategies"
    ),
    pretty: bool = typer.Option(
        False, "--pretty", "-p",
        help="Show messages in panels instead of plain text"
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c",
        help="Path to configuration file"
    ),
    repo_path: Optional[Path] = typer.Option(
        None, "--repo", "-r",
        help="Git repository path (default: current directory)"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Enable verbose logging"
    ),
    debug: bool = typer.Option(
        False, "--debug", "-d",
        help="Enable debug logging (includes verbose)"
    )
):
    """
    Generate commit message(s) for the staged changes.

    [bold blue]Examples:[/bold blue]

    [green]git-ai msg[/green]                         # One message, plain text
    [green]git-ai msg -n 3[/green]                    # Three candidates separated by ---END---
    [green]git-ai msg --json[/green]                  # JSON output for scripts and editors
    [green]git-ai msg -s tool_agent[/green]           # Force the tool-using agent
    """
    asyncio.run(_run_msg(num, as_json, strategy, no_enrich, pretty, config_file, repo_path, verbose, debug))


@app.command()
def config(
    show: bool = typer.Option(
        False, "--show", "-s",
        help="Show current configuration"
    ),
    provider: Optional[str] = typer.Option(
        None, "--provider",
        help=f"Set provider preset ({', '.join(BackendFactory.list_providers())})"
    ),
    api_key: Optional[str] = typer.Option(
        None, "--api-key", "-k",
        help="Set API key"
    ),
    base_url: Optional[str] = typer.Option(
        None, "--url", "-u",
        help="Set AI API base URL"
    ),
    model: Optional[str] = typer.Option(
        None, "--model", "-m",
        help="Set AI model name"
    ),
    locale: Optional[str] = typer.Option(
        None, "--locale", "-l",
        help="Set message language (en, zh)"
    ),
    save: bool = typer.Option(
        False, "--save",
        help="Save configuration to the global config file"
    )
):
    """
    Manage git-ai configuration.

    [bold blue]Examples:[/bold blue]

    [green]git-ai config --show[/green]                                  # Show current config
    [green]git-ai config --provider deepseek -k sk-... --save[/green]    # Use DeepSeek
    [green]git-ai config --provider ollama -m qwen2.5-coder --save[/green]  # Use a local Ollama model
    """
    try:
        settings = Settings.load()
        ui = GitAIConsole(settings)

        if show:
            ui.show_configuration()
            return

        changes = {
            "provider": provider,
            "api_key": api_key,
            "base_url": base_url,
            "model": model,
            "locale": locale,
        }
        changes = {key: value for key, value in changes.items() if value is not None}

        if provider and provider not in BackendFactory.list_providers():
            ui.print_warning(f"Unknown provider '{provider}', base URL and model must be set explicitly")

        if not changes:
            ui.print_warning("No configuration changes made")
            ui.print_info("Use --show to see current configuration")
            return

        settings.ai = settings.ai.model_validate({**settings.ai.model_dump(), **changes})
        for key in changes:
            shown = "****" if key == "api_key" else changes[key]
            ui.print_success(f"Set {key} to: {shown}")

        if save:
            config_path = Settings.default_config_path()
            settings.save_to_file(config_path)
            ui.print_success(f"Configuration saved to: {config_path}")
        else:
            ui.print_warning("Use --save to persist these changes")

    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def test(
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c",
        help="Path to configuration file"
    )
):
    """
    Test AI backend connectivity and list its models.
    """
    asyncio.run(_run_test(config_file))


def _print_plain(result: GenerationResult) -> None:
    for i, message in enumerate(result.messages):
        print(message)
        if i < len(result.messages) - 1:
            print(MESSAGE_DELIMITER)


def _result_document(result: GenerationResult) -> dict:
    bundle = result.diff
    return {
        "success": True,
        "messages": result.messages,
        "strategy": result.strategy_used.value,
        "advisories": [str(advisory) for advisory in result.advisories],
        "metadata": {
            "stagedFiles": result.staged_files,
            "truncated": bundle.truncated if bundle else False,
            "ignoredFiles": bundle.ignored_paths if bundle else [],
        },
    }


async def _run_msg(
    num: int,
    as_json: bool,
    strategy: Optional[Strategy],
    no_enrich: bool,
    pretty: bool,
    config_file: Optional[Path],
    repo_path: Optional[Path],
    verbose: bool,
    debug: bool
):
    """Run msg command."""
    try:
        settings = _load_settings(config_file, repo_path, verbose, debug)
        if no_enrich:
            settings.agent.auto_enrichment = False

        orchestrator = GenerationOrchestrator.from_settings(settings, repo_path)
        ui = GitAIConsole(settings, stderr=not pretty)

        if as_json:
            result = await orchestrator.generate_for_staged(num, strategy)
            print(json.dumps(_result_document(result), indent=2, ensure_ascii=False))
            return

        label = f"Generating {num} commit messages" if num > 1 else "Generating commit message"
        with ui.show_progress_spinner(label):
            result = await orchestrator.generate_for_staged(num, strategy)

        if pretty:
            ui.show_result(result)
        else:
            ui.show_advisories(result)
            _print_plain(result)

    except GitAIError as e:
        if as_json:
            print(json.dumps({"success": False, "error": str(e), "kind": e.kind.value}, indent=2, ensure_ascii=False))
        else:
            console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        raise typer.Exit(130)


async def _run_test(config_file: Optional[Path]):
    """Run test command."""
    try:
        settings = _load_settings(config_file, None, False, False)
        ui = GitAIConsole(settings)
        backend = BackendFactory.create_backend(settings)
        ui.show_ai_backend_info(backend.backend_type, backend.api_url, backend.model)

        with ui.show_progress_spinner("Testing AI backend"):
            healthy = await backend.health_check()
            models = await backend.list_models() if healthy else []

        if not healthy:
            ui.print_error("AI backend health check failed")
            raise typer.Exit(1)

        ui.print_success("AI backend is reachable")
        ui.show_model_list(models)

    except GitAIError as e:
        console.print(f"[red]Test failed:[/red] {e}")
        raise typer.Exit(1)


def main():
    """Main entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
