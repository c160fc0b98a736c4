"""CLI commands for compaction-context."""

import json
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from compaction_context import __logo__, __version__

app = typer.Typer(
    name="compaction-context",
    help=f"{__logo__} compaction-context - keep recent turns across compaction",
    no_args_is_help=True,
)

console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="Host config file (openclaw.json)")
WorkspaceOption = typer.Option(None, "--workspace", "-w", help="Workspace directory")


def _build_plugin(config_path: Path | None):
    """Load config and build the plugin, exiting on a missing explicit config."""
    from compaction_context.config.loader import load_config
    from compaction_context.config.schema import resolve_recovery_config
    from compaction_context.plugin import CompactionContextPlugin

    if config_path is not None and not config_path.exists():
        console.print(f"[red]Error: config file not found: {config_path}[/red]")
        raise typer.Exit(1)

    config = load_config(config_path)
    return CompactionContextPlugin(config, resolve_recovery_config(config))


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} compaction-context v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-V", callback=version_callback, is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """compaction-context - keep recent turns across compaction."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


# ============================================================================
# Capture / Inject
# ============================================================================


@app.command()
def capture(
    agent: str = typer.Option("main", "--agent", "-a", help="Agent id"),
    workspace: Path = WorkspaceOption,
    config_path: Path = ConfigOption,
):
    """Snapshot the latest turns and mark recovery as pending."""
    from compaction_context.plugin import AgentContext

    plugin = _build_plugin(config_path)
    ctx = AgentContext(agent_id=agent, workspace_dir=str(workspace) if workspace else None)
    outcome = plugin.before_compaction(None, ctx)

    if outcome.captured:
        console.print(
            f"[green]✓[/green] Captured {outcome.turn_count} messages "
            f"to {plugin.workspace_for(ctx) / 'RECENT.md'}"
        )
    else:
        console.print(f"[yellow]Nothing captured ({outcome.status.value})[/yellow]")


@app.command()
def inject(
    workspace: Path = WorkspaceOption,
    config_path: Path = ConfigOption,
):
    """Consume the pending marker and print the recovered context."""
    from compaction_context.plugin import AgentContext

    plugin = _build_plugin(config_path)
    outcome = plugin.inject(AgentContext(workspace_dir=str(workspace) if workspace else None))

    if outcome.injected:
        typer.echo(outcome.prepend_context)
    else:
        console.print(f"[dim]Nothing to inject ({outcome.status.value})[/dim]")


# ============================================================================
# Hook bridge
# ============================================================================


@app.command()
def hook(
    event: str = typer.Argument(..., help="before_compaction | before_agent_start"),
    config_path: Path = ConfigOption,
):
    """Run a hook with a JSON payload from stdin and print a JSON result."""
    from compaction_context.plugin import BEFORE_AGENT_START, BEFORE_COMPACTION

    if event not in (BEFORE_COMPACTION, BEFORE_AGENT_START):
        console.print(f"[red]Unknown event: {event}[/red]")
        raise typer.Exit(2)

    raw = sys.stdin.read()
    try:
        payload = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as e:
        logger.warning(f"Ignoring malformed hook payload: {e}")
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    ctx = payload.get("context", payload)
    plugin = _build_plugin(config_path)

    if event == BEFORE_COMPACTION:
        outcome = plugin.before_compaction(payload.get("event"), ctx)
        result = {"status": outcome.status.value, "turnCount": outcome.turn_count}
    else:
        result = plugin.before_agent_start(payload.get("event"), ctx) or {}

    typer.echo(json.dumps(result, ensure_ascii=False))


# ============================================================================
# Status Commands
# ============================================================================


@app.command()
def status(
    workspace: Path = WorkspaceOption,
    config_path: Path = ConfigOption,
):
    """Show recovery state for a workspace."""
    from compaction_context.plugin import AgentContext
    from compaction_context.recovery.state import RecoveryStore

    plugin = _build_plugin(config_path)
    ws = plugin.workspace_for(AgentContext(workspace_dir=str(workspace) if workspace else None))
    info = RecoveryStore(ws).status()

    table = Table(title=f"{__logo__} compaction-context")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Workspace", str(ws))
    table.add_row("Message count", str(plugin.recovery_config.message_count))
    table.add_row("Max chars/message", str(plugin.recovery_config.max_chars_per_message))
    table.add_row(
        "Pending recovery",
        "[green]yes[/green]" if info.pending else "[dim]no[/dim]",
    )
    if info.pending:
        table.add_row("Marked at", info.marked_at.isoformat() if info.marked_at else "[dim]unknown[/dim]")
    table.add_row(
        "Snapshot",
        info.snapshot_updated_at.isoformat() if info.snapshot_exists else "[dim]none[/dim]",
    )

    console.print(table)


if __name__ == "__main__":
    app()
