"""
CLI interface for Usage Monitor.

Provides command-line access to the current session, plan selection and
a live-updating view.
"""

import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.table import Table

from usage_monitor.config.loader import MonitorConfig, default_config, load_monitor_config
from usage_monitor.core.burn_rate import burn_rate_category
from usage_monitor.core.formatting import TimeFormatter, session_elapsed, session_progress
from usage_monitor.core.monitor import UsageMonitorController, UsageSnapshot
from usage_monitor.core.prediction import PredictionState
from usage_monitor.core.scheduler import RefreshPoller
from usage_monitor.core.segmenter import segment_events
from usage_monitor.loader import JsonlUsageLoader
from usage_monitor.storage.repository import get_repository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to a YAML configuration file"
)


def _load_config(config_path: Optional[str]) -> MonitorConfig:
    config = load_monitor_config(config_path) if config_path else default_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    return config


def build_controller(config: MonitorConfig) -> UsageMonitorController:
    """Wire the controller to the log loader and settings database."""
    return UsageMonitorController(
        loader=JsonlUsageLoader(config.data_paths),
        settings=get_repository(config.db_path),
        formatter=TimeFormatter(config.display_tz()),
    )


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Usage Monitor CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Usage Monitor - Use --help to see available commands")


@app.command()
def init(config_path: Optional[str] = _CONFIG_OPTION):
    """Initialize the settings database."""
    try:
        config = _load_config(config_path)
        initialize_schema(config.db_path)
        console.print("[green]✓[/] Settings database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(config_path: Optional[str] = _CONFIG_OPTION):
    """Show token usage for the current session window."""
    try:
        config = _load_config(config_path)
        snapshot = build_controller(config).refresh()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(_render_snapshot(snapshot, datetime.now(timezone.utc)))
    sys.exit(EXIT_CODE_PASS)


@app.command()
def plan(
    choice: str = typer.Argument(..., help="Pro, Max5, Max20, or Auto to use detection"),
    config_path: Optional[str] = _CONFIG_OPTION
):
    """Choose the plan tier manually, or return to auto-detection."""
    try:
        config = _load_config(config_path)
        controller = build_controller(config)
        controller.refresh()
        snapshot = controller.set_plan(choice)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Plan set to {snapshot.plan_label}, limit {snapshot.token_limit:,} tokens")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def sessions(config_path: Optional[str] = _CONFIG_OPTION):
    """List every session and gap window found in the logs."""
    try:
        config = _load_config(config_path)
        events = JsonlUsageLoader(config.data_paths).load_usage_data()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    windows = segment_events(events)
    if not windows:
        console.print("\n[bold yellow]No usage data found[/]")
        sys.exit(EXIT_CODE_PASS)

    formatter = TimeFormatter(config.display_tz())
    now = datetime.now(timezone.utc)
    table = Table(title="Session Windows")
    table.add_column("Window")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Kind")
    table.add_column("Display tokens", justify="right")
    table.add_column("Raw tokens", justify="right")
    for window in windows:
        if window.is_gap:
            kind = "gap"
        elif window.is_active(now):
            kind = "[green]active[/]"
        else:
            kind = "session"
        table.add_row(
            window.id,
            f"{window.start_time:%Y-%m-%d} {formatter.format(window.start_time)}",
            f"{window.end_time:%Y-%m-%d} {formatter.format(window.end_time)}",
            kind,
            "" if window.is_gap else f"{window.display_tokens:,}",
            "" if window.is_gap else f"{window.raw_tokens:,}",
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def watch(config_path: Optional[str] = _CONFIG_OPTION):
    """Continuously refresh and display usage until interrupted."""
    try:
        config = _load_config(config_path)
        controller = build_controller(config)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    try:
        asyncio.run(_watch(controller, config))
    except KeyboardInterrupt:
        pass
    sys.exit(EXIT_CODE_PASS)


async def _watch(controller: UsageMonitorController, config: MonitorConfig) -> None:
    poller = RefreshPoller(
        controller,
        interval=config.refresh.interval_seconds,
        initial_delay=config.refresh.initial_delay_seconds,
    )
    with Live(_render_snapshot(controller.snapshot, datetime.now(timezone.utc)), console=console) as live:
        controller.subscribe(
            lambda snapshot: live.update(_render_snapshot(snapshot, datetime.now(timezone.utc)))
        )
        await poller.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await poller.stop()


def _time_remaining_text(snapshot: UsageSnapshot) -> str:
    if snapshot.time_remaining == PredictionState.UNBOUNDED.value:
        return "∞"
    if snapshot.time_remaining == PredictionState.EXCEEDED.value:
        return "[red]Exceeded[/]"
    return snapshot.time_remaining


def _render_snapshot(snapshot: UsageSnapshot, now: datetime):
    """Build the rich renderable for a snapshot."""
    if not snapshot.has_active_session:
        return Group(
            "[bold]Claude Usage[/bold]",
            "[dim]No active session[/]",
            f"Plan: {snapshot.plan_label} ({snapshot.token_limit:,} tokens)",
        )

    color = snapshot.usage_level
    table = Table(title="Claude Usage", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row(
        "Tokens",
        f"[{color}]{snapshot.current_tokens:,} / {snapshot.token_limit:,} "
        f"({snapshot.usage_percentage:.1f}%)[/]"
    )
    table.add_row("Plan", f"{snapshot.plan_label}, detected {snapshot.detected_plan.value}")
    table.add_row(
        "Burn rate",
        f"{int(snapshot.burn_rate):,} tokens/min ({burn_rate_category(snapshot.burn_rate)})"
    )
    table.add_row("Time remaining", _time_remaining_text(snapshot))
    table.add_row("Resets at", snapshot.reset_time)
    table.add_row(
        "Session",
        f"{session_elapsed(snapshot.session_start, now)} elapsed "
        f"({session_progress(snapshot.session_start, now):.0f}%)"
    )
    if snapshot.will_exceed_before_reset:
        table.add_row("Warning", "[red]Limit will be reached before reset[/]")

    if not snapshot.model_breakdown:
        return table

    breakdown = Table(title="Model Breakdown")
    breakdown.add_column("Model")
    breakdown.add_column("Input", justify="right")
    breakdown.add_column("Output", justify="right")
    breakdown.add_column("Cache create", justify="right")
    breakdown.add_column("Cache read", justify="right")
    breakdown.add_column("Weighted", justify="right")
    for model in snapshot.model_breakdown:
        breakdown.add_row(
            model.model,
            f"{model.input_tokens:,}",
            f"{model.output_tokens:,}",
            f"{model.cache_creation_tokens:,}",
            f"{model.cache_read_tokens:,}",
            f"{model.weighted_tokens:,}",
        )
    return Group(table, breakdown)


if __name__ == "__main__":
    app()
