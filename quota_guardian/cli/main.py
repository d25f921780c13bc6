"""
CLI interface for the quota guardian.

Provides command-line access to polling, buffer status and usage history.
"""

import logging
import sys
import time
from datetime import datetime
from typing import Callable, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from quota_guardian.client.oauth import TokenRefresher
from quota_guardian.client.quota_api import QuotaFetcher
from quota_guardian.config.loader import GuardianConfig, load_guardian_config
from quota_guardian.core.bridge import BridgeMonitor
from quota_guardian.core.clock import SystemClock
from quota_guardian.core.scheduler import PollOutcome, QuotaGuardian
from quota_guardian.core.usage_chart import calculate_usage_buckets
from quota_guardian.storage.accounts import AccountStore
from quota_guardian.storage.buffer import UsageBuffer
from quota_guardian.storage.history import HistoryStore
from quota_guardian.storage.models import QuotaSnapshot

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _setup_logging(verbose: bool) -> None:
    """Route the package logger through rich."""
    logger = logging.getLogger("quota_guardian")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not logger.handlers:
        logger.addHandler(RichHandler(console=console, show_path=False))


def _get_config(ctx: typer.Context) -> GuardianConfig:
    return ctx.obj or GuardianConfig()


def build_guardian(
    config: GuardianConfig,
    notifier: Optional[Callable[[QuotaSnapshot], None]] = None,
) -> QuotaGuardian:
    """Wire a guardian from configuration."""
    clock = SystemClock()
    return QuotaGuardian(
        accounts=AccountStore(config.accounts_path),
        fetcher=QuotaFetcher(
            project_id=config.network.project_id,
            timeout=config.network.timeout_seconds,
            now=clock.now,
        ),
        refresher=TokenRefresher(
            client_id=config.oauth.client_id,
            client_secret=config.oauth.client_secret,
            timeout=config.network.timeout_seconds,
        ),
        buffer=UsageBuffer(config.buffer_path, capacity=config.buffer_capacity),
        clock=clock,
        notifier=notifier,
        bridge=BridgeMonitor(
            config.bridge_path,
            live_seconds=config.polling.bridge_live_seconds,
            now=clock.now,
        ),
        skew_seconds=config.polling.skew_seconds,
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="QUOTA_GUARDIAN_CONFIG",
        help="Path to YAML configuration file"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging"
    )
):
    """Quota Guardian CLI."""
    _setup_logging(verbose)
    try:
        ctx.obj = load_guardian_config(config_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Configuration error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if ctx.invoked_subcommand is None:
        console.print("Quota Guardian - Use --help to see available commands")


@app.command()
def run(
    ctx: typer.Context,
    now: bool = typer.Option(
        False,
        "--now",
        help="Poll immediately instead of waiting for the next five-minute slot"
    )
):
    """Run the guardian in the foreground until interrupted."""
    guardian = build_guardian(_get_config(ctx), notifier=_display_snapshot)
    guardian.start(poll_immediately=now)
    console.print("[green]✓[/] Quota guardian running (Ctrl+C to stop)")
    try:
        while guardian.running:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        guardian.stop()
    sys.exit(EXIT_CODE_PASS)


@app.command()
def poll(ctx: typer.Context):
    """Run a single poll attempt now."""
    guardian = build_guardian(_get_config(ctx), notifier=_display_snapshot)
    outcome = guardian.poll_once()
    guardian.stop()

    if outcome == PollOutcome.RECORDED:
        console.print("[green]✓[/] Usage point recorded")
        sys.exit(EXIT_CODE_PASS)

    console.print(f"[yellow]Poll skipped:[/] {outcome.value}")
    sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(ctx: typer.Context):
    """Show the active account, buffer size and companion status."""
    config = _get_config(ctx)
    account = AccountStore(config.accounts_path).get_active_account()
    buffer = UsageBuffer(config.buffer_path, capacity=config.buffer_capacity)
    bridge = BridgeMonitor(config.bridge_path, live_seconds=config.polling.bridge_live_seconds)

    if account is None:
        console.print("[yellow]No active account[/]")
    else:
        console.print(f"Active account: [bold]{account.name}[/] <{account.email}>")
    console.print(f"Buffered points: {buffer.count()} / {config.buffer_capacity}")
    console.print(f"Companion app: {'[green]live[/]' if bridge.is_live() else '[dim]not running[/]'}")


@app.command()
def merge(ctx: typer.Context):
    """Merge the usage buffer into long-term history."""
    config = _get_config(ctx)
    history = HistoryStore(config.history_path, retention_hours=config.history_retention_hours)
    buffer = UsageBuffer(config.buffer_path, capacity=config.buffer_capacity)
    try:
        added = history.merge_buffer(buffer)
    except OSError as e:
        console.print(f"[red]Error merging buffer:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Merged {added} point(s) into history")


@app.command()
def chart(
    ctx: typer.Context,
    minutes: int = typer.Option(
        24 * 60,
        "--minutes",
        "-m",
        help="Width of the chart window in minutes"
    ),
    bucket: int = typer.Option(
        60,
        "--bucket",
        "-b",
        help="Width of one bucket in minutes"
    )
):
    """Show quota consumption per time bucket."""
    config = _get_config(ctx)
    history = HistoryStore(config.history_path, retention_hours=config.history_retention_hours)
    buffer = UsageBuffer(config.buffer_path, capacity=config.buffer_capacity)

    by_timestamp = {p.timestamp: p for p in history.load() + buffer.read_points()}
    points = [by_timestamp[ts] for ts in sorted(by_timestamp)]
    if len(points) < 2:
        console.print("\n[bold yellow]Not enough usage history to chart yet[/]\n")
        sys.exit(EXIT_CODE_PASS)

    names = {a.id: a.name for a in AccountStore(config.accounts_path).load_accounts()}
    try:
        data = calculate_usage_buckets(points, time.time(), minutes, bucket, names)
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Quota consumption")
    table.add_column("From")
    table.add_column("Account")
    table.add_column("Model")
    table.add_column("Used", justify="right")
    for b in data.buckets:
        for item in b.items:
            table.add_row(
                _format_time(b.start_time),
                item.account_name,
                item.model_name,
                f"{item.usage:.1f}%",
            )
    console.print(table)


def _format_time(ts: float) -> str:
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


def _format_reset(reset_at: Optional[int], now: float) -> str:
    """Format a reset timestamp with the time remaining."""
    if reset_at is None:
        return "daily"
    remaining = int(reset_at - now)
    if remaining <= 0:
        return f"{_format_time(reset_at)} (reset)"
    return f"{_format_time(reset_at)} ({remaining // 3600}h {remaining % 3600 // 60}m)"


def _display_snapshot(snapshot: QuotaSnapshot) -> None:
    """Render a snapshot as a table."""
    table = Table(title=f"Quota at {_format_time(snapshot.observed_at)}")
    table.add_column("Model")
    table.add_column("Remaining", justify="right")
    table.add_column("Resets")
    for model in snapshot.models:
        table.add_row(
            model.name,
            f"{model.percentage:.0f}%",
            _format_reset(model.reset_at, snapshot.observed_at),
        )
    console.print(table)


if __name__ == "__main__":
    app()
