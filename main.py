from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from models.run_report import RunReport
from services.auth_service import AuthorizationError, AuthService, BootstrapError, load_client_config
from services.auto_reply_workflow import AutoReplyWorkflow
from services.gmail_service import GmailService
from services.mail_client import MailServiceError
from services.statistics_service import StatisticsService
from utils.config import AppConfig, load_config
from utils.logger import configure_logging
from utils.scheduling import RandomIntervalScheduler


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    config: AppConfig
    auth: AuthService
    workflow: AutoReplyWorkflow
    stats: StatisticsService
    console: Console

    def gmail(self) -> GmailService:
        return GmailService(self.auth.authorize(), self.config.account.user_id)


def build_context(env_file: str) -> AppContext:
    config = load_config(env_file)
    configure_logging(config.log_dir, config.log_level)
    console = Console()

    client_config = load_client_config(config.account.credentials_file)
    auth_service = AuthService(config.account, client_config)
    stats = StatisticsService(config.stats_file)
    user_id = config.account.user_id
    workflow = AutoReplyWorkflow(
        config.reply,
        client_factory=lambda creds: GmailService(creds, user_id),
        stats=stats,
    )

    return AppContext(
        config=config,
        auth=auth_service,
        workflow=workflow,
        stats=stats,
        console=console,
    )


@click.group()
@click.option("--env-file", default=".env", show_default=True, help="Path to the .env file")
@click.pass_context
def cli(ctx: click.Context, env_file: str) -> None:
    """Auto-reply to unanswered Gmail threads while you are away."""

    try:
        ctx.obj = build_context(env_file)
    except BootstrapError as exc:
        LOGGER.error("%s", exc)
        raise click.ClickException(str(exc)) from exc
    except ValueError as exc:  # invalid configuration values
        raise click.ClickException(str(exc)) from exc


@cli.command("run")
@click.option("--min-ms", type=int, default=None, help="Shortest wait between checks in milliseconds")
@click.option("--max-ms", type=int, default=None, help="Longest wait between checks in milliseconds")
@click.option("--dry-run/--apply", default=False, help="Report what would be sent without touching Gmail")
@click.pass_obj
def run_loop(app: AppContext, min_ms: int | None, max_ms: int | None, dry_run: bool) -> None:
    """Check the inbox forever, at a random interval between checks."""

    min_ms = app.config.poll_min_ms if min_ms is None else min_ms
    max_ms = app.config.poll_max_ms if max_ms is None else max_ms

    def job() -> None:
        report = app.workflow.tick(app.auth, dry_run=dry_run)
        if report is None:
            app.console.print("[scheduler] [red]Authorization failed; will try again next time.[/red]")
        else:
            app.console.print(f"[scheduler] {report.summary()}")

    try:
        scheduler = RandomIntervalScheduler(job, min_ms, max_ms)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--min-ms/--max-ms") from exc

    first_delay = scheduler.start()
    app.console.print(
        f"Checking every {min_ms / 1000:g}-{max_ms / 1000:g} seconds "
        f"(first check in {first_delay / 1000:.1f}s). Press Ctrl+C to stop."
    )
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        app.console.print("Scheduler stopped.")


@cli.command("check")
@click.option("--dry-run/--apply", default=False, help="Report what would be sent without touching Gmail")
@click.pass_obj
def check_once(app: AppContext, dry_run: bool) -> None:
    """Run a single pass over the inbox."""

    report = app.workflow.tick(app.auth, dry_run=dry_run)
    if report is None:
        raise click.ClickException("Authorization failed, see the log for details.")
    _print_report(app.console, report)


@cli.command("authorize")
@click.pass_obj
def authorize(app: AppContext) -> None:
    """Obtain or refresh the cached OAuth token."""

    try:
        app.auth.authorize()
    except AuthorizationError as exc:
        raise click.ClickException(str(exc)) from exc
    app.console.print(f"Authorized. Token cached at {app.config.account.token_file}.")


@cli.command("labels")
@click.pass_obj
def list_labels(app: AppContext) -> None:
    """List the labels in the Gmail account."""

    try:
        labels = app.gmail().list_labels()
    except (AuthorizationError, MailServiceError) as exc:
        raise click.ClickException(str(exc)) from exc
    if not labels:
        app.console.print("No labels found.")
        return
    table = Table(title="Labels")
    table.add_column("Name")
    table.add_column("ID", overflow="fold")
    table.add_column("Type")
    for label in sorted(labels, key=lambda item: item.name.lower()):
        table.add_row(label.name, label.id, label.type)
    app.console.print(table)


@cli.command("create-label")
@click.argument("label_name", required=False)
@click.pass_obj
def create_label(app: AppContext, label_name: Optional[str]) -> None:
    """Create the marker label (or LABEL_NAME) if it does not exist."""

    name = label_name or app.config.reply.label_name
    try:
        label = app.gmail().ensure_label(name)
    except (AuthorizationError, MailServiceError) as exc:
        raise click.ClickException(str(exc)) from exc
    app.console.print(f"Label {label.name} is ready (id: {label.id}).")


@cli.command("stats")
@click.pass_obj
def stats(app: AppContext) -> None:
    """Display local activity statistics."""

    snapshot = app.stats.snapshot()
    if not snapshot:
        app.console.print("No stats recorded yet.")
        return

    table = Table(title="Auto-reply stats")
    table.add_column("Metric")
    table.add_column("Value")
    table.add_row("Runs", str(snapshot.get("runs", 0)))
    table.add_row("Threads inspected", str(snapshot.get("threads_seen", 0)))
    table.add_row("Replies sent", str(snapshot.get("replies_sent", 0)))
    table.add_row("Labels applied", str(snapshot.get("labels_applied", 0)))
    table.add_row("Thread failures", str(snapshot.get("failures", 0)))
    table.add_row("Aborted runs", str(snapshot.get("aborted_runs", 0)))
    table.add_row("Last run", snapshot.get("last_run_at", "-"))
    app.console.print(table)


def _print_report(console: Console, report: RunReport) -> None:
    prefix = "[bold blue]Dry-run[/bold blue]" if report.dry_run else "[bold blue]Done[/bold blue]"
    console.print(f"{prefix} {report.summary()}")
    if report.failures:
        table = Table(title="Failures")
        table.add_column("Thread", overflow="fold")
        table.add_column("Step")
        table.add_column("Error")
        for failure in report.failures:
            table.add_row(failure.thread_id, failure.operation, failure.error)
        console.print(table)


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
