"""CLI interface for QuoteSync."""

import logging
import time
from pathlib import Path
from typing import Any, Optional

import click

from .api import QuoteServerClient
from .config import config
from .exceptions import QuoteSyncConfigError, QuoteSyncError
from .models import Record
from .output import OutputFormatter
from .remote import RemoteService, SimulatedServer
from .store import JsonRecordStore
from .sync import (
    ConflictPolicy,
    ConflictQueueState,
    ResolutionReport,
    SyncEngine,
    SyncPassResult,
    SyncScheduler,
)
from .utils import format_timestamp, truncate

logger = logging.getLogger(__name__)

# Seconds between simulated external edits in `watch --simulate`
SIMULATED_CHANGE_INTERVAL = 25.0

POLICY_HELP = "Conflict policy: autoRemoteWins (auto) or manual (m)"


def _parse_policy(ctx: Any, value: Optional[str]) -> ConflictPolicy:
    out: OutputFormatter = ctx.obj["out"]
    try:
        return ConflictPolicy.from_string(value or config.default_policy)
    except ValueError as e:
        out.error(str(e))
        ctx.exit(1)
        raise  # Unreachable, but helps type checker


def _build_store(ctx: Any) -> JsonRecordStore:
    data_file = ctx.obj.get("data_file") or config.data_file
    return JsonRecordStore(Path(data_file), seed=True)


def _build_remote(ctx: Any, simulate: bool) -> RemoteService:
    if simulate:
        return SimulatedServer(delay=(0.2, 0.6))
    out: OutputFormatter = ctx.obj["out"]
    try:
        return QuoteServerClient(server_url=ctx.obj.get("server"))
    except QuoteSyncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        raise  # Unreachable, but helps type checker


def _close_remote(remote: RemoteService) -> None:
    close = getattr(remote, "close", None)
    if callable(close):
        close()


def _display_pass_result(out: OutputFormatter, result: SyncPassResult) -> None:
    """Print the outcome of a sync pass."""
    if result.aborted:
        out.error(f"Sync failed: {result.error}")
        return

    if result.dry_run:
        out.info("Sync plan:")
    if result.added:
        out.info(f"  ↓ Added locally: {result.added} quote(s)")
    if result.server_wins:
        out.info(f"  ↓ Updated from server: {result.server_wins} quote(s)")
    if result.dry_run:
        pushes = sum(1 for a in result.actions if a.action.is_push)
        if pushes:
            out.info(f"  ↑ Push to server: {pushes} quote(s)")
    elif result.local_pushed:
        out.info(f"  ↑ Pushed to server: {result.local_pushed} quote(s)")
    for failure in result.failures:
        out.warning(
            f"  ✗ {failure.action.value} {failure.record_id}: {failure.error}"
        )
    if result.conflicts:
        out.warning(f"  ⚠ Conflicts: {len(result.conflicts)} quote(s)")

    if result.dry_run:
        out.success("Dry run complete!")
    elif result.total_actions == 0 and not result.conflicts:
        out.success("No changes needed - everything is in sync!")
    else:
        out.success(f"Synced at {format_timestamp(result.started_at)}")


def _display_resolution_report(out: OutputFormatter, report: ResolutionReport) -> None:
    for outcome in report.failed:
        out.warning(f"Could not resolve {outcome.record_id}: {outcome.error}")
    if report.resolved:
        out.success(
            f"Resolved {report.resolved} conflict(s) keeping {report.choice.value}"
        )


def _resolve_interactively(out: OutputFormatter, engine: SyncEngine) -> None:
    """Prompt for a resolution of every pending conflict."""
    for conflict in engine.queue.snapshot():
        out.print("")
        out.info(f"Conflict for {conflict.record_id}:")
        out.info(
            f"  Local:  {conflict.local.text} ({conflict.local.category}, "
            f"{format_timestamp(conflict.local.updated_at)})"
        )
        out.info(
            f"  Server: {conflict.remote.text} ({conflict.remote.category}, "
            f"{format_timestamp(conflict.remote.updated_at)})"
        )
        choice = click.prompt(
            "Keep which version?",
            type=click.Choice(["local", "remote", "skip"]),
            default="skip",
        )
        if choice == "skip":
            continue
        outcome = engine.resolve_one(conflict.record_id, choice)
        if outcome.ok:
            out.success(f"Kept {choice} version of {conflict.record_id}")
        else:
            out.warning(f"Could not resolve {conflict.record_id}: {outcome.error}")


@click.group()
@click.option(
    "--server", "-s", envvar="QUOTESYNC_SERVER_URL", help="Quote service base URL"
)
@click.option(
    "--data-file",
    "-d",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="QUOTESYNC_DATA_FILE",
    help="Local quote file",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="quotesync")
@click.pass_context
def main(
    ctx: Any,
    server: Optional[str],
    data_file: Optional[Path],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """QuoteSync - Keep a local quote collection in sync with a server."""
    ctx.ensure_object(dict)
    ctx.obj["server"] = server
    ctx.obj["data_file"] = data_file
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("quotesync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--server-url",
    prompt="Enter the quote service URL",
    help="Quote service base URL",
)
@click.option(
    "--data-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Local quote file (default: ~/.config/quotesync/quotes.json)",
)
@click.pass_context
def init(ctx: Any, server_url: str, data_file: Optional[Path]) -> None:
    """Save the quote service URL to the config file."""
    out: OutputFormatter = ctx.obj["out"]

    if not server_url.startswith(("http://", "https://")):
        out.error("Server URL must start with http:// or https://")
        ctx.exit(1)

    try:
        values: dict[str, Any] = {"server_url": server_url.rstrip("/")}
        if data_file is not None:
            values["data_file"] = data_file.expanduser()
        config.save(**values)
    except QuoteSyncConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    out.success("Configuration saved successfully")
    out.info(f"Config file: {config.get_config_path()}")


@main.command()
@click.argument("text")
@click.option("--category", "-c", default="", help="Quote category")
@click.pass_context
def add(ctx: Any, text: str, category: str) -> None:
    """Add a quote to the local collection.

    The quote is pushed to the server on the next sync.
    """
    out: OutputFormatter = ctx.obj["out"]
    text = text.strip()
    if not text:
        out.error("Please enter quote text")
        ctx.exit(1)

    store = _build_store(ctx)
    record = Record.create(text, category.strip())
    try:
        records = store.load()
        records[record.id] = record
        store.save(records)
    except QuoteSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(record.to_dict())
    else:
        out.success(f"Added quote {record.id} ({record.category})")


@main.command(name="list")
@click.pass_context
def list_quotes(ctx: Any) -> None:
    """List quotes in the local collection."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        records = _build_store(ctx).load()
    except QuoteSyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    ordered = sorted(records.values(), key=lambda r: (r.category, r.updated_at))
    if out.json_output:
        out.output_json([r.to_dict() for r in ordered])
        return

    if not ordered:
        out.info("No quotes yet")
        return

    out.output_table(
        [
            {
                "id": r.id,
                "text": truncate(r.text),
                "category": r.category,
                "updated": format_timestamp(r.updated_at),
            }
            for r in ordered
        ],
        ["id", "text", "category", "updated"],
        {"id": "ID", "text": "Quote", "category": "Category", "updated": "Updated"},
    )


@main.command()
@click.option("--policy", "-p", default=None, help=POLICY_HELP)
@click.option(
    "--resolve",
    type=click.Choice(["local", "remote"]),
    default=None,
    help="Resolve all conflicts keeping this version (manual policy)",
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be synced without syncing"
)
@click.option(
    "--simulate", is_flag=True, help="Sync against an in-memory simulated server"
)
@click.pass_context
def sync(
    ctx: Any,
    policy: Optional[str],
    resolve: Optional[str],
    dry_run: bool,
    simulate: bool,
) -> None:
    """Run a single sync pass against the quote service.

    Under the autoRemoteWins policy the newer version of every quote wins
    (the server wins ties). Under the manual policy diverging quotes are
    listed as conflicts and resolved with --resolve or interactively.

    Examples:
        quotesync sync                       # Auto-resolve by timestamp
        quotesync sync -p manual             # Prompt for every conflict
        quotesync sync -p m --resolve remote # Keep server versions
        quotesync sync --dry-run             # Preview sync changes
    """
    out: OutputFormatter = ctx.obj["out"]
    conflict_policy = _parse_policy(ctx, policy)

    if resolve and conflict_policy != ConflictPolicy.MANUAL:
        out.error("--resolve can only be used with the manual policy")
        ctx.exit(1)

    engine = SyncEngine(_build_store(ctx), _build_remote(ctx, simulate))

    try:
        if not out.quiet and not out.json_output:
            out.info(f"Policy: {conflict_policy.value}")
            if dry_run:
                out.info("Dry run: No changes will be made")
        result = engine.sync_once(conflict_policy, dry_run=dry_run)
        report = None

        if not result.aborted and len(engine.queue) > 0 and not dry_run:
            if resolve:
                report = engine.resolve_all(resolve)
            elif not out.json_output:
                _resolve_interactively(out, engine)

        if out.json_output:
            data = result.to_dict()
            if report is not None:
                data["resolution"] = report.to_dict()
            data["pending_conflicts"] = engine.queue.state().to_dict()
            out.output_json(data)
        else:
            _display_pass_result(out, result)
            if report is not None:
                _display_resolution_report(out, report)
            if len(engine.queue) > 0:
                out.warning(f"{len(engine.queue)} conflict(s) left unresolved")
    finally:
        engine.observers.close()
        _close_remote(engine.remote)

    if result.aborted or result.failures or (report is not None and not report.ok):
        ctx.exit(1)


@main.command()
@click.option(
    "--interval",
    "-i",
    type=float,
    default=None,
    help="Seconds between sync passes (default: from config, 10)",
)
@click.option("--policy", "-p", default=None, help=POLICY_HELP)
@click.option(
    "--simulate",
    is_flag=True,
    help="Sync against an in-memory simulated server with external edits",
)
@click.pass_context
def watch(
    ctx: Any, interval: Optional[float], policy: Optional[str], simulate: bool
) -> None:
    """Sync periodically until interrupted with Ctrl-C."""
    out: OutputFormatter = ctx.obj["out"]
    conflict_policy = _parse_policy(ctx, policy)

    try:
        interval = interval if interval is not None else config.sync_interval
    except QuoteSyncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    if interval <= 0:
        out.error("Interval must be positive")
        ctx.exit(1)

    remote = _build_remote(ctx, simulate)
    engine = SyncEngine(_build_store(ctx), remote)
    scheduler = SyncScheduler(engine, conflict_policy)

    def report(outcome: Any, queue_state: ConflictQueueState) -> None:
        if isinstance(outcome, SyncPassResult):
            if out.json_output:
                out.output_json(outcome.to_dict())
            else:
                _display_pass_result(out, outcome)
                if queue_state.count:
                    out.warning(f"{queue_state.count} conflict(s) pending")

    scheduler.add_observer(report)
    out.info(
        f"Watching every {interval:g}s with policy {conflict_policy.value} "
        "(Ctrl-C to stop)"
    )
    scheduler.start(interval, run_immediately=True)

    try:
        last_change = time.monotonic()
        while True:
            time.sleep(0.5)
            if (
                isinstance(remote, SimulatedServer)
                and time.monotonic() - last_change >= SIMULATED_CHANGE_INTERVAL
            ):
                remote.simulate_external_change()
                last_change = time.monotonic()
    except KeyboardInterrupt:
        out.warning("\nStopping sync")
        scheduler.stop(wait=True, timeout=30)
        engine.observers.close()
        if len(engine.queue) > 0 and not out.json_output:
            _resolve_interactively(out, engine)
        ctx.exit(130)  # Standard exit code for SIGINT
    finally:
        _close_remote(remote)


if __name__ == "__main__":
    main()
