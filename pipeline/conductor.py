"""
Pipeline Conductor - One reconciliation run over the record store

Runs the stages in the order their reads and writes depend on:

1. Meeting status refresh (upcoming -> past)
2. Identity resolution + link creation
3. Action inference (reads the links step 2 created)
4. Resolution extraction (must precede votes: its upsert would otherwise
   overwrite what the votes verified)
5. Vote reconciliation for pending past meetings
6. Date rollups (after inference and votes)

Every stage returns an aggregate result; a failing stage is reported and
the run continues. A caller-level timeout stops new vote fetches.

Pure async, single-threaded: external calls are awaited one at a time.
"""

import asyncio
import json
import sys
import time
from datetime import date
from typing import Any, Dict, Optional

import click

from config import config, get_logger
from database.db import UnifiedDatabase
from database.transaction import transaction
from exceptions import DatabaseConnectionError, ValidationError
from pipeline.click_types import ISO_DATE, ORDINANCE_NUMBER, RESOLUTION_NUMBER, RESOLUTION_STATUS
from pipeline.orchestrators import (
    ActionInferenceEngine,
    CodificationSync,
    IdentityResolver,
    ResolutionExtractor,
    VoteReconciler,
    update_ordinance_dates_from_meetings,
)
from pipeline.protocols import (
    DocumentExtractor,
    MinutesSource,
    NullDocumentExtractor,
    NullMinutesSource,
    NullVoteSource,
    VoteSource,
)
from vendors.session_manager_async import AsyncSessionManager
from vendors.vote_portal import HttpMinutesSource, PortalVoteSource

logger = get_logger(__name__).bind(component="civicledger")


class ReconciliationConductor:
    """Runs the reconciliation stages in dependency order"""

    def __init__(
        self,
        db: UnifiedDatabase,
        vote_source: Optional[VoteSource] = None,
        minutes_source: Optional[MinutesSource] = None,
        extractor: Optional[DocumentExtractor] = None,
        today: Optional[date] = None,
    ):
        """Initialize the conductor

        Args:
            db: Open UnifiedDatabase
            vote_source: Authoritative vote source (NullVoteSource when absent)
            minutes_source: Minutes host for the document fallback
            extractor: Document extractor for the document fallback
            today: Reference date for upcoming/past (defaults to today)
        """
        self.db = db
        self.today = today

        extractor = extractor or NullDocumentExtractor()

        self.identity_resolver = IdentityResolver(db, today=today)
        self.action_inference = ActionInferenceEngine(db)
        self.resolution_extractor = ResolutionExtractor(db, extractor=extractor, today=today)
        self.vote_reconciler = VoteReconciler(
            db,
            vote_source=vote_source or NullVoteSource(),
            minutes_source=minutes_source or NullMinutesSource(),
            extractor=extractor,
            today=today,
        )
        self.codification_sync = CodificationSync(db)

    async def close(self):
        """Cleanup resources (HTTP sessions)"""
        await AsyncSessionManager.close_all()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def _stage(self, summary: Dict[str, Any], name: str, func, *args, **kwargs):
        """Run one synchronous stage, recording its result or its failure"""
        try:
            result = func(*args, **kwargs)
        except Exception as e:  # Intentionally broad: stage isolation
            logger.error("stage failed", stage=name, error=str(e), error_type=type(e).__name__)
            summary["stage_errors"][name] = str(e)
            return None
        summary[name] = result.to_dict() if hasattr(result, "to_dict") else result
        return result

    def _refresh_meeting_statuses(self) -> int:
        with transaction(self.db.conn):
            return self.db.meetings.refresh_statuses(self.today)

    async def run(
        self, timeout: Optional[float] = None, vote_limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """One full reconciliation run

        Args:
            timeout: Seconds after which no new vote fetch is started
            vote_limit: Maximum meetings to reconcile votes for

        Returns:
            Summary dict with one entry per stage and any stage errors
        """
        start_time = time.monotonic()
        deadline = start_time + timeout if timeout else None
        summary: Dict[str, Any] = {"stage_errors": {}}

        logger.info("reconciliation run started", timeout=timeout, vote_limit=vote_limit)

        self._stage(summary, "meeting_statuses", self._refresh_meeting_statuses)
        self._stage(summary, "links", self.identity_resolver.link_ordinances_to_meetings)
        self._stage(summary, "inference", self.action_inference.infer_readings_from_discussed)
        self._stage(summary, "resolutions", self.resolution_extractor.extract_resolutions_from_agenda_items)

        try:
            votes = await self.vote_reconciler.reconcile_pending_meetings(
                limit=vote_limit, deadline=deadline
            )
            summary["votes"] = votes.to_dict()
        except Exception as e:  # Intentionally broad: later stages still run
            logger.error("stage failed", stage="votes", error=str(e), error_type=type(e).__name__)
            summary["stage_errors"]["votes"] = str(e)

        self._stage(summary, "dates", update_ordinance_dates_from_meetings, self.db)

        summary["duration_seconds"] = round(time.monotonic() - start_time, 2)
        logger.info(
            "reconciliation run complete",
            duration_seconds=summary["duration_seconds"],
            failed_stages=list(summary["stage_errors"]),
        )
        return summary


def build_sources():
    """Vote and minutes sources from configuration"""
    vote_source: VoteSource = NullVoteSource()
    if config.VOTE_PORTAL_URL:
        vote_source = PortalVoteSource(config.VOTE_PORTAL_URL, timeout=config.VOTE_PORTAL_TIMEOUT)
    minutes_source = HttpMinutesSource(timeout=config.VOTE_PORTAL_TIMEOUT)
    return vote_source, minutes_source


def _open_db(db_path: Optional[str]) -> UnifiedDatabase:
    """Open the store; failure here is the one fatal error of a run"""
    if not db_path:
        config.ensure_data_dir()
    try:
        return UnifiedDatabase(db_path or config.DB_PATH)
    except DatabaseConnectionError as e:
        logger.error("failed to open database", error=str(e))
        raise click.ClickException(str(e))


def _echo(result: Any):
    data = result.to_dict() if hasattr(result, "to_dict") else result
    click.echo(json.dumps(data, indent=2, default=str))


def _load_json(path: str) -> Any:
    with open(path, "r") as f:
        return json.load(f)


@click.group(invoke_without_command=True)
@click.option("--db", "db_path", default=None, help="SQLite file (defaults to CIVICLEDGER_DB_PATH)")
@click.pass_context
def cli(ctx, db_path):
    """Civic record reconciliation for one municipality"""
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("ingest")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def ingest(ctx, path):
    """Ingest meetings (with their items) from a JSON file"""
    payload = _load_json(path)
    meetings = payload if isinstance(payload, list) else [payload]

    totals = {"meetings_stored": 0, "meetings_skipped": 0, "items_stored": 0, "ordinances_created": 0}
    with _open_db(ctx.obj["db_path"]) as db:
        for meeting_data in meetings:
            stored, stats = db.ingest_meeting(meeting_data)
            if stored is None:
                totals["meetings_skipped"] += 1
                continue
            totals["meetings_stored"] += 1
            totals["items_stored"] += stats["items_stored"]
            totals["ordinances_created"] += stats["ordinances_created"]
    _echo(totals)


@cli.command("link-ordinances")
@click.pass_context
def link_ordinances(ctx):
    """Link ordinances to the meetings whose agendas mention them"""
    with _open_db(ctx.obj["db_path"]) as db:
        _echo(IdentityResolver(db).link_ordinances_to_meetings())


@cli.command("infer-readings")
@click.option("--ordinance", "ordinance_number", type=ORDINANCE_NUMBER, default=None,
              help="Only infer for this ordinance")
@click.pass_context
def infer_readings(ctx, ordinance_number):
    """Infer first reading / adoption for 'discussed'-only ordinances"""
    with _open_db(ctx.obj["db_path"]) as db:
        _echo(ActionInferenceEngine(db).infer_readings_from_discussed(ordinance_number))


@cli.command("extract-resolutions")
@click.option("--meeting", "meeting_id", default=None, help="Only this meeting's items")
@click.pass_context
def extract_resolutions(ctx, meeting_id):
    """Build canonical resolutions from resolution agenda items"""
    with _open_db(ctx.obj["db_path"]) as db:
        count = ResolutionExtractor(db).extract_resolutions_from_agenda_items(meeting_id)
    _echo({"resolutions_stored": count})


@cli.command("reconcile-votes")
@click.option("--meeting", "meeting_id", default=None, help="Reconcile one meeting")
@click.option("--limit", type=click.IntRange(min=1), default=None,
              help="Max pending meetings (defaults to CIVICLEDGER_VOTE_BATCH_LIMIT)")
@click.pass_context
def reconcile_votes(ctx, meeting_id, limit):
    """Apply recorded votes for one meeting or for every pending past meeting"""
    vote_source, minutes_source = build_sources()

    async def run():
        with _open_db(ctx.obj["db_path"]) as db:
            reconciler = VoteReconciler(db, vote_source=vote_source, minutes_source=minutes_source)
            try:
                if meeting_id:
                    return await reconciler.reconcile_vote_outcomes(meeting_id)
                return await reconciler.reconcile_pending_meetings(
                    limit=limit or config.VOTE_BATCH_LIMIT
                )
            finally:
                await AsyncSessionManager.close_all()

    _echo(asyncio.run(run()))


@cli.command("rollup-dates")
@click.pass_context
def rollup_dates(ctx):
    """Recompute ordinance adoption dates from linked meetings"""
    with _open_db(ctx.obj["db_path"]) as db:
        _echo({"ordinances_updated": update_ordinance_dates_from_meetings(db)})


@cli.command("sync-codification")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def sync_codification(ctx, path):
    """Apply a codification supplement history (JSON list of entries)"""
    entries = _load_json(path)
    with _open_db(ctx.obj["db_path"]) as db:
        _echo(CodificationSync(db).sync_codification_supplements(entries))


@cli.command("correct-resolution")
@click.argument("number", type=RESOLUTION_NUMBER)
@click.argument("status", type=RESOLUTION_STATUS)
@click.option("--reason", required=True, help="Why the recorded outcome is wrong")
@click.option("--adopted-date", type=ISO_DATE, default=None, help="YYYY-MM-DD, for adopted")
@click.pass_context
def correct_resolution(ctx, number, status, reason, adopted_date):
    """Correct a resolution outcome (the only write allowed on verified rows)"""
    with _open_db(ctx.obj["db_path"]) as db:
        try:
            with transaction(db.conn):
                corrected = db.resolutions.correct_outcome(
                    number, status, adopted_date=adopted_date, reason=reason
                )
        except ValidationError as e:
            raise click.ClickException(str(e))
    _echo(corrected)


@cli.command("run")
@click.option("--timeout", type=click.FloatRange(min=0), default=None,
              help="Seconds after which no new vote fetch starts (defaults to CIVICLEDGER_RUN_TIMEOUT_SECONDS)")
@click.option("--limit", type=click.IntRange(min=1), default=None,
              help="Max pending meetings for vote reconciliation")
@click.pass_context
def run_all(ctx, timeout, limit):
    """Full reconciliation run in dependency order"""
    vote_source, minutes_source = build_sources()
    timeout = timeout if timeout is not None else config.get_run_timeout()

    async def run():
        with _open_db(ctx.obj["db_path"]) as db:
            async with ReconciliationConductor(
                db, vote_source=vote_source, minutes_source=minutes_source
            ) as conductor:
                return await conductor.run(timeout=timeout, vote_limit=limit or config.VOTE_BATCH_LIMIT)

    summary = asyncio.run(run())
    _echo(summary)
    if summary["stage_errors"]:
        sys.exit(1)


@cli.command("stats")
@click.pass_context
def stats(ctx):
    """Row counts and reconciliation backlog"""
    with _open_db(ctx.obj["db_path"]) as db:
        _echo({"config": config.summary(), "counts": db.get_stats()})


def main():
    """Entry point for the civicledger CLI"""
    cli(obj={})


if __name__ == "__main__":
    main()
