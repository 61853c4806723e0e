# planner/jobs/weekly_reset.py
# Point d'entrée du planificateur externe (cron) : bascule hebdomadaire ou bascule forcée d'une instance.

import argparse
import asyncio
import sys

from dotenv import load_dotenv
from rich import print
from rich.table import Table

from planner.core.bson_utils import to_object_id
from planner.core.errors import PlannerError
from planner.core.logging_config import extract_caller_data
from planner.db.mongodb import get_client, get_db, ping
from planner.db.seed_indexes import ensure_indexes
from planner.models.rollover import InstanceRolloverResult, RolloverReport
from planner.services.rollover.weekly_rollover_engine import WeeklyRolloverEngine

STATUS_STYLE = {"success": "green", "skipped": "yellow", "error": "red"}


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Weekly rollover of schedule instances")
    parser.add_argument("--batch-size", type=int, default=None, help="instances processed concurrently")
    parser.add_argument("--dry-run", action="store_true", help="compute decisions without writing")
    parser.add_argument("--instance", default=None, help="force the rollover of a single instance id")
    return parser.parse_args(argv)


def results_table(results: list[InstanceRolloverResult]) -> Table:
    table = Table(title="Weekly reset")
    table.add_column("Instance")
    table.add_column("Status")
    table.add_column("Week")
    table.add_column("Items", justify="right")
    table.add_column("Snapshot")
    table.add_column("Reason")
    for r in results:
        style = STATUS_STYLE.get(r.status, "white")
        table.add_row(
            str(r.instance_id),
            f"[{style}]{r.status}[/{style}]",
            f"{r.old_week_number} → {r.new_week_number}",
            str(r.items_created),
            "new" if r.snapshot_generated else ("kept" if r.snapshot_id else "-"),
            r.reason or "",
        )
    return table


def print_report(report: RolloverReport) -> None:
    s = report.summary
    if report.results:
        print(results_table(report.results))
    prefix = "🧪 [dry run] " if s.dry_run else ""
    print(
        f"{prefix}✅ {s.successful} ok, 🔁 {s.skipped} skipped, ❌ {s.failed} failed "
        f"({s.total} due, {s.snapshots_generated} snapshots, {s.completed_instances} completed) "
        f"in {s.duration_ms} ms"
    )


async def run(args: argparse.Namespace) -> int:
    db = get_db()
    if not await ping(db):
        print("❌ Échec de la connexion à MongoDB.")
        return 2
    await ensure_indexes(db)
    engine = WeeklyRolloverEngine(db)

    if args.instance:
        try:
            result = await engine.force_reset_instance(to_object_id(args.instance, "instance"))
        except PlannerError as exc:
            print(f"❌ {exc.code}: {exc}")
            return 1
        print(results_table([result]))
        return 0 if result.status != "error" else 1

    report = await engine.process_weekly_reset(
        batch_size=args.batch_size,
        dry_run=args.dry_run,
        caller_data=extract_caller_data("scheduler"),
    )
    print_report(report)
    return 1 if report.summary.failed else 0


def main(argv=None) -> int:
    load_dotenv()
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    finally:
        get_client().close()


if __name__ == "__main__":
    sys.exit(main())
