"""CLI entry point: python -m prospector <command>."""

import argparse
import asyncio
import json
import logging
import sys

from rich.console import Console
from rich.table import Table

from prospector.core.database import async_session_factory
from prospector.core.errors import ProspectorError
from prospector.core.logging_setup import configure_logging
from prospector.core.models import JobStatus, JobType
from prospector.funnel.database import FunnelModel, TargetProfileModel
from prospector.jobs.handlers import Pipeline, build_handlers
from prospector.jobs.runner import JobRunner
from prospector.jobs.scheduler import RefreshScheduler

logger = logging.getLogger(__name__)
console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m prospector",
        description="Discover, score and qualify companies against a target profile",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Discover companies for target profile 3
  python -m prospector discover --profile 3 --limit 50

  # Build funnel 7 from the existing pool, without calling sources
  python -m prospector build --funnel 7 --no-discover

  # Qualify active_segment companies in funnel 7
  python -m prospector signals --funnel 7
        """,
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    discover = sub.add_parser("discover", help="Find new companies for a target profile")
    discover.add_argument("--profile", type=int, required=True, help="Target profile id")
    discover.add_argument("--limit", type=int, default=100)
    discover.add_argument("--persona", type=int, help="Persona id for contact discovery")
    discover.add_argument("--no-enrich", action="store_true", help="Skip enriching the top candidates")

    build = sub.add_parser("build", help="Build a funnel")
    build.add_argument("--funnel", type=int, required=True)
    build.add_argument("--limit", type=int)
    build.add_argument("--no-discover", action="store_true", help="Only rescore companies already stored")

    refresh = sub.add_parser("refresh", help="Soft-remove and rebuild a funnel")
    refresh.add_argument("--funnel", type=int, required=True)
    refresh.add_argument("--limit", type=int)

    signals = sub.add_parser("signals", help="Run company or persona signals for a funnel")
    signals.add_argument("--funnel", type=int, required=True)
    signals.add_argument("--persona", action="store_true", help="Run persona signals instead of company signals")

    status = sub.add_parser("job-status", help="Show a job's status and output")
    status.add_argument("job_id", type=int)

    cancel = sub.add_parser("cancel", help="Request cancellation of a pending or running job")
    cancel.add_argument("job_id", type=int)

    sub.add_parser("worker", help="Run the job worker pool and refresh scheduler until interrupted")
    return parser


def _job_request(args):
    if args.command == "discover":
        payload = {"target_profile_id": args.profile, "limit": args.limit, "enrich_top": not args.no_enrich}
        if args.persona:
            payload["persona_id"] = args.persona
        return JobType.DISCOVER, payload
    if args.command == "build":
        return JobType.BUILD_FUNNEL, {"funnel_id": args.funnel, "limit": args.limit, "discover": not args.no_discover}
    if args.command == "refresh":
        return JobType.REFRESH_FUNNEL, {"funnel_id": args.funnel, "limit": args.limit}
    if args.persona:
        return JobType.PERSONA_SIGNALS, {"funnel_id": args.funnel}
    return JobType.COMPANY_SIGNALS, {"funnel_id": args.funnel}


async def _client_id(args) -> int:
    async with async_session_factory() as session:
        if args.command == "discover":
            row = await session.get(TargetProfileModel, args.profile)
            label = f"Target profile {args.profile}"
        else:
            row = await session.get(FunnelModel, args.funnel)
            label = f"Funnel {args.funnel}"
    if row is None:
        raise ProspectorError(f"{label} not found")
    return row.client_id


def print_job(job) -> None:
    colour = {
        JobStatus.COMPLETED: "green",
        JobStatus.FAILED: "red",
        JobStatus.CANCELLED: "yellow",
    }.get(JobStatus(job.status), "cyan")

    table = Table(title=f"Job {job.id} ({JobType(job.type).value})")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Status", f"[{colour}]{JobStatus(job.status).value}[/{colour}]")
    table.add_row("Progress", f"{job.processed_items or 0}/{job.total_items or 0}")
    if job.started_at:
        table.add_row("Started", job.started_at.isoformat(timespec="seconds"))
    if job.completed_at:
        table.add_row("Completed", job.completed_at.isoformat(timespec="seconds"))
    for key, value in (job.output or {}).items():
        if key == "warnings":
            continue
        table.add_row(key, json.dumps(value) if isinstance(value, (dict, list)) else str(value))
    console.print(table)

    for warning in (job.output or {}).get("warnings", []):
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    if job.error:
        console.print(f"[red]Error:[/red] {job.error}")


async def run_worker(runner: JobRunner) -> None:
    scheduler = RefreshScheduler(runner)
    await runner.start()
    await scheduler.start()
    console.print("[bold]Worker running.[/bold] Press Ctrl+C to stop.")
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        scheduler.stop()
        await runner.stop()


async def run(args) -> int:
    pipeline = Pipeline.from_settings()
    runner = JobRunner(build_handlers(pipeline))

    if args.command == "worker":
        await run_worker(runner)
        return 0

    if args.command == "job-status":
        print_job(await runner.get_job(args.job_id))
        return 0

    if args.command == "cancel":
        if await runner.cancel(args.job_id):
            console.print(f"Cancellation requested for job {args.job_id}")
            return 0
        console.print(f"[yellow]Job {args.job_id} already finished[/yellow]")
        return 1

    client_id = await _client_id(args)
    job_type, payload = _job_request(args)
    job_id = await runner.submit(job_type, payload, client_id, enqueue=False)
    with console.status(f"Running {job_type.value} job {job_id}..."):
        status = await runner.run_job(job_id)
    print_job(await runner.get_job(job_id))
    return 0 if status == JobStatus.COMPLETED else 1


def main() -> int:
    args = build_parser().parse_args()
    configure_logging(args.log_level)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        console.print("Interrupted.")
        return 130
    except ProspectorError as e:
        console.print(f"[red]{e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
