"""CLI commands for queue operations.

The stats/pause/resume/clean commands go through the same supervisor as
the admin API. list/retry/cancel/recover are operator extras that work
on the queues directly.
"""

from __future__ import annotations

import logging
from datetime import timedelta

import click

from vno.cli import get_services
from vno.cli.exit_codes import ExitCode
from vno.cli.output import echo_json, error_exit
from vno.core.datetime_utils import from_iso, parse_duration
from vno.db.types import Job, JobState, QueueName
from vno.jobs.exceptions import (
    DuplicateActiveJob,
    InvalidJobTransition,
    JobNotFoundError,
    QueueValidationError,
    SupervisorError,
)
from vno.jobs.maintenance import recover_stale_jobs
from vno.jobs.queue import JobQueue
from vno.services import Services

logger = logging.getLogger(__name__)

STATE_COLORS = {
    JobState.WAITING: "yellow",
    JobState.ACTIVE: "blue",
    JobState.COMPLETED: "green",
    JobState.FAILED: "red",
}


def _resolve_queue(services: Services, name: str, json_output: bool) -> JobQueue:
    try:
        return services.queue(QueueName.parse(name))
    except ValueError as e:
        error_exit(str(e), ExitCode.VALIDATION_ERROR, json_output)


def _parse_age(value: str) -> timedelta:
    try:
        return parse_duration(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from None


def _supervise(func, json_output: bool):
    """Run a supervisor call, mapping its errors to exit codes."""
    try:
        return func()
    except QueueValidationError as e:
        error_exit(str(e), ExitCode.VALIDATION_ERROR, json_output)
    except SupervisorError as e:
        error_exit(
            f"{e} (correlation id {e.correlation_id})",
            ExitCode.OPERATION_FAILED,
            json_output,
        )


def _format_job_row(job: Job) -> str:
    state = click.style(f"{job.state.value:<9}", fg=STATE_COLORS[job.state])
    created = from_iso(job.created_at).strftime("%Y-%m-%d %H:%M:%S")
    error = f"  {job.last_error}" if job.last_error else ""
    return (
        f"{job.id[:8]}  {state}  {job.note_id[:8]}  "
        f"{job.attempts}/{job.max_attempts}  {created}{error}"
    )


@click.group("queues")
def queues_group() -> None:
    """Inspect and control the job queues.

    \b
    Examples:
        vno queues stats
        vno queues pause transcribe
        vno queues clean summarize --older-than 7d
        vno queues list transcribe --state failed
    """


@queues_group.command("stats")
@click.argument("name", required=False)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def stats_command(ctx: click.Context, name: str | None, json_output: bool) -> None:
    """Show job counts for one queue, or all queues."""
    supervisor = get_services(ctx).supervisor
    if name is not None:
        result = _supervise(lambda: supervisor.get_stats(name), json_output)
        if json_output:
            echo_json(result.to_dict())
            return
        rows = {result.queue: result.stats}
    else:
        all_stats = _supervise(supervisor.get_all_stats, json_output)
        if json_output:
            echo_json(all_stats.to_dict())
            return
        rows = all_stats.stats

    click.echo(
        f"{'QUEUE':<12}{'WAITING':>8}{'DELAYED':>8}{'ACTIVE':>8}"
        f"{'DONE':>8}{'FAILED':>8}  STATE"
    )
    for queue_name, stats in rows.items():
        state = click.style("paused", fg="yellow") if stats.paused else "running"
        click.echo(
            f"{queue_name:<12}{stats.waiting:>8}{stats.delayed:>8}{stats.active:>8}"
            f"{stats.completed:>8}{stats.failed:>8}  {state}"
        )


@queues_group.command("pause")
@click.argument("name")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def pause_command(ctx: click.Context, name: str, json_output: bool) -> None:
    """Stop workers from claiming jobs in a queue."""
    supervisor = get_services(ctx).supervisor
    result = _supervise(lambda: supervisor.pause(name), json_output)
    if json_output:
        echo_json(result.to_dict())
    else:
        click.echo(result.message)


@queues_group.command("resume")
@click.argument("name")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def resume_command(ctx: click.Context, name: str, json_output: bool) -> None:
    """Let workers claim jobs in a queue again."""
    supervisor = get_services(ctx).supervisor
    result = _supervise(lambda: supervisor.resume(name), json_output)
    if json_output:
        echo_json(result.to_dict())
    else:
        click.echo(result.message)


@queues_group.command("clean")
@click.argument("name")
@click.option(
    "--older-than",
    default="24h",
    show_default=True,
    help="Remove completed/failed jobs finished before this age (e.g. 7d, 12h).",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def clean_command(
    ctx: click.Context, name: str, older_than: str, json_output: bool
) -> None:
    """Remove old completed and failed jobs from a queue."""
    age = _parse_age(older_than)
    supervisor = get_services(ctx).supervisor
    result = _supervise(lambda: supervisor.clean(name, age), json_output)
    if json_output:
        echo_json(result.to_dict())
    else:
        click.echo(f"{result.message}: removed {result.removed} job(s)")


@queues_group.command("list")
@click.argument("name")
@click.option(
    "--state",
    "-s",
    type=click.Choice([s.value for s in JobState] + ["all"]),
    default="all",
    help="Filter by job state.",
)
@click.option("--limit", "-n", type=click.IntRange(min=1), default=50)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def list_command(
    ctx: click.Context, name: str, state: str, limit: int, json_output: bool
) -> None:
    """List jobs in a queue, newest first."""
    queue = _resolve_queue(get_services(ctx), name, json_output)
    state_filter = None if state == "all" else JobState(state)
    jobs = queue.list_jobs(state_filter, limit)

    if json_output:
        echo_json([job.to_dict() for job in jobs])
        return
    if not jobs:
        click.echo("No jobs found.")
        return
    for job in jobs:
        click.echo(_format_job_row(job))


def _find_job(queue: JobQueue, job_id: str, json_output: bool) -> Job:
    """Look up a job by full id or unique prefix."""
    job = queue.get_job(job_id)
    if job is not None:
        return job
    matches = [j for j in queue.list_jobs(limit=1000) if j.id.startswith(job_id)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        error_exit(
            f"Job id prefix {job_id} is ambiguous",
            ExitCode.VALIDATION_ERROR,
            json_output,
        )
    error_exit(f"Job not found: {job_id}", ExitCode.NOT_FOUND, json_output)


@queues_group.command("retry")
@click.argument("name")
@click.argument("job_id")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def retry_command(
    ctx: click.Context, name: str, job_id: str, json_output: bool
) -> None:
    """Put a failed job back in its queue with attempts reset."""
    queue = _resolve_queue(get_services(ctx), name, json_output)
    job = _find_job(queue, job_id, json_output)
    try:
        retried = queue.retry_job(job.id)
    except InvalidJobTransition as e:
        error_exit(str(e), ExitCode.VALIDATION_ERROR, json_output)
    except DuplicateActiveJob as e:
        error_exit(str(e), ExitCode.CONFLICT, json_output)
    if json_output:
        echo_json(retried.to_dict())
    else:
        click.echo(f"Re-queued job {retried.id}")


@queues_group.command("cancel")
@click.argument("name")
@click.argument("job_id")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def cancel_command(
    ctx: click.Context, name: str, job_id: str, json_output: bool
) -> None:
    """Remove a waiting job from its queue.

    A note the job left mid-processing is moved to error.
    """
    services = get_services(ctx)
    queue = _resolve_queue(services, name, json_output)
    job = _find_job(queue, job_id, json_output)
    try:
        services.dispatcher.cancel_job(queue.name, job.id)
    except (InvalidJobTransition, JobNotFoundError) as e:
        error_exit(str(e), ExitCode.CONFLICT, json_output)
    if json_output:
        echo_json({"cancelled": job.id})
    else:
        click.echo(f"Cancelled job {job.id}")


@queues_group.command("recover")
@click.option(
    "--timeout",
    default=None,
    help="Treat active jobs older than this as lost (default: from configuration).",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def recover_command(ctx: click.Context, timeout: str | None, json_output: bool) -> None:
    """Recover jobs left active by a crashed worker.

    Each recovered job counts as a failed attempt: it is retried while
    attempts remain, otherwise it fails and its note moves to error.
    """
    services = get_services(ctx)
    if timeout is not None:
        age = _parse_age(timeout)
    else:
        age = timedelta(seconds=services.config.retention.stale_job_timeout)

    result = recover_stale_jobs(services.queues.values(), services.notes, age)
    if json_output:
        echo_json(result.to_dict())
        return
    click.echo(
        f"Recovered {len(result.retried) + len(result.failed)} stale job(s): "
        f"{len(result.retried)} retried, {len(result.failed)} failed"
    )
