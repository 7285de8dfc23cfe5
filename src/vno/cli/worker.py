"""CLI worker command.

Runs worker threads that drain the transcribe and/or summarize queues
until SIGTERM/SIGINT, or processes what is available once and exits.
"""

from __future__ import annotations

import logging
import signal
import sys
from collections import Counter

import click

from vno.cli import get_services
from vno.cli.exit_codes import ExitCode
from vno.cli.output import echo_json
from vno.db.types import QueueName
from vno.jobs.worker import Outcome, WorkerPool

logger = logging.getLogger(__name__)

QUEUE_CHOICES = [q.value for q in QueueName] + ["all"]


def _queue_names(queue: str) -> list[QueueName]:
    if queue == "all":
        return list(QueueName)
    return [QueueName(queue)]


def _install_signal_handlers(pool: WorkerPool) -> None:
    def handle(signum: int, frame: object) -> None:
        logger.info(
            "Received %s, finishing in-flight jobs", signal.Signals(signum).name
        )
        pool.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, handle)


@click.command("worker")
@click.option(
    "--queue",
    "-q",
    type=click.Choice(QUEUE_CHOICES),
    default="all",
    show_default=True,
    help="Queue to process.",
)
@click.option(
    "--concurrency",
    "-n",
    type=click.IntRange(min=1),
    default=None,
    help="Workers per queue (default: from configuration).",
)
@click.option(
    "--once",
    is_flag=True,
    help="Process available jobs, then exit.",
)
@click.option(
    "--max-jobs",
    type=click.IntRange(min=1),
    default=None,
    help="With --once, stop after this many jobs.",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def worker_command(
    ctx: click.Context,
    queue: str,
    concurrency: int | None,
    once: bool,
    max_jobs: int | None,
    json_output: bool,
) -> None:
    """Process transcription and summarization jobs.

    \b
    Examples:
        vno worker                          # All queues until stopped
        vno worker --queue transcribe -n 4  # Four transcription workers
        vno worker --once                   # Drain what is ready and exit
    """
    services = get_services(ctx)
    pool = services.build_worker_pool(_queue_names(queue), concurrency=concurrency)

    if once:
        outcomes = pool.drain(max_jobs)
        counts = Counter(o.outcome.value for o in outcomes)
        if json_output:
            echo_json(
                {
                    "processed": len(outcomes),
                    "outcomes": dict(counts),
                    "jobs": [
                        {
                            "job_id": o.job_id,
                            "note_id": o.note_id,
                            "queue": o.queue.value,
                            "outcome": o.outcome.value,
                            "error": o.error,
                        }
                        for o in outcomes
                    ],
                }
            )
        else:
            summary = ", ".join(f"{n} {name}" for name, n in sorted(counts.items()))
            suffix = f": {summary}" if summary else ""
            click.echo(f"Processed {len(outcomes)} job(s){suffix}")
        if counts.get(Outcome.FAILED.value):
            sys.exit(ExitCode.OPERATION_FAILED)
        return

    _install_signal_handlers(pool)
    pool.start()
    click.echo(
        f"Started {len(pool.workers)} worker(s) on {queue}; press Ctrl+C to stop"
    )
    while not pool.wait(1.0):
        if not pool.is_running:
            logger.error("All worker threads exited unexpectedly")
            sys.exit(ExitCode.GENERAL_ERROR)

    timeout = services.config.worker.shutdown_timeout
    if not pool.stop(timeout):
        click.echo(
            f"Workers still busy after {timeout:g}s; abandoning in-flight jobs",
            err=True,
        )
        sys.exit(ExitCode.INTERRUPTED)
    click.echo("Workers stopped")
