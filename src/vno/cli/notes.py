"""CLI commands for notes: register media, submit work, inspect results."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from vno.cli import get_services
from vno.cli.exit_codes import ExitCode
from vno.cli.output import echo_json, error_exit
from vno.core.datetime_utils import from_iso
from vno.core.validation import is_valid_uuid
from vno.db.types import Note, NoteStatus
from vno.jobs.exceptions import DuplicateActiveJob, QueueValidationError
from vno.notes.repository import NoteNotFoundError

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    NoteStatus.READY: "green",
    NoteStatus.ERROR: "red",
    NoteStatus.TRANSCRIBING: "blue",
    NoteStatus.SUMMARIZING: "blue",
}


def _check_note_id(note_id: str, json_output: bool) -> None:
    if not is_valid_uuid(note_id):
        error_exit(
            f"Invalid note id: {note_id}", ExitCode.VALIDATION_ERROR, json_output
        )


def _submit(ctx: click.Context, note_id: str, summary: bool, json_output: bool) -> str:
    _check_note_id(note_id, json_output)
    dispatcher = get_services(ctx).dispatcher
    try:
        if summary:
            return dispatcher.submit_summary(note_id)
        return dispatcher.submit_note(note_id)
    except NoteNotFoundError:
        error_exit(f"Note not found: {note_id}", ExitCode.NOT_FOUND, json_output)
    except QueueValidationError as e:
        error_exit(str(e), ExitCode.VALIDATION_ERROR, json_output)
    except DuplicateActiveJob as e:
        error_exit(str(e), ExitCode.CONFLICT, json_output)


def _print_note(note: Note) -> None:
    status = click.style(note.status.value, fg=STATUS_COLORS.get(note.status))
    click.echo(f"Note:     {note.id}")
    click.echo(f"Owner:    {note.owner_id}")
    click.echo(f"Status:   {status}")
    if note.title:
        click.echo(f"Title:    {note.title}")
    if note.tags:
        click.echo(f"Tags:     {', '.join(note.tags)}")
    if note.media_path:
        click.echo(f"Media:    {note.media_path}")
    if note.language:
        click.echo(f"Language: {note.language}")
    updated = from_iso(note.updated_at).strftime("%Y-%m-%d %H:%M:%S")
    click.echo(f"Updated:  {updated} UTC")
    if note.transcript:
        click.echo("")
        click.echo("Transcript:")
        click.echo(f"  {note.transcript}")
    if note.summary:
        click.echo("")
        click.echo("Summary:")
        click.echo(f"  {note.summary}")
    if note.action_items:
        click.echo("")
        click.echo("Action items:")
        for item in note.action_items:
            mark = "x" if item.done else " "
            due = f" (due {item.due_suggested})" if item.due_suggested else ""
            click.echo(f"  [{mark}] {item.text} [{item.priority}]{due}")


@click.group("notes")
def notes_group() -> None:
    """Register voice notes and submit them for processing.

    \b
    Examples:
        vno notes add memo.m4a --owner alice --submit
        vno notes show 3f2a...
        vno notes submit 3f2a... --summary
    """


@notes_group.command("add")
@click.argument("media", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--owner", default="local", show_default=True, help="Owning user id.")
@click.option("--title", default=None, help="Note title.")
@click.option("--language", default=None, help="Spoken language (e.g. en).")
@click.option("--tag", "tags", multiple=True, help="Tag to attach (repeatable).")
@click.option("--submit", is_flag=True, help="Queue transcription right away.")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def add_command(
    ctx: click.Context,
    media: Path,
    owner: str,
    title: str | None,
    language: str | None,
    tags: tuple[str, ...],
    submit: bool,
    json_output: bool,
) -> None:
    """Register an uploaded recording as a new note.

    MEDIA is a local file path; relative paths that don't exist here are
    resolved against the data directory by the transcription provider.
    """
    services = get_services(ctx)
    media_path = str(media.resolve()) if media.exists() else str(media)
    note = services.notes.create_note(
        owner,
        media_path=media_path,
        title=title,
        language=language,
        tags=tags,
    )
    job_id = _submit(ctx, note.id, False, json_output) if submit else None

    if json_output:
        echo_json({"note": note.to_dict(), "job_id": job_id})
        return
    click.echo(f"Created note {note.id}")
    if job_id:
        click.echo(f"Queued transcription job {job_id}")


@notes_group.command("show")
@click.argument("note_id")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def show_command(ctx: click.Context, note_id: str, json_output: bool) -> None:
    """Show a note with its transcript and summary."""
    _check_note_id(note_id, json_output)
    note = get_services(ctx).notes.get_note(note_id)
    if note is None:
        error_exit(f"Note not found: {note_id}", ExitCode.NOT_FOUND, json_output)
    if json_output:
        echo_json(note.to_dict())
    else:
        _print_note(note)


@notes_group.command("submit")
@click.argument("note_id")
@click.option(
    "--summary",
    is_flag=True,
    help="Re-summarize the existing transcript instead of transcribing.",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def submit_command(
    ctx: click.Context, note_id: str, summary: bool, json_output: bool
) -> None:
    """Queue a note for transcription (or summarization)."""
    job_id = _submit(ctx, note_id, summary, json_output)
    queue = "summarize" if summary else "transcribe"
    if json_output:
        echo_json({"note_id": note_id, "queue": queue, "job_id": job_id})
    else:
        click.echo(f"Queued {queue} job {job_id} for note {note_id}")
