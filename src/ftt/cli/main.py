"""
Main CLI entry point for the Flight Training Tracker.

Usage:
    ftt db init
    ftt library list --category PPL
    ftt library customize <template-id> --name "P1-L1 (short field)"
    ftt student create "Amelia" "Earhart" --email amelia@example.com
    ftt assign <student-id> <template-id>
    ftt check <assignment-id> <template-item-id>
    ftt student progress <student-id>
    ftt sync
    ftt sync --watch
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ftt.errors import DataIntegrityError, TrackerError
from ftt.models import StudentCreate
from ftt.settings import get_settings
from ftt.tracker import TrainingTracker

# Main app
app = typer.Typer(name="ftt", help="Flight Training Tracker CLI")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level")):
    """Configure logging from FTT_LOG_LEVEL before any command runs."""
    try:
        settings = get_settings()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


# ============================================================================
# Database Session Helper
# ============================================================================


@asynccontextmanager
async def get_tracker(with_sync: bool = False) -> AsyncGenerator[TrainingTracker, None]:
    """
    Open the database and library and yield a TrainingTracker.

    The engine lives for one command. User-created templates stored on this
    device are loaded into the library first. With with_sync the tracker also
    gets a SyncEngine over HTTP; background pushes are drained before closing.
    """
    from ftt.db import close_engine, get_session_factory, init_models
    from ftt.services.template_library import TemplateLibrary

    settings = get_settings()
    try:
        await init_models()
        session_factory = get_session_factory()
        library = TemplateLibrary.from_settings(settings.library_path)

        if not with_sync:
            tracker = TrainingTracker(session_factory, library, device_role=settings.device_role)
            await tracker.load_custom_templates()
            yield tracker
            return

        from ftt.sync.engine import SyncEngine
        from ftt.sync.http_transport import HttpShareTransport

        async with HttpShareTransport(
            settings.share_base_url, timeout=settings.share_timeout_seconds
        ) as transport:
            sync_engine = SyncEngine(transport, session_factory, library)
            tracker = TrainingTracker(
                session_factory, library, sync_engine, device_role=settings.device_role
            )
            await tracker.load_custom_templates()
            yield tracker
            await sync_engine.drain()
    finally:
        await close_engine()


def run_async(coro):
    """Helper to run async functions from Typer commands."""
    try:
        return asyncio.run(coro)
    except TrackerError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


# ============================================================================
# Database Commands
# ============================================================================

db_app = typer.Typer(help="Database operations")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init():
    """Create any missing tables."""
    from ftt.db import close_engine, init_models

    async def _init():
        try:
            await init_models()
        finally:
            await close_engine()

    run_async(_init())
    typer.echo("Database initialized successfully")


# ============================================================================
# Library Commands
# ============================================================================

library_app = typer.Typer(help="Template library")
app.add_typer(library_app, name="library")


async def _load_library():
    async with get_tracker() as tracker:
        return tracker.library


@library_app.command("list")
def library_list(
    category: str = typer.Option(None, "--category", "-c", help="PPL, Instrument, ..."),
):
    """List templates in the library, including user-created ones."""
    library = run_async(_load_library())

    summaries = library.summaries(category)
    if not summaries:
        console.print("[yellow]No templates found.[/yellow]")
        return

    table = Table(title=f"Templates (library {library.version})", header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Items", justify="right")
    for summary in summaries:
        table.add_row(summary.id, summary.name, summary.category, str(summary.item_count))
    console.print(table)


@library_app.command("show")
def library_show(template_id: str = typer.Argument(..., help="Template ID")):
    """Show one template and its checklist items."""

    async def _show():
        return (await _load_library()).require(template_id)

    template = run_async(_show())

    typer.echo(f"Template: {template.id}")
    typer.echo(f"  Name: {template.name}")
    typer.echo(f"  Category: {template.category}")
    if template.template_identifier:
        typer.echo(f"  Identifier: {template.template_identifier}")
    if template.is_user_created:
        typer.echo("  User-created: yes")
    for item in template.items:
        typer.echo(f"  [{item.order}] {item.id}: {item.title}")


@library_app.command("customize")
def library_customize(
    template_id: str = typer.Argument(..., help="Template to copy"),
    name: str = typer.Option(None, "--name", "-n", help="Name of the copy"),
):
    """Create a user-authored copy of a template."""

    async def _customize():
        async with get_tracker() as tracker:
            return await tracker.customize_template(template_id, name)

    template = run_async(_customize())
    typer.echo(f"Created template: {template.id}")
    typer.echo(f"  Name: {template.name}")
    typer.echo(f"  Items: {len(template.items)}")


# ============================================================================
# Student Commands
# ============================================================================

student_app = typer.Typer(help="Student management")
app.add_typer(student_app, name="student")


@student_app.command("create")
def student_create(
    first_name: str = typer.Argument(..., help="First name"),
    last_name: str = typer.Argument(..., help="Last name"),
    email: str = typer.Option("", "--email", "-e"),
    telephone: str = typer.Option("", "--phone", "-p"),
    category: str = typer.Option(None, "--category", "-c", help="Assigned category"),
):
    """Create a new student."""

    async def _create():
        async with get_tracker() as tracker:
            return await tracker.create_student(
                StudentCreate(
                    first_name=first_name,
                    last_name=last_name,
                    email=email,
                    telephone=telephone,
                    assigned_category=category,
                )
            )

    student = run_async(_create())
    typer.echo(f"Created student: {student.id}")
    typer.echo(f"  Name: {student.first_name} {student.last_name}")


@student_app.command("list")
def student_list():
    """List all students."""

    async def _list():
        async with get_tracker() as tracker:
            return await tracker.list_students()

    students = run_async(_list())

    if not students:
        console.print("[yellow]No students found.[/yellow]")
        return

    table = Table(title="Students", header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Assignments", justify="right")
    table.add_column("Shared", style="green")
    for s in students:
        table.add_row(
            s.id,
            s.display_name,
            str(len(s.assignments)),
            "yes" if s.share_active else "no",
        )
    console.print(table)


@student_app.command("show")
def student_show(student_id: str = typer.Argument(..., help="Student ID")):
    """Show a student and their assignments."""

    async def _show():
        async with get_tracker() as tracker:
            return await tracker.get_student(student_id), tracker.library

    student, library = run_async(_show())

    typer.echo(f"Student: {student.id}")
    typer.echo(f"  Name: {student.display_name}")
    typer.echo(f"  Email: {student.email or '(none)'}")
    typer.echo(f"  Category: {student.assigned_category or '(auto)'}")
    typer.echo(f"  Sync: {student.sync_state.value}")
    typer.echo(f"  Last modified by: {student.last_modified_by}")
    for assignment in student.assignments:
        template = library.resolve(assignment.template_id, assignment.template_identifier)
        name = template.name if template else f"(unresolved {assignment.template_id})"
        done = sum(1 for p in assignment.item_progress if p.is_complete)
        typer.echo(f"  - {assignment.id}: {name} [{done}/{len(assignment.item_progress)}]")


@student_app.command("progress")
def student_progress(student_id: str = typer.Argument(..., help="Student ID")):
    """Show weighted category progress for a student."""

    async def _progress():
        async with get_tracker() as tracker:
            return await tracker.progress(student_id)

    summary = run_async(_progress())

    console.print(
        Panel(
            f"[bold]Category:[/bold] {summary.category or '(none)'}\n"
            f"[bold]Weighted:[/bold] {summary.weighted_progress * 100:.1f}%\n"
            f"[bold]Checklists:[/bold] {summary.checklist_score:.1f}% "
            f"({summary.completed_items}/{summary.total_items} items)\n"
            f"[bold]Documents:[/bold] {summary.document_score:.1f}%\n"
            f"[bold]Personal info:[/bold] {summary.personal_info_score:.1f}%\n"
            f"[bold]Dual given:[/bold] {summary.total_dual_given_hours:.1f} h",
            title="[bold cyan]Training Progress[/bold cyan]",
            border_style="cyan",
        )
    )


@student_app.command("share")
def student_share(
    student_id: str = typer.Argument(..., help="Student ID"),
    stop: bool = typer.Option(False, "--stop", help="Terminate the share instead"),
):
    """Activate (or terminate) sharing with the student's device."""

    async def _share():
        async with get_tracker() as tracker:
            if stop:
                return await tracker.terminate_share(student_id)
            return await tracker.activate_share(student_id)

    student = run_async(_share())
    state = "active" if student.share_active else "terminated"
    typer.echo(f"Share for {student.id} is {state}; run 'ftt sync' to push")


# ============================================================================
# Assignment Commands
# ============================================================================


@app.command("assign")
def assign(
    student_id: str = typer.Argument(..., help="Student ID"),
    template_id: str = typer.Argument(..., help="Template ID"),
):
    """Assign a template to a student."""

    async def _assign():
        async with get_tracker() as tracker:
            return await tracker.assign(student_id, template_id)

    result = run_async(_assign())
    if result.created:
        typer.echo(f"Assigned: {result.assignment.id}")
        typer.echo(f"  Items: {len(result.assignment.item_progress)}")
    else:
        typer.echo(f"Already assigned: {result.assignment.id}")


@app.command("unassign")
def unassign(
    student_id: str = typer.Argument(..., help="Student ID"),
    template_id: str = typer.Argument(..., help="Template ID"),
):
    """Remove a template (and its progress) from a student."""

    async def _remove():
        async with get_tracker() as tracker:
            return await tracker.remove(student_id, template_id)

    result = run_async(_remove())
    if result is None:
        typer.echo("Template is not assigned to this student")
        return
    typer.echo(f"Removed: {result.assignment_id} ({len(result.removed_item_ids)} items)")
    if result.pending_remote_deletes:
        typer.echo(f"  Pending remote deletes: {len(result.pending_remote_deletes)}")


@app.command("check")
def check(
    assignment_id: str = typer.Argument(..., help="Assignment ID"),
    template_item_id: str = typer.Argument(..., help="Template item ID"),
    undo: bool = typer.Option(False, "--undo", help="Mark incomplete instead"),
    notes: str = typer.Option(None, "--notes", "-n"),
):
    """Mark a checklist item complete."""

    async def _check():
        async with get_tracker() as tracker:
            return await tracker.set_item_complete(
                assignment_id, template_item_id, not undo, notes
            )

    result = run_async(_check())
    if not result.changed:
        typer.echo("No change")
        return
    state = "incomplete" if undo else "complete"
    typer.echo(f"Marked {template_item_id} {state}")


# ============================================================================
# Maintenance Commands
# ============================================================================


@app.command("integrity")
def integrity(
    student_id: str = typer.Option(None, "--student", "-s", help="Student ID"),
    strict: bool = typer.Option(
        False, "--strict", help="Exit non-zero on unresolved or orphaned records"
    ),
):
    """Verify template references and repair missing item progress."""

    async def _verify():
        async with get_tracker() as tracker:
            return await tracker.verify(student_id)

    report = run_async(_verify())
    typer.echo(f"Checked {report.checked_assignments} assignments")
    typer.echo(f"  Re-pointed: {len(report.repointed_assignments)}")
    typer.echo(f"  Items created: {len(report.created_items)}")
    if report.orphaned_items:
        console.print(f"[yellow]  Orphaned items: {len(report.orphaned_items)}[/yellow]")
    if report.unresolved_assignments:
        console.print(
            f"[red]  Unresolved assignments: {', '.join(report.unresolved_assignments)}[/red]"
        )
    if strict:
        try:
            report.raise_if_unresolved()
        except DataIntegrityError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from e


@app.command("sync")
def sync(
    student_id: str = typer.Option(None, "--student", "-s", help="Student ID"),
    watch: bool = typer.Option(
        False, "--watch", "-w", help="Keep syncing every FTT_SYNC_INTERVAL_SECONDS"
    ),
):
    """Push pending changes to the shared store and pull remote ones."""
    settings = get_settings()
    if not settings.share_base_url:
        typer.echo("FTT_SHARE_BASE_URL is not set", err=True)
        raise typer.Exit(1)

    if watch:

        async def _watch():
            async with get_tracker(with_sync=True) as tracker:
                await tracker.watch(settings.sync_interval_seconds)

        typer.echo(f"Syncing every {settings.sync_interval_seconds:g}s; press Ctrl+C to stop")
        try:
            run_async(_watch())
        except KeyboardInterrupt:
            typer.echo("Stopped")
        return

    async def _sync():
        async with get_tracker(with_sync=True) as tracker:
            return await tracker.sync(student_id)

    report = run_async(_sync())
    typer.echo(
        f"Pushed {report.flush.pushed}, failed {report.flush.failed}, "
        f"pending deletes {report.flush.pending_deletes}"
    )
    if report.reconcile.ok:
        typer.echo(
            f"Pulled: applied {len(report.reconcile.applied)}, "
            f"discarded {len(report.reconcile.discarded)}, "
            f"deferred {len(report.reconcile.deferred)}, "
            f"deleted {len(report.reconcile.deleted)}"
        )
    else:
        console.print(f"[yellow]Pull failed: {report.reconcile.error}[/yellow]")


if __name__ == "__main__":
    app()
