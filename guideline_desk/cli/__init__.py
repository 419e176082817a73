"""
Command Line Interface for Guideline Desk.
"""

import asyncio
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..config import get_settings
from ..contributions.engine import build_contribution_engine
from ..contributions.enums import ContributionStatus
from ..contributions.errors import ContributionError
from ..db.base import get_session_local, init_database, run_migrations
from ..log import configure_logging

app = typer.Typer(help="Guideline Desk - contribution review and moderation")
console = Console()

STATUS_STYLES = {
    ContributionStatus.PENDING: "yellow",
    ContributionStatus.AUTOMATED_PASS: "green",
    ContributionStatus.AUTOMATED_NEEDS_CHANGES: "yellow",
    ContributionStatus.AUTOMATED_REJECT: "red",
    ContributionStatus.MODERATOR_NEEDS_CHANGES: "yellow",
    ContributionStatus.PUBLISHED: "bold green",
    ContributionStatus.REJECTED: "red",
    ContributionStatus.WITHDRAWN: "dim",
}


def _styled(status: ContributionStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def _fail(error: ContributionError) -> None:
    console.print(escape(f"❌ [{error.code}] {error.message}"))
    raise typer.Exit(code=1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Start the API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    rprint(Panel.fit(f"Starting Guideline Desk on http://{host}:{port}", style="bold blue"))
    uvicorn.run(
        "guideline_desk.main:app",
        host=host,
        port=port,
        reload=reload,
        workers=1 if reload else settings.api_workers,
    )


@app.command()
def worker(
    reviewer: Optional[str] = typer.Option(None, help="Reviewer backend: stub or claude"),
    poll_interval: Optional[int] = typer.Option(None, help="Seconds between polls"),
    once: bool = typer.Option(False, help="Drain the queue and exit"),
):
    """Run the review worker."""
    from ..reviewer.loop import run_worker

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    processed = run_worker(reviewer_backend=reviewer, poll_interval=poll_interval, once=once)
    if once:
        console.print(f"✅ Processed {processed} review request(s)")


@app.command("init-db")
def init_db():
    """Create database tables."""
    asyncio.run(init_database())
    console.print("✅ Database initialized")


@app.command()
def migrate(
    revision: str = typer.Argument("head", help="Target Alembic revision"),
    database_url: Optional[str] = typer.Option(None, help="Overrides DATABASE_URL"),
):
    """Apply schema migrations."""
    run_migrations(database_url, revision)
    console.print(f"✅ Database migrated to {revision}")


@app.command()
def queue(
    actor: str = typer.Option(..., "--as", help="Moderator identity"),
    status: ContributionStatus = typer.Option(
        ContributionStatus.AUTOMATED_PASS, help="Status to list"
    ),
    limit: int = typer.Option(50, help="Maximum rows"),
):
    """Show the moderation queue."""
    db = get_session_local()()
    try:
        engine = build_contribution_engine(db)
        try:
            items = engine.list_by_status(actor, status, limit=limit)
        except ContributionError as e:
            _fail(e)
    finally:
        db.close()

    if not items:
        console.print(f"No contributions in {status.value}")
        return

    table = Table(title=f"Contributions: {status.value}")
    table.add_column("ID", style="cyan")
    table.add_column("Path")
    table.add_column("Title")
    table.add_column("Owner")
    table.add_column("Score", justify="right")
    table.add_column("Status")

    for item in items:
        score = str(item.automated_review.score) if item.automated_review else "-"
        table.add_row(
            item.id,
            f"{item.topic}/{item.category}/{item.slug}",
            item.title,
            item.owner,
            score,
            _styled(item.status),
        )

    console.print(table)


@app.command()
def show(
    contribution_id: str = typer.Argument(..., help="Contribution ID"),
    actor: str = typer.Option(..., "--as", help="Owner or moderator identity"),
):
    """Show one contribution and its history."""
    db = get_session_local()()
    try:
        engine = build_contribution_engine(db)
        try:
            contribution = engine.get(actor, contribution_id)
            history = engine.history(actor, contribution_id)
        except ContributionError as e:
            _fail(e)
    finally:
        db.close()

    lines = [
        f"[bold]{contribution.title}[/bold]",
        f"Path: {contribution.topic}/{contribution.category}/{contribution.slug}",
        f"Owner: {contribution.owner}",
        f"Status: {_styled(contribution.status)}  (revision {contribution.revision})",
    ]
    if contribution.automated_review:
        review = contribution.automated_review
        lines.append(
            f"Review: {review.decision.value} {review.score}/100 by {review.reviewed_by}"
        )
        if review.summary:
            lines.append(f"  {review.summary}")
    if contribution.moderator_decision:
        decision = contribution.moderator_decision
        lines.append(f"Moderator: {decision.action.value} by {decision.moderator}")
        if decision.reason:
            lines.append(f"  {decision.reason}")
    if contribution.published_location:
        lines.append(f"Published: {contribution.published_location}")
    rprint(Panel("\n".join(lines), title=contribution.id))

    table = Table(title="History")
    table.add_column("When")
    table.add_column("Actor")
    table.add_column("Action")
    table.add_column("Note")
    for entry in history:
        table.add_row(
            entry.ts.isoformat() if entry.ts else "-",
            f"{entry.actor_kind}:{entry.actor_id}",
            entry.action,
            entry.note or "",
        )
    console.print(table)


@app.command()
def retrigger(
    contribution_id: str = typer.Argument(..., help="Contribution ID"),
    actor: str = typer.Option(..., "--as", help="Owner or moderator identity"),
):
    """Request a fresh automated review of a pending contribution."""
    db = get_session_local()()
    try:
        engine = build_contribution_engine(db)
        try:
            engine.retrigger_review(actor, contribution_id)
        except ContributionError as e:
            _fail(e)
    finally:
        db.close()
    console.print(f"✅ Review requested for {contribution_id}")


@app.command("requeue-orphans")
def requeue_orphans():
    """Enqueue reviews for pending contributions that have none outstanding."""
    from ..reviewer.dispatch import ReviewDispatcher

    db = get_session_local()()
    try:
        dispatcher = ReviewDispatcher(db)
        stale = dispatcher.requeue_stale()
        requeued = dispatcher.requeue_orphans()
        stats = dispatcher.stats()
    finally:
        db.close()

    console.print(f"Requeued {stale} stale claim(s), {len(requeued)} orphan(s)")
    for contribution_id in requeued:
        console.print(f"  • {contribution_id}")

    table = Table(title="Review outbox")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for status, count in stats.items():
        table.add_row(status, str(count))
    console.print(table)


@app.command()
def version():
    """Show the installed version."""
    from .. import __version__

    rprint(Panel.fit(f"Guideline Desk v{__version__}", style="bold green"))


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
