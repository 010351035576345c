"""CLI commands for Spaced Recall.

Users and subjects are given by name or by an unambiguous ID prefix
(e.g. `sub-1a`), topics and concepts likewise within their subject.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from spaced_recall.config.app_config import load_app_config
from spaced_recall.core import generators, streaks, study, users, xp
from spaced_recall.core.generators import GenerationError
from spaced_recall.db import subjects_repository, users_repository
from spaced_recall.db.database import get_db_path, init_db
from spaced_recall.db.subjects_repository import SubjectRecord
from spaced_recall.db.users_repository import UserRecord
from spaced_recall.errors import DuplicateError, NotFoundError, ValidationError
from spaced_recall.integrations import obsidian
from spaced_recall.integrations.obsidian import ObsidianImportError
from spaced_recall.integrations.sync import SyncOptions
from spaced_recall.llm.client import LLMClient
from spaced_recall.utils.validators import AmbiguousIdError, IdNotFoundError, resolve_id

app = typer.Typer(
    name="recall",
    help="Spaced-repetition study tracker with XP, streaks and note-app sync.",
    no_args_is_help=True,
)

console = Console()

COMMAND_ERRORS = (NotFoundError, DuplicateError, ValidationError)


@app.callback()
def main() -> None:
    """Open (and create if needed) the configured database."""
    init_db(load_app_config().db_path)


def _fail(message: str) -> None:
    console.print(f"[red]✗ {message}[/red]")
    raise typer.Exit(code=1)


def _resolve_or_exit(ref: str, candidates: dict[str, str], kind: str) -> str:
    """Resolve a name or ID prefix against {id: name} candidates."""
    by_name = [i for i, name in candidates.items() if name == ref]
    if len(by_name) == 1:
        return by_name[0]
    try:
        return resolve_id(ref, list(candidates))
    except IdNotFoundError:
        console.print(f"[red]✗ No {kind} matches '{ref}'[/red]")
        if candidates:
            console.print(f"\nAvailable {kind}s:")
            for item_id, name in candidates.items():
                console.print(f"  - {item_id}  {name}")
        raise typer.Exit(code=1)
    except AmbiguousIdError as e:
        _fail(str(e))


def _user_or_exit(ref: str) -> UserRecord:
    candidates = {u.user_id: u.name for u in users_repository.get_all_users()}
    return users_repository.get_user(_resolve_or_exit(ref, candidates, "user"))  # type: ignore[return-value]


def _subject_or_exit(user: UserRecord, ref: str) -> SubjectRecord:
    candidates = {
        s.subject_id: s.name for s in subjects_repository.get_subjects_for_user(user.user_id)
    }
    return subjects_repository.get_subject(_resolve_or_exit(ref, candidates, "subject"))  # type: ignore[return-value]


def _topic_id_or_exit(subject: SubjectRecord, ref: str) -> str:
    candidates = {
        t.topic_id: t.name for t in subjects_repository.get_topics_for_subject(subject.subject_id)
    }
    return _resolve_or_exit(ref, candidates, "topic")


def _review_item_or_exit(user: UserRecord, ref: str) -> tuple[str, str]:
    """(item_type, item_id) among all topics and concepts of the user."""
    item_types = {}
    names = {}
    for subject in subjects_repository.get_subjects_for_user(user.user_id):
        tree = study.subject_tree(subject.subject_id)
        for topic in tree["topics"]:
            item_types[topic["topic_id"]] = "topic"
            names[topic["topic_id"]] = topic["name"]
            for concept in topic["concepts"]:
                item_types[concept["concept_id"]] = "concept"
                names[concept["concept_id"]] = concept["name"]
    item_id = _resolve_or_exit(ref, names, "topic or concept")
    return item_types[item_id], item_id


# =============================================================================
# SETUP
# =============================================================================


@app.command(name="init-db")
def init_database() -> None:
    """Create the database tables."""
    console.print(f"[green]✓ Database ready[/green]  [dim]{get_db_path()}[/dim]")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the Web API."""
    import uvicorn

    console.print(f"[blue]Serving on http://{host}:{port}[/blue]")
    uvicorn.run("spaced_recall.web.api:app", host=host, port=port, reload=reload)


# =============================================================================
# USERS
# =============================================================================


@app.command(name="add-user")
def add_user(
    name: str = typer.Argument(..., help="User name"),
    email: str = typer.Option("", "--email", "-e", help="Email address"),
    theme: str = typer.Option("neutral", "--theme", "-t", help="Theme: neutral, fantasy, scifi"),
) -> None:
    """Create a user."""
    try:
        user = users.create_user(name, email, theme)
    except COMMAND_ERRORS as e:
        _fail(str(e))
    console.print(f"[green]✓ User created[/green]")
    console.print(f"  [dim]user_id:[/dim] {user.user_id}")
    console.print(f"  [dim]theme:[/dim]   {user.theme_id}")


@app.command(name="users")
def list_users() -> None:
    """List users with XP and streaks."""
    records = users_repository.get_all_users()
    if not records:
        console.print("[yellow]No users yet. Create one with: recall add-user NAME[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Theme")
    table.add_column("XP", justify="right")
    table.add_column("Level", justify="right")
    table.add_column("Streak", justify="right")
    for user in records:
        level = xp.get_level_from_xp(user.total_xp, xp.resolve_theme(user.theme_id))
        table.add_row(
            user.user_id,
            user.name,
            user.theme_id,
            str(user.total_xp),
            str(level),
            f"{user.current_streak} (best {user.highest_streak})",
        )
    console.print(table)


@app.command(name="xp")
def show_xp(user_ref: str = typer.Argument(..., help="User name or ID")) -> None:
    """Show XP, level and the latest XP events."""
    user = _user_or_exit(user_ref)
    summary = xp.calculate_user_xp(user.user_id)
    progress = summary["progress"]

    console.print(f"[bold]{user.name}[/bold]  level {summary['level']}  ({summary['total_xp']} XP)")
    if summary["avatar"]:
        console.print(f"  [dim]avatar:[/dim] {summary['avatar']['name']}")
    console.print(
        f"  [dim]next level:[/dim] {progress['current_xp']}/{progress['needed_xp']} "
        f"({progress['percent']}%)"
    )

    if summary["breakdown"]:
        console.print("\n[bold]By source[/bold]")
        for source, amount in sorted(summary["breakdown"].items(), key=lambda kv: -kv[1]):
            console.print(f"  {source:<12} {amount:>6}")

    if summary["recent_activities"]:
        console.print("\n[bold]Recent[/bold]")
        for event in summary["recent_activities"]:
            console.print(f"  +{event['xp']:<5} {event['source']:<10} {event['description']}")


@app.command()
def checkin(user_ref: str = typer.Argument(..., help="User name or ID")) -> None:
    """Register today's activity."""
    user = _user_or_exit(user_ref)
    result = streaks.check_in(user.user_id)
    console.print(f"[green]✓ Streak: {result.current_streak} day(s)[/green]")
    if result.milestone:
        console.print(
            f"  [yellow]★ {result.milestone}-day milestone: "
            f"+{result.xp_awarded} XP, +{result.tokens_awarded} tokens[/yellow]"
        )


# =============================================================================
# SUBJECTS
# =============================================================================


@app.command(name="add-subject")
def add_subject(
    user_ref: str = typer.Argument(..., help="User name or ID"),
    name: str = typer.Argument(..., help="Subject name"),
    description: str = typer.Option("", "--description", "-d"),
    style: str = typer.Option("mixed", "--style", help="visual, auditory, reading, kinesthetic, mixed"),
    exam_date: str | None = typer.Option(None, "--exam-date", help="Exam date (ISO); enables exam mode"),
) -> None:
    """Create a subject."""
    user = _user_or_exit(user_ref)
    try:
        subject = study.create_subject(
            user.user_id,
            name,
            description,
            study_style=style,
            exam_mode=exam_date is not None,
            exam_date=exam_date,
        )
    except COMMAND_ERRORS as e:
        _fail(str(e))
    console.print(f"[green]✓ Subject created[/green]")
    console.print(f"  [dim]subject_id:[/dim] {subject.subject_id}")


@app.command(name="subjects")
def list_subjects(user_ref: str = typer.Argument(..., help="User name or ID")) -> None:
    """List a user's subjects with progress."""
    user = _user_or_exit(user_ref)
    records = subjects_repository.get_subjects_for_user(user.user_id)
    if not records:
        console.print("[yellow]No subjects yet.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Topics", justify="right")
    table.add_column("Mastery", justify="right")
    table.add_column("Study time", justify="right")
    table.add_column("Exam")
    for subject in records:
        progress = study.subject_progress(subject.subject_id)
        table.add_row(
            subject.subject_id,
            subject.name,
            f"{progress.completed_topics}/{progress.total_topics}",
            f"{progress.average_mastery}%",
            f"{subject.total_study_time} min",
            (subject.exam_date or "")[:10] if subject.exam_mode else "",
        )
    console.print(table)


@app.command(name="add-topic")
def add_topic(
    user_ref: str = typer.Argument(..., help="User name or ID"),
    subject_ref: str = typer.Argument(..., help="Subject name or ID"),
    name: str = typer.Argument(..., help="Topic name"),
    description: str = typer.Option("", "--description", "-d"),
) -> None:
    """Add a topic to a subject."""
    subject = _subject_or_exit(_user_or_exit(user_ref), subject_ref)
    try:
        topic = study.create_topic(subject.subject_id, name, description)
    except COMMAND_ERRORS as e:
        _fail(str(e))
    console.print(f"[green]✓ Topic created[/green]  [dim]{topic.topic_id}[/dim]")


@app.command(name="add-concept")
def add_concept(
    user_ref: str = typer.Argument(..., help="User name or ID"),
    subject_ref: str = typer.Argument(..., help="Subject name or ID"),
    topic_ref: str = typer.Argument(..., help="Topic name or ID"),
    name: str = typer.Argument(..., help="Concept name"),
    description: str = typer.Option("", "--description", "-d"),
    content: str = typer.Option("", "--content", "-c", help="Notes for the concept"),
) -> None:
    """Add a concept to a topic."""
    subject = _subject_or_exit(_user_or_exit(user_ref), subject_ref)
    topic_id = _topic_id_or_exit(subject, topic_ref)
    try:
        concept = study.create_concept(topic_id, name, description, content)
    except COMMAND_ERRORS as e:
        _fail(str(e))
    console.print(f"[green]✓ Concept created[/green]  [dim]{concept.concept_id}[/dim]")


@app.command(name="generate-subject")
def generate_subject(
    user_ref: str = typer.Argument(..., help="User name or ID"),
    subject: str = typer.Argument(..., help="Subject to break down"),
    info: str | None = typer.Option(None, "--info", "-i", help="Extra context"),
    provider: str | None = typer.Option(None, "--provider", "-p", help="LLM provider"),
    model: str | None = typer.Option(None, "--model", "-m", help="LLM model"),
    apply: bool = typer.Option(False, "--apply", help="Create the subject, topics and concepts"),
) -> None:
    """Ask the LLM for a topic and concept breakdown of a subject."""
    user = _user_or_exit(user_ref)
    client = LLMClient(provider=provider, model=model)
    console.print(f"[blue]Generating structure for '{subject}' ({client.config.model})...[/blue]")
    try:
        structure = generators.generate_subject_structure(subject, info, client=client)
    except GenerationError as e:
        _fail(str(e))

    for topic in structure.topics:
        console.print(f"[bold]{topic.name}[/bold]  [dim]{topic.estimated_study_hours:g} h[/dim]")
        for concept in topic.core_concepts:
            console.print(f"  - {concept}")

    if apply:
        try:
            tree = generators.apply_subject_structure(user.user_id, structure)
        except COMMAND_ERRORS as e:
            _fail(str(e))
        console.print(f"[green]✓ Subject created[/green]  [dim]{tree['subject']['subject_id']}[/dim]")


# =============================================================================
# STUDY AND REVIEWS
# =============================================================================


@app.command(name="log-study")
def log_study(
    user_ref: str = typer.Argument(..., help="User name or ID"),
    subject_ref: str = typer.Argument(..., help="Subject name or ID"),
    minutes: int = typer.Option(..., "--minutes", "-m", help="Duration in minutes"),
    topic_ref: str | None = typer.Option(None, "--topic", "-t", help="Topic name or ID"),
    difficulty: str = typer.Option("medium", "--difficulty", help="easy, medium, hard, expert"),
    activity: str = typer.Option("study", "--activity", help="study, review, practice"),
    confidence: int | None = typer.Option(None, "--confidence", help="Self-assessed 0-100"),
    rating: int | None = typer.Option(None, "--rating", "-r", help="Recall rating 1-5"),
    done: str = typer.Option("", "--done", help="Completed phase activities, comma separated"),
    notes: str = typer.Option("", "--notes"),
) -> None:
    """Log a study session."""
    user = _user_or_exit(user_ref)
    subject = _subject_or_exit(user, subject_ref)
    topic_id = _topic_id_or_exit(subject, topic_ref) if topic_ref else None

    try:
        result = study.log_study_session(
            user.user_id,
            subject.subject_id,
            minutes,
            topic_id=topic_id,
            difficulty=difficulty,
            activity_type=activity,
            confidence=confidence,
            rating=rating,
            completed_activities=[a.strip() for a in done.split(",") if a.strip()],
            notes=notes,
        )
    except COMMAND_ERRORS as e:
        _fail(str(e))

    console.print(f"[green]✓ +{result.total_xp} XP[/green]  [dim]({result.session_xp} session, {result.phase_xp} phase)[/dim]")
    if result.topic:
        console.print(
            f"  [dim]{result.topic.name}:[/dim] mastery {result.topic.mastery_level}% "
            f"(+{result.mastery_gained}), phase {result.topic.current_phase}"
        )
        if result.phase_advanced:
            console.print(f"  [yellow]★ Advanced to {result.topic.current_phase}[/yellow]")
    if result.review:
        console.print(f"  [dim]next review:[/dim] {result.review.next_review:%Y-%m-%d}")
    console.print(f"  [dim]streak:[/dim] {result.streak} day(s)")


@app.command()
def due(user_ref: str = typer.Argument(..., help="User name or ID")) -> None:
    """List topics and concepts due for review."""
    user = _user_or_exit(user_ref)
    items = study.list_due_reviews(user.user_id)
    if not items:
        console.print("[green]✓ Nothing due[/green]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Subject")
    table.add_column("Mastery", justify="right")
    table.add_column("Due")
    for item in items:
        due_text = item.next_review[:10]
        table.add_row(
            item.item_id,
            item.item_type,
            item.name,
            item.subject_name,
            f"{item.mastery_level}%",
            f"[red]{due_text}[/red]" if item.overdue else due_text,
        )
    console.print(table)


@app.command()
def review(
    user_ref: str = typer.Argument(..., help="User name or ID"),
    item_ref: str = typer.Argument(..., help="Topic or concept name or ID"),
    rating: int | None = typer.Option(None, "--rating", "-r", help="Recall rating 1-5"),
    passed: bool | None = typer.Option(None, "--pass/--fail", help="Pass/fail instead of a rating"),
    minutes: int = typer.Option(study.DEFAULT_REVIEW_MINUTES, "--minutes", "-m"),
) -> None:
    """Review a topic or concept and reschedule it."""
    user = _user_or_exit(user_ref)
    item_type, item_id = _review_item_or_exit(user, item_ref)
    try:
        outcome = study.review_item(
            user.user_id, item_type, item_id, rating=rating, passed=passed, duration=minutes
        )
    except COMMAND_ERRORS as e:
        _fail(str(e))

    console.print(f"[green]✓ {outcome.description}[/green]  +{outcome.xp_gained} XP")
    console.print(
        f"  [dim]next review:[/dim] {outcome.next_review:%Y-%m-%d} "
        f"(in {outcome.interval_days} day(s){', exam-adjusted' if outcome.exam_adjusted else ''})"
    )


@app.command(name="exam-plan")
def exam_plan(
    user_ref: str = typer.Argument(..., help="User name or ID"),
    subject_ref: str = typer.Argument(..., help="Subject name or ID"),
) -> None:
    """Show the exam-preparation plan of a subject."""
    subject = _subject_or_exit(_user_or_exit(user_ref), subject_ref)
    plan = study.get_exam_plan(subject.subject_id)
    if plan is None:
        console.print("[yellow]No exam within the preparation window.[/yellow]")
        return

    console.print(f"[bold]{plan.message}[/bold]")
    for rec in plan.recommendations:
        console.print(f"\n[bold]{rec.priority}[/bold]  [dim]{rec.frequency}[/dim]")
        for area in rec.items:
            console.print(f"  - {area.name} ({area.type}, {area.mastery_level}%)")
    if not plan.weak_areas:
        console.print("[green]✓ No weak areas[/green]")


# =============================================================================
# OBSIDIAN
# =============================================================================


@app.command(name="export-obsidian")
def export_obsidian(
    user_ref: str = typer.Argument(..., help="User name or ID"),
    subject_ref: str = typer.Argument(..., help="Subject name or ID"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Zip file or directory"),
    progress: bool = typer.Option(True, "--progress/--no-progress", help="Include mastery"),
    spaced: bool = typer.Option(True, "--sr/--no-sr", help="Include sr-due/sr-interval"),
) -> None:
    """Export a subject as a zipped Obsidian folder."""
    subject = _subject_or_exit(_user_or_exit(user_ref), subject_ref)
    options = SyncOptions(include_progress=progress, include_spaced_repetition_info=spaced)
    target = output or Path(load_app_config().integrations.export_dir)
    if target.suffix != ".zip":
        target.mkdir(parents=True, exist_ok=True)

    export = obsidian.export_subject(subject.user_id, subject.subject_id, options, str(target))
    path = target if target.suffix == ".zip" else target / export.filename
    path.write_bytes(export.data)

    console.print(f"[green]✓ Exported {export.note_count} notes[/green]")
    console.print(f"  [dim]path:[/dim] {path}")


@app.command(name="import-obsidian")
def import_obsidian(
    user_ref: str = typer.Argument(..., help="User name or ID"),
    source: Path = typer.Argument(..., help="Vault directory or .zip export"),
    structure: str = typer.Option("folders", "--structure", "-s", help="folders or tags"),
    name: str | None = typer.Option(None, "--name", "-n", help="Subject name override"),
) -> None:
    """Import notes from an Obsidian vault."""
    user = _user_or_exit(user_ref)
    if not source.exists():
        _fail(f"Not found: {source}")

    try:
        result = obsidian.import_vault(user.user_id, source, structure, name)
    except (ObsidianImportError, *COMMAND_ERRORS) as e:
        _fail(str(e))

    verb = "Merged into" if result.merged else "Created"
    console.print(f"[green]✓ {verb} '{result.subject['name']}'[/green]")
    console.print(f"  [dim]topics:[/dim]   +{result.topics_created}")
    console.print(f"  [dim]concepts:[/dim] +{result.concepts_created}")
