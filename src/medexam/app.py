"""Interactive CLI application."""
import logging
import sqlite3
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import IntPrompt, Prompt
from rich.table import Table

from medexam.access import can_access, is_premium
from medexam.catalog import get_test, get_user, list_tests, list_users, publish_test
from medexam.db import DEFAULT_DB_PATH, init_db
from medexam.errors import Failure, user_message
from medexam.importer import import_test_file
from medexam.models import MODES, Question, Result, Session, Test
from medexam.quota import get_limits, get_remaining, set_limit
from medexam.results import get_result
from medexam.seed import is_seeded, seed_all
from medexam.sessions import (
    check_answer, get_progress, list_user_sessions, purge_abandoned_sessions, record_answer, start_session,
    submit_session, time_remaining, toggle_mark_for_review,
)

console = Console()
log = logging.getLogger(__name__)

EXIT_WORDS = ("q", "menu")
STAFF_ROLES = ("doctor", "admin")


class SessionExitRequested(Exception):
    """User asked to leave a running test and return to the menu."""


def setup_logging(level: int = logging.WARNING) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def session_prompt(prompt: str, **kwargs) -> str:
    answer = Prompt.ask(prompt, **kwargs)
    if answer.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


def parse_selection(raw: str, question: Question) -> list[int]:
    """Turn "1,3" into option ids of ``question``. Blank means no selection."""
    picks = [p.strip() for p in raw.replace(" ", ",").split(",") if p.strip()]
    option_ids = []
    for pick in picks:
        if not pick.isdigit() or not 1 <= int(pick) <= len(question.options):
            raise ValueError(f"Not an option number: {pick}")
        option_ids.append(question.options[int(pick) - 1].id)
    return option_ids


def show_welcome():
    console.print(Panel(
        "[bold]Medical Exam Trainer[/bold]\n[dim]Practice tests and exams[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu(user=None):
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("tests", "Browse available tests"),
        ("take", "Start a test"),
        ("limits", "Today's attempt limits"),
        ("history", "Past results"),
    ]
    if user is not None and user.role in STAFF_ROLES:
        commands += [
            ("import", "Import a test from a question file"),
            ("setlimit", "Change a daily attempt limit"),
        ]
    commands += [
        ("user", "Switch user"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def show_failure(failure: Failure) -> None:
    console.print(f"[red]{user_message(failure)}[/red]")


def choose_user(db_path: str):
    users = list_users(db_path)
    for u in users:
        console.print(f"  [cyan]{u.id}[/cyan]) {u.name} [dim]({u.role}, {u.subscription_tier})[/dim]")
    user_id = IntPrompt.ask("Sign in as", choices=[str(u.id) for u in users])
    return get_user(db_path, user_id)


def cmd_tests(db_path: str, user):
    table = Table(title="Tests")
    table.add_column("ID", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Category")
    table.add_column("Questions", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Pass", justify="right")
    table.add_column("Access")
    for t in list_tests(db_path):
        test = get_test(db_path, t["id"])
        access = "[green]open[/green]" if can_access(user, test) else "[yellow]premium[/yellow]"
        table.add_row(
            str(t["id"]), t["title"], t["category"] or "",
            str(t["question_count"]),
            f"{t['time_limit']} min" if t["time_limit"] else "-",
            f"{t['passing_score']}%",
            access,
        )
    console.print(table)


def cmd_limits(db_path: str, user):
    if is_premium(user):
        console.print("[green]Premium: unlimited attempts.[/green]")
        return
    table = Table(title="Daily Limits")
    table.add_column("Mode")
    table.add_column("Used", justify="right")
    table.add_column("Status")
    for mode in MODES:
        remaining = get_remaining(db_path, user, mode)
        status = "[green]available[/green]" if remaining.can_start else "[red]limit reached[/red]"
        table.add_row(mode.title(), f"{remaining.used} / {remaining.limit}", status)
    console.print(table)
    console.print("[dim]Limits reset at midnight UTC.[/dim]")


def ask_question(db_path: str, session: Session, index: int, question: Question) -> Session:
    total = len(session.test.questions)
    console.print(f"\n[bold]Q{index}/{total}.[/bold] {question.text} [dim]({question.points} pt)[/dim]")
    for i, option in enumerate(question.options, 1):
        console.print(f"  [cyan]{i})[/cyan] {option.text}")
    while True:
        raw = session_prompt("Your answer (e.g. 1 or 1,3; m to mark for review; blank to skip)", default="")
        if raw.strip().lower() == "m":
            toggled = toggle_mark_for_review(db_path, session.id, question.id)
            if isinstance(toggled, Failure):
                show_failure(toggled)
                raise SessionExitRequested()
            session = toggled
            state = "Marked for review" if question.id in session.marked else "Review mark cleared"
            console.print(f"[yellow]{state}.[/yellow]")
            continue
        try:
            option_ids = parse_selection(raw, question)
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            continue
        break
    if not option_ids:
        return session
    updated = record_answer(db_path, session.id, question.id, option_ids)
    if isinstance(updated, Failure):
        show_failure(updated)
        raise SessionExitRequested()
    feedback = check_answer(updated, question.id)
    if feedback is True:
        console.print("[green]Correct![/green]")
    elif feedback is False:
        correct = ", ".join(o.text for o in question.options if o.is_correct)
        console.print(f"[red]Incorrect.[/red] Answer: [green]{correct}[/green]")
    if feedback is not None and question.explanation:
        console.print(f"[dim]{question.explanation}[/dim]")
    return updated


def run_test_session(db_path: str, session: Session) -> Result | None:
    remaining = time_remaining(session)
    if remaining is not None:
        console.print(f"[dim]Time limit: {remaining // 60} minutes[/dim]")
    for index, question in enumerate(session.test.questions, 1):
        session = ask_question(db_path, session, index, question)
    progress = get_progress(session)
    if progress["unanswered"]:
        console.print(f"[yellow]{len(progress['unanswered'])} question(s) unanswered.[/yellow]")
    if progress["marked"]:
        numbers = [str(i) for i, q in enumerate(session.test.questions, 1) if q.id in progress["marked"]]
        console.print(f"[yellow]Marked for review: Q{', Q'.join(numbers)}[/yellow]")
        if Prompt.ask("Revisit marked questions?", choices=["y", "n"], default="y") == "y":
            for index, question in enumerate(session.test.questions, 1):
                if question.id in progress["marked"]:
                    session = ask_question(db_path, session, index, question)
    if Prompt.ask("Submit now?", choices=["y", "n"], default="y") != "y":
        console.print("[dim]Session left open.[/dim]")
        return None
    result = submit_session(db_path, session.id)
    if isinstance(result, Failure):
        show_failure(result)
        return None
    return result


def show_result(result: Result, test: Test | None = None):
    color = "green" if result.passed else "red"
    verdict = "PASSED" if result.passed else "FAILED"
    minutes, seconds = divmod(result.time_spent, 60)
    console.print(Panel(
        f"Score: [bold]{result.score_percentage}%[/bold]  [{color}]{verdict}[/{color}]\n"
        f"Correct: {result.correct_answers}  Incorrect: {result.incorrect_answers}  "
        f"Points: {result.total_points_earned}/{result.total_possible_points}\n"
        f"Time: {minutes}:{seconds:02d}" + ("  [yellow](over time limit)[/yellow]" if result.over_time_limit else ""),
        title=test.title if test else "Result", border_style=color,
    ))
    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Question")
    table.add_column("Points", justify="right")
    table.add_column("")
    for i, item in enumerate(result.outcomes, 1):
        question = test.get_question(item.question_id) if test else None
        mark = "[green]✓[/green]" if item.is_correct else "[red]✗[/red]"
        table.add_row(
            str(i),
            question.text if question else str(item.question_id),
            f"{item.points_earned}/{item.points_possible}",
            mark,
        )
    console.print(table)


def cmd_take(db_path: str, user):
    test_id = IntPrompt.ask("Test ID")
    mode = Prompt.ask("Mode", choices=list(MODES), default="training")
    session = start_session(db_path, user.id, test_id, mode)
    if isinstance(session, Failure):
        show_failure(session)
        return
    console.print(f"\n[bold]{session.test.title}[/bold] ({mode} mode) [dim](type 'q' to leave)[/dim]")
    try:
        result = run_test_session(db_path, session)
    except SessionExitRequested:
        console.print("[dim]Left the test. It stays open; the attempt still counts.[/dim]")
        return
    if result is not None:
        show_result(result, session.test)


def cmd_import(db_path: str):
    file_path = Prompt.ask("File path")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    title = Prompt.ask("Title", default=Path(file_path).stem)
    category = Prompt.ask("Category (blank for none)", default="")
    summary = import_test_file(db_path, file_path, title=title, category=category or None)
    console.print(
        f"[green]Imported {summary['imported']} question(s) into test {summary['test_id']}[/green]"
        + (f" [yellow]({summary['skipped']} skipped)[/yellow]" if summary["skipped"] else "")
    )
    for problem in summary["problems"]:
        console.print(f"  [yellow]{problem}[/yellow]")
    if summary["imported"] and Prompt.ask("Publish now?", choices=["y", "n"], default="n") == "y":
        publish_test(db_path, summary["test_id"])
        console.print("[green]Published.[/green]")


def cmd_set_limit(db_path: str):
    limits = get_limits(db_path)
    for mode in MODES:
        console.print(f"  {mode.title():<10} {limits[mode]} per day")
    mode = Prompt.ask("Mode", choices=list(MODES))
    limit = IntPrompt.ask("New daily limit", default=limits[mode])
    if limit < 0:
        console.print("[red]The limit cannot be negative.[/red]")
        return
    set_limit(db_path, mode, limit)
    console.print(f"[green]{mode.title()} limit set to {limit} per day.[/green]")


def cmd_history(db_path: str, user):
    rows = list_user_sessions(db_path, user.id)
    if not rows:
        console.print("[yellow]No completed tests yet.[/yellow]")
        return
    table = Table(title="History")
    table.add_column("#", justify="right")
    table.add_column("Test", style="cyan")
    table.add_column("Mode")
    table.add_column("Submitted")
    table.add_column("Score", justify="right")
    for i, row in enumerate(rows, 1):
        color = "green" if row["passed"] else "red"
        table.add_row(
            str(i), row["title"], row["mode"], row["submitted_at"][:16].replace("T", " "),
            f"[{color}]{row['score_percentage']}%[/{color}]",
        )
    console.print(table)
    pick = Prompt.ask("Show details for # (blank to skip)", default="")
    if pick.isdigit() and 1 <= int(pick) <= len(rows):
        row = rows[int(pick) - 1]
        result = get_result(db_path, row["id"])
        if result:
            show_result(result, get_test(db_path, row["test_id"]))


def main():
    setup_logging()
    db_path = DEFAULT_DB_PATH
    init_db(db_path)
    first_run = not is_seeded(db_path)
    if first_run:
        console.print("[dim]Setting up for first use...[/dim]")
    seed_all(db_path)
    purge_abandoned_sessions(db_path)
    if first_run:
        console.print("[green]Ready![/green]\n")

    show_welcome()
    user = choose_user(db_path)

    while True:
        show_menu(user)
        choice = Prompt.ask("\n[bold]>[/bold]", default="tests").strip().lower()
        try:
            user = get_user(db_path, user.id)
            if choice == "tests":
                cmd_tests(db_path, user)
            elif choice == "take":
                cmd_take(db_path, user)
            elif choice == "limits":
                cmd_limits(db_path, user)
            elif choice == "history":
                cmd_history(db_path, user)
            elif choice == "import" and user.role in STAFF_ROLES:
                cmd_import(db_path)
            elif choice == "setlimit" and user.role in STAFF_ROLES:
                cmd_set_limit(db_path)
            elif choice == "user":
                user = choose_user(db_path)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]Good luck on your exam![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except sqlite3.Error:
            log.exception("Database error")
            console.print("[red]Something went wrong talking to the database. Please try again.[/red]")


if __name__ == "__main__":
    main()
