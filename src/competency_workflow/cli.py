"""
cli.py – Command-line front end for the competency workflow

Run:
    competency init-db
    competency seed
    competency status priya
    competency next-role alex
    competency pending
    competency review 3 --approve
    competency employees
    competency assign-role alex be-mid
    competency stats

Every command reads its settings from the environment / .env file
(see .env.example).
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from competency_workflow.config import Settings, configure_logging, get_settings
from competency_workflow.database import SqliteRepository, init_db
from competency_workflow.errors import CompetencyError
from competency_workflow.models import AttemptState, LearningStatus
from competency_workflow.service import (
    AssessmentOverview,
    CompetencyService,
    PromotionOverview,
    TestBoard,
)

console = Console()

# ─── Styles ──────────────────────────────────────────────────────────────────
STATE_STYLE = {
    AttemptState.NOT_ATTEMPTED: "dim white",
    AttemptState.READY:         "bold cyan",
    AttemptState.COOLDOWN:      "bold yellow",
    AttemptState.PASSED:        "bold green",
}

STATUS_STYLE = {
    "passed": "bold green",
    "failed": "bold red",
    "none":   "dim white",
}


# ─── Display helpers ─────────────────────────────────────────────────────────

def _bar(pct: float, width: int = 16) -> str:
    filled = round(pct / 100 * width)
    return "[" + "█" * filled + "░" * (width - filled) + f"] {pct:.0f}%"


def _when(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "[dim]–[/dim]"


def show_assessment(overview: AssessmentOverview) -> None:
    summary = Table(box=box.ROUNDED, show_header=False, padding=(0, 1))
    summary.add_column("Key",   style="bold cyan", no_wrap=True)
    summary.add_column("Value", style="white")
    summary.add_row("Current role", overview.current_role.title)
    summary.add_row("Next role",
                    overview.next_role.title if overview.next_role
                    else "[dim]None, top of the ladder[/dim]")
    style = STATUS_STYLE[overview.status.value]
    summary.add_row("Self-assessment", f"[{style}]{overview.status.value.upper()}[/{style}]")
    summary.add_row("Learning path", overview.learning.value)
    summary.add_row("Assessment lock",
                    f"[yellow]locked ({overview.lock.reason.value})[/yellow]"
                    if overview.lock.locked else "[green]open[/green]")
    console.print(Panel(summary, title="[bold]Self-Assessment[/bold]", border_style="magenta"))

    if overview.result is None or not overview.result.skills:
        return
    gaps = Table(box=box.SIMPLE_HEAD, header_style="bold white on dark_violet", padding=(0, 1))
    gaps.add_column("Skill",    style="white", min_width=20)
    gaps.add_column("Required", justify="center")
    gaps.add_column("Rated",    justify="center")
    gaps.add_column("Gap",      justify="center")
    for row in overview.result.skills:
        mark = "[green]✓[/green]" if row.passed else "[red]✗[/red]"
        gaps.add_row(f"{mark} {row.skill_name}", str(row.required_level),
                     str(row.actual_rating), str(max(row.gap, 0)))
    console.print(Panel(gaps, title="[bold]Strengths & Development Areas[/bold]", border_style="blue"))


def show_learning(service: CompetencyService, employee_id: str) -> None:
    items = service.learning_items(employee_id)
    if not items:
        return
    table = Table(box=box.SIMPLE, header_style="bold cyan", padding=(0, 1))
    table.add_column("#",        style="dim")
    table.add_column("Resource", style="white")
    table.add_column("URL",      style="cyan")
    table.add_column("Done",     justify="center")
    for item in items:
        table.add_row(item.id or "", item.title, item.resource_url,
                      "[green]✓[/green]" if item.completed else "[dim]·[/dim]")
    console.print(Panel(table, title="[bold]Active Learning Path[/bold]", border_style="yellow"))


def show_tests(board: TestBoard, now: datetime) -> None:
    if board.lock.locked:
        console.print(Panel(
            f"Skill tests for [bold]{board.role.title}[/bold] are locked "
            f"([yellow]{board.lock.reason.value}[/yellow]).",
            title="[bold]Skill Tests[/bold]", border_style="red",
        ))
        return
    table = Table(box=box.SIMPLE_HEAD, header_style="bold white on dark_violet", padding=(0, 1))
    table.add_column("Skill",    style="white", min_width=16)
    table.add_column("State",    justify="center", no_wrap=True)
    table.add_column("Attempts", justify="center")
    table.add_column("Detail",   style="dim white")
    for entry in board.entries:
        status = entry.status
        state  = status.display_state
        style  = STATE_STYLE[state]
        if state == AttemptState.COOLDOWN:
            hours = status.remaining(now).total_seconds() / 3600
            detail = f"{hours:.1f} h left"
        elif state == AttemptState.PASSED:
            detail = (f"{status.passing_attempt.score}% on "
                      f"{_when(status.passing_attempt.attempted_at)}")
        else:
            detail = ""
        table.add_row(entry.requirement.display_name,
                      f"[{style}]{state.value.upper()}[/{style}]",
                      str(status.attempt_count), detail)
    console.print(Panel(table, title=f"[bold]Skill Tests: {board.role.title}[/bold]",
                        border_style="blue"))


def show_promotion(overview: PromotionOverview) -> None:
    elig = overview.eligibility
    summary = Table(box=box.ROUNDED, show_header=False, padding=(0, 1))
    summary.add_column("Key",   style="bold cyan", no_wrap=True)
    summary.add_column("Value", style="white")
    summary.add_row("Target role", overview.target_role.title)
    summary.add_row("Tests passed", f"{elig.passed_count}/{elig.total_count}  {_bar(elig.progress_pct)}")
    summary.add_row("Eligible",
                    "[bold green]Yes[/bold green]" if elig.eligible else "[bold red]No[/bold red]")
    summary.add_row("Pending request",
                    f"#{overview.pending.id} since {_when(overview.pending.requested_at)}"
                    if overview.pending else "[dim]None[/dim]")
    console.print(Panel(summary, title="[bold]Promotion[/bold]", border_style="green"))


# ─── Commands ────────────────────────────────────────────────────────────────

def _service(settings: Settings) -> CompetencyService:
    return CompetencyService(SqliteRepository(settings.storage.db_path), settings)


def cmd_init_db(args: argparse.Namespace, settings: Settings) -> int:
    init_db(settings.storage.db_path)
    console.print(f"[bold green]✓ Database ready[/bold green] [dim]({settings.storage.db_path})[/dim]")
    return 0


def cmd_seed(args: argparse.Namespace, settings: Settings) -> int:
    from competency_workflow.seed_demo_data import seed_all

    hired = seed_all(settings)
    console.print(f"[bold green]✓ Seeded[/bold green] {', '.join(hired) or '[dim]nothing new[/dim]'}")
    return 0


def cmd_config(args: argparse.Namespace, settings: Settings) -> int:
    table = Table(box=box.ROUNDED, show_header=False, padding=(0, 1))
    table.add_column("Setting", style="bold cyan", no_wrap=True)
    table.add_column("Value",   style="white")
    for key, value in settings.status_summary().items():
        table.add_row(key, value)
    console.print(Panel(table, title="[bold]Settings[/bold]", border_style="magenta"))
    return 0


def cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    service = _service(settings)
    now = datetime.now(timezone.utc)
    console.rule(f"[bold magenta]{args.employee}[/bold magenta]")
    overview = service.assessment_overview(args.employee)
    show_assessment(overview)
    if overview.learning == LearningStatus.ACTIVE:
        show_learning(service, args.employee)
    show_tests(service.test_board(args.employee, now), now)
    show_promotion(service.promotion_status(args.employee))
    return 0


def cmd_next_role(args: argparse.Namespace, settings: Settings) -> int:
    role = _service(settings).next_role(args.employee)
    if role is None:
        console.print("[dim]No next role: top of the ladder or no matching role family.[/dim]")
    else:
        console.print(f"[bold]{role.title}[/bold] [dim]({role.id}, {role.level.value})[/dim]")
    return 0


def cmd_pending(args: argparse.Namespace, settings: Settings) -> int:
    service = _service(settings)
    table = Table(box=box.SIMPLE_HEAD, header_style="bold cyan", padding=(0, 1))
    table.add_column("#")
    table.add_column("Employee")
    table.add_column("From → To")
    table.add_column("Requested")
    for req in service.pending_promotions():
        table.add_row(req.id or "", req.employee_id,
                      f"{req.current_role_id} → {req.requested_role_id}", _when(req.requested_at))
    console.print(table)
    return 0


def cmd_review(args: argparse.Namespace, settings: Settings) -> int:
    service = _service(settings)
    breakdown = Table(box=box.SIMPLE, header_style="bold cyan", padding=(0, 1))
    breakdown.add_column("Skill")
    breakdown.add_column("Best", justify="right")
    breakdown.add_column("Passed", justify="center")
    breakdown.add_column("Last attempt")
    for rec in service.review_breakdown(args.request_id):
        if not rec.testable:
            continue
        breakdown.add_row(rec.skill_name,
                          f"{rec.best_score}%" if rec.best_score is not None else "–",
                          "[green]✓[/green]" if rec.passed else "[red]✗[/red]",
                          _when(rec.last_attempt_at))
    console.print(breakdown)
    if args.approve is None:
        return 0
    request = service.review_promotion(args.request_id, approve=args.approve)
    console.print(f"Request #{request.id}: [bold]{request.status.value}[/bold]")
    return 0


def cmd_employees(args: argparse.Namespace, settings: Settings) -> int:
    table = Table(box=box.SIMPLE_HEAD, header_style="bold cyan", padding=(0, 1))
    table.add_column("ID",       style="bold")
    table.add_column("Name",     style="white")
    table.add_column("Role")
    table.add_column("Assigned")
    for row in _service(settings).employees():
        emp = row.employee
        table.add_row(emp.id, emp.display_name,
                      row.role_title if row.role else "[dim]Unassigned[/dim]",
                      _when(row.assigned_at))
    console.print(table)
    return 0


def cmd_assign_role(args: argparse.Namespace, settings: Settings) -> int:
    role = _service(settings).assign_role(args.employee, args.role)
    console.print(f"[bold green]✓[/bold green] {args.employee} → [bold]{role.title}[/bold]")
    return 0


def cmd_stats(args: argparse.Namespace, settings: Settings) -> int:
    stats = _service(settings).dashboard_stats()
    table = Table(box=box.ROUNDED, show_header=False, padding=(0, 1))
    table.add_column("Metric", style="bold cyan", no_wrap=True)
    table.add_column("Count",  justify="right")
    table.add_row("Total employees",    str(stats.employees))
    table.add_row("Pending promotions", f"[bold yellow]{stats.pending_promotions}[/bold yellow]"
                  if stats.pending_promotions else "0")
    table.add_row("Job roles",          str(stats.roles))
    table.add_row("Tests passed",       str(stats.tests_passed))
    console.print(Panel(table, title="[bold]Admin Dashboard[/bold]", border_style="magenta"))
    return 0


# ─── Main ────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="competency", description="Competency workflow engine")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create the SQLite schema").set_defaults(func=cmd_init_db)
    sub.add_parser("seed", help="load demo roles, skills and employees").set_defaults(func=cmd_seed)
    sub.add_parser("config", help="show effective settings").set_defaults(func=cmd_config)

    status = sub.add_parser("status", help="workflow status for one employee")
    status.add_argument("employee")
    status.set_defaults(func=cmd_status)

    next_role = sub.add_parser("next-role", help="resolve the employee's next role")
    next_role.add_argument("employee")
    next_role.set_defaults(func=cmd_next_role)

    sub.add_parser("pending", help="list pending promotion requests").set_defaults(func=cmd_pending)

    review = sub.add_parser("review", help="show or decide a promotion request")
    review.add_argument("request_id")
    decision = review.add_mutually_exclusive_group()
    decision.add_argument("--approve", dest="approve", action="store_true", default=None)
    decision.add_argument("--reject", dest="approve", action="store_false")
    review.set_defaults(func=cmd_review)

    sub.add_parser("employees", help="list employees and their active roles").set_defaults(func=cmd_employees)

    assign = sub.add_parser("assign-role", help="make a role the employee's active role")
    assign.add_argument("employee")
    assign.add_argument("role")
    assign.set_defaults(func=cmd_assign_role)

    sub.add_parser("stats", help="admin dashboard counts").set_defaults(func=cmd_stats)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
        configure_logging(settings)
        return args.func(args, settings)
    except CompetencyError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
