"""Drop Sheet CLI.

Usage:
    dropsheet new "March Slot Core Bklt" --property Lincoln --mail-type Core/Newsletter --in-home 2026-03-12
    dropsheet new --template "Core Booklet (8pg)" --property Lincoln --month 2026-03
    dropsheet list --month 2026-03
    dropsheet show <job_id>
    dropsheet toggle <job_id> data_received
    dropsheet set-date <job_id> mailed 2026-02-24
    dropsheet dates 2026-01-15 --mail-type Core/Newsletter
    dropsheet holidays --year 2026
    dropsheet templates
    dropsheet duplicates
    dropsheet export jobs.json
    dropsheet import jobs.json
    dropsheet delete <job_id>
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Optional
from uuid import uuid4

import typer
from rich.console import Console
from rich.table import Table

from dropsheet.config import build_engine, configure_logging, get_settings
from dropsheet.models import (
    ACTIVE_MILESTONES,
    DataFileError,
    JobNotFoundError,
    MailJob,
    MilestoneKey,
    MilestoneStatus,
)

app = typer.Typer(name="dropsheet", help="Direct-mail drop sheet: deadlines, milestones, schedule health")
console = Console()

HEALTH_COLORS = {
    "complete": "blue",
    "late": "red bold",
    "behind_schedule": "yellow",
    "on_track": "green",
}

URGENCY_COLORS = {
    "overdue": "red",
    "due_today": "yellow",
    "due_soon": "yellow",
    "upcoming": "green",
    "complete": "blue",
    "unscheduled": "blue",
}

STATUS_MARKS = {
    MilestoneStatus.PENDING: "[dim]·[/dim]",
    MilestoneStatus.IN_PROGRESS: "[blue]…[/blue]",
    MilestoneStatus.COMPLETED: "[green]✓[/green]",
}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")):
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_job(job_id: str) -> MailJob:
    settings = get_settings()
    try:
        return MailJob.load(settings.data_path, job_id)
    except JobNotFoundError:
        console.print(f"[red]No job with id {job_id}.[/red]")
        raise typer.Exit(1)


def _engine():
    try:
        return build_engine(get_settings())
    except DataFileError as e:
        console.print(f"[red]Holiday calendar could not be loaded: {e}[/red]")
        raise typer.Exit(1)


def _fmt(d: date | None) -> str:
    return d.strftime("%b %d") if d else "-"


def _parse_month(value: str) -> tuple[int, int]:
    try:
        year, month = (int(part) for part in value.split("-", 1))
        date(year, month, 1)
    except ValueError:
        console.print(f"[red]Month must look like YYYY-MM, got {value!r}.[/red]")
        raise typer.Exit(1)
    return year, month


# ---------------------------------------------------------------------------
# dropsheet new
# ---------------------------------------------------------------------------

@app.command()
def new(
    campaign_name: str = typer.Argument("", help="Campaign name (omit when using --template)"),
    property: str = typer.Option("Lincoln", "--property", "-p", help="Property (Lincoln, Tiverton)"),
    mail_type: str = typer.Option("", "--mail-type", "-t", help="Mail type label, e.g. Core/Newsletter"),
    in_home: str = typer.Option("", "--in-home", help="In-home date YYYY-MM-DD"),
    first_valid: str = typer.Option("", "--first-valid", help="First valid date YYYY-MM-DD"),
    postage: str = typer.Option("Standard", "--postage", help="Standard or First Class"),
    quantity: int = typer.Option(0, "--quantity", "-q"),
    template: str = typer.Option("", "--template", help="Template label to start from"),
    month: str = typer.Option("", "--month", help="Target month YYYY-MM for --template"),
):
    """Create a new mail job."""
    from dropsheet.engine.jobs import build_job_from_template, find_template, load_templates

    settings = get_settings()
    engine = _engine()

    if template:
        templates = load_templates(settings.templates_path)
        found = find_template(templates, property, template)
        if found is None:
            console.print(f"[red]No template '{template}' for {property}.[/red]")
            raise typer.Exit(1)
        year, mon = _parse_month(month) if month else (settings.today().year, settings.today().month)
        job = build_job_from_template(found, year, mon, engine)
        job.quantity = quantity
    else:
        if not campaign_name:
            console.print("[red]Give a campaign name or --template.[/red]")
            raise typer.Exit(1)
        if not in_home and first_valid:
            derived = engine.calculate_dates_from_first_valid(first_valid, mail_type)
            if derived is not None:
                in_home = derived.in_home_date.isoformat()
        chain = engine.calculate_milestone_dates(in_home, mail_type)
        job = MailJob(
            id=uuid4().hex,
            campaign_name=campaign_name,
            mail_type=mail_type,
            property=property,
            postage=postage,
            quantity=quantity,
            in_home_date=in_home or None,
            first_valid_date=first_valid or None,
            vendor_mail_date=chain.mail_drop_date.isoformat() if chain.mail_drop_date else None,
        )

    job.save(settings.data_path)
    console.print(f"\n[green]Job created:[/green] {job.id}")
    console.print(f"  Campaign: {job.campaign_name}")
    console.print(f"  In-home: {job.in_home_date or 'TBD'}")
    console.print(f"  Vendor mail date: {job.vendor_mail_date or 'TBD'}")


# ---------------------------------------------------------------------------
# dropsheet list
# ---------------------------------------------------------------------------

@app.command("list")
def list_jobs(
    month: str = typer.Option("", "--month", "-m", help="Only jobs in-home in YYYY-MM"),
    property: str = typer.Option("All", "--property", "-p"),
    sort: str = typer.Option("in_home_date", "--sort", help="in_home_date or vendor_mail_date"),
    desc: bool = typer.Option(False, "--desc", help="Newest first"),
):
    """List jobs with their schedule health."""
    from dropsheet.engine.jobs import jobs_in_month, sort_jobs
    from dropsheet.engine.milestones import compute_schedule_health, progress

    settings = get_settings()
    engine = _engine()
    today = settings.today()

    jobs = MailJob.list_all(settings.data_path)
    if month:
        year, mon = _parse_month(month)
        jobs = jobs_in_month(jobs, year, mon, property)
    elif property != "All":
        jobs = [j for j in jobs if j.property == property]
    try:
        jobs = sort_jobs(jobs, sort, desc)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Drop Sheet: {month or 'all months'}")
    table.add_column("ID", style="dim")
    table.add_column("Campaign")
    table.add_column("Property")
    table.add_column("In-home")
    table.add_column("Mail drop")
    table.add_column("Progress")
    table.add_column("Health")

    for job in jobs:
        chain = engine.calculate_milestone_dates(job.in_home_date, job.mail_type)
        report = compute_schedule_health(job.milestone_map, chain, job.vendor_mail_date, today)
        done, total = progress(job.milestone_map)
        color = HEALTH_COLORS.get(report.health.value, "white")
        health = report.health.value.upper().replace("_", " ")
        if report.lag_days:
            health += f" (+{report.lag_days}d)"
        name = f"[yellow]{job.campaign_name}[/yellow]" if "core" in job.mail_type.lower() else job.campaign_name
        table.add_row(
            job.id,
            name,
            job.property,
            job.in_home_date or "TBD",
            _fmt(chain.mail_drop_date),
            f"{done}/{total}",
            f"[{color}]{health}[/{color}]",
        )

    console.print(table)


# ---------------------------------------------------------------------------
# dropsheet show
# ---------------------------------------------------------------------------

@app.command()
def show(job_id: str = typer.Argument(..., help="Job id")):
    """Show one job's deadlines and milestones."""
    from dropsheet.engine.jobs import estimate_postage
    from dropsheet.engine.milestones import (
        compute_schedule_health,
        delivery_state,
        is_step_enabled,
        next_deadline,
    )

    settings = get_settings()
    engine = _engine()
    today = settings.today()
    job = _load_job(job_id)
    ms = job.milestone_map
    chain = engine.calculate_milestone_dates(job.in_home_date, job.mail_type)
    report = compute_schedule_health(ms, chain, job.vendor_mail_date, today)
    upcoming = next_deadline(ms, chain, today)

    console.print(f"\n[bold]{job.campaign_name}[/bold]  ({job.property}, {job.mail_type or 'no type'})")
    console.print(f"  ID: {job.id}")
    console.print(f"  Postage: {job.postage}, {job.quantity:,} pcs, ${estimate_postage(job.quantity, job.postage):,.2f}")
    console.print(f"  In-home: {job.in_home_date or 'TBD'}    Vendor mail: {job.vendor_mail_date or 'TBD'}")
    console.print(f"  Art submission: {_fmt(chain.art_submission_due_date)}    "
                  f"Art due: {_fmt(chain.art_due_date)}    Mail drop: {_fmt(chain.mail_drop_date)}")

    color = URGENCY_COLORS.get(upcoming.urgency.value, "white")
    console.print(f"  Next: [{color}]{upcoming.message}[/{color}]")
    if report.is_late:
        console.print(f"  [red]LATE: mailed {report.lag_days}d after the drop date[/red]")
    if report.is_behind:
        console.print("  [yellow]BEHIND SCHEDULE: art deadline passed without data approval[/yellow]")
    console.print(f"  Delivery: {delivery_state(ms, job.in_home_date, today).value.replace('_', ' ')}")

    console.print("\n  Milestones:")
    for key in ACTIVE_MILESTONES:
        state = ms.get(key)
        stamp = f" {state.completed_at:%m/%d}" if state.completed_at else ""
        locked = "" if is_step_enabled(ms, key) else " [dim](locked)[/dim]"
        console.print(f"    {STATUS_MARKS[state.status]} {key.value}{stamp}{locked}")


# ---------------------------------------------------------------------------
# dropsheet toggle / set-date
# ---------------------------------------------------------------------------

@app.command()
def toggle(
    job_id: str = typer.Argument(..., help="Job id"),
    milestone: str = typer.Argument(..., help="Milestone key, e.g. data_received"),
):
    """Advance a milestone: pending -> in progress -> completed -> pending."""
    from dropsheet.engine.milestones import toggle_milestone

    settings = get_settings()
    job = _load_job(job_id)
    result = toggle_milestone(job.milestone_map, milestone, now=settings.now)
    if not result.accepted:
        console.print(f"[yellow]{result.rejected_reason}[/yellow]")
        raise typer.Exit(1)

    job = job.with_milestones(result.milestones)
    job.save(settings.data_path)
    status = result.milestones.status(MilestoneKey(milestone)).value
    console.print(f"[green]{milestone}[/green] is now {status.replace('_', ' ')}")


@app.command("set-date")
def set_date(
    job_id: str = typer.Argument(..., help="Job id"),
    milestone: str = typer.Argument(..., help="Milestone key"),
    day: str = typer.Argument("", help="Completion date YYYY-MM-DD (omit to clear)"),
):
    """Correct a milestone's completion date by hand."""
    from dropsheet.engine.dates import parse_date
    from dropsheet.engine.milestones import set_milestone_date
    if milestone not in {k.value for k in MilestoneKey}:
        console.print(f"[red]Unknown milestone '{milestone}'.[/red]")
        raise typer.Exit(1)
    if day and parse_date(day) is None:
        console.print(f"[red]Not a date: {day!r}[/red]")
        raise typer.Exit(1)

    settings = get_settings()
    job = _load_job(job_id)
    job = job.with_milestones(set_milestone_date(job.milestone_map, milestone, day or None))
    job.save(settings.data_path)
    console.print(f"[green]{milestone}[/green] {'set to ' + day if day else 'cleared'}")


# ---------------------------------------------------------------------------
# dropsheet dates
# ---------------------------------------------------------------------------

@app.command()
def dates(
    when: str = typer.Argument(..., help="In-home date (or first valid date with --first-valid)"),
    mail_type: str = typer.Option("", "--mail-type", "-t"),
    first_valid: bool = typer.Option(False, "--first-valid", help="Treat the date as the first valid date"),
):
    """Work out the deadline chain for a date without saving anything."""
    from dropsheet.engine.dates import parse_date

    engine = _engine()
    if first_valid:
        chain = engine.calculate_dates_from_first_valid(when, mail_type)
        if chain is None:
            console.print(f"[red]Not a date: {when!r}[/red]")
            raise typer.Exit(1)
        in_home = chain.in_home_date
    else:
        chain = engine.calculate_milestone_dates(when, mail_type)
        if not chain.is_scheduled:
            console.print(f"[red]Not a date: {when!r}[/red]")
            raise typer.Exit(1)
        in_home = parse_date(when)

    table = Table(title=f"Deadlines: {mail_type or 'standard'}")
    table.add_column("Deadline")
    table.add_column("Date")
    table.add_row("Art submission due", str(chain.art_submission_due_date))
    table.add_row("Art due (vendor)", str(chain.art_due_date))
    table.add_row("Mail drop", str(chain.mail_drop_date))
    table.add_row("In-home", str(in_home))
    console.print(table)


# ---------------------------------------------------------------------------
# dropsheet holidays / templates
# ---------------------------------------------------------------------------

@app.command()
def holidays(year: Optional[int] = typer.Option(None, "--year", "-y")):
    """List holidays skipped by business-day arithmetic."""
    settings = get_settings()
    engine = _engine()
    year = year or settings.today().year

    table = Table(title=f"Holidays {year}")
    table.add_column("Date")
    table.add_column("Day", style="dim")
    table.add_column("Holiday")
    for day in engine.calendar.holidays_in(year):
        table.add_row(day.isoformat(), day.strftime("%a"), engine.calendar.name_of(day))
    console.print(table)


@app.command()
def templates(property: str = typer.Option("", "--property", "-p")):
    """List job templates."""
    from dropsheet.engine.jobs import load_templates

    settings = get_settings()
    try:
        found = load_templates(settings.templates_path)
    except DataFileError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Job templates")
    table.add_column("Property")
    table.add_column("Category", style="dim")
    table.add_column("Template")
    table.add_column("Type")
    table.add_column("Postage")
    table.add_column("In-home day", justify="right")
    for t in found:
        if property and t.property.lower() != property.lower():
            continue
        table.add_row(t.property, t.category, t.label, t.mail_type, t.postage, str(t.default_in_home_day))
    console.print(table)


# ---------------------------------------------------------------------------
# dropsheet duplicates / export / import / delete
# ---------------------------------------------------------------------------

@app.command()
def duplicates():
    """List jobs that share campaign name, property and in-home date."""
    from dropsheet.engine.jobs import find_duplicates

    settings = get_settings()
    dupes = find_duplicates(MailJob.list_all(settings.data_path))
    if not dupes:
        console.print("No obvious duplicates found based on campaign name, property, and in-home date.")
        return
    console.print(f"[yellow]Found {len(dupes)} potential duplicates:[/yellow]")
    for job in dupes:
        console.print(f"  {job.id}  {job.campaign_name}  {job.property}  {job.in_home_date}")


@app.command()
def export(path: str = typer.Argument("", help="Output file (default: print)")):
    """Export all jobs as a JSON array."""
    from dropsheet.engine.jobs import export_jobs

    settings = get_settings()
    text = export_jobs(MailJob.list_all(settings.data_path))
    if path:
        Path(path).write_text(text)
        console.print(f"[green]Exported to {path}[/green]")
    else:
        console.print_json(text)


@app.command("import")
def import_(path: str = typer.Argument(..., help="JSON file with an array of jobs")):
    """Import jobs from a JSON export."""
    from dropsheet.engine.jobs import InvalidImportError, import_jobs

    settings = get_settings()
    existing = {j.id for j in MailJob.list_all(settings.data_path)}
    try:
        jobs = import_jobs(Path(path).read_text(), existing)
    except (OSError, InvalidImportError) as e:
        console.print(f"[red]Failed to import: {e}[/red]")
        raise typer.Exit(1)
    for job in jobs:
        job.save(settings.data_path)
    console.print(f"[green]Successfully imported {len(jobs)} jobs[/green]")


@app.command()
def delete(job_id: str = typer.Argument(..., help="Job id")):
    """Delete a job."""
    settings = get_settings()
    try:
        MailJob.delete(settings.data_path, job_id)
    except JobNotFoundError:
        console.print(f"[red]No job with id {job_id}.[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted {job_id}[/green]")


if __name__ == "__main__":
    app()
