"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.google_calendar import GoogleCalendarClient
from ..adapters.memory_store import JsonFileRecordStore
from ..adapters.mock_calendar import MockCalendarClient
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import SchedulingError
from ..domain.models import CustomerRef
from ..services.calendar import BusyTimeFetcher
from ..services.notifications import InMemoryNotificationQueue, log_notification
from ..services.rate_limit import InMemoryRateLimiter
from ..services.scheduler import AvailabilityQuery, BookingList, BookingResult, Scheduler

app = typer.Typer(
    name="widgetscheduler",
    help="Compute widget availability and commit bookings",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Use mock calendar data instead of Google Calendar."),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s - %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    return AppConfig.load_from_yaml(config_path)


def _build_scheduler(
    config: AppConfig,
    mock: bool,
    notifications: Optional[InMemoryNotificationQueue] = None,
) -> Scheduler:
    """Wire store, calendar client and limiter from configuration."""
    calendar_settings = config.calendar

    if mock or calendar_settings.provider == "mock":
        client = MockCalendarClient(data_file=calendar_settings.mock_data_file)
    else:
        token = calendar_settings.resolve_access_token()
        if not token:
            raise typer.BadParameter(
                f"No calendar access token configured (set calendar.access_token "
                f"or {calendar_settings.access_token_env})"
            )
        client = GoogleCalendarClient(
            access_token=token,
            timeout_seconds=calendar_settings.fetch_timeout_seconds,
        )

    rate_limiter = None
    if config.rate_limit.enabled:
        rate_limiter = InMemoryRateLimiter(
            max_requests=config.rate_limit.max_requests,
            window_seconds=config.rate_limit.window_seconds,
        )

    return Scheduler(
        store=JsonFileRecordStore.from_config(config),
        busy_fetcher=BusyTimeFetcher(client, timeout_seconds=calendar_settings.fetch_timeout_seconds),
        event_creator=client,
        notifications=notifications,
        rate_limiter=rate_limiter,
    )


def _print_booking(result: BookingResult, title: str) -> None:
    console.print(f"\n[bold green]✓ {title}[/bold green]")
    console.print(f"   Booking-ID: [bold]{result.booking_id}[/bold]")
    console.print(f"   Status: {result.status}")
    for key, value in result.data.items():
        if value is not None:
            console.print(f"   {key}: {value}")
    for warning in result.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")


def _deliver_notifications(queue: InMemoryNotificationQueue) -> None:
    """Flush the booking's queued notifications before the process exits."""
    report = queue.drain(log_notification)
    if report.delivered:
        console.print(f"   Notifications sent: {len(report.delivered)}")
    if report.failed:
        console.print(f"[yellow]⚠ Notifications failed: {len(report.failed)}[/yellow]")
    console.print()


def _fail(error: Exception) -> None:
    if isinstance(error, SchedulingError):
        console.print(f"[bold red]Error ({error.code}):[/bold red] {error}")
    else:
        console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


@app.command()
def availability(
    widget_id: Annotated[str, typer.Argument(help="Widget id")],
    date: Annotated[str, typer.Argument(help="Day to check (YYYY-MM-DD)")],
    inventory_type: Annotated[Optional[str], typer.Option("--inventory-type", help="Also check inventory of this type")] = None,
    quantity: Annotated[int, typer.Option("--quantity", "-q", help="Inventory quantity needed")] = 1,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Show the slots of one day for a widget.

    Examples:

        widgetscheduler availability demo-widget 2025-03-10

        widgetscheduler availability demo-widget 2025-03-10 --inventory-type bin -q 2 --mock
    """
    configure_logging(verbose)
    try:
        config = _load_config(config_file)
        scheduler = _build_scheduler(config, mock)
        result = asyncio.run(
            scheduler.get_availability(
                AvailabilityQuery(
                    widget_id=widget_id,
                    date=date,
                    inventory_type=inventory_type,
                    quantity=quantity,
                )
            )
        )
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    console.print()
    if result.reason:
        console.print(f"[yellow]⚠ {result.reason}[/yellow]\n")
        return

    hours = result.business_hours.to_dict() if result.business_hours else {}
    table = Table(
        title=f"Slots {result.date} ({hours.get('start')} - {hours.get('end')}, {result.scheduling['timezone']})",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Time", style="bold")
    table.add_column("Available")
    table.add_column("Reason", style="dim")

    for slot in result.slots:
        table.add_row(
            slot.display_time,
            "[green]yes[/green]" if slot.available else "[red]no[/red]",
            slot.reason.value if slot.reason else "",
        )

    console.print(table)
    if result.inventory_available is not None:
        console.print(f"Inventory available: [bold]{result.inventory_available}[/bold]")
    for warning in result.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")
    console.print()


@app.command()
def book(
    widget_id: Annotated[str, typer.Argument(help="Widget id")],
    when: Annotated[str, typer.Argument(help="Appointment start, e.g. 2025-03-10T10:15")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Duration in minutes")] = None,
    email: Annotated[Optional[str], typer.Option("--email", help="Customer email")] = None,
    name: Annotated[Optional[str], typer.Option("--name", help="Customer name")] = None,
    service: Annotated[Optional[str], typer.Option("--service", help="Service type")] = None,
    item: Annotated[Optional[str], typer.Option("--item", help="Inventory item to reserve for the day")] = None,
    quantity: Annotated[int, typer.Option("--quantity", "-q", help="Inventory quantity")] = 1,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Book an appointment slot.
    """
    configure_logging(verbose)
    try:
        config = _load_config(config_file)
        queue = InMemoryNotificationQueue()
        scheduler = _build_scheduler(config, mock, queue)
        result = asyncio.run(
            scheduler.book_appointment(
                widget_id,
                when,
                duration_minutes=duration,
                customer=CustomerRef(email=email, name=name),
                service_type=service,
                inventory_item_id=item,
                quantity=quantity,
            )
        )
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    _print_booking(result, "Appointment booked")
    _deliver_notifications(queue)


@app.command()
def reserve(
    widget_id: Annotated[str, typer.Argument(help="Widget id")],
    item_id: Annotated[str, typer.Argument(help="Inventory item id")],
    start: Annotated[str, typer.Argument(help="First day (YYYY-MM-DD)")],
    end: Annotated[Optional[str], typer.Argument(help="Last day for multi-day rentals")] = None,
    quantity: Annotated[int, typer.Option("--quantity", "-q", help="Units to reserve")] = 1,
    email: Annotated[Optional[str], typer.Option("--email", help="Customer email")] = None,
    name: Annotated[Optional[str], typer.Option("--name", help="Customer name")] = None,
    service: Annotated[Optional[str], typer.Option("--service", help="Service type")] = None,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Reserve inventory for one or more days.
    """
    configure_logging(verbose)
    try:
        config = _load_config(config_file)
        queue = InMemoryNotificationQueue()
        scheduler = _build_scheduler(config, mock=True, notifications=queue)
        result = asyncio.run(
            scheduler.book_inventory(
                widget_id,
                item_id,
                start,
                end,
                quantity=quantity,
                customer=CustomerRef(email=email, name=name),
                service_type=service,
            )
        )
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    _print_booking(result, "Inventory reserved")
    _deliver_notifications(queue)


@app.command()
def inventory(
    widget_id: Annotated[str, typer.Argument(help="Widget id")],
    date: Annotated[str, typer.Argument(help="Day to check (YYYY-MM-DD)")],
    item_type: Annotated[Optional[str], typer.Option("--type", help="Only items of this type")] = None,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Show remaining inventory for a day.
    """
    configure_logging(verbose)
    try:
        config = _load_config(config_file)
        scheduler = _build_scheduler(config, mock=True)
        rows = asyncio.run(scheduler.inventory_status(widget_id, date, item_type))
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    if not rows:
        console.print("[yellow]No active inventory items for this widget's business.[/yellow]")
        return

    table = Table(title=f"Inventory {date}", show_header=True, header_style="bold cyan")
    table.add_column("Item", style="bold yellow")
    table.add_column("Type", style="dim")
    table.add_column("Total", justify="right")
    table.add_column("Remaining", justify="right")

    for row in rows:
        table.add_row(row["name"] or row["id"], row["type"], str(row["total"]), str(row["remaining"]))

    console.print()
    console.print(table)
    console.print()


@app.command()
def bookings(
    widget_id: Annotated[str, typer.Argument(help="Widget id")],
    date: Annotated[Optional[str], typer.Argument(help="Only this day (YYYY-MM-DD)")] = None,
    all_widgets: Annotated[bool, typer.Option("--all-widgets", help="Include the business's other widgets")] = False,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    List appointments and active rentals.

    Examples:

        widgetscheduler bookings demo-widget

        widgetscheduler bookings demo-widget 2025-03-10 --all-widgets
    """
    configure_logging(verbose)
    try:
        config = _load_config(config_file)
        scheduler = _build_scheduler(config, mock=True)
        appointments = asyncio.run(scheduler.list_bookings(widget_id, date, business_wide=all_widgets))
        rentals = asyncio.run(scheduler.list_inventory_bookings(widget_id, date, business_wide=all_widgets))
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    console.print()
    _print_appointments(appointments)
    _print_rentals(rentals)


def _print_appointments(listing: BookingList) -> None:
    if not listing.bookings:
        console.print("[yellow]No appointments.[/yellow]\n")
        return

    table = Table(title="Appointments", show_header=True, header_style="bold cyan")
    table.add_column("Start", style="bold")
    table.add_column("Duration", justify="right")
    table.add_column("Status")
    table.add_column("Service", style="dim")
    table.add_column("Customer")
    table.add_column("Booking-ID", style="dim")

    for booking in listing.bookings:
        table.add_row(
            booking.start.format("YYYY-MM-DD HH:mm"),
            f"{booking.duration_minutes} min",
            booking.status.value,
            booking.service_type or "",
            booking.customer.name or booking.customer.email or "",
            booking.id[:8],
        )

    console.print(table)
    console.print()


def _print_rentals(listing: BookingList) -> None:
    if not listing.bookings:
        console.print("[yellow]No active rentals.[/yellow]\n")
        return

    table = Table(title="Rentals", show_header=True, header_style="bold cyan")
    table.add_column("Item", style="bold yellow")
    table.add_column("Days")
    table.add_column("Quantity", justify="right")
    table.add_column("Customer")
    table.add_column("Booking-ID", style="dim")

    for booking in listing.bookings:
        table.add_row(
            booking.inventory_item_id,
            str(booking.date_range),
            str(booking.quantity),
            booking.customer.name or booking.customer.email or "",
            booking.id[:8],
        )

    console.print(table)
    console.print()


@app.command()
def list_widgets(config_file: ConfigOption = None):
    """
    List all configured widgets.
    """
    try:
        config = _load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        _fail(e)

    if not config.widgets:
        console.print("[yellow]No widgets defined in the config file.[/yellow]")
        return

    table = Table(
        title="Configured widgets",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Widget", style="bold yellow")
    table.add_column("Business", style="dim")
    table.add_column("Duration / Buffer")
    table.add_column("Timezone")
    table.add_column("Calendars")

    for widget in config.widgets:
        scheduling = widget.scheduling
        table.add_row(
            widget.id,
            widget.business_id,
            f"{scheduling.duration} / {scheduling.buffer} min",
            scheduling.timezone,
            ", ".join(scheduling.google_calendars) or "-",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]widgetscheduler[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
