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

from ..adapters.api_authenticator import ApiAuthenticator
from ..adapters.api_client import BookingApiClient
from ..adapters.console_notifier import ConsoleNotifier
from ..adapters.json_store import JsonReservationStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import (
    AlreadyExistsError,
    ApiError,
    AuthenticationError,
    BookingError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    ReservationRejected,
    ScheduleConflictError,
    ServiceInUseError,
    StorageError,
)
from ..domain.models import DayAvailability, ReservationStatus, User, parse_date
from ..services.booking import BookingService
from ..services.reminders import ReminderService

app = typer.Typer(
    name="slotbooker",
    help="Browse service availability and manage reservations",
    add_completion=False
)

console = Console()

WEEKDAYS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
DataOption = Annotated[Optional[Path], typer.Option("--data", help="Path to the reservations JSON file")]
UserOption = Annotated[str, typer.Option("--user", "-u", help="ID of the acting user")]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
):
    """
    slotbooker - find free slots and book them without double-booking.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> tuple[AppConfig, Optional[Path]]:
    """Explicit config paths must exist; the default one is optional."""
    if config_file is not None:
        return AppConfig.load_from_yaml(config_file), config_file.parent

    default_path = get_default_config_path()
    config = AppConfig.load_or_default(default_path)
    return config, default_path.parent if default_path.exists() else None


def _open_store(config: AppConfig, base_dir: Optional[Path], data_file: Optional[Path]) -> JsonReservationStore:
    return JsonReservationStore(data_file or config.resolve_data_file(base_dir))


def _build_booking_service(store: JsonReservationStore) -> BookingService:
    # Request counters would not outlive a single command, so no rate limiter here
    return BookingService(store=store, notifier=ConsoleNotifier(console))


async def _require_user(store: JsonReservationStore, user_id: str) -> User:
    user = await store.get_user(user_id)
    if user is None:
        raise NotFoundError(f"Unknown user: {user_id}")
    return user


def _fail(exc: Exception) -> None:
    """Print an error and exit; business rejections exit 1, bad input exits 2."""
    if isinstance(exc, ReservationRejected):
        console.print(f"[yellow]⚠ {exc}[/yellow]")
        if exc.conflicting is not None:
            console.print(f"  Conflicts with {exc.conflicting}")
        raise typer.Exit(1)

    if isinstance(exc, (
        NotFoundError,
        PermissionDeniedError,
        ScheduleConflictError,
        AlreadyExistsError,
        ServiceInUseError,
        ApiError,
        AuthenticationError,
    )):
        console.print(f"[yellow]⚠ {exc}[/yellow]")
        raise typer.Exit(1)

    console.print(f"[bold red]Error:[/bold red] {exc}")
    raise typer.Exit(2)


def _print_availability(availability: DayAvailability, service_name: str, only_free: bool) -> None:
    slots = availability.available_slots if only_free else availability.slots

    if not slots:
        console.print(
            f"[yellow]⚠ No slots for {service_name} on {availability.date.isoformat()}.[/yellow]"
        )
        return

    table = Table(
        title=f"{service_name} - {availability.date.isoformat()}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Start", style="bold")
    table.add_column("End")
    table.add_column("Available")

    for slot in slots:
        table.add_row(
            str(slot.start),
            str(slot.end),
            "[green]yes[/green]" if slot.available else "[red]no[/red]"
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def init(
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing data file")] = False,
):
    """
    Write the demo catalog to the data file.
    """
    try:
        config, base_dir = _load_config(config_file)
        path = data_file or config.resolve_data_file(base_dir)

        if path.exists() and not force:
            console.print(f"[yellow]{path} already exists. Use --force to overwrite.[/yellow]")
            raise typer.Exit(1)

        store = JsonReservationStore.from_sample_data(path)
        console.print(f"[green]✓ Wrote {len(store.services)} services to {path}[/green]")

    except (FileNotFoundError, ValueError, StorageError) as e:
        _fail(e)


@app.command()
def services(
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    List the service catalog.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        catalog = asyncio.run(store.list_services())

        if not catalog:
            console.print("[yellow]No services defined. Run 'slotbooker init' for demo data.[/yellow]")
            return

        table = Table(title="Services", show_header=True, header_style="bold cyan")
        table.add_column("ID", style="bold yellow")
        table.add_column("Name")
        table.add_column("Duration", justify="right")
        table.add_column("Price", justify="right")
        table.add_column("Active")

        for service in catalog:
            table.add_row(
                service.id,
                service.name,
                f"{service.duration_minutes} min",
                f"{service.price:.2f}",
                "yes" if service.is_active else "[dim]no[/dim]"
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def availability(
    service_id: Annotated[str, typer.Argument(help="Service ID")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    only_free: Annotated[bool, typer.Option("--free", help="Only show available slots")] = False,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Show the candidate slots of a service on a date.

    Examples:
        slotbooker availability consulta 2024-11-25
        slotbooker availability corte 2024-11-26 --free
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        service = _build_booking_service(store)

        result = asyncio.run(service.get_day_availability(service_id, date))
        _print_availability(result, store.services[service_id].name, only_free)

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def book(
    service_id: Annotated[str, typer.Argument(help="Service ID")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start_time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    user_id: UserOption,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Note for the provider")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Book a service at a start time.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        service = _build_booking_service(store)

        async def _book():
            await _require_user(store, user_id)
            return await service.create_reservation(
                user_id=user_id,
                service_id=service_id,
                date=date,
                start_time=start_time,
                notes=notes,
            )

        reservation = asyncio.run(_book())
        console.print(
            f"[bold green]✓ Reservation created:[/bold green] {reservation.id}\n"
            f"  {reservation.format_display()}  ({reservation.total_price:.2f})"
        )

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def reservations(
    user_id: UserOption,
    status: Annotated[Optional[ReservationStatus], typer.Option("--status", help="Filter by status")] = None,
    service_id: Annotated[Optional[str], typer.Option("--service", help="Filter by service ID")] = None,
    date_from: Annotated[Optional[str], typer.Option("--from", help="Earliest date (YYYY-MM-DD)")] = None,
    date_to: Annotated[Optional[str], typer.Option("--to", help="Latest date (YYYY-MM-DD)")] = None,
    page: Annotated[int, typer.Option("--page", help="Page number")] = 1,
    limit: Annotated[Optional[int], typer.Option("--limit", help="Page size")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    List the reservations visible to a user.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        service = _build_booking_service(store)

        async def _list():
            actor = await _require_user(store, user_id)
            return await service.list_reservations(
                actor,
                status=status,
                service_id=service_id,
                date_from=date_from,
                date_to=date_to,
                page=page,
                limit=limit or config.defaults.page_size,
            )

        result = asyncio.run(_list())

        if not result.items:
            console.print("[yellow]No reservations found.[/yellow]")
            return

        table = Table(
            title=f"Reservations (page {result.page}/{result.total_pages}, {result.total} total)",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("ID", style="dim")
        table.add_column("Service")
        table.add_column("Date")
        table.add_column("Time")
        table.add_column("Status")

        for reservation in result.items:
            table.add_row(
                reservation.id,
                reservation.service_id,
                reservation.date.isoformat(),
                f"{reservation.start}-{reservation.end}",
                reservation.status.value
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command("set-status")
def set_status(
    reservation_id: Annotated[str, typer.Argument(help="Reservation ID")],
    status: Annotated[ReservationStatus, typer.Argument(help="New status")],
    user_id: UserOption,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Confirm, cancel or close a reservation.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        service = _build_booking_service(store)

        async def _update():
            actor = await _require_user(store, user_id)
            return await service.update_reservation(actor, reservation_id, status=status)

        reservation = asyncio.run(_update())
        console.print(f"[green]✓ {reservation.id}: {reservation.format_display()}[/green]")

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command("add-schedule")
def add_schedule(
    service_id: Annotated[str, typer.Argument(help="Service ID")],
    day: Annotated[int, typer.Argument(help="Weekday, 0=Sunday ... 6=Saturday")],
    start_time: Annotated[str, typer.Argument(help="Opening time (HH:MM)")],
    end_time: Annotated[str, typer.Argument(help="Closing time (HH:MM)")],
    user_id: UserOption,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Add a weekly opening window to a service.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        service = _build_booking_service(store)

        async def _add():
            actor = await _require_user(store, user_id)
            return await service.add_schedule(
                actor,
                service_id=service_id,
                day_of_week=day,
                start_time=start_time,
                end_time=end_time,
            )

        window = asyncio.run(_add())
        console.print(
            f"[green]✓ {service_id} now open {WEEKDAYS[window.day_of_week]} {window.start}-{window.end}[/green]"
        )

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def show(
    reservation_id: Annotated[str, typer.Argument(help="Reservation ID")],
    user_id: UserOption,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Show one reservation.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        service = _build_booking_service(store)

        async def _get():
            actor = await _require_user(store, user_id)
            return await service.get_reservation(actor, reservation_id)

        reservation = asyncio.run(_get())
        console.print(f"[bold]{reservation.id}[/bold]  {reservation.format_display()}")
        console.print(f"  Service: {reservation.service_id}  User: {reservation.user_id}")
        console.print(f"  Price: {reservation.total_price:.2f}")
        if reservation.notes:
            console.print(f"  Notes: {reservation.notes}")

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command("delete-reservation")
def delete_reservation(
    reservation_id: Annotated[str, typer.Argument(help="Reservation ID")],
    user_id: UserOption,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Delete a reservation (admins only).
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        service = _build_booking_service(store)

        async def _delete():
            actor = await _require_user(store, user_id)
            await service.delete_reservation(actor, reservation_id)

        asyncio.run(_delete())
        console.print(f"[green]✓ Deleted reservation {reservation_id}[/green]")

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command("update-service")
def update_service(
    service_id: Annotated[str, typer.Argument(help="Service ID")],
    user_id: UserOption,
    name: Annotated[Optional[str], typer.Option("--name", help="New name")] = None,
    description: Annotated[Optional[str], typer.Option("--description", help="New description")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", help="New duration in minutes")] = None,
    price: Annotated[Optional[float], typer.Option("--price", help="New price")] = None,
    active: Annotated[Optional[bool], typer.Option("--active/--inactive", help="Offer or withdraw the service")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Change a service's details or take it off the catalog.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        service = _build_booking_service(store)

        async def _update():
            actor = await _require_user(store, user_id)
            return await service.update_service(
                actor,
                service_id,
                name=name,
                description=description,
                duration_minutes=duration,
                price=price,
                is_active=active,
            )

        updated = asyncio.run(_update())
        state = "active" if updated.is_active else "inactive"
        console.print(
            f"[green]✓ {updated.id}: {updated.name}, {updated.duration_minutes} min, "
            f"{updated.price:.2f} ({state})[/green]"
        )

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command("delete-service")
def delete_service(
    service_id: Annotated[str, typer.Argument(help="Service ID")],
    user_id: UserOption,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Delete a service and its schedules; refused while it has active reservations.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        service = _build_booking_service(store)

        async def _delete():
            actor = await _require_user(store, user_id)
            await service.delete_service(actor, service_id)

        asyncio.run(_delete())
        console.print(f"[green]✓ Deleted service {service_id}[/green]")

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def schedules(
    service_id: Annotated[Optional[str], typer.Option("--service", help="Only this service")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    List the weekly opening windows.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        service = _build_booking_service(store)

        windows = asyncio.run(service.list_schedules(service_id))

        if not windows:
            console.print("[yellow]No schedules defined.[/yellow]")
            return

        table = Table(title="Schedules", show_header=True, header_style="bold cyan")
        table.add_column("Service", style="bold yellow")
        table.add_column("Day")
        table.add_column("Opens")
        table.add_column("Closes")
        table.add_column("Active")

        for window in windows:
            table.add_row(
                window.service_id,
                WEEKDAYS[window.day_of_week],
                str(window.start),
                str(window.end),
                "yes" if window.is_active else "[dim]no[/dim]"
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def register(
    name: Annotated[str, typer.Argument(help="Full name")],
    email: Annotated[str, typer.Argument(help="Email address")],
    phone: Annotated[Optional[str], typer.Option("--phone", help="Contact phone")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Add a client account.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        service = _build_booking_service(store)

        user = asyncio.run(service.register_user(name=name, email=email, phone=phone))
        console.print(f"[green]✓ Registered {user.name} <{user.email}> as {user.id}[/green]")

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def reminders(
    date: Annotated[Optional[str], typer.Option("--date", help="Treat this date as today (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Send tomorrow's reminders to customers and pending confirmations to providers.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        jobs = ReminderService(store, ConsoleNotifier(console), timezone=config.timezone)
        today = parse_date(date) if date else None

        async def _run():
            customers = await jobs.send_daily_reminders(today)
            providers = await jobs.send_confirmation_reminders(today)
            return customers, providers

        customers, providers = asyncio.run(_run())
        console.print(
            f"\n[green]✓ {len(customers)} reminder(s), "
            f"{len(providers)} confirmation request(s) sent[/green]"
        )

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def sweep(
    date: Annotated[Optional[str], typer.Option("--date", help="Treat this date as today (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Mark past confirmed reservations as no-shows and cancel stale pending ones.
    """
    try:
        config, base_dir = _load_config(config_file)
        store = _open_store(config, base_dir, data_file)
        jobs = ReminderService(store, ConsoleNotifier(console), timezone=config.timezone)
        today = parse_date(date) if date else None

        result = asyncio.run(jobs.sweep_past_reservations(today))
        console.print(
            f"[green]✓ {result.no_show} marked NO_SHOW, {result.cancelled} cancelled[/green]"
        )

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command("remote-availability")
def remote_availability(
    service_id: Annotated[str, typer.Argument(help="Service ID on the server")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    only_free: Annotated[bool, typer.Option("--free", help="Only show available slots")] = False,
    login: Annotated[bool, typer.Option("--login", help="Authenticate with the configured account first")] = False,
    config_file: ConfigOption = None,
):
    """
    Show availability from a remote booking server.
    """
    try:
        config, _ = _load_config(config_file)
        client = BookingApiClient(config.api.base_url, timeout=config.api.timeout_seconds)

        if login:
            if not config.api.email:
                raise InvalidInputError("api.email is not configured")
            authenticator = ApiAuthenticator(
                client,
                email=config.api.email,
                cache_file=config.api.get_token_cache_file(),
                password_prompt=lambda: typer.prompt("Password", hide_input=True),
            )
            authenticator.get_access_token()

        result = client.get_availability(service_id, parse_date(date).isoformat())
        _print_availability(result, service_id, only_free)

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotbooker[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
