"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from pendulum import Date
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.graph_authenticator import GraphAuthenticator
from ..adapters.graph_client import GraphCalendarClient
from ..adapters.intent_extractor import build_intent_extractor
from ..adapters.mock_calendar_client import MockCalendarClient
from ..adapters.route_estimator import BufferedRouteEstimator
from ..adapters.travel_time import (
    DistanceMatrixTravelTime,
    FixedTravelTime,
    StraightLineTravelTime,
    TravelTimeSource,
)
from ..config import AppConfig, RouteConfig, load_config
from ..domain.exceptions import SchedulingError
from ..domain.intervals import total_minutes
from ..domain.models import BookingRequest, TimePreference, default_preference
from ..domain.outcomes import Booked, NoSlotAvailable, SchedulingOutcome
from ..services.booking_service import BookingService, CalendarClientProtocol

app = typer.Typer(
    name="routerover",
    help="Book home service appointments around the technician's calendar and route",
    add_completion=False,
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Use the bundled sample calendar and skip authentication."),
]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load(config_file: Optional[Path]) -> AppConfig:
    config = load_config(config_file)
    _configure_logging(config.log_level)
    return config


def _fail(error: Exception) -> typer.Exit:
    console.print(f"[bold red]Error:[/bold red] {error}")
    return typer.Exit(1)


def _parse_day(value: str, timezone: str) -> Date:
    try:
        return pendulum.from_format(value.strip(), "YYYY-MM-DD", tz=timezone).date()
    except ValueError as exc:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


def _authenticator(config: AppConfig) -> GraphAuthenticator:
    if config.graph is None:
        raise ValueError(
            "The 'graph' section (client_id, tenant_id) is required for the live calendar. "
            "Use --mock to try the sample calendar."
        )
    return GraphAuthenticator(
        client_id=config.graph.client_id,
        tenant_id=config.graph.tenant_id,
        authority_url=config.graph.get_authority_url(),
    )


def _build_calendar(config: AppConfig, mock: bool) -> CalendarClientProtocol:
    if mock:
        console.print("[yellow]⚠  MOCK MODE: using the sample calendar[/yellow]")
        return MockCalendarClient(timezone=config.timezone)

    access_token = _authenticator(config).get_access_token()
    return GraphCalendarClient(access_token=access_token, timezone=config.timezone)


def _build_travel_source(route: RouteConfig) -> TravelTimeSource:
    fixed = FixedTravelTime(minutes=route.fixed_travel_minutes)
    if route.maps_api_key:
        return DistanceMatrixTravelTime(api_key=route.maps_api_key)
    if route.locations:
        return StraightLineTravelTime(
            locations=route.locations,
            average_speed_kmh=route.average_speed_kmh,
            fallback=fixed,
        )
    return fixed


def _build_service(config: AppConfig, mock: bool) -> BookingService:
    """Wire the calendar, route estimator and business hours into a booking service."""
    business_hours = config.get_business_hours()
    estimator = BufferedRouteEstimator(
        business_hours=business_hours,
        travel_source=_build_travel_source(config.route),
        office_location=config.route.office_location,
        buffer_minutes=config.route.travel_buffer_minutes,
        max_alternatives=config.route.max_alternatives,
    )
    return BookingService(
        calendar_client=_build_calendar(config, mock),
        route_estimator=estimator,
        business_hours=business_hours,
        service_durations=config.service_durations,
    )


def _print_outcome(outcome: SchedulingOutcome) -> bool:
    """Render a booking outcome; returns False when the attempt was rejected."""
    if isinstance(outcome, Booked):
        appointment = outcome.appointment
        console.print(Panel.fit(
            f"[bold green]✓ Appointment booked[/bold green]\n\n"
            f"[bold]When:[/bold] {appointment.time_range}\n"
            f"[bold]What:[/bold] {appointment.summary}\n"
            f"[bold]Where:[/bold] {appointment.location}\n"
            f"[bold]Reference:[/bold] {appointment.id}",
            title="Booking",
        ))
        if outcome.route_degraded:
            console.print("[yellow]Travel time could not be checked for this booking.[/yellow]")
        return True

    if isinstance(outcome, NoSlotAvailable):
        console.print("[yellow]⚠ No slot matches the requested times.[/yellow]")
        if outcome.alternatives:
            console.print("Times we could offer instead:")
            for alternative in outcome.alternatives:
                console.print(f"  • {alternative}")
        return True

    hint = " Please try again." if outcome.retryable else ""
    console.print(
        f"[bold red]✗ Booking failed during {outcome.stage.value}:[/bold red] "
        f"{outcome.message}.{hint}"
    )
    return False


@app.command()
def availability(
    date: Annotated[str, typer.Argument(help="Day to check (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Show the free intervals of a day within business hours.

    Examples:

        routerover availability 2025-06-02 --mock
    """
    try:
        config = _load(config_file)
        day = _parse_day(date, config.timezone)
        service = _build_service(config, mock)
        free = service.list_availability(day)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        raise _fail(e)

    if not free:
        console.print(f"[yellow]⚠ No free time on {day.isoformat()}.[/yellow]")
        return

    console.print(
        f"[bold green]✓ {len(free)} free interval(s) on {day.isoformat()}, "
        f"{total_minutes(free)} min in total:[/bold green]\n"
    )
    for interval in free:
        console.print(
            f"  {interval.start.format('HH:mm')} - {interval.end.format('HH:mm')}"
            f"  ({interval.duration_minutes()} min)"
        )


@app.command()
def appointments(
    date: Annotated[str, typer.Argument(help="Day to list (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    List the appointments already in the calendar for a day.
    """
    try:
        config = _load(config_file)
        day = _parse_day(date, config.timezone)
        booked = _build_service(config, mock).list_booked(day)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        raise _fail(e)

    if not booked:
        console.print(f"[yellow]No appointments on {day.isoformat()}.[/yellow]")
        return

    table = Table(title=f"Appointments on {day.isoformat()}", show_header=True, header_style="bold cyan")
    table.add_column("Time", style="bold yellow")
    table.add_column("Summary")
    table.add_column("Location", style="dim")
    table.add_column("Status")

    for appointment in booked:
        table.add_row(
            f"{appointment.time_range.start.format('HH:mm')} - {appointment.time_range.end.format('HH:mm')}",
            appointment.summary,
            appointment.location,
            appointment.status.value,
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def book(
    name: Annotated[str, typer.Option("--name", "-n", help="Customer name")],
    address: Annotated[str, typer.Option("--address", "-a", help="Service address")],
    service_name: Annotated[str, typer.Option("--service", "-s", help="cleaning, repair, plumbing, electrical or landscaping")],
    date: Annotated[Optional[str], typer.Option("--date", help="Preferred date (YYYY-MM-DD)")] = None,
    time: Annotated[Optional[str], typer.Option("--time", help="Preferred start time (HH:mm)")] = None,
    alt_date: Annotated[Optional[List[str]], typer.Option("--alt-date", help="Alternative date, repeatable")] = None,
    alt_time: Annotated[Optional[List[str]], typer.Option("--alt-time", help="Alternative time, repeatable")] = None,
    notes: Annotated[str, typer.Option("--notes", help="Notes for the technician")] = "",
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Book an appointment at the first preferred time that fits.

    Examples:

        routerover book -n "Jane Doe" -a "42 Elm Street" -s cleaning --date 2025-06-02 --time 13:00 --mock

        routerover book -n "Jane Doe" -a "42 Elm Street" -s repair \\
            --date 2025-06-03 --time 10:00 --alt-date 2025-06-03 --alt-time 15:00
    """
    try:
        config = _load(config_file)
        preferences = _collect_preferences(config, date, time, alt_date or [], alt_time or [])
        request = BookingRequest(
            customer_name=name,
            address=address,
            service=service_name,
            preferences=preferences,
            notes=notes,
        )
        outcome = _build_service(config, mock).attempt_booking(request)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        raise _fail(e)

    if not _print_outcome(outcome):
        raise typer.Exit(1)


def _collect_preferences(
    config: AppConfig,
    date: Optional[str],
    time: Optional[str],
    alt_dates: List[str],
    alt_times: List[str],
) -> List[TimePreference]:
    """
    Pair dates and times into ranked preferences.

    A missing time defaults to the opening hour; no date at all means
    tomorrow at 09:00.
    """
    if date is None and not alt_dates:
        return [default_preference(pendulum.now(config.timezone))]

    opening = f"{config.business_hours.start_hour:02d}:00"
    preferences = []
    if date is not None:
        preferences.append(TimePreference.parse(date, time or opening))

    for index, alt in enumerate(alt_dates):
        alt_clock = alt_times[index] if index < len(alt_times) else opening
        preferences.append(TimePreference.parse(alt, alt_clock))
    return preferences


@app.command()
def chat(
    message: Annotated[str, typer.Argument(help="What the customer wrote")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Answer a customer message and book when it contains a complete request.

    Examples:

        routerover chat "Hi, I'm Jane Doe at 42 Elm Street, I need cleaning on 2025-06-02 at 1pm" --mock
    """
    try:
        config = _load(config_file)
        extractor = build_intent_extractor(config.intent, config.timezone)
        result = extractor.extract(message)

        console.print(f"[bold cyan]RouteRover AI:[/bold cyan] {result.response}")
        if not result.wants_booking:
            return

        outcome = _build_service(config, mock).attempt_booking(result.booking)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        raise _fail(e)

    if not _print_outcome(outcome):
        raise typer.Exit(1)


@app.command()
def test_auth(
    config_file: ConfigOption = None,
    force: Annotated[bool, typer.Option("--force", help="Force re-authentication")] = False,
):
    """
    Test Microsoft Graph authentication.
    """
    try:
        config = _load(config_file)

        console.print("\n[bold]Testing Microsoft Graph authentication...[/bold]\n")
        access_token = _authenticator(config).get_access_token(force_refresh=force)
        user_info = GraphCalendarClient(access_token=access_token, timezone=config.timezone).test_connection()
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        raise _fail(e)

    console.print(Panel.fit(
        f"[bold green]✓ Authentication successful![/bold green]\n\n"
        f"[bold]User:[/bold] {user_info.get('displayName', 'N/A')}\n"
        f"[bold]E-Mail:[/bold] {user_info.get('mail') or user_info.get('userPrincipalName', 'N/A')}",
        title="✓ Connection test",
    ))
    console.print()


@app.command()
def clear_cache(config_file: ConfigOption = None):
    """
    Clear the authentication token cache.
    """
    try:
        config = _load(config_file)
        _authenticator(config).clear_cache()
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        raise _fail(e)

    console.print("\n[green]✓ Token cache cleared.[/green]")
    console.print("You will need to sign in again on the next call.\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]routerover[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
