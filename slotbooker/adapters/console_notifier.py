"""
Notification sink that renders events to the terminal.
"""

import logging

from pendulum import Date
from rich.console import Console

from ..domain.models import Notification

logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """
    Prints notifications and availability changes with Rich.

    Email and push delivery live outside this application; this sink is what
    the CLI wires in so users still see what would have been sent.
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def notify(self, notification: Notification) -> None:
        logger.info(
            "Notification %s for user %s (reservation %s)",
            notification.type.value, notification.user_id, notification.reservation_id
        )
        self.console.print(
            f"[bold cyan]✉ {notification.title}[/bold cyan] "
            f"[dim]→ {notification.user_id}[/dim]\n  {notification.message}"
        )

    def availability_changed(self, service_id: str, date: Date) -> None:
        logger.debug("Availability changed for %s on %s", service_id, date.isoformat())
