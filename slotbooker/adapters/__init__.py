"""
Adapters layer - Persistence, the remote booking API and notification output.
"""

from .api_authenticator import ApiAuthenticator
from .api_client import BookingApiClient
from .console_notifier import ConsoleNotifier
from .json_store import JsonReservationStore

__all__ = ["ApiAuthenticator", "BookingApiClient", "ConsoleNotifier", "JsonReservationStore"]
