"""
HTTP client for a remote booking server speaking the JSON envelope API.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from ..domain.exceptions import ApiError
from ..domain.models import DayAvailability, Slot, TimeOfDay, parse_date

logger = logging.getLogger(__name__)


class BookingApiClient:
    """
    Client for the booking server's REST endpoints.

    Every response is an envelope:
    {
        "success": true,
        "data": {...},
        "error": "...",     # only when success is false
        "message": "..."    # optional
    }
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        session: requests.Session | None = None,
        timeout: int = 30
    ):
        """
        Initialize the API client.

        Args:
            base_url: Server root, e.g. ``http://localhost:3000``
            token: Optional bearer token for authenticated endpoints
            session: Optional pre-configured requests session
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Send a request and unwrap the envelope.

        Raises:
            ApiError: If the server is unreachable, answers with a non-JSON
                body or reports ``success: false``
        """
        url = f"{self.base_url}{path}"
        logger.debug("%s %s params=%s", method, url, params)

        try:
            response = self.session.request(
                method,
                url,
                headers=self.headers,
                params=params,
                json=payload,
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise ApiError(f"Request to {url} failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise ApiError(
                f"Invalid response from {url} (HTTP {response.status_code})",
                status_code=response.status_code
            ) from e

        if not isinstance(body, dict):
            raise ApiError(f"Unexpected response shape from {url}", status_code=response.status_code)

        if not response.ok or not body.get("success", False):
            message = body.get("error") or body.get("message") or f"HTTP {response.status_code}"
            raise ApiError(message, status_code=response.status_code)

        return body.get("data")

    def login(self, email: str, password: str) -> str:
        """
        Authenticate and return a bearer token; the client keeps using it.
        """
        data = self._request("POST", "/api/auth/login", payload={"email": email, "password": password})

        token = (data or {}).get("token")
        if not token:
            raise ApiError("Login response did not contain a token")

        self.token = token
        return token

    def get_availability(self, service_id: str, date: str) -> DayAvailability:
        """Fetch the slots of a service for one date."""
        data = self._request("GET", "/api/availability", params={"serviceId": service_id, "date": date})
        return self._parse_availability(data or {}, date)

    def list_services(self) -> List[Dict[str, Any]]:
        data = self._request("GET", "/api/services")
        if isinstance(data, dict):
            return data.get("services", [])
        return data or []

    def create_reservation(
        self,
        service_id: str,
        date: str,
        start_time: str,
        notes: str | None = None
    ) -> Dict[str, Any]:
        """Book a slot; the server runs the same admission check."""
        payload = {"serviceId": service_id, "date": date, "startTime": start_time}
        if notes:
            payload["notes"] = notes
        return self._request("POST", "/api/reservations", payload=payload)

    @staticmethod
    def _parse_availability(data: Dict[str, Any], requested_date: str) -> DayAvailability:
        """
        Parse the availability payload into our domain model.

        Format: {"date": "2024-11-25", "slots": [{"startTime", "endTime", "isAvailable"}]}
        """
        slots: List[Slot] = []
        for item in data.get("slots", []):
            try:
                slots.append(
                    Slot(
                        start=TimeOfDay.parse(item["startTime"]),
                        end=TimeOfDay.parse_end(item["endTime"]),
                        available=bool(item.get("isAvailable", False)),
                    )
                )
            except (KeyError, ValueError) as e:
                logger.warning("Could not parse slot %s: %s", item, e)

        return DayAvailability(date=parse_date(data.get("date") or requested_date), slots=slots)
