"""
Bearer token handling for the remote booking API.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Optional

from ..domain.exceptions import ApiError, AuthenticationError
from .api_client import BookingApiClient

logger = logging.getLogger(__name__)


class ApiAuthenticator:
    """
    Obtains and caches a token for one account on one server.

    The token is kept in a small JSON file readable only by its owner, so
    repeated CLI calls do not ask for the password again.
    """

    def __init__(
        self,
        client: BookingApiClient,
        email: str,
        cache_file: Path | None = None,
        password_prompt: Optional[Callable[[], str]] = None
    ):
        """
        Initialize the authenticator.

        Args:
            client: API client that performs the login call
            email: Account email
            cache_file: Optional path to token cache file
            password_prompt: Called to obtain the password when no token is cached
        """
        self.client = client
        self.email = email
        self.cache_file = cache_file or Path.home() / ".slotbooker_token_cache.json"
        self.password_prompt = password_prompt
        self._cache_key = f"{client.base_url}|{email.lower()}"

    def _load_cache(self) -> dict:
        if not self.cache_file.exists():
            return {}
        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Could not load token cache file %s: %s", self.cache_file, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _save_cache(self, cache: dict) -> None:
        try:
            with open(self.cache_file, "w", encoding="utf-8") as f:
                json.dump(cache, f)
            # Set restrictive permissions (owner only)
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save token cache to %s: %s", self.cache_file, exc)

    def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Get a valid token, using the cache or logging in.

        Args:
            force_refresh: Log in even if a cached token exists

        Returns:
            Bearer token string

        Raises:
            AuthenticationError: If login fails or no password is available
        """
        cache = self._load_cache()

        if not force_refresh:
            token = cache.get(self._cache_key)
            if token:
                self.client.token = token
                return token

        if self.password_prompt is None:
            raise AuthenticationError(f"No cached token for {self.email} and no password available")

        try:
            token = self.client.login(self.email, self.password_prompt())
        except ApiError as exc:
            raise AuthenticationError(f"Authentication failed: {exc}") from exc

        cache[self._cache_key] = token
        self._save_cache(cache)
        logger.info("Authenticated %s against %s", self.email, self.client.base_url)

        return token

    def clear_cache(self) -> None:
        """Clear the token cache (force re-authentication next time)."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        self.client.token = None
