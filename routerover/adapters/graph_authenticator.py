"""
Microsoft Graph API authentication using MSAL (Device Code Flow).
"""

from __future__ import annotations

import logging
from pathlib import Path

import msal
from rich.console import Console

from ..domain.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

console = Console()


class GraphAuthenticator:
    """
    Obtains delegated Microsoft Graph tokens for the booking calendar.

    Device Code Flow suits a CLI: the user opens a URL in any browser,
    enters the displayed code, and the app receives the token. Tokens are
    cached on disk so later runs authenticate silently.
    """

    # Reading the day's events and creating new ones
    SCOPES = ["Calendars.ReadWrite"]

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        authority_url: str | None = None,
        cache_file: Path | None = None,
    ):
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.authority = authority_url or f"https://login.microsoftonline.com/{tenant_id}"
        self.cache_file = cache_file or Path.home() / ".routerover_token_cache.json"
        self.cache = self._load_cache()

        self.app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
            token_cache=self.cache,
        )

    def _load_cache(self) -> msal.SerializableTokenCache:
        """Load the token cache from disk if it exists."""
        cache = msal.SerializableTokenCache()

        if not self.cache_file.exists():
            return cache

        try:
            with open(self.cache_file, "r", encoding="utf-8") as file_handle:
                cache.deserialize(file_handle.read())
        except (OSError, ValueError) as exc:
            logger.warning("Could not load token cache %s: %s", self.cache_file, exc)

        return cache

    def _save_cache(self) -> None:
        """Write the token cache back to disk when MSAL changed it."""
        if not self.cache.has_state_changed:
            return

        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as file_handle:
                file_handle.write(self.cache.serialize())
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save token cache to %s: %s", self.cache_file, exc)

    def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Get a valid access token, using the cache or signing in again.

        Raises:
            AuthenticationError: If authentication fails
        """
        if not force_refresh:
            accounts = self.app.get_accounts()
            if accounts:
                result = self.app.acquire_token_silent(
                    scopes=self.SCOPES,
                    account=accounts[0],
                )
                if result and "access_token" in result:
                    self._save_cache()
                    return result["access_token"]

        return self._authenticate_device_code_flow()

    def _authenticate_device_code_flow(self) -> str:
        flow = self.app.initiate_device_flow(scopes=self.SCOPES)

        if "user_code" not in flow:
            raise AuthenticationError(
                f"Failed to initiate device flow: {flow.get('error_description', 'Unknown error')}"
            )

        console.print("\n[bold cyan]Microsoft sign-in required[/bold cyan]")
        console.print(f"1. Open [bold cyan]{flow['verification_uri']}[/bold cyan]")
        console.print(f"2. Enter the code [bold yellow]{flow['user_code']}[/bold yellow]")
        console.print("3. Sign in with the account that owns the booking calendar\n")
        console.print("[dim]Waiting for authentication...[/dim]\n")

        result = self.app.acquire_token_by_device_flow(flow)

        if "access_token" not in result:
            error = result.get("error_description", "Unknown error")
            raise AuthenticationError(f"Authentication failed: {error}")

        claims = result.get("id_token_claims", {})
        logger.info("Signed in to Microsoft Graph as %s", claims.get("preferred_username", "unknown"))
        self._save_cache()

        return result["access_token"]

    def clear_cache(self) -> None:
        """Delete the token cache so the next call signs in again."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        self.cache = msal.SerializableTokenCache()
        self.app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
            token_cache=self.cache,
        )
