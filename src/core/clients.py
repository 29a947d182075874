import threading
from typing import Any

import httpx
from fastapi import status
from loguru import logger

from src.config.settings import settings
from src.domain.accounts.exceptions import ConfigurationError, ProvisioningError


class HTTPClientManager:
    """Process-wide pool of AsyncClients, one per base URL."""

    _clients: dict[str, httpx.AsyncClient] = {}
    _lock = threading.Lock()

    @classmethod
    def get_client(
        cls,
        base_url: str,
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> httpx.AsyncClient:
        """Returns the pooled client for `base_url`, creating it on first use.

        Headers and auth only apply when the client is first created.
        """
        key = base_url.rstrip("/")
        with cls._lock:
            client = cls._clients.get(key)
            if client is None or client.is_closed:
                client = httpx.AsyncClient(base_url=key, headers=headers or {}, auth=auth, timeout=15.0)
                cls._clients[key] = client
            return client

    @classmethod
    async def teardown(cls) -> None:
        with cls._lock:
            clients = list(cls._clients.values())
            cls._clients.clear()
        for client in clients:
            await client.aclose()


class BaseClient:
    """Base asynchronous client for external API interactions."""

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.client = HTTPClientManager.get_client(self.base_url, headers=self.headers, auth=auth)

    async def close(self) -> None:
        # The pool hands out a fresh client for this base URL on next use
        await self.client.aclose()


def _provider_message(response: httpx.Response) -> str:
    """Extracts GoTrue's human-readable error, falling back to the raw body."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])

    return response.text or f"Identity provider returned HTTP {response.status_code}"


class SupabaseAuthClient(BaseClient):
    """Adapter for the Supabase Auth (GoTrue) admin and user APIs."""

    def __init__(self) -> None:
        if not settings.SUPABASE_URL:
            raise ConfigurationError("Server configuration error: SUPABASE_URL is not set.")
        if not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise ConfigurationError("Server configuration error: SUPABASE_SERVICE_ROLE_KEY is not set.")

        self.service_key = settings.SUPABASE_SERVICE_ROLE_KEY
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Accept": "application/json",
        }
        super().__init__(f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1", headers=headers)

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Identity provider unreachable on {method} {path}: {e!s}")
            raise ProvisioningError(f"Identity provider unreachable: {type(e).__name__}") from e

        if response.status_code >= status.HTTP_400_BAD_REQUEST:
            message = _provider_message(response)
            logger.error(f"Identity provider rejected {method} {path} [{response.status_code}]: {message}")
            raise ProvisioningError(message)

        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _user_from(payload: dict[str, Any]) -> dict[str, Any]:
        # Older GoTrue releases wrap the record as {"user": {...}}
        user = payload.get("user") if isinstance(payload.get("user"), dict) else payload
        return user or {}

    async def create_user(self, email: str, password: str, metadata: dict[str, Any]) -> dict[str, Any]:
        """Creates a confirmed, password-enabled identity."""
        payload = {"email": email, "password": password, "email_confirm": True, "user_metadata": metadata}
        return self._user_from(await self._request("POST", "/admin/users", json=payload))

    async def invite_user(
        self, email: str, metadata: dict[str, Any] | None = None, redirect_to: str | None = None
    ) -> dict[str, Any]:
        """Sends an invitation email. Calling it again for the same email resends the invite."""
        params = {"redirect_to": redirect_to} if redirect_to else None
        payload = {"email": email, "data": metadata or {}}
        return self._user_from(await self._request("POST", "/invite", json=payload, params=params))

    async def send_password_reset(self, email: str, redirect_to: str | None = None) -> None:
        """Requests a recovery email. Success means the provider accepted it, not that it was delivered."""
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._request("POST", "/recover", json={"email": email}, params=params)

    async def get_user(self, access_token: str) -> dict[str, Any]:
        """Resolves a viewer's access token to the provider's live user record."""
        headers = {"Authorization": f"Bearer {access_token}"}
        if settings.SUPABASE_ANON_KEY:
            headers["apikey"] = settings.SUPABASE_ANON_KEY
        return self._user_from(await self._request("GET", "/user", headers=headers))

    async def ping(self) -> tuple[bool, str]:
        """Verifies identity provider connectivity.

        Returns:
            tuple[bool, str]: A boolean indicating success, and a detailed status message.
        """
        try:
            response = await self.client.get("/health")
            response.raise_for_status()
            return True, "Connected"
        except httpx.HTTPStatusError as e:
            return False, f"HTTP Error: {e.response.status_code}"
        except httpx.RequestError as e:
            return False, f"Network Error: {e!s}"
