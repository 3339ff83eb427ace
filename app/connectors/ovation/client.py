"""Ovation Sync — Ovation Partner API Client.

Owns the token lifecycle (client-credentials grant, refresh ahead of expiry)
and the authenticated transport used by the survey endpoints. Failures are
never retried here; the next scheduled run is the retry.
"""

import base64
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import httpx

from app.config import settings
from app.core.logging import get_logger
from app.core.time_utils import utc_now
from app.models.sync_models import ApiSession

logger = get_logger("ovation.client")

TOKEN_ENDPOINT = "/oauth2/access-token"


class OvationAPIError(Exception):
    """Raised when the Ovation API cannot be reached or rejects a call."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(OvationAPIError):
    """Credentials rejected or the token response was unusable."""


class FetchError(OvationAPIError):
    """A data request failed at the transport or API level."""


def _error_detail(response: httpx.Response) -> str:
    """Best-effort message from an Ovation error body."""
    if response.headers.get("content-type", "").startswith("application/json"):
        try:
            body = response.json()
        except ValueError:
            return response.reason_phrase
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
    return response.reason_phrase


class OvationClient:
    """Async HTTP client for the Ovation partner API.

    Acts as the session manager: ``ensure_session`` re-authenticates when no
    token is held or the token is within ``refresh_margin`` of expiring.
    """

    def __init__(
        self,
        base_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        partner_id: str | None = None,
        timeout: float | None = None,
        refresh_margin: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.ovation_base_url).rstrip("/")
        self.client_id = client_id or settings.ovation_client_id
        self.client_secret = client_secret or settings.ovation_client_secret
        self.partner_id = partner_id or settings.ovation_partner_id
        self.timeout = httpx.Timeout(timeout or settings.request_timeout_seconds)
        self.refresh_margin = refresh_margin or timedelta(
            minutes=settings.token_refresh_margin_minutes
        )
        self.clock = clock
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._session: Optional[ApiSession] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Session Lifecycle ──

    @property
    def session(self) -> Optional[ApiSession]:
        return self._session

    def has_valid_session(self, now: datetime | None = None) -> bool:
        """True when a token is held and is not yet due for refresh."""
        if self._session is None:
            return False
        return not self._session.is_stale(now or self.clock(), self.refresh_margin)

    async def ensure_session(self) -> ApiSession:
        """Return a usable session, authenticating first if needed."""
        if self._session is None or self._session.is_stale(
            self.clock(), self.refresh_margin
        ):
            return await self.authenticate()
        return self._session

    async def authenticate(self) -> ApiSession:
        """Run the client-credentials grant and store the new session."""
        logger.info("Authenticating with Ovation API...")
        credentials = base64.b64encode(
            f"{self.client_id}:{self.client_secret}".encode()
        ).decode()
        headers = {
            "Authorization": f"Basic {credentials}",
            "X-Ovation-Id": self.partner_id,
            "Content-Type": "application/json",
        }
        payload = {"grant_type": "client_credentials", "scopes": ["admin"]}

        client = await self._get_client()
        try:
            resp = await client.post(
                f"{self.base_url}{TOKEN_ENDPOINT}", json=payload, headers=headers
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Authentication failed: {_error_detail(e.response)}",
                extra={"status_code": e.response.status_code},
            )
            raise AuthenticationError(
                f"Authentication failed: HTTP {e.response.status_code}",
                e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Authentication failed: {e}")
            raise AuthenticationError(f"Authentication failed: {e}") from e
        except ValueError as e:
            raise AuthenticationError("Authentication response was not JSON") from e

        if not isinstance(body, dict) or not body.get("success"):
            logger.error("Authentication response was not successful")
            raise AuthenticationError("Authentication response was not successful")

        data = body.get("data") or {}
        try:
            session = ApiSession(
                access_token=data["access_token"],
                api_key=data["api_key"],
                expires_at=datetime.fromtimestamp(float(data["exp"]), tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError, OverflowError, OSError) as e:
            raise AuthenticationError(f"Malformed token response: {e}") from e

        self._session = session
        logger.info(f"Authentication successful. Token expires {session.expires_at.isoformat()}")
        return session

    # ── Authenticated Requests ──

    async def post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON payload under the current session."""
        session = await self.ensure_session()
        headers = {
            "Authorization": f"Bearer {session.access_token}",
            "X-Ovation-Id": self.partner_id,
            "X-Api-Key": session.api_key,
            "Content-Type": "application/json",
        }

        client = await self._get_client()
        try:
            resp = await client.post(
                f"{self.base_url}{endpoint}", json=payload, headers=headers
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                # Token revoked upstream; force a fresh grant on the next call.
                self._session = None
            logger.error(
                f"API request failed: {_error_detail(e.response)}",
                extra={"endpoint": endpoint, "status_code": status},
            )
            raise FetchError(f"Request to {endpoint} failed: HTTP {status}", status) from e
        except httpx.RequestError as e:
            logger.error(f"API request failed: {e}", extra={"endpoint": endpoint})
            raise FetchError(f"Request to {endpoint} failed: {e}") from e
        except ValueError as e:
            raise FetchError(f"Response from {endpoint} was not JSON") from e

        if not isinstance(body, dict):
            raise FetchError(f"Unexpected response shape from {endpoint}")
        return body
