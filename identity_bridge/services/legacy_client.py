"""
Client for the legacy identity store's account API.

Endpoints consumed:
- POST /account/check-user   (shared-secret bearer)
- POST /account/authorize    (no secret; password is an opaque pre-hashed string)
- POST /account/create-user  (shared-secret bearer)

Every call carries a bounded timeout. Network errors, timeouts and 5xx
responses surface as LegacyUnavailable and are never reported as
"user does not exist". Only the existence check is retried, since it is the
only idempotent read.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import httpx

from identity_bridge.kernel.exceptions import (
    InvalidCredentials,
    LegacyCreateFailed,
    LegacyUnavailable,
)
from identity_bridge.logging_config import get_logger

logger = get_logger(__name__)

HTTP_TIMEOUT = 5.0
CHECK_RETRIES = 2
RETRY_BACKOFF = (0.2, 0.5)  # seconds

API_URL_KEY = "API_SERVICE_URL"
SECRET_KEY = "SERVICES_SECRET_KEY"


def _flag(value: Any) -> bool:
    """The legacy API sends 0/1 integers for boolean flags."""
    if isinstance(value, bool):
        return value
    try:
        return int(value) > 0
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True)
class LegacyUserSnapshot:
    """Read-only view of a legacy user, valid for one reconciliation call."""

    email: str
    id: Optional[int] = None
    username: str = ""
    first_name: str = ""
    last_name: str = ""
    confirmed: bool = False
    active: bool = False

    @classmethod
    def from_payload(cls, data: Dict[str, Any], email: str) -> "LegacyUserSnapshot":
        return cls(
            id=data.get("id"),
            email=data.get("email") or email,
            username=data.get("username") or "",
            first_name=data.get("firstname") or "",
            last_name=data.get("lastname") or "",
            confirmed=_flag(data.get("confirmed")),
            active=_flag(data.get("active")),
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class LegacyAuthorization:
    """Successful response of the legacy authorize endpoint."""

    access_token: str
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    refresh_expires_in: Optional[int] = None
    roles: Dict[str, Any] = field(default_factory=dict)
    external_id: Optional[int] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> Optional["LegacyAuthorization"]:
        access = data.get("access") or {}
        token = access.get("token")
        if not token:
            return None
        refresh = data.get("refresh") or {}
        return cls(
            access_token=token,
            expires_in=access.get("expires_in"),
            refresh_token=refresh.get("token"),
            refresh_expires_in=refresh.get("expires_in"),
            roles=data.get("roles") or {},
            external_id=data.get("external_id"),
        )


class LegacyIdentityClient:
    """
    Talks to the legacy store over HTTP.

    Base URL and shared secret are read from the ConfigCache on every call
    (falling back to static settings), so an admin update takes effect
    without a restart.
    """

    def __init__(
        self,
        config: Any = None,
        base_url: Optional[str] = None,
        services_secret: Optional[str] = None,
        timeout: float = HTTP_TIMEOUT,
        check_retries: int = CHECK_RETRIES,
        retry_backoff: Sequence[float] = RETRY_BACKOFF,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.static_base_url = base_url
        self.static_secret = services_secret
        self.check_retries = max(1, check_retries)
        self.retry_backoff = tuple(retry_backoff) or (0.0,)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _setting(self, key: str, static: Optional[str]) -> str:
        if self.config is not None:
            return self.config.get(key, static)
        if static is None:
            raise ValueError(f"No value configured for {key}")
        return static

    def _url(self, path: str) -> str:
        base_url = self._setting(API_URL_KEY, self.static_base_url)
        return f"{base_url.rstrip('/')}{path}"

    def _secret_headers(self) -> Dict[str, str]:
        secret = self._setting(SECRET_KEY, self.static_secret)
        return {"Authorization": f"Bearer {secret}"}

    async def _post(self, operation: str, path: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        try:
            return await self._client.post(self._url(path), json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise LegacyUnavailable(operation, f"timeout: {e}") from e
        except httpx.HTTPError as e:
            raise LegacyUnavailable(operation, f"network error: {e}") from e

    async def check_user(self, email: str) -> Optional[LegacyUserSnapshot]:
        """
        Check whether the legacy store knows an email.

        Returns:
            The legacy snapshot, or None if the user does not exist

        Raises:
            LegacyUnavailable: If existence could not be determined
        """
        last_exc: Optional[LegacyUnavailable] = None
        for attempt in range(self.check_retries):
            try:
                response = await self._post(
                    "check-user",
                    "/account/check-user",
                    {"email": email},
                    headers=self._secret_headers(),
                )
                if response.status_code >= 500:
                    raise LegacyUnavailable("check-user", f"HTTP {response.status_code}", response.status_code)
            except LegacyUnavailable as e:
                last_exc = e
                if attempt < self.check_retries - 1:
                    await asyncio.sleep(self.retry_backoff[min(attempt, len(self.retry_backoff) - 1)])
                continue

            if response.status_code != 200:
                logger.warning(
                    "Legacy user check rejected",
                    extra={"email": email, "status_code": response.status_code},
                )
                raise LegacyUnavailable("check-user", f"HTTP {response.status_code}", response.status_code)

            try:
                data = response.json()
            except ValueError as e:
                raise LegacyUnavailable("check-user", "invalid JSON response", response.status_code) from e

            if not data.get("exists"):
                logger.info("User not in legacy store", extra={"email": email})
                return None
            logger.info("User exists in legacy store", extra={"email": email})
            return LegacyUserSnapshot.from_payload(data.get("user") or {}, email)

        logger.error("Legacy user check failed", extra={"email": email, "attempts": self.check_retries})
        raise last_exc or LegacyUnavailable("check-user", "no attempts made")

    async def authorize(self, email: str, password: str) -> LegacyAuthorization:
        """
        Verify a credential against the legacy store.

        Raises:
            InvalidCredentials: If the legacy store rejects the credential
            LegacyUnavailable: On network failure, timeout or 5xx
        """
        response = await self._post(
            "authorize",
            "/account/authorize",
            {"username": email, "password": password},
        )
        if response.status_code >= 500:
            raise LegacyUnavailable("authorize", f"HTTP {response.status_code}", response.status_code)
        if response.status_code >= 400:
            logger.info(
                "Legacy authorization rejected",
                extra={"email": email, "status_code": response.status_code},
            )
            raise InvalidCredentials()

        try:
            data = response.json()
        except ValueError as e:
            raise LegacyUnavailable("authorize", "invalid JSON response", response.status_code) from e

        authorization = LegacyAuthorization.from_payload(data)
        if authorization is None:
            raise InvalidCredentials()
        logger.info("Legacy authorization succeeded", extra={"email": email})
        return authorization

    async def create_user(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        username: Optional[str] = None,
    ) -> LegacyUserSnapshot:
        """
        Create a user in the legacy store.

        Raises:
            LegacyCreateFailed: On any failure, carrying the legacy detail
        """
        payload = {
            "email": email,
            "password": password,
            "firstname": first_name,
            "lastname": last_name,
            "username": username or email,
        }
        try:
            response = await self._post(
                "create-user",
                "/account/create-user",
                payload,
                headers=self._secret_headers(),
            )
        except LegacyUnavailable as e:
            raise LegacyCreateFailed(f"Network error: {e.detail}") from e

        if not response.is_success:
            logger.warning(
                "Legacy user creation failed",
                extra={"email": email, "status_code": response.status_code},
            )
            raise LegacyCreateFailed(f"Failed to create user: {response.status_code} - {response.text}")

        try:
            data = response.json()
        except ValueError as e:
            raise LegacyCreateFailed("User creation response invalid") from e

        if not data.get("created") or not data.get("user"):
            raise LegacyCreateFailed(data.get("message") or "User creation response invalid")

        logger.info("Created user in legacy store", extra={"email": email})
        return LegacyUserSnapshot.from_payload(data["user"], email)
