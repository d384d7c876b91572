"""
Bearer token verification for downstream services.

The common path (token already decoded, session present) costs exactly one
session lookup. A percent-encoded token is decoded once; if that misses, the
raw token is tried once more and then verification gives up.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional
from urllib.parse import unquote

from identity_bridge.kernel.identity.local_store import as_aware
from identity_bridge.kernel.models.base import utcnow
from identity_bridge.kernel.models.user import Session, User
from identity_bridge.logging_config import get_logger

logger = get_logger(__name__)

SessionLookup = Callable[[str], Awaitable[Optional[tuple[Session, User]]]]


@dataclass(frozen=True)
class VerifiedPrincipal:
    id: str
    email: str
    name: str
    username: str
    email_verified: bool


@dataclass(frozen=True)
class VerifiedSession:
    id: str
    user_id: str
    expires_at: datetime


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    principal: Optional[VerifiedPrincipal] = None
    session: Optional[VerifiedSession] = None
    reason: Optional[str] = None

    @classmethod
    def invalid(cls, reason: str) -> "VerificationResult":
        return cls(valid=False, reason=reason)


def decode_token(token: str) -> str:
    """Percent-decode once, and only when the token looks encoded."""
    if "%" not in token:
        return token
    return unquote(token)


class TokenVerifier:
    """
    Turns an opaque bearer token into a verified principal and session.

    Never raises for a missing, unknown or expired token; those are normal
    outcomes reported through VerificationResult.
    """

    def __init__(self, lookup: SessionLookup, clock: Callable[[], datetime] = utcnow):
        self._lookup = lookup
        self._clock = clock

    async def verify(self, token: Optional[str]) -> VerificationResult:
        if not token:
            return VerificationResult.invalid("missing")

        decoded = decode_token(token)
        found = await self._lookup(decoded)
        if found is None and decoded != token:
            logger.debug("Session not found for decoded token; retrying with raw token")
            found = await self._lookup(token)
        if found is None:
            return VerificationResult.invalid("not_found")

        session, user = found
        expires_at = as_aware(session.expires_at)
        if expires_at <= self._clock():
            return VerificationResult.invalid("expired")

        return VerificationResult(
            valid=True,
            principal=VerifiedPrincipal(
                id=user.id,
                email=user.email,
                name=user.name,
                username=user.username,
                email_verified=bool(user.email_verified),
            ),
            session=VerifiedSession(
                id=session.id,
                user_id=session.user_id,
                expires_at=expires_at,
            ),
        )
