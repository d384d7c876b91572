"""
FastAPI dependencies for database sessions, shared services and admin access.
"""

import hmac
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from identity_bridge.config import Settings, get_settings
from identity_bridge.database import async_session_maker
from identity_bridge.kernel.configuration import ConfigCache
from identity_bridge.kernel.identity import (
    AuthPipeline,
    LocalIdentityStore,
    ReconciliationEngine,
    TokenVerifier,
)
from identity_bridge.services.legacy_client import LegacyIdentityClient


# Security scheme
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncSession:
    """Dependency that yields database sessions."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DbSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]
BearerCredentials = Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)]


# Long-lived components owned by the application lifespan

def get_config_cache(request: Request) -> ConfigCache:
    return request.app.state.config_cache


def get_legacy_client(request: Request) -> LegacyIdentityClient:
    return request.app.state.legacy_client


Config = Annotated[ConfigCache, Depends(get_config_cache)]
LegacyClient = Annotated[LegacyIdentityClient, Depends(get_legacy_client)]


# Request-scoped services

def get_local_store(db: DbSession, settings: AppSettings) -> LocalIdentityStore:
    return LocalIdentityStore(db, session_expires_days=settings.session_expires_days)


LocalStore = Annotated[LocalIdentityStore, Depends(get_local_store)]


def get_auth_pipeline(legacy: LegacyClient, local_store: LocalStore) -> AuthPipeline:
    return AuthPipeline(ReconciliationEngine(legacy, local_store))


def get_token_verifier(local_store: LocalStore) -> TokenVerifier:
    return TokenVerifier(local_store.find_session)


Pipeline = Annotated[AuthPipeline, Depends(get_auth_pipeline)]
Verifier = Annotated[TokenVerifier, Depends(get_token_verifier)]


async def require_admin(credentials: BearerCredentials, settings: AppSettings) -> bool:
    """
    Require the administrative bearer secret.

    Missing header -> 401, wrong secret -> 403.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not hmac.compare_digest(
        credentials.credentials.encode("utf-8"),
        settings.secret_key.encode("utf-8"),
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin token",
        )
    return True


AdminAccess = Annotated[bool, Depends(require_admin)]


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    """Extract user agent from request."""
    return request.headers.get("User-Agent")
