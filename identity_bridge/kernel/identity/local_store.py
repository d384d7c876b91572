"""
Local identity store: principals, credential accounts and sessions.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from identity_bridge.kernel.exceptions import AlreadyExists
from identity_bridge.kernel.identity.password import hash_password, verify_password
from identity_bridge.kernel.models.base import utcnow
from identity_bridge.kernel.models.user import Account, PASSWORD_PROVIDER_ID, Session, User
from identity_bridge.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SESSION_DAYS = 7


def normalize_email(email: str) -> str:
    """Emails compare case-insensitively across both stores."""
    return email.lower().strip()


def as_aware(value: datetime) -> datetime:
    """SQLite drops tzinfo; stored datetimes are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LocalIdentityStore:
    """
    Service for local-store reads and writes.

    Every method works inside the caller's AsyncSession; the request
    dependency owns commit and rollback.
    """

    def __init__(self, session: AsyncSession, session_expires_days: int = DEFAULT_SESSION_DAYS):
        self.session = session
        self.session_lifetime = timedelta(days=session_expires_days)

    # Principals

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get a user by email."""
        query = select(User).where(User.email == normalize_email(email))
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create_user(self, email: str, name: str, email_verified: bool = False) -> User:
        """Insert a principal and flush to obtain its id."""
        user = User(
            email=normalize_email(email),
            name=name.strip(),
            email_verified=email_verified,
        )
        self.session.add(user)
        await self.session.flush()
        logger.info("Created local principal", extra={"email": user.email, "user_id": user.id})
        return user

    # Credential accounts

    async def get_account(self, user_id: str, provider_id: str = PASSWORD_PROVIDER_ID) -> Optional[Account]:
        query = select(Account).where(
            Account.user_id == user_id,
            Account.provider_id == provider_id,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create_password_account(self, user: User, password_hash: str) -> Account:
        account = Account(
            account_id=user.email,
            provider_id=PASSWORD_PROVIDER_ID,
            user_id=user.id,
            password=password_hash,
        )
        self.session.add(account)
        await self.session.flush()
        return account

    async def update_account_password(self, account: Account, password_hash: str) -> Account:
        account.password = password_hash
        account.updated_at = utcnow()
        await self.session.flush()
        return account

    # Native email/password flow

    async def sign_up(self, email: str, password: str, name: str) -> User:
        """
        Create a principal with a password credential.

        Raises:
            AlreadyExists: If the email is already registered locally
        """
        if await self.get_user_by_email(email):
            raise AlreadyExists(normalize_email(email))
        user = await self.create_user(email, name)
        await self.create_password_account(user, hash_password(password))
        return user

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """Check a password against the stored credential."""
        user = await self.get_user_by_email(email)
        if not user:
            return None
        account = await self.get_account(user.id)
        if not account or not account.password:
            return None
        if not verify_password(password, account.password):
            return None
        return user

    # Sessions

    async def create_session(
        self,
        user: User,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Session:
        """Issue a new bearer session for a principal."""
        issued_at = utcnow()
        record = Session(
            token=secrets.token_urlsafe(32),
            user_id=user.id,
            created_at=issued_at,
            expires_at=issued_at + self.session_lifetime,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def find_session(self, token: str) -> Optional[tuple[Session, User]]:
        """Look up a session and its principal by token, regardless of expiry."""
        query = (
            select(Session, User)
            .join(User, User.id == Session.user_id)
            .where(Session.token == token)
        )
        result = await self.session.execute(query)
        row = result.first()
        if row is None:
            return None
        return row[0], row[1]

    async def delete_session(self, token: str) -> bool:
        result = await self.session.execute(delete(Session).where(Session.token == token))
        return bool(result.rowcount)
