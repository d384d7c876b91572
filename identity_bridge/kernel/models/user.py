"""
Local identity store models: principals, credential accounts and sessions.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from identity_bridge.kernel.models.base import Base, TimestampMixin, generate_id, utcnow

# Provider id of the email/password credential account
PASSWORD_PROVIDER_ID = "credential"


class User(Base, TimestampMixin):
    """A principal in the local store."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=generate_id,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    image: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    @property
    def username(self) -> str:
        """Derived username: the local-part of the email."""
        return self.email.split("@")[0]

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class Account(Base, TimestampMixin):
    """Credential record linking a principal to an authentication provider."""

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "provider_id", name="uq_accounts_user_provider"),
    )

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=generate_id,
    )
    account_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    provider_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    password: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Account {self.provider_id}:{self.account_id}>"


class Session(Base):
    """Bearer session issued by the local store."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=generate_id,
    )
    token: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    ip_address: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    user_agent: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
