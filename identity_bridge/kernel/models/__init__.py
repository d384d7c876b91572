"""
Kernel Data Models

SQLAlchemy models for the local identity store and the configuration table.
"""

from identity_bridge.kernel.models.base import Base, TimestampMixin, generate_id, utcnow
from identity_bridge.kernel.models.user import User, Account, Session, PASSWORD_PROVIDER_ID
from identity_bridge.kernel.models.configuration import ConfigEntry

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_id",
    "utcnow",
    # Identity
    "User",
    "Account",
    "Session",
    "PASSWORD_PROVIDER_ID",
    # Configuration
    "ConfigEntry",
]
