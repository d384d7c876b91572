"""
Password hashing and credential-format migration using bcrypt.

Hashes written by the legacy store before migration have no format
delimiter (for example a bare hex digest). Anything that is not a bcrypt
hash at the current cost is considered stale and re-hashed on the next
successful sign-in.
"""

from dataclasses import dataclass
from typing import Optional

import bcrypt

# Number of rounds for bcrypt hashing (12 is secure default)
BCRYPT_ROUNDS = 12

# Format marker every current-format hash starts with
CURRENT_HASH_PREFIXES = ("$2a$", "$2b$", "$2y$")


class PasswordHasher:
    """Password hashing service."""

    @staticmethod
    def _truncate_password(password: str) -> bytes:
        """
        Truncate password to 72 bytes (bcrypt limit) and encode.

        bcrypt only uses the first 72 bytes of a password.
        """
        return password.encode('utf-8')[:72]

    @staticmethod
    def hash(password: str) -> str:
        """
        Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Hashed password string
        """
        pwd_bytes = PasswordHasher._truncate_password(password)
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        hashed = bcrypt.hashpw(pwd_bytes, salt)
        return hashed.decode('utf-8')

    @staticmethod
    def verify(plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Returns False for hashes that are not bcrypt hashes.
        """
        if not PasswordHasher.is_current_format(hashed_password, check_rounds=False):
            return False
        try:
            pwd_bytes = PasswordHasher._truncate_password(plain_password)
            hash_bytes = hashed_password.encode('utf-8')
            return bcrypt.checkpw(pwd_bytes, hash_bytes)
        except ValueError:
            return False

    @staticmethod
    def is_current_format(hashed_password: Optional[str], check_rounds: bool = True) -> bool:
        """
        Check whether a stored hash carries the current format marker.

        Format: $2b$XX$<53 chars> where XX is the cost.
        """
        if not hashed_password or not hashed_password.startswith(CURRENT_HASH_PREFIXES):
            return False
        parts = hashed_password.split('$')
        if len(parts) != 4 or len(parts[3]) != 53:
            return False
        try:
            rounds = int(parts[2])
        except ValueError:
            return False
        return rounds == BCRYPT_ROUNDS if check_rounds else True

    @staticmethod
    def needs_rehash(hashed_password: Optional[str]) -> bool:
        """Check if a password hash needs to be upgraded."""
        return not PasswordHasher.is_current_format(hashed_password)


def hash_password(password: str) -> str:
    """Hash a password."""
    return PasswordHasher.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password."""
    return PasswordHasher.verify(plain_password, hashed_password)


@dataclass
class MigrationDecision:
    """Outcome of inspecting a stored credential hash."""
    migrated: bool
    password_hash: str
    reason: Optional[str] = None


class CredentialMigrator:
    """
    Decides whether a stored hash must be replaced after the legacy store has
    vouched for the raw credential.

    A hash in the current format that no longer matches the credential is also
    replaced: the legacy store is the ground truth for credentials, so a
    password changed there must be honoured locally.
    """

    def __init__(self, hasher: type[PasswordHasher] = PasswordHasher):
        self.hasher = hasher

    def migrate(self, raw_credential: str, stored_hash: Optional[str]) -> MigrationDecision:
        if self.hasher.needs_rehash(stored_hash):
            return MigrationDecision(
                migrated=True,
                password_hash=self.hasher.hash(raw_credential),
                reason="stale_format" if stored_hash else "missing",
            )
        if not self.hasher.verify(raw_credential, stored_hash):
            return MigrationDecision(
                migrated=True,
                password_hash=self.hasher.hash(raw_credential),
                reason="credential_changed",
            )
        return MigrationDecision(migrated=False, password_hash=stored_hash)
