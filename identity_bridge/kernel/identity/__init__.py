"""
Identity Core - reconciliation, local store, credentials and token verification.
"""

from identity_bridge.kernel.identity.password import (
    CredentialMigrator,
    MigrationDecision,
    PasswordHasher,
    hash_password,
    verify_password,
)
from identity_bridge.kernel.identity.local_store import LocalIdentityStore, normalize_email
from identity_bridge.kernel.identity.reconciliation import (
    AuthEvent,
    AuthPipeline,
    AuthResult,
    ReconciliationContext,
    ReconciliationEngine,
    ReconciliationOutcome,
    split_name,
)
from identity_bridge.kernel.identity.token_verifier import (
    TokenVerifier,
    VerificationResult,
    VerifiedPrincipal,
    VerifiedSession,
)

__all__ = [
    "CredentialMigrator",
    "MigrationDecision",
    "PasswordHasher",
    "hash_password",
    "verify_password",
    "LocalIdentityStore",
    "normalize_email",
    "AuthEvent",
    "AuthPipeline",
    "AuthResult",
    "ReconciliationContext",
    "ReconciliationEngine",
    "ReconciliationOutcome",
    "split_name",
    "TokenVerifier",
    "VerificationResult",
    "VerifiedPrincipal",
    "VerifiedSession",
]
