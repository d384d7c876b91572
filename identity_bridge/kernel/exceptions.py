"""
Error taxonomy for identity reconciliation and configuration access.

Business outcomes (AlreadyExists, NotRegistered, InvalidCredentials) are kept
distinct from infrastructure failures (LegacyUnavailable) so callers can pick
how much to disclose without losing the distinction internally.
"""

from typing import Optional


class IdentityBridgeError(Exception):
    """Base class for all bridge errors."""

    code = "identity_bridge_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AlreadyExists(IdentityBridgeError):
    """Sign-up attempted for an email the legacy store already knows."""

    code = "already_exists"

    def __init__(self, email: str):
        super().__init__(f"User with email {email} already exists. Please sign in instead.")
        self.email = email


class NotRegistered(IdentityBridgeError):
    """Sign-in attempted for an email unknown to the legacy store."""

    code = "not_registered"

    def __init__(self, email: str):
        super().__init__("User not found. Please register first.")
        self.email = email


class InvalidCredentials(IdentityBridgeError):
    """The legacy store rejected the credential."""

    code = "invalid_credentials"

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class LegacyUnavailable(IdentityBridgeError):
    """Network failure, timeout or 5xx from the legacy store."""

    code = "legacy_unavailable"

    def __init__(self, operation: str, detail: str, status_code: Optional[int] = None):
        super().__init__(f"Legacy store unavailable during {operation}: {detail}")
        self.operation = operation
        self.detail = detail
        self.status_code = status_code


class LegacyCreateFailed(IdentityBridgeError):
    """The legacy store did not create the user."""

    code = "legacy_create_failed"

    def __init__(self, detail: str):
        super().__init__(f"Registration failed: {detail}")
        self.detail = detail


class ConfigNotFound(IdentityBridgeError):
    """No value for a configuration key in the store, static settings or default."""

    code = "config_not_found"

    def __init__(self, key: str):
        super().__init__(f"Configuration key '{key}' not found")
        self.key = key


class EmailRequired(IdentityBridgeError):
    """Sign-up or sign-in submitted without an email."""

    code = "email_required"

    def __init__(self):
        super().__init__("Email is required")
