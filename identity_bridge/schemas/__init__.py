"""
Pydantic schemas for API request/response validation.
"""

from identity_bridge.schemas.auth import (
    SignUpRequest,
    SignInRequest,
    SocialCallbackRequest,
    UserResponse,
    SessionTokenResponse,
    SocialCallbackResponse,
)
from identity_bridge.schemas.verify import (
    VerifyRequest,
    VerifiedUser,
    VerifiedSessionInfo,
    VerifyResponse,
    VerifyErrorResponse,
)
from identity_bridge.schemas.configuration import (
    ConfigValueResponse,
    ConfigEntryResponse,
    ConfigListResponse,
    ConfigUpdate,
    RefreshResponse,
)
from identity_bridge.schemas.common import (
    ErrorResponse,
    SuccessResponse,
    HealthResponse,
)

__all__ = [
    "SignUpRequest",
    "SignInRequest",
    "SocialCallbackRequest",
    "UserResponse",
    "SessionTokenResponse",
    "SocialCallbackResponse",
    "VerifyRequest",
    "VerifiedUser",
    "VerifiedSessionInfo",
    "VerifyResponse",
    "VerifyErrorResponse",
    "ConfigValueResponse",
    "ConfigEntryResponse",
    "ConfigListResponse",
    "ConfigUpdate",
    "RefreshResponse",
    "ErrorResponse",
    "SuccessResponse",
    "HealthResponse",
]
