"""
Authentication schemas.

Responses use camelCase on the wire, matching the verification endpoint.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class SignUpRequest(BaseModel):
    """Email/password registration request."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)


class SignInRequest(BaseModel):
    """Email/password sign-in request."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class SocialCallbackRequest(BaseModel):
    """Principal reported by the OAuth layer after provider authentication."""

    email: EmailStr
    name: Optional[str] = Field(None, max_length=255)


class _CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserResponse(_CamelResponse):
    """Local principal."""

    id: str
    email: str
    name: str
    email_verified: bool
    created_at: Optional[datetime] = None


class SessionTokenResponse(_CamelResponse):
    """Issued session token with its principal."""

    token: str
    expires_at: datetime
    user: UserResponse


class SocialCallbackResponse(_CamelResponse):
    """Whether the principal is linked to a legacy record."""

    linked: bool
    user_id: Optional[str] = None
    created: bool = False
