"""
Token verification schemas.

Field names on the wire are camelCase for downstream services.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class VerifyRequest(BaseModel):
    token: Optional[str] = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VerifiedUser(_CamelModel):
    id: str
    email: str
    name: str
    username: str
    email_verified: bool


class VerifiedSessionInfo(_CamelModel):
    id: str
    user_id: str
    expires_at: datetime


class VerifyResponse(_CamelModel):
    valid: bool = True
    user: VerifiedUser
    session: VerifiedSessionInfo


class VerifyErrorResponse(BaseModel):
    error: str
