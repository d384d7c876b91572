"""
Stateless token verification for downstream services.

Responses use ``{"error": ...}`` bodies rather than ``detail`` because
downstream services consume them directly.
"""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from identity_bridge.api.deps import Verifier
from identity_bridge.logging_config import get_logger
from identity_bridge.schemas.verify import (
    VerifiedSessionInfo,
    VerifiedUser,
    VerifyErrorResponse,
    VerifyRequest,
    VerifyResponse,
)

router = APIRouter()
logger = get_logger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=VerifyErrorResponse(error=message).model_dump(),
    )


@router.post(
    "/verify",
    response_model=VerifyResponse,
    responses={
        400: {"model": VerifyErrorResponse},
        401: {"model": VerifyErrorResponse},
        500: {"model": VerifyErrorResponse},
    },
)
async def verify_token(request: Request, verifier: Verifier):
    """
    Verify a session token.

    Returns the principal and session for a valid token, 401 otherwise.
    """
    try:
        data = VerifyRequest.model_validate(await request.json())
    except (ValueError, ValidationError):
        data = VerifyRequest()
    if not data.token:
        return _error(status.HTTP_400_BAD_REQUEST, "Token is required")

    try:
        result = await verifier.verify(data.token)
    except Exception:
        logger.exception("Token verification error")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Token verification failed")

    if not result.valid:
        logger.debug("Token rejected", extra={"reason": result.reason})
        return _error(status.HTTP_401_UNAUTHORIZED, "Invalid or expired token")

    principal, session = result.principal, result.session
    return VerifyResponse(
        user=VerifiedUser(
            id=principal.id,
            email=principal.email,
            name=principal.name,
            username=principal.username,
            email_verified=principal.email_verified,
        ),
        session=VerifiedSessionInfo(
            id=session.id,
            user_id=session.user_id,
            expires_at=session.expires_at,
        ),
    )
