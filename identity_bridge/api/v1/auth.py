"""
Authentication endpoints.

Every email/password flow goes through the reconciliation pipeline before the
local store issues a session.
"""

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy.exc import IntegrityError

from identity_bridge.api.deps import (
    AdminAccess,
    AppSettings,
    BearerCredentials,
    DbSession,
    LocalStore,
    Pipeline,
    get_client_ip,
    get_user_agent,
)
from identity_bridge.kernel.exceptions import (
    AlreadyExists,
    EmailRequired,
    InvalidCredentials,
    LegacyCreateFailed,
    LegacyUnavailable,
    NotRegistered,
)
from identity_bridge.kernel.identity.reconciliation import AuthResult
from identity_bridge.logging_config import get_logger
from identity_bridge.schemas.auth import (
    SessionTokenResponse,
    SignInRequest,
    SignUpRequest,
    SocialCallbackRequest,
    SocialCallbackResponse,
    UserResponse,
)
from identity_bridge.schemas.common import ErrorResponse, SuccessResponse

router = APIRouter()
logger = get_logger(__name__)

GENERIC_SIGN_IN_FAILURE = "Invalid email or password"
LEGACY_UNAVAILABLE_DETAIL = "Authentication service temporarily unavailable. Please try again."

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
    status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _session_response(result: AuthResult) -> SessionTokenResponse:
    return SessionTokenResponse(
        token=result.session.token,
        expires_at=result.session.expires_at,
        user=UserResponse.model_validate(result.user),
    )


def _unavailable(e: LegacyUnavailable) -> HTTPException:
    logger.warning(
        "Legacy store unavailable",
        extra={"operation": e.operation, "status_code": e.status_code},
    )
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=LEGACY_UNAVAILABLE_DETAIL,
    )


async def _conflict(db: DbSession) -> HTTPException:
    # Two concurrent requests created the same principal; the loser retries
    await db.rollback()
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Account is being created by another request. Please retry.",
    )


@router.post(
    "/sign-up/email",
    response_model=SessionTokenResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def sign_up_email(
    request: Request,
    data: SignUpRequest,
    pipeline: Pipeline,
    db: DbSession,
):
    """
    Register a new account.

    The user is created in the legacy store first, then locally.
    """
    try:
        result = await pipeline.sign_up(
            email=data.email,
            password=data.password,
            name=data.name,
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
    except (AlreadyExists, EmailRequired, LegacyCreateFailed) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )
    except LegacyUnavailable as e:
        raise _unavailable(e)
    except IntegrityError:
        raise await _conflict(db)

    return _session_response(result)


@router.post("/sign-in/email", response_model=SessionTokenResponse, responses=ERROR_RESPONSES)
async def sign_in_email(
    request: Request,
    data: SignInRequest,
    pipeline: Pipeline,
    db: DbSession,
    settings: AppSettings,
):
    """
    Sign in with email and password.

    The credential is checked against the legacy store; the local principal
    and credential are created or migrated as needed.
    """
    try:
        result = await pipeline.sign_in(
            email=data.email,
            password=data.password,
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
    except EmailRequired as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )
    except (NotRegistered, InvalidCredentials) as e:
        detail = e.message if settings.expose_auth_failure_reasons else GENERIC_SIGN_IN_FAILURE
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
        )
    except LegacyUnavailable as e:
        raise _unavailable(e)
    except IntegrityError:
        raise await _conflict(db)

    return _session_response(result)


@router.post("/callback/{provider}", response_model=SocialCallbackResponse, responses=ERROR_RESPONSES)
async def social_callback(
    provider: str,
    data: SocialCallbackRequest,
    pipeline: Pipeline,
    db: DbSession,
    _: AdminAccess,
):
    """
    Link a social sign-in to its legacy record.

    Called by the OAuth layer after the provider has authenticated the user.
    """
    try:
        context = await pipeline.social_callback(data.email, data.name)
    except NotRegistered:
        return SocialCallbackResponse(linked=False)
    except LegacyUnavailable as e:
        raise _unavailable(e)
    except IntegrityError:
        raise await _conflict(db)

    logger.info(
        "Social callback reconciled",
        extra={"provider": provider, "email": context.email, "linked": context.linked},
    )
    return SocialCallbackResponse(
        linked=context.linked,
        user_id=context.principal.id if context.principal else None,
        created=context.principal_created,
    )


@router.post("/sign-out", response_model=SuccessResponse)
async def sign_out(
    credentials: BearerCredentials,
    local_store: LocalStore,
):
    """Delete the session identified by the bearer token."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    deleted = await local_store.delete_session(credentials.credentials)
    return SuccessResponse(message="Signed out" if deleted else "No active session")
