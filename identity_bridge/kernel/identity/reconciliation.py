"""
Identity reconciliation between the legacy store and the local store.

The engine is a pre-step that runs before the local store's native
sign-up/sign-in. It either lets the flow proceed, handing a typed
ReconciliationContext to the next stage, or aborts with a typed error.

Consistency model: the local store is written only after the legacy call
succeeds. Nothing spans both stores transactionally; a crash between the two
is repaired by the next sign-in, which rediscovers the legacy user and
creates the local principal lazily.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from identity_bridge.kernel.exceptions import (
    AlreadyExists,
    EmailRequired,
    IdentityBridgeError,
    InvalidCredentials,
    NotRegistered,
)
from identity_bridge.kernel.identity.local_store import LocalIdentityStore, normalize_email
from identity_bridge.kernel.identity.password import CredentialMigrator, hash_password
from identity_bridge.kernel.models.user import Session, User
from identity_bridge.logging_config import get_logger
from identity_bridge.services.legacy_client import (
    LegacyAuthorization,
    LegacyIdentityClient,
    LegacyUserSnapshot,
)

logger = get_logger(__name__)


class AuthEvent(str, Enum):
    """Authentication events the engine intercepts."""
    SIGN_UP = "sign_up"
    SIGN_IN = "sign_in"
    SOCIAL_CALLBACK = "social_callback"


@dataclass
class ReconciliationContext:
    """Data handed from the reconciliation step to session issuance."""
    event: AuthEvent
    email: str
    legacy_user: Optional[LegacyUserSnapshot] = None
    legacy_authorization: Optional[LegacyAuthorization] = None
    principal: Optional[User] = None
    legacy_user_created: bool = False
    principal_created: bool = False
    credential_created: bool = False
    credential_migrated: bool = False

    @property
    def linked(self) -> bool:
        return self.legacy_user is not None


@dataclass
class ReconciliationOutcome:
    """Proceed with a context, or abort with the error that stopped the flow."""
    proceed: bool
    context: Optional[ReconciliationContext] = None
    error: Optional[IdentityBridgeError] = None

    @property
    def reason(self) -> Optional[str]:
        return self.error.message if self.error else None

    @classmethod
    def go(cls, context: Optional[ReconciliationContext]) -> "ReconciliationOutcome":
        return cls(proceed=True, context=context)

    @classmethod
    def abort(cls, error: IdentityBridgeError) -> "ReconciliationOutcome":
        return cls(proceed=False, error=error)


def split_name(name: Optional[str]) -> tuple[str, str]:
    """Split on the first whitespace run: first name, then the remainder."""
    parts = (name or "").strip().split(None, 1)
    first_name = parts[0] if parts else ""
    last_name = parts[1] if len(parts) > 1 else ""
    return first_name, last_name


def email_local_part(email: str) -> str:
    return email.split("@")[0]


class ReconciliationEngine:
    """
    Keeps the legacy and local stores in agreement for one request.

    Usage:
        engine = ReconciliationEngine(legacy_client, LocalIdentityStore(db))
        outcome = await engine.before(AuthEvent.SIGN_IN, {"email": email, "password": password})
        if not outcome.proceed:
            raise outcome.error
    """

    def __init__(
        self,
        legacy: LegacyIdentityClient,
        local_store: LocalIdentityStore,
        migrator: Optional[CredentialMigrator] = None,
    ):
        self.legacy = legacy
        self.local_store = local_store
        self.migrator = migrator or CredentialMigrator()

    async def before(self, event: AuthEvent, payload: Mapping[str, Any]) -> ReconciliationOutcome:
        """
        Run the pre-step for an event.

        Sign-up and sign-in without an email abort with EmailRequired, so the
        native flow never runs unreconciled. A social callback without an
        email passes through with no context.
        """
        email = normalize_email(payload.get("email") or "")
        if not email:
            if event is AuthEvent.SOCIAL_CALLBACK:
                return ReconciliationOutcome.go(None)
            return ReconciliationOutcome.abort(EmailRequired())

        try:
            if event is AuthEvent.SIGN_UP:
                context = await self.sign_up(email, payload.get("password", ""), payload.get("name", ""))
            elif event is AuthEvent.SIGN_IN:
                context = await self.sign_in(email, payload.get("password", ""))
            else:
                context = await self.social_callback(email, payload.get("name"))
        except IdentityBridgeError as e:
            logger.info(
                "Reconciliation aborted",
                extra={"event": event.value, "email": email, "error_code": e.code},
            )
            return ReconciliationOutcome.abort(e)
        return ReconciliationOutcome.go(context)

    async def sign_up(self, email: str, raw_credential: str, name: str) -> ReconciliationContext:
        """
        Register the principal in the legacy store before the local sign-up.

        Raises:
            AlreadyExists: If the legacy (or local) store already has the email
            LegacyCreateFailed: If the legacy store did not create the user
            LegacyUnavailable: If legacy existence could not be determined
        """
        email = normalize_email(email)
        if await self.legacy.check_user(email) is not None:
            raise AlreadyExists(email)
        # A local-only principal would leave the new legacy user orphaned
        if await self.local_store.get_user_by_email(email) is not None:
            raise AlreadyExists(email)

        first_name, last_name = split_name(name)
        legacy_user = await self.legacy.create_user(
            email,
            raw_credential,
            first_name=first_name,
            last_name=last_name,
            username=email,
        )
        logger.info("Legacy user created for sign-up", extra={"email": email})
        return ReconciliationContext(
            event=AuthEvent.SIGN_UP,
            email=email,
            legacy_user=legacy_user,
            legacy_user_created=True,
        )

    async def sign_in(self, email: str, raw_credential: str) -> ReconciliationContext:
        """
        Verify against the legacy store, then link and migrate locally.

        Raises:
            NotRegistered: If the legacy store does not know the email
            InvalidCredentials: If the legacy store rejects the credential
            LegacyUnavailable: If the legacy store cannot be reached
        """
        email = normalize_email(email)
        legacy_user = await self.legacy.check_user(email)
        if legacy_user is None:
            raise NotRegistered(email)

        authorization = await self.legacy.authorize(email, raw_credential)
        context = ReconciliationContext(
            event=AuthEvent.SIGN_IN,
            email=email,
            legacy_user=legacy_user,
            legacy_authorization=authorization,
        )

        principal = await self.local_store.get_user_by_email(email)
        if principal is None:
            principal = await self.local_store.create_user(
                email,
                legacy_user.full_name or email_local_part(email),
                email_verified=True,
            )
            context.principal_created = True
        context.principal = principal

        account = await self.local_store.get_account(principal.id)
        if account is None:
            await self.local_store.create_password_account(principal, hash_password(raw_credential))
            context.credential_created = True
            logger.info("Credential account created", extra={"email": email})
        else:
            decision = self.migrator.migrate(raw_credential, account.password)
            if decision.migrated:
                await self.local_store.update_account_password(account, decision.password_hash)
                context.credential_migrated = True
                logger.info(
                    "Credential hash migrated",
                    extra={"email": email, "reason": decision.reason},
                )
        return context

    async def social_callback(self, email: str, display_name: Optional[str] = None) -> ReconciliationContext:
        """
        Link a locally authenticated social principal to its legacy record.

        Unknown legacy users are left alone; provisioning them is the
        caller's decision.
        """
        email = normalize_email(email)
        legacy_user = await self.legacy.check_user(email)
        context = ReconciliationContext(
            event=AuthEvent.SOCIAL_CALLBACK,
            email=email,
            legacy_user=legacy_user,
        )
        if legacy_user is None:
            logger.info("Social sign-in for user unknown to legacy store", extra={"email": email})
            return context

        principal = await self.local_store.get_user_by_email(email)
        if principal is None:
            name = legacy_user.full_name or (display_name or "").strip() or email_local_part(email)
            principal = await self.local_store.create_user(email, name, email_verified=True)
            context.principal_created = True
        context.principal = principal
        return context


@dataclass
class AuthResult:
    """Principal and issued session, with the reconciliation context that led to them."""
    user: User
    session: Session
    context: Optional[ReconciliationContext]


class AuthPipeline:
    """
    Reconciliation pre-step followed by the local store's native flow.
    """

    def __init__(self, engine: ReconciliationEngine):
        self.engine = engine
        self.local_store = engine.local_store

    async def _reconcile(self, event: AuthEvent, payload: Mapping[str, Any]) -> Optional[ReconciliationContext]:
        outcome = await self.engine.before(event, payload)
        if not outcome.proceed:
            raise outcome.error
        return outcome.context

    async def sign_up(
        self,
        email: str,
        password: str,
        name: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuthResult:
        context = await self._reconcile(
            AuthEvent.SIGN_UP,
            {"email": email, "password": password, "name": name},
        )
        user = await self.local_store.sign_up(email, password, name)
        if context is not None:
            context.principal = user
        session = await self.local_store.create_session(user, ip_address, user_agent)
        return AuthResult(user=user, session=session, context=context)

    async def sign_in(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuthResult:
        context = await self._reconcile(
            AuthEvent.SIGN_IN,
            {"email": email, "password": password},
        )
        user = await self.local_store.authenticate(email, password)
        if user is None:
            raise InvalidCredentials()
        session = await self.local_store.create_session(user, ip_address, user_agent)
        return AuthResult(user=user, session=session, context=context)

    async def social_callback(self, email: str, name: Optional[str] = None) -> ReconciliationContext:
        context = await self._reconcile(
            AuthEvent.SOCIAL_CALLBACK,
            {"email": email, "name": name},
        )
        if context is None:
            raise NotRegistered(email)
        return context
