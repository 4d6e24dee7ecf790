"""
Auth Service - delegated login state machine.

ANONYMOUS -> REDIRECTED -> PROVIDER_CALLBACK -> AUTHENTICATED | FAILED

Nothing is stored server-side while the browser is at Google. The random
``state`` value goes back to the browser in a short-lived signed cookie on
the redirect response and must come back unchanged on the callback.

Identity is kept in the session rather than a user table: Google is the
trust source for every login, so the only authorization decision this
service can make is "is logged in".
"""

import hmac
import secrets
from dataclasses import dataclass
from enum import Enum

from itsdangerous import BadSignature, TimestampSigner
from structlog import get_logger

from storefront.exceptions import ProviderExchangeError
from storefront.models.domain import Identity, Session
from storefront.observability.metrics import metrics
from storefront.services.google_oauth import GoogleOAuthProvider
from storefront.services.sessions import SessionManager

logger = get_logger(__name__)

LOGIN_SCOPES = ("profile", "email")
STATE_COOKIE_NAME = "oauth_state"
STATE_MAX_AGE_SECONDS = 10 * 60

LANDING_PATH = "/"
PROFILE_PATH = "/profile"


class AuthState(str, Enum):
    """States of the login handshake."""

    ANONYMOUS = "anonymous"
    REDIRECTED = "redirected"
    PROVIDER_CALLBACK = "provider_callback"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass(frozen=True)
class LoginRedirect:
    """Result of begin_login: where to send the browser and the state cookie to set."""

    url: str
    state_cookie: str
    state: AuthState = AuthState.REDIRECTED


@dataclass(frozen=True)
class CallbackParams:
    """Query parameters Google sends back to the callback URL."""

    code: str | None = None
    state: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class LoginOutcome:
    """Result of complete_login. ``reason`` is for logs only, never for the browser."""

    state: AuthState
    redirect_to: str
    identity: Identity | None = None
    reason: str | None = None


class AuthService:
    """Drives the redirect handshake and materializes the Identity into the Session."""

    def __init__(
        self,
        oauth_provider: GoogleOAuthProvider,
        sessions: SessionManager,
        state_secret: str,
    ) -> None:
        self.oauth_provider = oauth_provider
        self.sessions = sessions
        self._state_signer = TimestampSigner(state_secret, salt="storefront.oauth-state")

    def begin_login(self) -> LoginRedirect:
        """ANONYMOUS -> REDIRECTED."""
        state = secrets.token_urlsafe(32)
        auth_url = self.oauth_provider.get_authorization_url(state, LOGIN_SCOPES)

        logger.info("oauth_login_initiated", state=state[:8])
        return LoginRedirect(
            url=auth_url,
            state_cookie=self._state_signer.sign(state).decode("utf-8"),
        )

    def _state_matches(self, returned: str | None, state_cookie: str | None) -> bool:
        if not returned or not state_cookie:
            return False
        try:
            expected = self._state_signer.unsign(state_cookie, max_age=STATE_MAX_AGE_SECONDS)
        except BadSignature:
            return False
        return hmac.compare_digest(expected, returned.encode("utf-8"))

    async def complete_login(
        self,
        session: Session,
        params: CallbackParams,
        state_cookie: str | None,
    ) -> LoginOutcome:
        """
        PROVIDER_CALLBACK -> AUTHENTICATED | FAILED.

        Provider and handshake failures become a FAILED outcome. Session
        store failures propagate as StoreUnavailableError.
        """
        if params.error:
            return self._fail(f"provider returned error: {params.error}")
        if not params.code:
            return self._fail("missing authorization code")
        if not self._state_matches(params.state, state_cookie):
            return self._fail("state mismatch")

        try:
            token = await self.oauth_provider.exchange_code_for_token(params.code)
            identity = await self.oauth_provider.get_user_profile(token.access_token)
        except ProviderExchangeError as exc:
            return self._fail(exc.message)

        # New id on privilege change, then attach and persist
        await self.sessions.regenerate(session)
        session.attach_identity(identity)
        await self.sessions.save(session)

        metrics.record_login(AuthState.AUTHENTICATED.value)
        logger.info(
            "oauth_login_success",
            provider_id=identity.provider_id,
            email=identity.primary_email,
            session=session.session_id[:8],
        )
        return LoginOutcome(
            state=AuthState.AUTHENTICATED, redirect_to=PROFILE_PATH, identity=identity
        )

    def _fail(self, reason: str) -> LoginOutcome:
        metrics.record_login(AuthState.FAILED.value)
        logger.warning("oauth_login_failed", reason=reason)
        return LoginOutcome(state=AuthState.FAILED, redirect_to=LANDING_PATH, reason=reason)

    @staticmethod
    def current_identity(session: Session) -> Identity | None:
        """Identity of the current request; None means anonymous."""
        return session.identity

    @staticmethod
    def current_state(session: Session) -> AuthState:
        return AuthState.AUTHENTICATED if session.is_authenticated else AuthState.ANONYMOUS

    async def logout(self, session: Session) -> str:
        """
        Clear the identity and invalidate the session.

        Store errors propagate so the caller can report them.
        """
        was_authenticated = session.is_authenticated
        session.clear_identity()
        await self.sessions.destroy(session)
        logger.info("user_logout", was_authenticated=was_authenticated)
        return LANDING_PATH
