"""
Authentication state for one browser session: who logged in, when, and whether that IdP session
is still live. The interceptor only reads it and, when forcing re-authentication, clears it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from oidc_idp.authz_request import PROMPT_LOGIN, PROMPT_NONE, AuthorizationRequest
from oidc_idp.config import IDP_SESSION_TIMEOUT_SECONDS
from oidc_idp.errors import NoActiveIdpSession
from oidc_idp.session_store import SessionStore

logger = logging.getLogger(__name__)

SESSION_FOUND = "session_found"
SESSION_NOT_FOUND = "session_not_found"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionAuthentication:
    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        *,
        timeout_seconds: int = IDP_SESSION_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.session_id = session_id
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    def require_idp_session(self) -> str:
        """Return the authenticated subject, or raise NoActiveIdpSession if absent or timed out."""
        subject = self.store.get_authenticated_subject(self.session_id)
        if subject is None:
            raise NoActiveIdpSession("No authentication in this browser session")
        authenticated_at = self.store.get_last_authentication_timestamp(self.session_id)
        if authenticated_at is None:
            raise NoActiveIdpSession("Authentication has no timestamp")
        if self.clock() - authenticated_at > timedelta(seconds=self.timeout_seconds):
            raise NoActiveIdpSession(f"IdP session for {subject} timed out")
        return subject

    def is_authenticated(self) -> bool:
        return check_authentication_required(self) == SESSION_FOUND

    def clear_authentication(self) -> None:
        self.store.clear_authentication(self.session_id)
        logger.debug("Cleared authentication from session")

    def last_authentication_timestamp(self) -> datetime | None:
        return self.store.get_last_authentication_timestamp(self.session_id)

    def record_authentication(self, subject: str) -> datetime:
        authenticated_at = self.clock()
        self.store.set_authentication(self.session_id, subject, authenticated_at)
        return authenticated_at


def check_authentication_required(authentication: SessionAuthentication) -> str:
    """SESSION_FOUND when a live IdP session exists, SESSION_NOT_FOUND otherwise."""
    try:
        subject = authentication.require_idp_session()
    except NoActiveIdpSession as e:
        logger.debug("IdP session not found: %s", e)
        return SESSION_NOT_FOUND
    logger.debug("Found IdP session for %s", subject)
    return SESSION_FOUND


@dataclass(frozen=True)
class AuthenticationContext:
    force_authn: bool = False
    is_passive: bool = False
    login_hint: str | None = None
    acr_values: tuple[str, ...] = ()


def build_authentication_context(request: AuthorizationRequest | None) -> AuthenticationContext:
    """Passive and forced flags from the pending request; both off when there is none."""
    if request is None:
        logger.debug("No pending authorization request, passive and forced flags will be off")
        return AuthenticationContext()
    return AuthenticationContext(
        force_authn=PROMPT_LOGIN in request.prompt,
        is_passive=PROMPT_NONE in request.prompt,
        login_hint=request.login_hint,
        acr_values=request.acr_values,
    )
