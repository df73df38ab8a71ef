"""
Prompt and max_age policies for OIDC authorization requests.

Both evaluators are pure: they read the request, client and authentication state and return a
PolicyDecision. Executing the decision (clearing authentication, emitting a redirect or error,
updating the prompt=login marker) is the interceptor's job.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Sequence

from oidc_idp.authz_request import PROMPT_LOGIN, PROMPT_NONE
from oidc_idp.clients import RegisteredClient
from oidc_idp.errors import InvalidRedirect
from oidc_idp.redirects import ERROR_LOGIN_REQUIRED, build_error_redirect, resolve_redirect

logger = logging.getLogger(__name__)

ACCESS_DENIED = "Access Denied"

REASON_PROMPT_LOGIN = "prompt_login"
REASON_MAX_AGE = "max_age"


@dataclass(frozen=True)
class Proceed:
    pass


@dataclass(frozen=True)
class ForceReauthentication:
    reason: str


@dataclass(frozen=True)
class DenyWithRedirect:
    uri: str


@dataclass(frozen=True)
class DenyWithError:
    http_status: int
    message: str


PolicyDecision = Proceed | ForceReauthentication | DenyWithRedirect | DenyWithError

RedirectResolver = Callable[[str, RegisteredClient], str]


def _deny_prompt_none(
    client: RegisteredClient | None,
    redirect_uri: str | None,
    state: str | None,
    redirect_resolver: RedirectResolver,
) -> PolicyDecision:
    if client is not None and redirect_uri:
        try:
            url = redirect_resolver(redirect_uri, client)
        except InvalidRedirect:
            logger.error("Can't build redirect URI for prompt=none, sending error instead", exc_info=True)
            return DenyWithError(403, ACCESS_DENIED)
        url = build_error_redirect(url, ERROR_LOGIN_REQUIRED, state)
        logger.debug("Resolved redirect url %s", url)
        return DenyWithRedirect(url)
    logger.warning("Access denied. Either client is not found or no redirect uri is specified")
    return DenyWithError(403, ACCESS_DENIED)


def evaluate_prompt(
    prompts: Sequence[str],
    *,
    authenticated: bool,
    prompt_login_handled: bool,
    client: RegisteredClient | None,
    redirect_uri: str | None,
    state: str | None,
    redirect_resolver: RedirectResolver = resolve_redirect,
) -> PolicyDecision:
    """
    Decide on the prompt parameter. none is checked before login; any other token is ignored and
    the result is Proceed, leaving the decision to the max_age policy.
    """
    for token in prompts:
        if token not in (PROMPT_NONE, PROMPT_LOGIN):
            logger.debug("Prompt %s is not supported; ignoring", token)

    if PROMPT_NONE in prompts:
        if authenticated:
            logger.debug("Prompt contains none and an authentication is present")
            return Proceed()
        logger.info("Client requested no prompt but there is no active authentication")
        return _deny_prompt_none(client, redirect_uri, state, redirect_resolver)

    if PROMPT_LOGIN in prompts:
        if prompt_login_handled:
            logger.debug("Prompt login already forced re-authentication in this interaction")
            return Proceed()
        return ForceReauthentication(REASON_PROMPT_LOGIN)

    return Proceed()


def effective_max_age(request_max_age: int | None, client: RegisteredClient | None) -> int | None:
    """Request max_age overrides the client's default_max_age."""
    if request_max_age is not None:
        return request_max_age
    if client is not None:
        return client.default_max_age
    return None


def evaluate_max_age(
    max_age: int | None,
    last_authenticated_at: datetime | None,
    now: datetime,
) -> PolicyDecision:
    """ForceReauthentication when more than max_age whole seconds passed since the last login."""
    if max_age is None:
        return Proceed()
    logger.debug("Evaluated max age to use as %s", max_age)
    if last_authenticated_at is None:
        logger.debug("No previous authentication to compare max age against")
        return Proceed()
    elapsed = math.floor((now - last_authenticated_at).total_seconds())
    if elapsed > max_age:
        logger.debug("Authentication is too old: %s (%ss elapsed)", last_authenticated_at, elapsed)
        return ForceReauthentication(REASON_MAX_AGE)
    return Proceed()
