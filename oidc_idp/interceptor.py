"""
Authorization request interception. Runs in front of every request:

  path not under the authorize prefix  -> pass through, no session access
  pending request already in session   -> pass through (same interaction, re-entry)
  otherwise                            -> build request, resolve client, store it in session,
                                          evaluate prompt then max_age, execute the decision

Exactly one of pass-through, redirect or error response happens per request.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Mapping, Protocol

from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse, RedirectResponse
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware

from oidc_idp.audit import (
    EVENT_AUTHZ_REQUEST_ACCEPTED,
    EVENT_AUTHZ_REQUEST_REJECTED,
    EVENT_PROMPT_NONE_DENIED,
    EVENT_REAUTH_FORCED,
    OUTCOME_FAIL,
    OUTCOME_SUCCESS,
    get_client_ip,
    log_audit,
)
from oidc_idp.authentication import SessionAuthentication, utc_now
from oidc_idp.authz_request import (
    PROMPT_LOGIN,
    PROMPT_NONE,
    AuthorizationRequest,
    build_authorization_request,
    first_values,
    resolve_client,
)
from oidc_idp.clients import ClientRegistry, RegisteredClient, SqlClientRegistry
from oidc_idp.config import AUTHORIZE_PATH, SESSION_COOKIE_NAME, SESSION_COOKIE_SECURE
from oidc_idp.database import SessionLocal
from oidc_idp.errors import InvalidAuthorizationRequest, UnknownClient
from oidc_idp.policy import (
    DenyWithError,
    DenyWithRedirect,
    ForceReauthentication,
    PolicyDecision,
    Proceed,
    RedirectResolver,
    effective_max_age,
    evaluate_max_age,
    evaluate_prompt,
)
from oidc_idp.redirects import resolve_redirect
from oidc_idp.session_store import SessionStore, get_session_store

logger = logging.getLogger(__name__)

INVALID_REQUEST = "Invalid request"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class Authentication(Protocol):
    def is_authenticated(self) -> bool:
        ...

    def clear_authentication(self) -> None:
        ...

    def last_authentication_timestamp(self) -> datetime | None:
        ...


class InterceptionState(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    PENDING_EXISTS = "pending_exists"
    DECIDED = "decided"
    DENIED = "denied"


@dataclass(frozen=True)
class Interception:
    state: InterceptionState
    decision: PolicyDecision | None = None
    client_id: str | None = None

    @property
    def passes_through(self) -> bool:
        return self.decision is None or isinstance(self.decision, (Proceed, ForceReauthentication))


class AuthorizationRequestInterceptor:
    def __init__(
        self,
        store: SessionStore,
        registry: ClientRegistry,
        *,
        authorize_path: str = AUTHORIZE_PATH,
        redirect_resolver: RedirectResolver = resolve_redirect,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.registry = registry
        self.authorize_path = authorize_path
        self.redirect_resolver = redirect_resolver
        self.clock = clock

    def applies_to(self, path: str) -> bool:
        return bool(path) and path.startswith(self.authorize_path)

    def intercept(
        self,
        path: str,
        parameters: Mapping[str, Iterable[str] | str],
        session_id: str,
        authentication: Authentication,
    ) -> Interception:
        if not self.applies_to(path):
            logger.debug("%s not an authorization request. Passing through", path)
            return Interception(InterceptionState.NOT_APPLICABLE)

        pending = self.store.get_pending(session_id)
        if pending is not None:
            logger.debug("Found existing authorization request for client id %s", pending.client_id)
            return Interception(InterceptionState.PENDING_EXISTS, client_id=pending.client_id)

        logger.debug("Constructing authorization request")
        raw_parameters = first_values(parameters)
        try:
            request = build_authorization_request(raw_parameters)
            client = resolve_client(request, self.registry)
        except (InvalidAuthorizationRequest, UnknownClient) as e:
            logger.info("Rejected authorization request: %s", e)
            return Interception(
                InterceptionState.DENIED,
                DenyWithError(400, INVALID_REQUEST),
                client_id=raw_parameters.get("client_id") or None,
            )

        if request.login_hint:
            self.store.set_login_hint(session_id, request.login_hint)
            logger.debug("Saved login hint %s into session", request.login_hint)
        else:
            self.store.clear_login_hint(session_id)
        self.store.set_pending(session_id, request, raw_parameters, client)
        logger.debug("Saved authorization request for client %s", client.client_id)

        decision = self.evaluate(session_id, request, client, authentication)
        self.execute(session_id, decision, authentication)
        return Interception(InterceptionState.DECIDED, decision, client_id=client.client_id)

    def evaluate(
        self,
        session_id: str,
        request: AuthorizationRequest,
        client: RegisteredClient,
        authentication: Authentication,
    ) -> PolicyDecision:
        prompt_login_handled = self.store.is_prompt_login_handled(session_id)
        decision = evaluate_prompt(
            request.prompt,
            authenticated=authentication.is_authenticated(),
            prompt_login_handled=prompt_login_handled,
            client=client,
            redirect_uri=request.redirect_uri,
            state=request.state,
            redirect_resolver=self.redirect_resolver,
        )

        if PROMPT_LOGIN in request.prompt and PROMPT_NONE not in request.prompt:
            # Clearing authentication loops the browser back here; the marker stops a second force
            if prompt_login_handled:
                self.store.clear_prompt_login_handled(session_id)
            else:
                self.store.set_prompt_login_handled(session_id)

        # prompt=none must never lead to a login page, so max_age is not applied to it
        if isinstance(decision, Proceed) and PROMPT_NONE not in request.prompt:
            decision = evaluate_max_age(
                effective_max_age(request.max_age, client),
                authentication.last_authentication_timestamp(),
                self.clock(),
            )
        return decision

    def execute(self, session_id: str, decision: PolicyDecision, authentication: Authentication) -> None:
        if isinstance(decision, ForceReauthentication):
            authentication.clear_authentication()
            logger.debug("Forcing re-authentication (%s). Proceeding with filter chain", decision.reason)
        elif isinstance(decision, (DenyWithRedirect, DenyWithError)):
            # Final denial ends the interaction
            self.store.clear_interaction(session_id)
        else:
            logger.debug("Evaluated authorization request. Proceeding with filter chain")


async def _multi_parameters(request: Request) -> dict[str, list[str]]:
    """Query parameters, then form fields of a form-encoded POST. Query values come first."""
    parameters: dict[str, list[str]] = {}
    for key, value in request.query_params.multi_items():
        parameters.setdefault(key, []).append(value)
    content_type = request.headers.get("content-type", "")
    if request.method == "POST" and content_type.startswith(FORM_CONTENT_TYPE):
        # Cache the body first so the route still sees it
        await request.body()
        form = await request.form()
        for key, value in form.multi_items():
            if isinstance(value, str):
                parameters.setdefault(key, []).append(value)
    return parameters


class AuthorizationRequestMiddleware(BaseHTTPMiddleware):
    """
    Binds the interceptor to HTTP. Assigns the browser session cookie, runs the interception in
    the threadpool (session store and registry are synchronous) and turns denials into a 302 or
    a plain-text error response.
    """

    def __init__(
        self,
        app,
        interceptor: AuthorizationRequestInterceptor | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        super().__init__(app)
        self.session_factory = session_factory
        self.interceptor = interceptor or AuthorizationRequestInterceptor(
            get_session_store(), SqlClientRegistry(session_factory)
        )

    async def dispatch(self, request: Request, call_next):
        session_id = request.cookies.get(SESSION_COOKIE_NAME)
        new_session = not session_id
        if new_session:
            session_id = secrets.token_urlsafe(32)
        request.state.session_id = session_id

        parameters: dict[str, list[str]] = {}
        if self.interceptor.applies_to(request.url.path):
            parameters = await _multi_parameters(request)
        result = await run_in_threadpool(self._intercept, request, parameters, session_id)
        decision = result.decision
        if isinstance(decision, DenyWithRedirect):
            response = RedirectResponse(url=decision.uri, status_code=302)
        elif isinstance(decision, DenyWithError):
            response = PlainTextResponse(decision.message, status_code=decision.http_status)
        else:
            response = await call_next(request)

        if new_session:
            response.set_cookie(
                SESSION_COOKIE_NAME,
                session_id,
                httponly=True,
                samesite="lax",
                secure=SESSION_COOKIE_SECURE,
            )
        return response

    def _intercept(
        self, request: Request, parameters: dict[str, list[str]], session_id: str
    ) -> Interception:
        authentication = SessionAuthentication(self.interceptor.store, session_id)
        result = self.interceptor.intercept(request.url.path, parameters, session_id, authentication)
        self._audit(request, result)
        return result

    def _audit(self, request: Request, result: Interception) -> None:
        events: list[tuple[str, str]] = []
        if result.state is InterceptionState.DENIED:
            events.append((EVENT_AUTHZ_REQUEST_REJECTED, OUTCOME_FAIL))
        elif result.state is InterceptionState.DECIDED:
            events.append((EVENT_AUTHZ_REQUEST_ACCEPTED, OUTCOME_SUCCESS))
            if isinstance(result.decision, ForceReauthentication):
                events.append((EVENT_REAUTH_FORCED, OUTCOME_SUCCESS))
            elif not result.passes_through:
                events.append((EVENT_PROMPT_NONE_DENIED, OUTCOME_FAIL))
        if not events:
            return
        db = self.session_factory()
        try:
            for event_type, outcome in events:
                log_audit(
                    db,
                    event_type,
                    client_id=result.client_id,
                    ip=get_client_ip(request),
                    outcome=outcome,
                )
        finally:
            db.close()
