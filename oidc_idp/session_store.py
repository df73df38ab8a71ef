"""
Per-browser-session state for authorization interactions.

One SessionState per session id holds the pending authorization request, its raw parameters,
the resolved client, the login hint, the prompt=login marker and the authentication
subsystem's subject and timestamp. State is created on first access.

No per-session locking is done here: requests for one browser session are assumed to be
serialized by the browser (redirects are followed one at a time).
"""
import json
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from oidc_idp.authz_request import AuthorizationRequest
from oidc_idp.clients import RegisteredClient
from oidc_idp.config import SESSION_BACKEND
from oidc_idp.database import SessionLocal
from oidc_idp.errors import SessionStoreUnavailable
from oidc_idp.models import BrowserSession

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    pending_request: AuthorizationRequest | None = None
    raw_parameters: dict[str, str] | None = None
    resolved_client: RegisteredClient | None = None
    login_hint: str | None = None
    prompt_login_handled: bool = False
    authenticated_subject: str | None = None
    last_authenticated_at: datetime | None = None


class SessionStore:
    """Named operations over SessionState. Subclasses provide load/save."""

    def load(self, session_id: str) -> SessionState:
        raise NotImplementedError

    def save(self, session_id: str, state: SessionState) -> None:
        raise NotImplementedError

    def _update(self, session_id: str, **changes) -> None:
        self.save(session_id, replace(self.load(session_id), **changes))

    # Pending authorization request

    def get_pending(self, session_id: str) -> AuthorizationRequest | None:
        request = self.load(session_id).pending_request
        if request is not None:
            logger.debug("Authorization request found in session")
        else:
            logger.debug("Authorization request not found in session")
        return request

    def set_pending(
        self,
        session_id: str,
        request: AuthorizationRequest,
        raw_parameters: dict[str, str],
        client: RegisteredClient,
    ) -> None:
        if client.client_id != request.client_id:
            raise ValueError(
                f"Client {client.client_id} does not match request client {request.client_id}"
            )
        self._update(
            session_id,
            pending_request=request,
            raw_parameters=dict(raw_parameters),
            resolved_client=client,
        )

    def get_raw_parameters(self, session_id: str) -> dict[str, str] | None:
        return self.load(session_id).raw_parameters

    def get_client(self, session_id: str) -> RegisteredClient | None:
        return self.load(session_id).resolved_client

    def set_client(self, session_id: str, client: RegisteredClient) -> None:
        pending = self.load(session_id).pending_request
        if pending is not None and pending.client_id != client.client_id:
            raise ValueError(f"Client {client.client_id} does not match pending request")
        self._update(session_id, resolved_client=client)

    def clear_interaction(self, session_id: str, *, keep_prompt_login_handled: bool = False) -> None:
        """
        Drop pending request, raw parameters and client once the interaction is over. The
        prompt=login marker goes with them unless the caller is handing the same request back
        to the authorize path for re-evaluation (the login handler).
        """
        changes = dict(pending_request=None, raw_parameters=None, resolved_client=None)
        if not keep_prompt_login_handled:
            changes["prompt_login_handled"] = False
        self._update(session_id, **changes)

    # Login hint

    def get_login_hint(self, session_id: str) -> str | None:
        return self.load(session_id).login_hint

    def set_login_hint(self, session_id: str, login_hint: str) -> None:
        self._update(session_id, login_hint=login_hint)

    def clear_login_hint(self, session_id: str) -> None:
        self._update(session_id, login_hint=None)

    # prompt=login marker

    def is_prompt_login_handled(self, session_id: str) -> bool:
        return self.load(session_id).prompt_login_handled

    def set_prompt_login_handled(self, session_id: str) -> None:
        self._update(session_id, prompt_login_handled=True)

    def clear_prompt_login_handled(self, session_id: str) -> None:
        self._update(session_id, prompt_login_handled=False)

    # Authentication subsystem

    def get_last_authentication_timestamp(self, session_id: str) -> datetime | None:
        return self.load(session_id).last_authenticated_at

    def get_authenticated_subject(self, session_id: str) -> str | None:
        return self.load(session_id).authenticated_subject

    def set_authentication(self, session_id: str, subject: str, authenticated_at: datetime) -> None:
        self._update(session_id, authenticated_subject=subject, last_authenticated_at=authenticated_at)

    def clear_authentication(self, session_id: str) -> None:
        # The timestamp stays: max_age compares against the last login even after a forced logout
        self._update(session_id, authenticated_subject=None)


class InMemorySessionStore(SessionStore):
    """Process-local store. Lab/dev use and tests; state is lost on restart."""

    def __init__(self):
        self._sessions: dict[str, SessionState] = {}
        self._lock = threading.Lock()

    def load(self, session_id: str) -> SessionState:
        with self._lock:
            state = self._sessions.get(session_id)
        return replace(state) if state is not None else SessionState()

    def save(self, session_id: str, state: SessionState) -> None:
        with self._lock:
            self._sessions[session_id] = replace(state)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; timestamps are always written in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _dumps(value) -> str | None:
    return json.dumps(value) if value is not None else None


class SqlSessionStore(SessionStore):
    """Session state in the browser_sessions table. Any SQLAlchemyError surfaces as SessionStoreUnavailable."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def load(self, session_id: str) -> SessionState:
        db = self._session_factory()
        try:
            row = db.get(BrowserSession, session_id)
            if row is None:
                return SessionState()
            return SessionState(
                pending_request=(
                    AuthorizationRequest.from_dict(json.loads(row.pending_request))
                    if row.pending_request else None
                ),
                raw_parameters=json.loads(row.raw_parameters) if row.raw_parameters else None,
                resolved_client=(
                    RegisteredClient.from_dict(json.loads(row.resolved_client))
                    if row.resolved_client else None
                ),
                login_hint=row.login_hint,
                prompt_login_handled=bool(row.prompt_login_handled),
                authenticated_subject=row.authenticated_subject,
                last_authenticated_at=_as_utc(row.last_authenticated_at),
            )
        except SQLAlchemyError as e:
            logger.error("Session store read failed for session: %s", e)
            raise SessionStoreUnavailable("Session store is unavailable") from e
        finally:
            db.close()

    def save(self, session_id: str, state: SessionState) -> None:
        db = self._session_factory()
        try:
            row = db.get(BrowserSession, session_id)
            if row is None:
                row = BrowserSession(session_id=session_id)
                db.add(row)
            row.pending_request = _dumps(state.pending_request.to_dict() if state.pending_request else None)
            row.raw_parameters = _dumps(state.raw_parameters)
            row.resolved_client = _dumps(state.resolved_client.to_dict() if state.resolved_client else None)
            row.login_hint = state.login_hint
            row.prompt_login_handled = state.prompt_login_handled
            row.authenticated_subject = state.authenticated_subject
            row.last_authenticated_at = state.last_authenticated_at
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Session store write failed: %s", e)
            raise SessionStoreUnavailable("Session store is unavailable") from e
        finally:
            db.close()


_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    """Process-wide store selected by IDP_SESSION_BACKEND; created on first use."""
    global _store
    if _store is None:
        if SESSION_BACKEND == "database":
            _store = SqlSessionStore(SessionLocal)
        else:
            _store = InMemorySessionStore()
        logger.info("Using %s session store", type(_store).__name__)
    return _store
