"""
Downstream of the authorization request interceptor.
GET or form POST on the authorize path: login form when unauthenticated, otherwise hand the
interaction off.
POST on the login path: verify credentials, record authentication, re-enter the authorize path.
"""
import html
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from oidc_idp.audit import (
    EVENT_AUTHZ_COMPLETED,
    EVENT_LOGIN_FAIL,
    EVENT_LOGIN_OK,
    OUTCOME_FAIL,
    OUTCOME_SUCCESS,
    get_client_ip,
    log_audit,
)
from oidc_idp.authentication import (
    SESSION_NOT_FOUND,
    SessionAuthentication,
    build_authentication_context,
    check_authentication_required,
)
from oidc_idp.config import AUTHORIZE_PATH, LOGIN_PATH
from oidc_idp.database import get_db
from oidc_idp.models import User
from oidc_idp.seed import verify_password
from oidc_idp.session_store import SessionStore, get_session_store

logger = logging.getLogger(__name__)
router = APIRouter()

_NO_INTERACTION = "<h1>Invalid request</h1><p>No authorization request in progress.</p>"


def _login_form(client_id: str, username: str | None = None, error: str | None = None) -> str:
    def e(s: str | None) -> str:
        return html.escape(s or "")

    error_html = f'<p style="color:red;">{e(error)}</p>' if error else ""
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Log in</title></head>
<body>
  <h1>Log in</h1>
  <p>Sign in to continue to <strong>{e(client_id)}</strong>.</p>
  {error_html}
  <form method="post" action="{e(LOGIN_PATH)}">
    <label>Username: <input type="text" name="username" value="{e(username)}" required/></label><br/>
    <label>Password: <input type="password" name="password" required/></label><br/>
    <button type="submit">Log in</button>
  </form>
</body>
</html>"""


@router.get(AUTHORIZE_PATH)
@router.post(AUTHORIZE_PATH)
def authorize_continue(
    request: Request,
    store: SessionStore = Depends(get_session_store),
    db: Session = Depends(get_db),
):
    """
    Reached only when the interceptor let the request through. Shows the login form until the
    browser has a live IdP session, then completes the interaction.
    """
    session_id = request.state.session_id
    pending = store.get_pending(session_id)
    if pending is None:
        return HTMLResponse(_NO_INTERACTION, status_code=400)

    authentication = SessionAuthentication(store, session_id)
    if check_authentication_required(authentication) == SESSION_NOT_FOUND:
        return HTMLResponse(_login_form(pending.client_id, store.get_login_hint(session_id)))

    subject = store.get_authenticated_subject(session_id)
    context = build_authentication_context(pending)
    auth_time = authentication.last_authentication_timestamp()
    store.clear_interaction(session_id)
    log_audit(
        db,
        EVENT_AUTHZ_COMPLETED,
        client_id=pending.client_id,
        subject=subject,
        ip=get_client_ip(request),
        outcome=OUTCOME_SUCCESS,
    )
    logger.info("Authorization interaction completed for client %s", pending.client_id)
    # Hand-off to the OAuth2 grant machinery (code/token issuance lives there)
    return {
        "status": "authenticated",
        "client_id": pending.client_id,
        "subject": subject,
        "auth_time": int(auth_time.timestamp()) if auth_time else None,
        "redirect_uri": pending.redirect_uri,
        "state": pending.state,
        "scope": " ".join(sorted(pending.scopes)),
        "nonce": pending.nonce,
        "acr_values": list(context.acr_values),
        "force_authn": context.force_authn,
        "is_passive": context.is_passive,
    }


@router.post(LOGIN_PATH)
def login(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    store: SessionStore = Depends(get_session_store),
    db: Session = Depends(get_db),
):
    """
    Verify credentials for the pending interaction. On success the interaction is reset and the
    browser is sent back to the authorize path with the original parameters for re-evaluation.
    """
    session_id = request.state.session_id
    pending = store.get_pending(session_id)
    if pending is None:
        return HTMLResponse(_NO_INTERACTION, status_code=400)

    user = db.query(User).filter(User.username == username).first()
    if not user or not verify_password(password, user.password_hash):
        log_audit(
            db,
            EVENT_LOGIN_FAIL,
            client_id=pending.client_id,
            subject=None,
            ip=get_client_ip(request),
            outcome=OUTCOME_FAIL,
        )
        return HTMLResponse(
            _login_form(pending.client_id, username, "Invalid username or password."),
            status_code=401,
        )

    SessionAuthentication(store, session_id).record_authentication(user.username)
    log_audit(
        db,
        EVENT_LOGIN_OK,
        client_id=pending.client_id,
        subject=user.username,
        ip=get_client_ip(request),
        outcome=OUTCOME_SUCCESS,
    )
    raw_parameters = store.get_raw_parameters(session_id) or {"client_id": pending.client_id}
    store.clear_interaction(session_id, keep_prompt_login_handled=True)
    return RedirectResponse(url=f"{AUTHORIZE_PATH}?{urlencode(raw_parameters)}", status_code=302)
