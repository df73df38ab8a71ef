"""
Audit logging. Security-relevant events only; no passwords or raw request parameters.
GET /audit lists recent events with optional filters.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from oidc_idp.database import get_db
from oidc_idp.models import AuditLog

EVENT_AUTHZ_REQUEST_ACCEPTED = "authz_request_accepted"
EVENT_AUTHZ_REQUEST_REJECTED = "authz_request_rejected"
EVENT_REAUTH_FORCED = "reauth_forced"
EVENT_PROMPT_NONE_DENIED = "prompt_none_denied"
EVENT_AUTHZ_COMPLETED = "authz_completed"
EVENT_LOGIN_OK = "login_ok"
EVENT_LOGIN_FAIL = "login_fail"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (e.g. request.client.host). No forwarding headers."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    db: Session,
    event_type: str,
    *,
    client_id: str | None = None,
    subject: str | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
) -> None:
    """Append one audit record. Never log passwords."""
    db.add(
        AuditLog(
            event_type=event_type,
            client_id=client_id,
            subject=subject,
            ip=ip,
            outcome=outcome,
        )
    )
    db.commit()


router = APIRouter(tags=["audit"])


@router.get("/audit")
def list_audit_logs(
    limit: int = 100,
    event_type: str | None = None,
    outcome: str | None = None,
    client_id: str | None = None,
    db: Session = Depends(get_db),
):
    """List recent audit events, most recent first."""
    q = db.query(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if event_type:
        q = q.filter(AuditLog.event_type == event_type)
    if outcome:
        q = q.filter(AuditLog.outcome == outcome)
    if client_id:
        q = q.filter(AuditLog.client_id == client_id)
    rows = q.limit(min(max(1, limit), 500)).all()
    return [
        {
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "event_type": r.event_type,
            "client_id": r.client_id,
            "subject": r.subject,
            "ip": r.ip,
            "outcome": r.outcome,
        }
        for r in rows
    ]
