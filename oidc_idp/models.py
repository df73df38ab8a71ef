"""
SQLAlchemy models for the identity provider: users, registered clients, browser sessions, audit log.
"""
import json
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    # JSON array of allowed redirect URIs; exact match required
    redirect_uris: Mapped[str] = mapped_column(Text, nullable=False)  # stored as JSON string
    # Seconds; applies when the authorization request carries no max_age
    default_max_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    subject_type: Mapped[str] = mapped_column(String(16), nullable=False, default="public")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def get_redirect_uris_list(self) -> list[str]:
        return json.loads(self.redirect_uris)


class BrowserSession(Base):
    """Per-browser session state for the SQL session store. Lives only as long as the browser session."""
    __tablename__ = "browser_sessions"

    session_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    pending_request: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON
    raw_parameters: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON
    resolved_client: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON
    login_hint: Mapped[str | None] = mapped_column(String(255), nullable=True)
    prompt_login_handled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    authenticated_subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_authenticated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)


class AuditLog(Base):
    """Audit log for security-relevant events. No passwords or raw request parameters stored."""
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    client_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)  # None = anonymous
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    outcome: Mapped[str] = mapped_column(String(16), nullable=False)  # success | fail
