"""
Client registry lookups. Returns immutable snapshots of registered clients so they can be kept in
browser session state after the DB session is closed.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from sqlalchemy.orm import Session

from oidc_idp.models import Client

logger = logging.getLogger(__name__)


class SubjectType(str, Enum):
    PUBLIC = "public"
    PAIRWISE = "pairwise"


@dataclass(frozen=True)
class RegisteredClient:
    client_id: str
    redirect_uris: frozenset[str]
    default_max_age: int | None = None
    subject_type: SubjectType = SubjectType.PUBLIC

    @classmethod
    def from_model(cls, row: Client) -> "RegisteredClient":
        return cls(
            client_id=row.client_id,
            redirect_uris=frozenset(row.get_redirect_uris_list()),
            default_max_age=row.default_max_age,
            subject_type=SubjectType(row.subject_type or SubjectType.PUBLIC.value),
        )

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "redirect_uris": sorted(self.redirect_uris),
            "default_max_age": self.default_max_age,
            "subject_type": self.subject_type.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RegisteredClient":
        return cls(
            client_id=data["client_id"],
            redirect_uris=frozenset(data.get("redirect_uris") or []),
            default_max_age=data.get("default_max_age"),
            subject_type=SubjectType(data.get("subject_type") or SubjectType.PUBLIC.value),
        )


class ClientRegistry(Protocol):
    def lookup_client(self, client_id: str) -> RegisteredClient | None:
        ...


class SqlClientRegistry:
    """Read-only client lookup against the clients table. One short DB session per lookup."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def lookup_client(self, client_id: str) -> RegisteredClient | None:
        db = self._session_factory()
        try:
            row = db.query(Client).filter(Client.client_id == client_id).first()
            if row is None:
                logger.debug("Client %s is not registered", client_id)
                return None
            return RegisteredClient.from_model(row)
        finally:
            db.close()
