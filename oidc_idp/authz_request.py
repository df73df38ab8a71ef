"""
Builds a structured OIDC authorization request from raw query parameters and resolves its client.
Pure transform plus one read-only registry lookup; nothing here touches session state.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from oidc_idp.clients import ClientRegistry, RegisteredClient
from oidc_idp.errors import InvalidMaxAge, MissingClientId, UnknownClient

logger = logging.getLogger(__name__)

PROMPT_NONE = "none"
PROMPT_LOGIN = "login"

# Parameters mapped onto AuthorizationRequest fields; everything else lands in extensions
_KNOWN_PARAMETERS = {
    "client_id",
    "redirect_uri",
    "state",
    "scope",
    "prompt",
    "max_age",
    "acr_values",
    "response_type",
    "nonce",
    "login_hint",
}


@dataclass(frozen=True)
class AuthorizationRequest:
    client_id: str
    redirect_uri: str | None = None
    state: str | None = None
    scopes: frozenset[str] = frozenset()
    prompt: tuple[str, ...] = ()
    max_age: int | None = None
    acr_values: tuple[str, ...] = ()
    response_type: str | None = None
    nonce: str | None = None
    login_hint: str | None = None
    extensions: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": self.state,
            "scopes": sorted(self.scopes),
            "prompt": list(self.prompt),
            "max_age": self.max_age,
            "acr_values": list(self.acr_values),
            "response_type": self.response_type,
            "nonce": self.nonce,
            "login_hint": self.login_hint,
            "extensions": dict(self.extensions),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuthorizationRequest":
        return cls(
            client_id=data["client_id"],
            redirect_uri=data.get("redirect_uri"),
            state=data.get("state"),
            scopes=frozenset(data.get("scopes") or []),
            prompt=tuple(data.get("prompt") or []),
            max_age=data.get("max_age"),
            acr_values=tuple(data.get("acr_values") or []),
            response_type=data.get("response_type"),
            nonce=data.get("nonce"),
            login_hint=data.get("login_hint"),
            extensions=dict(data.get("extensions") or {}),
        )


def first_values(parameters: Mapping[str, Iterable[str] | str]) -> dict[str, str]:
    """Collapse multi-valued parameters to their first value. Later values are discarded."""
    request_map: dict[str, str] = {}
    for key, values in parameters.items():
        if isinstance(values, str):
            request_map[key] = values
            continue
        for value in values:
            logger.debug("Added request parameter %s with value %s", key, value)
            request_map[key] = value
            break
    return request_map


def parse_prompt(prompt: str | None) -> tuple[str, ...]:
    """Split the space-delimited prompt parameter into tokens, keeping order."""
    if not prompt:
        return ()
    return tuple(prompt.split())


def _parse_max_age(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        max_age = int(value.strip())
    except ValueError:
        raise InvalidMaxAge(f"max_age must be an integer, got {value!r}") from None
    if max_age < 0:
        raise InvalidMaxAge(f"max_age must not be negative, got {max_age}")
    return max_age


def _optional(value: str | None) -> str | None:
    return value if value else None


def build_authorization_request(parameters: Mapping[str, str]) -> AuthorizationRequest:
    """
    Build an AuthorizationRequest from single-valued parameters (see first_values).
    Raises MissingClientId when client_id is absent or empty, InvalidMaxAge for a bad max_age.
    """
    client_id = (parameters.get("client_id") or "").strip()
    if not client_id:
        raise MissingClientId()

    scope = parameters.get("scope") or ""
    acr_values = parameters.get("acr_values") or ""
    return AuthorizationRequest(
        client_id=client_id,
        redirect_uri=_optional(parameters.get("redirect_uri")),
        state=_optional(parameters.get("state")),
        scopes=frozenset(scope.split()),
        prompt=parse_prompt(parameters.get("prompt")),
        max_age=_parse_max_age(parameters.get("max_age")),
        acr_values=tuple(acr_values.split()),
        response_type=_optional(parameters.get("response_type")),
        nonce=_optional(parameters.get("nonce")),
        login_hint=_optional(parameters.get("login_hint")),
        extensions={k: v for k, v in parameters.items() if k not in _KNOWN_PARAMETERS},
    )


def resolve_client(request: AuthorizationRequest, registry: ClientRegistry) -> RegisteredClient:
    """Load the registered client for the request or raise UnknownClient."""
    logger.debug("Loading client by id %s", request.client_id)
    client = registry.lookup_client(request.client_id)
    if client is None:
        raise UnknownClient(request.client_id)
    return client
