"""
Redirect URI validation and error redirects back to the client (OIDC Core 3.1.2.6).
"""
from urllib.parse import urlencode, urlsplit, urlunsplit

from oidc_idp.clients import RegisteredClient
from oidc_idp.errors import InvalidRedirect

ERROR_LOGIN_REQUIRED = "login_required"


def resolve_redirect(candidate: str, client: RegisteredClient) -> str:
    """
    Return the canonical redirect URI for the client. The candidate must be an absolute URI that
    exactly matches one of the client's registered redirect URIs.
    """
    try:
        parts = urlsplit(candidate)
    except ValueError as e:
        raise InvalidRedirect(f"Unparseable redirect URI: {e}") from e
    if not parts.scheme or not parts.netloc:
        raise InvalidRedirect("Redirect URI must be absolute")
    if candidate not in client.redirect_uris:
        raise InvalidRedirect(f"Redirect URI not registered for client {client.client_id}")
    return candidate


def append_query_parameters(uri: str, params: list[tuple[str, str]]) -> str:
    """Append URL-encoded params after any existing query; existing parameters and fragment are kept."""
    parts = urlsplit(uri)
    extra = urlencode(params)
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit(parts._replace(query=query))


def build_error_redirect(uri: str, error: str, state: str | None = None) -> str:
    params = [("error", error)]
    if state:
        params.append(("state", state))
    return append_query_parameters(uri, params)
