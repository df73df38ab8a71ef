"""
Exceptions raised while intercepting authorization requests.

Request-shape errors (InvalidAuthorizationRequest and UnknownClient) are detected before any
session state is written. InvalidRedirect only affects the redirect path; callers fall back to a
plain 403. SessionStoreUnavailable is an infrastructure fault and is never masked.
"""


class AuthorizationRequestError(Exception):
    """Base exception for authorization request interception."""

    pass


class InvalidAuthorizationRequest(AuthorizationRequestError):
    """Raised when the authorization request parameters are malformed."""

    pass


class MissingClientId(InvalidAuthorizationRequest):
    """Raised when client_id is absent or empty."""

    def __init__(self, message: str = "No client id is specified in the authorization request"):
        super().__init__(message)


class InvalidMaxAge(InvalidAuthorizationRequest):
    """Raised when max_age is not a non-negative integer."""

    pass


class UnknownClient(AuthorizationRequestError):
    """Raised when client_id does not resolve to a registered client."""

    def __init__(self, client_id: str):
        super().__init__(f"Unknown client: {client_id}")
        self.client_id = client_id


class InvalidRedirect(AuthorizationRequestError):
    """Raised when a redirect URI is unparseable or not registered for the client."""

    pass


class SessionStoreUnavailable(Exception):
    """Raised when the backing session store cannot be read or written."""

    pass


class NoActiveIdpSession(Exception):
    """Raised when the browser has no live IdP session. Callers treat it as 'session not found'."""

    pass
