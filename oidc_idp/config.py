"""
Identity provider configuration. Values come from the environment with development defaults.
No secrets in this file; credentials come from env or DB.
"""
import os

# SQLite DB for development
DATABASE_URL = os.environ.get("IDP_DATABASE_URL", "sqlite:///./oidc_idp.db")

# Requests whose path starts with this prefix are treated as OIDC authorization requests
AUTHORIZE_PATH = os.environ.get("IDP_AUTHORIZE_PATH", "/profile/oidc/authorize").rstrip("/")

# Login form target; must not fall under AUTHORIZE_PATH
LOGIN_PATH = os.environ.get("IDP_LOGIN_PATH", "/profile/oidc/login").rstrip("/")

# Browser session cookie carrying the session id
SESSION_COOKIE_NAME = os.environ.get("IDP_SESSION_COOKIE", "idp_session")
SESSION_COOKIE_SECURE = os.environ.get("IDP_SESSION_COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

# "memory" (single process) or "database" (browser_sessions table)
SESSION_BACKEND = os.environ.get("IDP_SESSION_BACKEND", "memory").strip().lower()

# IdP session lifetime (seconds) after a successful login
IDP_SESSION_TIMEOUT_SECONDS = int(os.environ.get("IDP_SESSION_TIMEOUT_SECONDS", "28800"))  # default 8 hours
