"""
Seed users and OIDC clients from environment. No hardcoded credentials.
Optional: set IDP_SEED_USER + IDP_SEED_PASSWORD, IDP_CLIENT_ID + IDP_REDIRECT_URI(S),
IDP_CLIENT_DEFAULT_MAX_AGE.
"""
import json
import logging
import os

import bcrypt
from sqlalchemy.orm import Session

from oidc_idp.models import Client, User

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    # Bcrypt has a 72-byte limit
    raw = password.encode("utf-8")
    if len(raw) > 72:
        raw = raw[:72]
    return bcrypt.hashpw(raw, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    raw = plain.encode("utf-8")[:72]
    return bcrypt.checkpw(raw, hashed.encode("utf-8"))


def _int_or_none(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    return int(value)


def seed_from_env(db: Session) -> None:
    """Create one user and/or one client from env if set."""
    seed_user = os.environ.get("IDP_SEED_USER")
    seed_password = os.environ.get("IDP_SEED_PASSWORD")
    if seed_user and seed_password:
        if db.query(User).filter(User.username == seed_user).first() is None:
            db.add(User(username=seed_user, password_hash=hash_password(seed_password)))
            db.commit()
            logger.info("Seeded user: %s", seed_user)
        else:
            logger.debug("User already exists: %s", seed_user)

    # Optional seed client: client_id and redirect_uri(s) comma-separated
    client_id = os.environ.get("IDP_CLIENT_ID")
    redirect_uris_str = os.environ.get("IDP_REDIRECT_URI") or os.environ.get("IDP_REDIRECT_URIS")
    default_max_age = _int_or_none(os.environ.get("IDP_CLIENT_DEFAULT_MAX_AGE"))
    if client_id and redirect_uris_str:
        uris = [u.strip() for u in redirect_uris_str.split(",") if u.strip()]
        if uris and db.query(Client).filter(Client.client_id == client_id).first() is None:
            db.add(Client(client_id=client_id, redirect_uris=json.dumps(uris), default_max_age=default_max_age))
            db.commit()
            logger.info("Seeded client: %s (default_max_age=%s)", client_id, default_max_age)
        elif uris:
            logger.debug("Client already exists: %s", client_id)

    # Development fallback: default relying party so a local quick start works
    default_client_id = "test-client"
    default_redirect_uri = "http://127.0.0.1:8000/callback"
    if db.query(Client).filter(Client.client_id == default_client_id).first() is None:
        db.add(Client(client_id=default_client_id, redirect_uris=json.dumps([default_redirect_uri])))
        db.commit()
        logger.info("Seeded default dev client: %s", default_client_id)
