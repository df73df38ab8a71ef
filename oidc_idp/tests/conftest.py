"""
Pytest configuration for oidc_idp. Use in-memory SQLite and the in-memory session store so tests
don't touch the filesystem.
"""
import os

# In-memory SQLite; database.py uses StaticPool so all connections share the same DB
os.environ["IDP_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["IDP_SESSION_BACKEND"] = "memory"
# Avoid seed_from_env picking up unexpected env credentials during tests
for _name in ("IDP_SEED_USER", "IDP_SEED_PASSWORD", "IDP_CLIENT_ID", "IDP_REDIRECT_URI", "IDP_REDIRECT_URIS"):
    os.environ.pop(_name, None)
