"""
Identity provider front with OIDC authorization request interception.
Every request passes through AuthorizationRequestMiddleware before reaching the routers.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from oidc_idp.audit import router as audit_router
from oidc_idp.authorize import router as authorize_router
from oidc_idp.database import SessionLocal, init_db
from oidc_idp.interceptor import AuthorizationRequestMiddleware
from oidc_idp.seed import seed_from_env


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and seed user/client from env on startup."""
    init_db()
    db = SessionLocal()
    try:
        seed_from_env(db)
    finally:
        db.close()
    yield


app = FastAPI(title="OIDC IdP", version="0.1.0", lifespan=lifespan)
app.add_middleware(AuthorizationRequestMiddleware)
app.include_router(authorize_router, tags=["authorize"])
app.include_router(audit_router)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "oidc_idp"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "oidc_idp.main:app",
        host="127.0.0.1",
        port=9000,
        reload=True,
    )
