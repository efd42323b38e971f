# FastAPI application entrypoint (conditional /api prefix)
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

import crud, schemas
from app.core.config import origins, APP_ENV, LOG_LEVEL, SUPERADMIN_EMAIL, SUPERADMIN_PASSWORD
from app.deps import get_db
from app.models import audit_logs  # noqa: F401  registers the audit_logs table
from app.services.audit_log import audit_logger
from database import Base, engine

# Routers
from app.routers.auth_routes import router as auth_router
from app.routers.factory_routes import router as factory_router
from app.routers.audit_routes import router as audit_router
from app.routers.cap_routes import router as cap_router
from app.routers.grievance_routes import router as grievance_router
from app.routers.standards_routes import router as standards_router
from app.routers.evidence_routes import router as evidence_router
from app.routers.audit_log_routes import router as audit_log_router
from app.routers.permit_routes import router as permit_router
from app.routers.training_routes import router as training_router

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# Use /api in production/staging, no prefix in development (local)
API_PREFIX = "/api" if (APP_ENV or "development").lower() != "development" else ""

app = FastAPI(title="Factory Compliance Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers w/ conditional prefix
app.include_router(auth_router,       prefix=API_PREFIX)
app.include_router(factory_router,    prefix=API_PREFIX)
app.include_router(audit_router,      prefix=API_PREFIX)
app.include_router(cap_router,        prefix=API_PREFIX)
app.include_router(grievance_router,  prefix=API_PREFIX)
app.include_router(standards_router,  prefix=API_PREFIX)
app.include_router(evidence_router,   prefix=API_PREFIX)
app.include_router(audit_log_router,  prefix=API_PREFIX)
app.include_router(permit_router,     prefix=API_PREFIX)
app.include_router(training_router,   prefix=API_PREFIX)

# Healthchecks (one unprefixed, optionally one prefixed in prod)
@app.get("/healthz")
def healthz():
    return {"status": "ok", "env": APP_ENV, "prefix": API_PREFIX or "/"}

if API_PREFIX:
    @app.get(f"{API_PREFIX}/healthz")
    def healthz_api():
        return {"status": "ok", "env": APP_ENV, "prefix": API_PREFIX}


def seed_super_admin(db: Session):
    """Create the bootstrap super admin from env settings, once."""
    if not SUPERADMIN_EMAIL or not SUPERADMIN_PASSWORD:
        return None
    if crud.get_user_by_email(db, SUPERADMIN_EMAIL):
        return None
    user = crud.create_user(db, schemas.UserCreate(
        email=SUPERADMIN_EMAIL,
        password=SUPERADMIN_PASSWORD,
        full_name="Super Admin",
        role="super_admin",
    ))
    logger.info("Seeded super admin %s", user.email)
    return user


@app.on_event("startup")
async def startup_event():
    Base.metadata.create_all(bind=engine)
    db: Session = None
    try:
        db = get_db().__next__()
        seed_super_admin(db)
    finally:
        if db:
            db.close()


@app.on_event("shutdown")
async def shutdown_event():
    written = audit_logger.flush()
    if written:
        logger.info("Flushed %d pending audit logs on shutdown", written)
