"""
Studio API
FastAPI backend for multi-tenant fitness studios
Classes, clients, billing, referrals and community events
"""

import os
import re
import logging

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from studio_api import __version__
from studio_api.database.tenant_connection import set_current_tenant
from studio_api.dependencies import resolve_tenant
from studio_api.exceptions import StudioError
from studio_api.routers import (
    attendance,
    auth,
    classes,
    clients,
    community_events,
    dashboard,
    enrollments,
    invoices,
    payments,
    points,
    referrals,
    subscriptions,
    trainer_applications,
    trainer_availability,
    trainers,
    training,
    weight_tracker,
)
from studio_api.security.route_access import check_route_access, is_api_route
from studio_api.security.session_claims import get_claims
from studio_api.utils import env_flag

# Setup logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

# ============================================================================
# STARTUP CONFIGURATION
# ============================================================================

is_dev = env_flag("DEVELOPMENT_MODE")
env = (os.getenv("ENV") or os.getenv("APP_ENV") or "").strip().lower()
is_prod = (not is_dev) and (env not in ("dev", "development", "local", "test", "testing"))
base_domain = (os.getenv("TENANT_BASE_DOMAIN") or "").strip().lower()

logger.info("=" * 60)
logger.info("STUDIO-API STARTUP - Configuration")
logger.info("=" * 60)
logger.info(f"DATABASE_URL: {'***configured***' if os.getenv('DATABASE_URL') else '(built from DB_*)'}")
logger.info(f"DB_HOST: {os.getenv('DB_HOST', 'localhost')}")
logger.info(f"TENANT_BASE_DOMAIN: {base_domain or '(not set)'}")
logger.info(
    f"TENANT_DATABASE_URL_TEMPLATE: {'***configured***' if os.getenv('TENANT_DATABASE_URL_TEMPLATE') else '(not set)'}"
)
logger.info(f"STRIPE_SECRET_KEY: {'***configured***' if os.getenv('STRIPE_SECRET_KEY') else '(NOT SET)'}")
logger.info(f"STRIPE_WEBHOOK_SECRET: {'***configured***' if os.getenv('STRIPE_WEBHOOK_SECRET') else '(NOT SET)'}")
logger.info(f"RESEND_API_KEY: {'***configured***' if os.getenv('RESEND_API_KEY') else '(NOT SET)'}")
logger.info(f"Mode: {'development' if is_dev else (env or 'production')}")
logger.info("=" * 60)

app = FastAPI(
    title="Studio API",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# =====================================================
# TENANT CONTEXT + ROUTE ACCESS MIDDLEWARE
# =====================================================


@app.middleware("http")
async def tenant_context_middleware(request: Request, call_next):
    """Select the tenant database and apply the static role table to /api/ paths."""
    set_current_tenant(None)
    try:
        try:
            tenant = resolve_tenant(request)
        except HTTPException as e:
            return JSONResponse({"error": e.detail}, status_code=e.status_code)
        if tenant:
            set_current_tenant(tenant)

        path = request.url.path
        if is_api_route(path):
            claims = get_claims(request)
            role = claims["role"]
            access = check_route_access(path, role)
            if not access.allowed:
                if not claims["is_authenticated"] or not role:
                    return JSONResponse({"error": "Not authenticated"}, status_code=401)
                logger.info(f"Route access denied: {request.method} {path} role={role} ({access.reason})")
                return JSONResponse(
                    {"error": "Access denied", "redirect": access.redirect_to}, status_code=403
                )

        return await call_next(request)
    finally:
        set_current_tenant(None)


# Session middleware (outer to the tenant middleware so request.session is populated)
session_secret = str(os.getenv("SESSION_SECRET") or "").strip()
if is_prod:
    if (not session_secret) or len(session_secret) < 32 or session_secret in ("studio-session-secret", "changeme", "password"):
        raise RuntimeError("SESSION_SECRET is required and must be strong in production")
else:
    if not session_secret:
        session_secret = "studio-session-secret"

same_site_env = str(os.getenv("SESSION_SAMESITE") or "").strip().lower()
same_site = same_site_env if same_site_env in ("lax", "none", "strict") else "lax"

app.add_middleware(
    SessionMiddleware,
    secret_key=session_secret,
    https_only=not is_dev,
    same_site=same_site,
    domain=(f".{base_domain}" if base_domain and not is_dev else None),
    session_cookie=os.getenv("SESSION_COOKIE", "studio_session"),
)

allowed_origins = [
    o.strip()
    for o in (os.getenv("CORS_ORIGINS") or "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]
site_url = (os.getenv("SITE_URL") or "").strip().rstrip("/")
if site_url and site_url not in allowed_origins:
    allowed_origins.append(site_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_origin_regex=(rf"^https://([a-z0-9-]+\.)*{re.escape(base_domain)}$" if base_domain else None),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =====================================================
# ERROR RENDERING
# =====================================================


@app.exception_handler(StudioError)
async def studio_error_handler(request: Request, exc: StudioError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = jsonable_encoder(exc.errors())
    return JSONResponse({"error": "Validation failed", "details": details}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.on_event("startup")
async def _startup_auto_migrate() -> None:
    if not env_flag("AUTO_MIGRATE"):
        return
    try:
        from studio_api.database.connection import get_database_url
        from studio_api.database.migration_runner import upgrade_head

        upgrade_head(sqlalchemy_url=get_database_url(), lock_name="studio-db", lock_timeout_seconds=300)
    except Exception as e:
        logger.error(f"Auto-migrate failed: {e}")
        if env_flag("AUTO_MIGRATE_REQUIRED", "true"):
            raise


# Routes
@app.get("/")
async def root():
    return {"name": "Studio API", "version": __version__, "status": "running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}


app.include_router(auth.router, tags=["Auth"])
app.include_router(classes.router, tags=["Classes"])
app.include_router(clients.router, tags=["Clients"])
app.include_router(trainers.router, tags=["Trainers"])
app.include_router(trainer_applications.router, tags=["Trainer Applications"])
app.include_router(enrollments.router, tags=["Enrollments"])
app.include_router(attendance.router, tags=["Attendance"])
app.include_router(trainer_availability.router, tags=["Trainer Availability"])
app.include_router(training.router, tags=["Training"])
app.include_router(weight_tracker.router, tags=["Weight Tracker"])
app.include_router(invoices.router, tags=["Invoices"])
app.include_router(payments.router, tags=["Payments"])
app.include_router(subscriptions.router, tags=["Subscriptions"])
app.include_router(referrals.router, tags=["Referrals"])
app.include_router(points.router, tags=["Points"])
app.include_router(community_events.router, tags=["Community Events"])
app.include_router(dashboard.router, tags=["Dashboard"])
