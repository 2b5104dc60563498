import logging
import os
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import envelope
from config import Settings, configure_logging
from database import connect, create_document, ensure_indexes
from routers import auth, orders, products, stats, super_admin, upload, users
from schemas import User as UserSchema
from security import hash_password

logger = logging.getLogger(__name__)

LOCATION_PREFIXES = ("body", "query", "path", "header")


def _error_list(errors) -> list:
    details = []
    for err in errors:
        loc = list(err.get("loc", ()))
        if loc and loc[0] in LOCATION_PREFIXES:
            loc = loc[1:]
        message = str(err.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        details.append({"field": ".".join(str(p) for p in loc), "message": message})
    return details


def register_error_handlers(app: FastAPI, settings: Settings):
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        message = exc.detail
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Route {request.url.path} not found"
        return envelope.error(str(message), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        return envelope.error("Validation failed", _error_list(exc.errors()), status_code=400)

    @app.exception_handler(ValidationError)
    async def schema_validation_error(request: Request, exc: ValidationError):
        return envelope.error("Validation failed", _error_list(exc.errors()), status_code=400)

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_error(request: Request, exc: DuplicateKeyError):
        key_pattern = (exc.details or {}).get("keyPattern") or {}
        field = next(iter(key_pattern), "value")
        return envelope.error(f"{field} already exists", status_code=400)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = str(exc) if settings.is_development else "Internal server error"
        return envelope.error(message, status_code=500)


def bootstrap_superadmin(db: Database, settings: Settings):
    """Create the configured super admin once; no endpoint can create one."""
    if not settings.superadmin_email or not settings.superadmin_password:
        return
    if db["user"].count_documents({"role": "superAdmin"}) > 0:
        return
    admin = UserSchema(
        name=settings.superadmin_name,
        email=settings.superadmin_email,
        password=hash_password(settings.superadmin_password),
        role="superAdmin",
    )
    created = create_document(db, "user", admin)
    logger.info("Bootstrapped super admin %s", created["_id"])


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    app = FastAPI(title="Shop Admin API")
    app.state.settings = settings
    app.state.db = db if db is not None else connect(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - started) * 1000
        logger.info("%s %s %d %.1fms", request.method, request.url.path, response.status_code, elapsed)
        return response

    register_error_handlers(app, settings)

    for module in (auth, users, products, orders, super_admin, upload, stats):
        app.include_router(module.router)

    os.makedirs(settings.upload_dir, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")

    @app.get("/")
    def root():
        return {"message": "Shop Admin API running"}

    @app.get("/test")
    def test_database():
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_name": settings.database_name,
            "collections": [],
        }
        try:
            response["collections"] = app.state.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            logger.warning("Database check failed: %s", e)
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        return response

    @app.on_event("startup")
    def prepare_database():
        ensure_indexes(app.state.db)
        bootstrap_superadmin(app.state.db, settings)

    return app


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)
