"""
CorTrack API entry point

Builds the FastAPI application, mounts the v1 routers and maps the
service exceptions onto JSON error bodies.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1 import router as api_v1_router
from app.core.settings import settings
from app.exceptions import CorTrackException
from app.logging_config import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

HARDENING_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp hardening headers on every response, HSTS in production only."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.update(HARDENING_HEADERS)
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "CorTrack API starting",
        extra={
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "auto_create_work_orders": settings.AUTO_CREATE_WORK_ORDERS,
            "gap_threshold": settings.COMPLIANCE_GAP_THRESHOLD,
        },
    )
    yield
    logger.info("CorTrack API stopped")


def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    body = {
        "error": code,
        "message": message,
        "details": details or {},
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }
    return JSONResponse(status_code=status_code, content=body, headers=headers)


app = FastAPI(
    title="CorTrack API",
    description="Equipment maintenance lifecycle and compliance evidence scoring",
    version=settings.VERSION,
    lifespan=lifespan,
)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "Origin"],
)


@app.exception_handler(CorTrackException)
async def handle_domain_error(request: Request, exc: CorTrackException):
    logger.warning(
        "%s on %s: %s", exc.error_code, request.url.path, exc.message,
        extra={"error_code": exc.error_code, "details": exc.details},
    )
    # 401 responses advertise the bearer scheme
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return _error_response(exc.status_code, exc.error_code, exc.message, exc.details, headers)


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    problems = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    logger.warning("Rejected request body on %s", request.url.path, extra={"errors": problems})
    return _error_response(422, "VALIDATION_ERROR", "Request validation failed", {"errors": problems})


@app.exception_handler(SQLAlchemyError)
async def handle_database_error(request: Request, exc: SQLAlchemyError):
    logger.error("Database failure on %s", request.url.path, exc_info=exc)
    return _error_response(500, "DATABASE_ERROR", "The record store could not complete the request")


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
    return _error_response(500, "INTERNAL_ERROR", "Unexpected server error")


app.include_router(api_v1_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"service": settings.PROJECT_NAME, "version": settings.VERSION}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8001, reload=settings.DEBUG)
