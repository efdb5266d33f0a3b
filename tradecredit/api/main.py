"""FastAPI application factory"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from tradecredit.api.dependencies import get_request_id
from tradecredit.api.middleware import RequestIDMiddleware, MetricsMiddleware
from tradecredit.api.v1 import applications, imports, ledger
from tradecredit.domain.exceptions import (
    DomainException,
    Forbidden,
    IllegalTransition,
    InsufficientCredit,
    InvalidInput,
    NotFound,
    StorageConflict,
)
from tradecredit.infrastructure.database.session import create_tables, engine
from tradecredit.infrastructure.observability.logging import setup_logging
from tradecredit.config import settings

# Setup structured logging
setup_logging(settings.log_level)

STATUS_BY_ERROR = {
    InvalidInput: 422,
    Forbidden: 403,
    NotFound: 404,
    IllegalTransition: 409,
    InsufficientCredit: 409,
    StorageConflict: 409,
}


async def handle_domain_exception(request: Request, exc: DomainException) -> JSONResponse:
    """Return domain errors as tagged results the UI can tell apart"""
    status_code = STATUS_BY_ERROR.get(type(exc), 400)
    body = {"error": exc.kind, "detail": str(exc)}
    if isinstance(exc, InsufficientCredit):
        body["available_cents"] = exc.available_cents

    logging.warning(
        f"Request rejected: {exc}",
        extra={"request_id": get_request_id(request), "error": exc.kind},
    )
    return JSONResponse(status_code=status_code, content=body)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": InvalidInput.kind, "detail": "Malformed request", "errors": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Trade Credit Gateway",
        description="Credit application approval workflow, credit ledger and payment schedules",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, handle_domain_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)

    if settings.create_tables_on_startup:
        create_tables(engine)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(applications.router, prefix="/v1", tags=["applications"])
    app.include_router(imports.router, prefix="/v1", tags=["imports"])
    app.include_router(ledger.router, prefix="/v1", tags=["ledger"])

    return app


app = create_app()
