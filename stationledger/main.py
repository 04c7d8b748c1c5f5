"""
Main FastAPI application - Station Ledger API.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from stationledger import __version__
from stationledger.api.routers import accounts, integration, reports, vouchers
from stationledger.core.config import Settings, get_settings
from stationledger.core.logging_config import configure_logging
from stationledger.domain.exceptions import (
    AccountInUseError,
    AccountNotFoundError,
    AlreadyCancelledError,
    ImmutableSystemAccountError,
    IntegrityCheckInterrupted,
    LedgerError,
    LedgerInfrastructureError,
    TenantInitializationError,
    UnknownTenantError,
    ValidationError,
    VoucherNotFoundError,
)
from stationledger.infrastructure.database import align_master_schema, build_engine
from stationledger.infrastructure.tenancy.cache import TenantDomainCache
from stationledger.infrastructure.tenancy.registry import DatabaseTenantRegistry

logger = logging.getLogger(__name__)

# First match wins; order subclasses before their bases.
ERROR_STATUS_CODES: list[tuple[type[LedgerError], int]] = [
    (ValidationError, 400),
    (AccountNotFoundError, 404),
    (VoucherNotFoundError, 404),
    (UnknownTenantError, 404),
    (ImmutableSystemAccountError, 409),
    (AccountInUseError, 409),
    (AlreadyCancelledError, 409),
    (TenantInitializationError, 503),
    (IntegrityCheckInterrupted, 503),
    (LedgerInfrastructureError, 500),
]


def status_code_for(exc: LedgerError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(
            "Ledger request failed",
            extra={"path": request.url.path, "error": type(exc).__name__, "reason": exc.message},
        )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__, "context": exc.details},
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError | PydanticValidationError
) -> JSONResponse:
    """Malformed bodies and query strings are validation errors, not 422s."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={
            "detail": f"{location}: {message}" if location else message,
            "error": "ValidationError",
            "context": {"errors": [
                {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg")} for e in errors
            ]},
        },
    )


def create_app(
    tenant_cache: TenantDomainCache | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the API.

    Pass a ready tenant_cache to skip the master-directory wiring (tests,
    embedded use). Otherwise the lifespan builds one from MASTER_DATABASE_URL.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """Application lifespan - startup and shutdown events."""
        configure_logging(settings)
        master_engine = None
        if app.state.tenant_cache is None:
            master_engine = build_engine(settings.MASTER_DATABASE_URL, settings)
            if settings.ALIGN_SCHEMA:
                align_master_schema(master_engine)
            registry = DatabaseTenantRegistry(master_engine, settings)
            app.state.tenant_cache = TenantDomainCache(registry, settings)
        logger.info("Station ledger started", extra={"service": settings.SERVICE_NAME})
        yield
        app.state.tenant_cache.close()
        if master_engine is not None:
            master_engine.dispose()
        logger.info("Station ledger stopped", extra={"service": settings.SERVICE_NAME})

    app = FastAPI(
        title="Station Ledger API",
        description="""
## Multi-tenant general ledger for fuel stations

- **Tenants**: one isolated database per station group, resolved from `X-Tenant-Key`
- **Chart of accounts**: system accounts are protected; used accounts can only be deactivated
- **Vouchers**: Payment, Receipt and Journal; debits must equal credits exactly
- **Reports**: trial balance, account ledger, cash flow, integrity check
- **Integration**: purchases, sales and customer payments posted as vouchers
        """,
        version=__version__,
        lifespan=lifespan,
    )
    app.state.tenant_cache = tenant_cache
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(accounts.router)
    app.include_router(vouchers.router)
    app.include_router(reports.router)
    app.include_router(integration.router)

    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(PydanticValidationError, request_validation_handler)

    @app.get("/")
    def root():
        return {"name": "Station Ledger API", "version": __version__, "docs": "/docs"}

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        cache = app.state.tenant_cache
        return {"status": "healthy", "tenants_ready": len(cache) if cache is not None else 0}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
