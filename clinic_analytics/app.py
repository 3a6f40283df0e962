"""
Main Application - Clinic Analytics API

FastAPI application serving the clinic dashboard's analytics reports. The
row store, report service and dispatcher are created once per process and
shared by every request.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

# ============================================================================
# IMPORTS
# ============================================================================
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
import uvicorn

from .config import config, setup_logging
from .reports import reports_router
from .reports.dispatcher import ReportDispatcher
from .reports.errors import InvalidReportParameter, UnhandledReportError
from .reports.router import error_response
from .reports.service import ReportService
from .store import RowStore, create_row_store

logger = logging.getLogger(__name__)


def build_dispatcher(store: RowStore, clock: Optional[Callable[[], datetime]] = None) -> ReportDispatcher:
    """Wire a dispatcher to a store using the configured report settings"""
    service = ReportService(store, max_workers=config.store.max_workers)
    return ReportDispatcher(
        service,
        timezone_name=config.reports.timezone,
        default_limits=config.reports.default_limits,
        clock=clock
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the store handle on startup and release it on shutdown"""
    owns_store = getattr(app.state, 'store', None) is None

    # Startup
    if owns_store:
        app.state.store = create_row_store(config.store)
        app.state.dispatcher = build_dispatcher(app.state.store)
        logger.info(f"Row store ready (backend={config.store.backend})")

    yield

    # Shutdown
    if owns_store:
        try:
            app.state.store.close()
            logger.info("Row store closed")
        except Exception as e:
            logger.error(f"Error closing row store: {e}")
        app.state.store = None
        app.state.dispatcher = None


def create_app(
    store: Optional[RowStore] = None,
    clock: Optional[Callable[[], datetime]] = None
) -> FastAPI:
    """
    Create the analytics application.

    Args:
        store: Row store to serve from; created from config on startup when omitted
        clock: Source of "now" for age calculations

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Clinic Analytics",
        description="Aggregated analytics reports for the clinic dashboard",
        version="1.0.0",
        lifespan=lifespan
    )

    app.state.store = store
    app.state.dispatcher = build_dispatcher(store, clock) if store is not None else None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health_check():
        """Liveness check"""
        return {
            "status": "healthy" if app.state.dispatcher is not None else "starting",
            "environment": config.environment.value,
            "store_backend": type(app.state.store).__name__ if app.state.store is not None else None,
            "timestamp": datetime.now().isoformat()
        }

    app.include_router(reports_router)

    # ========================================================================
    # ERROR HANDLERS
    # ========================================================================

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.warning(
            f"HTTP Exception: {request.method} {request.url.path} - "
            f"Status: {exc.status_code} - Detail: {exc.detail}"
        )
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Invalid request: {request.method} {request.url.path} - {exc.errors()}")
        return error_response(InvalidReportParameter(str(exc.errors())))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler for unhandled errors"""
        logger.error(
            f"Unhandled Exception: {request.method} {request.url.path}\n"
            f"  Exception Type: {type(exc).__name__}\n"
            f"  Message: {str(exc)}",
            exc_info=True
        )
        return error_response(UnhandledReportError(str(exc)))

    return app


setup_logging()
app = create_app()


# ============================================================================
# MAIN APPLICATION ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    uvicorn.run(
        "clinic_analytics.app:app",
        host=config.web.host,
        port=config.web.port,
        reload=config.web.reload,
        log_level=config.web.log_level
    )
