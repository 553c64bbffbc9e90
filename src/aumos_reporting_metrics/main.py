"""AumOS Reporting Metrics service entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from aumos_reporting_metrics import __version__
from aumos_reporting_metrics.database import dispose_database, init_database
from aumos_reporting_metrics.errors import ReportingError
from aumos_reporting_metrics.observability import configure_logging, get_logger
from aumos_reporting_metrics.settings import Settings

logger = get_logger(__name__)
settings = Settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    configure_logging(settings.log_level, settings.log_json)
    logger.info(
        "aumos-reporting-metrics starting",
        service=settings.service_name,
        version=__version__,
        preview_months=settings.preview_months,
        max_series_months=settings.max_series_months,
    )
    init_database(settings)
    yield
    await dispose_database()
    logger.info("aumos-reporting-metrics shutting down")


app = FastAPI(title=settings.service_name, version=__version__, lifespan=lifespan)


@app.exception_handler(ReportingError)
async def reporting_error_handler(request: Request, exc: ReportingError) -> JSONResponse:
    """Render service errors as ``{"error_code", "message", "details"}``."""
    logger.warning(
        "request_failed",
        path=request.url.path,
        error_code=exc.error_code.value,
        status_code=exc.status_code,
        message=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error_code": exc.error_code.value, "message": exc.message, "details": exc.details},
    )


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok", "service": settings.service_name}


from aumos_reporting_metrics.api.router import router  # noqa: E402

app.include_router(router, prefix="/api/v1")
