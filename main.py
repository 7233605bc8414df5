"""
ForecastPulse - Main Entry Point

Market forecaster tracking: collects forecaster content, extracts price
predictions and validates them against market data.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from src import __version__
from src.config import get_settings
from src.core.circuit_breaker import get_all_circuit_breakers
from src.core.container import DependencyContainer
from src.monitoring.metrics import get_metrics_app

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def _container(request: Request) -> DependencyContainer:
    return request.app.state.container


def create_app(container: Optional[DependencyContainer] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Pre-built container; by default one is built from settings
            at startup.

    Returns:
        Configured FastAPI application instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Builds the dependency container, starts the periodic jobs and shuts
        everything down on exit.
        """
        active = container or DependencyContainer()
        settings = active.settings
        logger.info(
            "forecastpulse_starting",
            environment=settings.app_env,
            store_backend=settings.store_backend,
            version=__version__,
        )

        await active.initialize()
        app.state.container = active
        if settings.scheduler_enabled:
            await active.scheduler.start()

        yield

        logger.info("forecastpulse_shutting_down")
        await active.shutdown()

    app = FastAPI(
        title="ForecastPulse API",
        description="Forecaster content collection and prediction validation",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.mount("/metrics", get_metrics_app())

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint for monitoring."""
        active = _container(request)
        return {
            "status": "healthy",
            "version": __version__,
            "environment": active.settings.app_env,
            "scheduler_running": active.scheduler.is_running,
            "circuit_breakers": {
                name: breaker.state.value for name, breaker in get_all_circuit_breakers().items()
            },
        }

    @app.post("/channels/{channel_id}/collect", status_code=202)
    async def collect_channel(channel_id: str, request: Request):
        """Collect a channel in the background; the run is recorded as a job."""
        active = _container(request)
        if await active.repository.get_channel(channel_id) is None:
            raise HTTPException(status_code=404, detail=f"Channel {channel_id} not found")
        active.scheduler.submit_channel_collection(channel_id)
        return {"status": "accepted", "channel_id": channel_id}

    @app.post("/jobs/{job_name}/run")
    async def run_job(job_name: str, request: Request):
        """Run a periodic job now."""
        scheduler = _container(request).scheduler
        if job_name not in scheduler.job_names:
            raise HTTPException(status_code=404, detail=f"Unknown job: {job_name}")
        job = await scheduler.run_job(job_name)
        return job.model_dump(mode="json")

    return app


# Create app instance
app = create_app()


def main():
    """Main entry point for running the application."""
    settings = get_settings()

    logger.info(
        "server_starting",
        host=settings.api_host,
        port=settings.api_port,
    )

    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
