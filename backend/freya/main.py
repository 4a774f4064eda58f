"""
Freya Chat - Main FastAPI Application
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, settings as default_settings
from .api import auth_router, chat_router, plugins_router, sessions_router
from .core.logging_config import setup_logging
from .middleware import RequestLoggingMiddleware
from .services.container import build_services

# Logger will be initialized after setup_logging() is called
logger = logging.getLogger(__name__)


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        config: Settings to run with; defaults to the environment-derived settings
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        setup_logging(config)
        app.state.services = build_services(config)

        logger.info(f"Starting {config.app_name} v{config.app_version}")
        logger.info(f"Storage path: {config.local_storage_path}")
        logger.info(f"Plugin timeout: {config.plugin_timeout_seconds}s")

        sweeper = None
        if config.client_idle_ttl_seconds is not None:
            sweeper = asyncio.create_task(
                app.state.services.clients.run_sweeper(config.client_sweep_interval_seconds),
                name="chat-client-sweeper",
            )
        yield
        # Shutdown
        if sweeper is not None:
            sweeper.cancel()
            await asyncio.gather(sweeper, return_exceptions=True)
        await app.state.services.clients.shutdown()
        logger.info(f"Shutting down {config.app_name}")

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        description="Command-driven chat assistant with weather, calculator, dictionary, joke and news plugins",
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add request logging middleware (after CORS)
    if config.log_api_requests:
        app.add_middleware(RequestLoggingMiddleware)

    app.include_router(auth_router)
    app.include_router(sessions_router)
    app.include_router(chat_router)
    app.include_router(plugins_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "app": config.app_name,
            "version": config.app_version,
            "status": "running",
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        services = request.app.state.services
        return {
            "status": "healthy",
            "version": config.app_version,
            "plugins": len(services.plugins),
            "active_clients": len(services.clients),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "freya.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.debug
    )
