"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bodyscan_api.api.routes import body_scan
from bodyscan_api.core.config import get_settings
from bodyscan_api.core.exceptions import APIError
from bodyscan_api.db.mongo import MongoDB
from bodyscan_api.services.edge_functions import get_edge_function_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Connects MongoDB on startup; closes it and the edge functions client
    on shutdown.
    """
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} v{settings.api_version}")

    MongoDB.connect(settings.mongo_uri, settings.db_name)
    if not settings.is_edge_functions_configured:
        logger.warning("Edge functions API key not configured; gateway calls are unauthenticated")

    yield

    logger.info("Shutting down...")
    await get_edge_function_client().close()
    MongoDB.close()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        description="Body scan reconstruction pipeline API",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        """Handle custom API errors."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.message,
                "details": exc.details,
            },
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.api_version,
            "mongodb": MongoDB.is_connected(),
            "edge_functions": settings.is_edge_functions_configured,
        }

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": settings.app_name,
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(body_scan.router, prefix="/body-scan", tags=["Body Scan"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "bodyscan_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )
