"""Aqueduct Food dashboard — map service.

Main FastAPI application.
"""

import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from dashboard.config import settings
from dashboard.routers.map import router as map_router
from mapengine.layers.carto import CartoClient
from mapengine.layers.surface import InMemorySurface
from mapengine.map_view import MapView


def configure_logging(level: str | None = None) -> None:
    logger.remove()
    logger.add(sys.stderr, level=(level or settings.log_level).upper())


def create_app(client: CartoClient | None = None) -> FastAPI:
    """Build the app. ``client`` replaces the Carto client (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        logger.info(f"{settings.app_name} map service starting")
        carto = client or CartoClient(
            domain=settings.carto_domain, timeout=settings.carto_timeout,
        )
        app.state.map_view = MapView(carto, InMemorySurface(zoom=settings.map_zoom))
        logger.info(
            f"Map view: zoom={settings.map_zoom}, "
            f"center={settings.map_center_lat:.4f},{settings.map_center_lng:.4f}"
        )

        yield

        await app.state.map_view.manager.aclose()
        logger.info(f"{settings.app_name} map service shutting down")

    app = FastAPI(
        title=settings.app_name,
        description="Food security and water risk map service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(map_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "app": settings.app_name}

    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("dashboard.main:app", host=settings.host, port=settings.port, reload=settings.debug)
