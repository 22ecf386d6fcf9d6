"""
Fábrica de aplicaciones FastAPI para Estratos Studio.

Expone la generación de arte por capas en sus dos modos: corridas en segundo
plano que escriben PNG en disco y renderizado sincrónico en memoria.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import psutil
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from estratos.config import Settings, settings
from estratos.logging_config import get_logger
from estratos.routes import get_api_router
from estratos.services import ArtPipeline, RunStore


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    app.state.pipeline.shutdown(wait=False)


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    logger = get_logger("estratos.main")
    logger.info("Inicializando aplicacion Estratos Studio")
    active = app_settings or settings
    app = FastAPI(
        title="Estratos Studio",
        description="Compositor de arte generativo por capas con un pool de workers.",
        version="1.0.0",
        lifespan=_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    run_store = RunStore(retention_limit=active.run_retention)
    pipeline = ArtPipeline(run_store=run_store, app_settings=active)

    app.state.run_store = run_store
    app.state.pipeline = pipeline
    app.state.settings = active

    app.include_router(get_api_router())

    @app.get("/api/diagnostics")
    async def diagnostics() -> dict:
        return {
            "traits_dir": str(active.traits_dir),
            "assets_dir": str(active.assets_dir),
            "max_workers": active.max_workers,
            "cpu_count": psutil.cpu_count(),
            "quality": list(active.quality),
            "runs": len(list(run_store.list())),
        }

    return app


app = create_app()


__all__ = ["app", "create_app"]
