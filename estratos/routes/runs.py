"""
Rutas de la API para la generación de arte por capas.
"""

from __future__ import annotations

import base64

from fastapi import APIRouter, Depends, HTTPException, Request, status

from art_generator import build_descriptors
from generation_errors import ConfigError

from estratos.logging_config import get_logger
from estratos.models import (
    ApiError,
    GenerationDefaults,
    GenerationRequest,
    RenderRequest,
    RenderResponse,
    RunCreated,
    RunResponse,
    RunStatus,
)
from estratos.services import ArtPipeline, RunStore
from estratos.services.runs import failures_to_models

LOGGER = get_logger("estratos.api")
router = APIRouter(prefix="/api/runs", tags=["runs"])
render_router = APIRouter(prefix="/api/render", tags=["render"])


# ---------------------------------------------------------------------------
# Ayudantes de dependencias
# ---------------------------------------------------------------------------
def _run_store(request: Request) -> RunStore:
    return request.app.state.run_store


def _pipeline(request: Request) -> ArtPipeline:
    return request.app.state.pipeline


# ---------------------------------------------------------------------------
# Rutas
# ---------------------------------------------------------------------------
@router.get("/defaults", response_model=GenerationDefaults)
async def get_defaults(pipeline: ArtPipeline = Depends(_pipeline)) -> GenerationDefaults:
    """Expone los parámetros predeterminados del servidor."""
    app_settings = pipeline.settings
    return GenerationDefaults(
        max_workers=app_settings.max_workers,
        quality_min=app_settings.quality_min,
        quality_max=app_settings.quality_max,
    )


@router.get("", response_model=list[RunResponse])
async def list_runs(store: RunStore = Depends(_run_store)) -> list[RunResponse]:
    """Lista las corridas de la más reciente a la más antigua."""
    return [run.to_response() for run in store.list()]


@router.get("/{run_id}", response_model=RunResponse, responses={404: {"model": ApiError}})
async def get_run(run_id: str, store: RunStore = Depends(_run_store)) -> RunResponse:
    run = store.get(run_id)
    if not run:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Corrida no encontrada")
    return run.to_response()


@router.post(
    "",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=RunCreated,
    responses={400: {"model": ApiError}},
)
async def create_run(
    payload: GenerationRequest,
    store: RunStore = Depends(_run_store),
    pipeline: ArtPipeline = Depends(_pipeline),
) -> RunCreated:
    """Encola una corrida en modo archivo sobre la biblioteca de rasgos del servidor."""
    try:
        descriptors = build_descriptors(payload.images)
    except ConfigError as exc:
        LOGGER.warning("Descriptores invalidos: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    run = store.create(
        config=payload.config,
        descriptors=descriptors,
        assets_root=pipeline.settings.assets_dir,
        max_workers=payload.max_workers,
    )
    pipeline.submit(run)
    LOGGER.info("Corrida %s encolada con %d imagenes", run.id, run.total)

    return RunCreated(id=run.id, status=RunStatus.pending, image_count=run.total)


@render_router.post("", response_model=RenderResponse, responses={400: {"model": ApiError}})
def render_images(payload: RenderRequest, pipeline: ArtPipeline = Depends(_pipeline)) -> RenderResponse:
    """Modo buffer: genera las imágenes y las devuelve en base64 en la misma respuesta."""
    try:
        report = pipeline.render(payload)
    except ConfigError as exc:
        LOGGER.warning("Peticion de render invalida: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    images = {name: base64.b64encode(data).decode("ascii") for name, data in report.artifacts.items()}
    return RenderResponse(images=images, failures=failures_to_models(report), timing=report.timing())
