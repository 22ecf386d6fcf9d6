"""
Esquemas Pydantic que sustentan la API de generación de arte por capas.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from art_config import GenerationConfig


class RunStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


class GenerationRequest(BaseModel):
    """
    Lote de descriptores a generar con su configuración de capas.

    Cada elemento de `images` lleva un `id` (1-based) y el rasgo elegido por
    categoría, p. ej. `{"id": 1, "bg": "red.png", "fg": "circle.png"}`.
    """

    config: GenerationConfig
    images: List[Dict[str, Any]] = Field(default_factory=list)
    max_workers: Optional[int] = Field(
        None,
        ge=1,
        le=256,
        description="Límite de workers; por defecto el paralelismo detectado del servidor.",
    )


class RenderRequest(GenerationRequest):
    """Modo buffer: las fuentes viajan en la petición codificadas en base64."""

    files: Dict[str, Dict[str, str]] = Field(
        default_factory=dict,
        description="Tabla {categoria: {valor: imagen en base64}}.",
    )


class JobFailureModel(BaseModel):
    image_id: int
    output_name: str
    error_type: str
    message: str


class RunProgress(BaseModel):
    """Estructura con el avance que la API devuelve."""

    total: int = 0
    completed: int = 0
    failed: int = 0
    percent: float = 0.0
    message: Optional[str] = None
    elapsed_seconds: Optional[float] = None


class RunResponse(BaseModel):
    """Representación detallada de una corrida en modo archivo."""

    id: str
    status: RunStatus
    created_at: datetime
    updated_at: datetime
    finished_at: Optional[datetime] = None
    message: Optional[str] = None
    image_count: int
    worker_count: Optional[int] = None
    output_dir: str
    progress: RunProgress = Field(default_factory=RunProgress)
    failures: List[JobFailureModel] = Field(default_factory=list)
    timing: Optional[dict] = None


class RunCreated(BaseModel):
    """Respuesta devuelta cuando una nueva corrida fue aceptada."""

    id: str
    status: RunStatus
    image_count: int


class RenderResponse(BaseModel):
    """Imágenes en base64 indexadas por `{id-1}.png`."""

    images: Dict[str, str] = Field(default_factory=dict)
    failures: List[JobFailureModel] = Field(default_factory=list)
    timing: Optional[dict] = None


class GenerationDefaults(BaseModel):
    max_workers: int
    quality_min: float
    quality_max: float


class ApiError(BaseModel):
    """Contenedor estándar para respuestas de error."""

    detail: str


__all__ = [
    "ApiError",
    "GenerationDefaults",
    "GenerationRequest",
    "JobFailureModel",
    "RenderRequest",
    "RenderResponse",
    "RunCreated",
    "RunProgress",
    "RunResponse",
    "RunStatus",
]
