"""
Utilidades de configuración para el estudio de arte por capas.

Centraliza rutas de archivos y parámetros de ejecución para que la API, la
línea de comandos y los procesos en segundo plano compartan una sola fuente
de verdad.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from art_generator import detect_parallelism
from paths import ASSETS_DIR, CONFIG_PATH, PROJECT_ROOT, TRAITS_DIR


def _detect_config() -> Optional[Path]:
    """Devuelve el archivo de configuración del proyecto, si existe."""
    return CONFIG_PATH if CONFIG_PATH.exists() else None


@dataclass(slots=True)
class Settings:
    """Contenedor de parámetros de ejecución."""

    project_root: Path = PROJECT_ROOT
    traits_dir: Path = TRAITS_DIR
    assets_dir: Path = ASSETS_DIR
    config_path: Optional[Path] = field(default_factory=_detect_config)
    max_workers: int = field(default_factory=detect_parallelism)
    quality_min: float = 0.6
    quality_max: float = 0.95
    max_background_runs: int = 2
    run_retention: int = 20  # Número de corridas terminadas que permanecen en memoria.

    @property
    def quality(self) -> Tuple[float, float]:
        return self.quality_min, self.quality_max

    def ensure_directories(self) -> None:
        """Crea los directorios grabables si no existen."""
        for directory in (self.traits_dir, self.assets_dir):
            directory.mkdir(parents=True, exist_ok=True)


settings = Settings()
settings.ensure_directories()

__all__ = ["settings", "Settings"]
