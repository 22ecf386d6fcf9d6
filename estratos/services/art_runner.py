"""
Canalización de ejecución en segundo plano para corridas de arte por capas.
"""

from __future__ import annotations

import base64
import binascii
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional

from art_generator import ArtGenerator, FileSink, GenerationReport, MapSink, build_descriptors
from art_config import GenerationConfig
from generation_errors import ConfigError
from layer_compositor import MappingResolver, TraitDirectoryResolver

from estratos.config import Settings, settings as default_settings
from estratos.logging_config import get_logger
from estratos.models import RenderRequest

from .runs import GenerationRun, RunStore


LOGGER = get_logger("estratos.pipeline")


class ArtPipeline:
    """Coordina el envío y la ejecución de las corridas."""

    def __init__(self, run_store: RunStore, app_settings: Optional[Settings] = None) -> None:
        self._store = run_store
        self._settings = app_settings or default_settings
        self._executor = ThreadPoolExecutor(
            max_workers=self._settings.max_background_runs,
            thread_name_prefix="art-run",
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    def submit(self, run: GenerationRun) -> Future:
        """Ejecuta la corrida en segundo plano."""
        return self._executor.submit(self._run_job, run.id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _generator(self, config: GenerationConfig, max_workers: Optional[int]) -> ArtGenerator:
        return ArtGenerator(
            config,
            max_workers=max_workers or self._settings.max_workers,
            quality=self._settings.quality,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run_job(self, run_id: str) -> None:
        run = self._store.get(run_id)
        if not run:
            return

        try:
            LOGGER.info("Iniciando corrida %s con %d imagenes", run_id, run.total)
            generator = self._generator(run.config, run.max_workers)
            self._store.mark_running(run_id, generator.worker_count_for(run.total), "Generando imagenes...")

            def progress_callback(done: int, total: int, message: str) -> None:
                self._store.update_progress(run_id, done, message)

            report = generator.generate(
                run.descriptors,
                TraitDirectoryResolver(self._settings.traits_dir),
                FileSink(run.output_dir),
                progress_callback=progress_callback,
            )
            message = f"Generadas {report.succeeded} de {report.total} imagenes"
            if report.failures:
                message += f" ({report.failed} fallidas)"
            self._store.mark_completed(run_id, report, message)
            LOGGER.info("Corrida %s completada en %.2fs", run_id, report.elapsed_seconds)
        except Exception as exc:  # pragma: no cover - defensive logging
            LOGGER.exception("Fallo corrida %s: %s", run_id, exc)
            self._store.mark_failed(run_id, f"Error durante la generacion: {exc}")

    def render(self, request: RenderRequest) -> GenerationReport:
        """Modo buffer sincrónico: devuelve el reporte con los PNG en memoria."""
        descriptors = build_descriptors(request.images)
        # Las capas salen solo de la tabla `files` de la peticion.
        resolver = MappingResolver(_decode_files(request.files))
        generator = self._generator(request.config, request.max_workers)
        return generator.generate(descriptors, resolver, MapSink())


def _decode_files(files: Dict[str, Dict[str, str]]) -> Dict[str, Dict[str, bytes]]:
    decoded: Dict[str, Dict[str, bytes]] = {}
    for category, values in files.items():
        decoded[category] = {}
        for value, payload in values.items():
            try:
                decoded[category][value] = base64.b64decode(payload, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ConfigError(f"Base64 invalido para la capa {category}={value}: {exc}") from exc
    return decoded


__all__ = ["ArtPipeline"]
