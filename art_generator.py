"""
Generador concurrente de arte por capas.

Un pool de tamaño fijo de workers vacía una cola compartida de descriptores.
Cada worker es dueño de su propio lienzo durante toda su vida y entrega cada
PNG comprimido a un destino intercambiable: disco (modo archivo) o un
diccionario en memoria (modo buffer).
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import psutil
from tqdm import tqdm

from art_config import GenerationConfig, coerce_config, load_generation_config
from generation_errors import ConfigError, GenerationError, OutputWriteError
from layer_compositor import (
    Canvas,
    DirectSourceResolver,
    LayerCompositor,
    MappingResolver,
    SourceResolver,
    TraitDirectoryResolver,
)
from paths import ASSETS_DIR, TRAITS_DIR
from png_optimizer import DEFAULT_QUALITY, PngOptimizer


LOGGER = logging.getLogger("estratos.generator")

ProgressCallback = Callable[[int, int, str], None]


def detect_parallelism() -> int:
    """Número de CPUs lógicas disponibles (al menos 1)."""
    return psutil.cpu_count(logical=True) or os.cpu_count() or 1


# ----------------------------------------------------------------------
# Descriptores y cola de trabajos
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ImageDescriptor:
    """Rasgo elegido por categoría para una imagen, con su identificador 1-based."""

    id: int
    traits: Mapping[str, Any] = field(default_factory=dict)

    @property
    def output_index(self) -> int:
        return self.id - 1

    @property
    def output_name(self) -> str:
        return f"{self.output_index}.png"

    @classmethod
    def from_record(cls, record: Union["ImageDescriptor", Mapping[str, Any]]) -> "ImageDescriptor":
        if isinstance(record, ImageDescriptor):
            return record
        if not isinstance(record, Mapping):
            raise ConfigError(f"Descriptor invalido: {record!r}")
        raw_id = record.get("id")
        try:
            image_id = int(str(raw_id).strip(), 10)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Descriptor con id invalido: {raw_id!r}") from exc
        traits = {key: value for key, value in record.items() if key != "id"}
        return cls(id=image_id, traits=traits)


def build_descriptors(records: Iterable[Union[ImageDescriptor, Mapping[str, Any]]]) -> List[ImageDescriptor]:
    """Valida todos los registros antes de arrancar el pool."""
    descriptors = [ImageDescriptor.from_record(record) for record in records]
    seen: Dict[int, int] = {}
    for descriptor in descriptors:
        seen[descriptor.id] = seen.get(descriptor.id, 0) + 1
    duplicated = sorted(image_id for image_id, count in seen.items() if count > 1)
    if duplicated:
        raise ConfigError(f"Identificadores duplicados en el lote: {duplicated}")
    return descriptors


class JobQueue:
    """Cola compartida: cada descriptor se entrega exactamente una vez."""

    def __init__(self, descriptors: Iterable[ImageDescriptor]) -> None:
        self._pending: List[ImageDescriptor] = list(descriptors)
        self._lock = threading.Lock()
        self._claimed = 0

    def claim_next(self) -> Optional[ImageDescriptor]:
        with self._lock:
            if not self._pending:
                return None
            self._claimed += 1
            return self._pending.pop()

    @property
    def claimed(self) -> int:
        with self._lock:
            return self._claimed

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)


# ----------------------------------------------------------------------
# Destinos de salida
# ----------------------------------------------------------------------
class OutputSink:
    """Destino de un artefacto terminado."""

    def deliver(self, output_name: str, data: bytes) -> str:
        raise NotImplementedError

    def results(self) -> Dict[str, bytes]:
        return {}


class FileSink(OutputSink):
    """Escribe `{assets_dir}/{output_name}` de forma atómica (temporal + rename)."""

    def __init__(self, assets_dir: Union[str, Path]) -> None:
        self.assets_dir = Path(assets_dir)

    def deliver(self, output_name: str, data: bytes) -> str:
        destination = self.assets_dir / output_name
        tmp_name: Optional[str] = None
        try:
            self.assets_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{output_name}.", suffix=".tmp", dir=self.assets_dir)
            with os.fdopen(fd, "wb") as stream:
                stream.write(data)
            os.replace(tmp_name, destination)
            tmp_name = None
        except OSError as exc:
            raise OutputWriteError(f"No se pudo escribir {destination}: {exc}") from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
        return str(self.assets_dir)


class MapSink(OutputSink):
    """Acumula `{output_name: bytes}` en memoria; seguro ante escritores concurrentes."""

    def __init__(self) -> None:
        self._results: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def deliver(self, output_name: str, data: bytes) -> str:
        with self._lock:
            self._results[output_name] = data
        return "memoria"

    def results(self) -> Dict[str, bytes]:
        with self._lock:
            return dict(self._results)


# ----------------------------------------------------------------------
# Reporte
# ----------------------------------------------------------------------
@dataclass
class JobFailure:
    image_id: int
    output_name: str
    error_type: str
    message: str


@dataclass
class WorkerStats:
    """Resultados acumulados por un solo worker (no se comparten entre hilos)."""

    worker_index: int
    completed: List[str] = field(default_factory=list)
    failures: List[JobFailure] = field(default_factory=list)


@dataclass
class GenerationReport:
    total: int
    worker_count: int
    elapsed_seconds: float = 0.0
    completed: List[str] = field(default_factory=list)
    failures: List[JobFailure] = field(default_factory=list)
    artifacts: Dict[str, bytes] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return len(self.completed)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def failed_ids(self) -> List[int]:
        return sorted(failure.image_id for failure in self.failures)

    def summary(self) -> str:
        lines = [
            f"Imagenes: {self.total}",
            f"Workers: {self.worker_count}",
            f"Completadas: {self.succeeded}",
            f"Fallidas: {self.failed}",
            f"Tiempo total: {self.elapsed_seconds:.3f}s",
        ]
        if self.failures:
            lines.append(f"Ids fallidos: {self.failed_ids()}")
        return "\n".join(lines)

    def timing(self) -> Dict[str, Any]:
        timing: Dict[str, Any] = {
            "total_seconds": round(self.elapsed_seconds, 3),
            "worker_count": self.worker_count,
        }
        if self.succeeded and self.elapsed_seconds > 0:
            timing["images_per_second"] = round(self.succeeded / self.elapsed_seconds, 2)
        return timing


class _Progress:
    """Contador de avance compartido; opcionalmente alimenta una barra tqdm."""

    def __init__(self, total: int, callback: Optional[ProgressCallback], show_bar: bool) -> None:
        self.total = total
        self._done = 0
        self._lock = threading.Lock()
        self._callback = callback
        self._bar = tqdm(total=total, desc="Generando imagenes") if show_bar else None

    def advance(self, message: str) -> None:
        with self._lock:
            self._done += 1
            done = self._done
            if self._bar is not None:
                self._bar.update(1)
        if self._callback is not None:
            try:
                self._callback(done, self.total, message)
            except Exception:
                LOGGER.exception("El callback de progreso fallo en %d/%d", done, self.total)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()


# ----------------------------------------------------------------------
# Worker
# ----------------------------------------------------------------------
class ArtWorker:
    """Reclama trabajos de la cola hasta vaciarla, usando siempre su propio lienzo."""

    def __init__(self,
                 index: int,
                 queue: JobQueue,
                 compositor: LayerCompositor,
                 resolver: SourceResolver,
                 sink: OutputSink,
                 progress: Optional[_Progress] = None) -> None:
        self.index = index
        self._queue = queue
        self._compositor = compositor
        self._resolver = resolver
        self._sink = sink
        self._progress = progress

    def run(self) -> WorkerStats:
        stats = WorkerStats(worker_index=self.index)
        canvas = self._compositor.new_canvas()
        try:
            while True:
                descriptor = self._queue.claim_next()
                if descriptor is None:
                    break
                self._process(descriptor, canvas, stats)
        finally:
            canvas.close()
        return stats

    def _process(self, descriptor: ImageDescriptor, canvas: Canvas, stats: WorkerStats) -> None:
        name = descriptor.output_name
        start = time.perf_counter()
        try:
            data = self._compositor.composite(descriptor, self._resolver, canvas)
            destination = self._sink.deliver(name, data)
        except GenerationError as exc:
            if exc.image_id is None:
                exc.image_id = descriptor.id
            LOGGER.warning("Fallo la imagen %s (%s): %s", name, type(exc).__name__, exc)
            self._record_failure(descriptor, exc, stats)
            return
        except Exception as exc:
            LOGGER.exception("Error inesperado generando %s: %s", name, exc)
            self._record_failure(descriptor, exc, stats)
            return

        duration_ms = (time.perf_counter() - start) * 1000
        stats.completed.append(name)
        LOGGER.info("Colocado %s en %s.", name, destination)
        LOGGER.info("Imagen generada en: %.0fms.", duration_ms)
        if self._progress is not None:
            self._progress.advance(f"Generada {name}")

    def _record_failure(self, descriptor: ImageDescriptor, exc: BaseException, stats: WorkerStats) -> None:
        stats.failures.append(
            JobFailure(
                image_id=descriptor.id,
                output_name=descriptor.output_name,
                error_type=type(exc).__name__,
                message=str(exc),
            )
        )
        if self._progress is not None:
            self._progress.advance(f"Fallo {descriptor.output_name}")


# ----------------------------------------------------------------------
# Planificador del pool
# ----------------------------------------------------------------------
class ArtGenerator:
    """Dimensiona el pool, lanza los workers y espera a que terminen todos."""

    def __init__(self,
                 config: Union[GenerationConfig, Mapping[str, Any]],
                 max_workers: Optional[int] = None,
                 quality: Sequence[float] = DEFAULT_QUALITY,
                 optimizer: Optional[PngOptimizer] = None,
                 show_progress: bool = False) -> None:
        self.config = coerce_config(config)
        if max_workers is None:
            max_workers = detect_parallelism()
        if max_workers < 1:
            raise ConfigError(f"max_workers debe ser >= 1, no {max_workers}")
        self.max_workers = max_workers
        self.optimizer = optimizer or PngOptimizer(quality)
        self.show_progress = show_progress

    def worker_count_for(self, job_count: int) -> int:
        return min(self.max_workers, job_count)

    def generate(self,
                 descriptors: Iterable[Union[ImageDescriptor, Mapping[str, Any]]],
                 resolver: SourceResolver,
                 sink: OutputSink,
                 progress_callback: Optional[ProgressCallback] = None) -> GenerationReport:
        start = time.perf_counter()
        jobs = build_descriptors(descriptors)
        queue = JobQueue(jobs)
        total = len(jobs)
        worker_count = self.worker_count_for(total)
        report = GenerationReport(total=total, worker_count=worker_count)

        LOGGER.info("Instanciando %d workers para generar %d imagenes.", worker_count, total)
        if worker_count == 0:
            return report

        loader_threads = max(1, min(32, worker_count * len(self.config.order)))
        progress = _Progress(total, progress_callback, self.show_progress)
        try:
            with ThreadPoolExecutor(max_workers=loader_threads, thread_name_prefix="layer-loader") as loader_pool:
                compositor = LayerCompositor(self.config, optimizer=self.optimizer, loader_executor=loader_pool)
                with ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix="art-worker") as pool:
                    futures = [
                        pool.submit(ArtWorker(index, queue, compositor, resolver, sink, progress).run)
                        for index in range(worker_count)
                    ]
                    wait(futures)
                stats = [future.result() for future in futures]
        finally:
            progress.close()

        for worker_stats in stats:
            report.completed.extend(worker_stats.completed)
            report.failures.extend(worker_stats.failures)
        report.artifacts = sink.results()
        report.elapsed_seconds = time.perf_counter() - start

        LOGGER.info("Generadas %d imagenes en %.3fs.", report.succeeded, report.elapsed_seconds)
        if report.failures:
            LOGGER.warning("%d imagenes fallaron: ids %s", report.failed, report.failed_ids())
        return report


# ----------------------------------------------------------------------
# Puntos de entrada
# ----------------------------------------------------------------------
def create_generative_art(config_location: Union[str, Path],
                          randomized_sets: Iterable[Mapping[str, Any]],
                          traits_dir: Union[str, Path] = TRAITS_DIR,
                          assets_dir: Union[str, Path] = ASSETS_DIR,
                          max_workers: Optional[int] = None,
                          quality: Sequence[float] = DEFAULT_QUALITY,
                          show_progress: bool = False,
                          progress_callback: Optional[ProgressCallback] = None) -> GenerationReport:
    """Modo archivo: cada worker escribe `{assets_dir}/{id-1}.png` a medida que avanza."""
    config = load_generation_config(config_location)
    generator = ArtGenerator(config, max_workers=max_workers, quality=quality, show_progress=show_progress)
    return generator.generate(
        randomized_sets,
        TraitDirectoryResolver(traits_dir),
        FileSink(assets_dir),
        progress_callback=progress_callback,
    )


def create_generative_art_objects(config: Union[GenerationConfig, Mapping[str, Any]],
                                  randomized_sets: Iterable[Mapping[str, Any]],
                                  files: Optional[Mapping[str, Mapping[Any, Any]]] = None,
                                  max_workers: Optional[int] = None,
                                  quality: Sequence[float] = DEFAULT_QUALITY) -> Dict[str, bytes]:
    """Modo buffer: devuelve `{"{id-1}.png": bytes}` usando el mismo pool concurrente."""
    report = generate_art_objects(config, randomized_sets, files=files, max_workers=max_workers, quality=quality)
    return report.artifacts


def generate_art_objects(config: Union[GenerationConfig, Mapping[str, Any]],
                         randomized_sets: Iterable[Mapping[str, Any]],
                         files: Optional[Mapping[str, Mapping[Any, Any]]] = None,
                         max_workers: Optional[int] = None,
                         quality: Sequence[float] = DEFAULT_QUALITY) -> GenerationReport:
    """Igual que `create_generative_art_objects`, pero devuelve el reporte completo."""
    resolver: SourceResolver = MappingResolver(files) if files is not None else DirectSourceResolver()
    generator = ArtGenerator(config, max_workers=max_workers, quality=quality)
    return generator.generate(randomized_sets, resolver, MapSink())


__all__ = [
    "ArtGenerator",
    "ArtWorker",
    "FileSink",
    "GenerationReport",
    "ImageDescriptor",
    "JobFailure",
    "JobQueue",
    "MapSink",
    "OutputSink",
    "WorkerStats",
    "build_descriptors",
    "create_generative_art",
    "create_generative_art_objects",
    "detect_parallelism",
    "generate_art_objects",
]
