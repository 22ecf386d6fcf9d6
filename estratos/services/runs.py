"""
Registro de corridas seguro entre hilos para la generación en modo archivo.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from art_generator import GenerationReport, ImageDescriptor
from art_config import GenerationConfig

from estratos.models import JobFailureModel, RunProgress, RunResponse, RunStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GenerationRun:
    """Representación interna de una corrida en ejecución o finalizada."""

    id: str
    config: GenerationConfig
    descriptors: List[ImageDescriptor]
    output_dir: Path
    max_workers: Optional[int] = None
    status: RunStatus = RunStatus.pending
    message: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    worker_count: Optional[int] = None
    failures: List[JobFailureModel] = field(default_factory=list)
    timing: Optional[dict] = None
    _done: int = 0
    _elapsed_seconds: Optional[float] = None

    @property
    def total(self) -> int:
        return len(self.descriptors)

    def set_status(self, status: RunStatus, message: Optional[str] = None) -> None:
        self.status = status
        self.message = message
        self.updated_at = _utcnow()
        if status in (RunStatus.completed, RunStatus.failed):
            self.finished_at = self.updated_at
            self._elapsed_seconds = (self.finished_at - self.created_at).total_seconds()

    def set_progress(self, done: int, message: Optional[str]) -> None:
        self._done = done
        self.message = message or self.message
        self.updated_at = _utcnow()
        self._elapsed_seconds = max((self.updated_at - self.created_at).total_seconds(), 0.0)

    def percent(self) -> float:
        if not self.total:
            return 100.0 if self.finished_at else 0.0
        return min(100.0, (self._done / self.total) * 100.0)

    def to_response(self) -> RunResponse:
        progress = RunProgress(
            total=self.total,
            completed=self._done,
            failed=len(self.failures),
            percent=round(self.percent(), 2),
            message=self.message,
            elapsed_seconds=self._elapsed_seconds,
        )
        return RunResponse(
            id=self.id,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
            finished_at=self.finished_at,
            message=self.message,
            image_count=self.total,
            worker_count=self.worker_count,
            output_dir=str(self.output_dir),
            progress=progress,
            failures=list(self.failures),
            timing=self.timing,
        )


class RunStore:
    """Registro en memoria de las corridas de generación."""

    def __init__(self, retention_limit: int = 20) -> None:
        self._runs: Dict[str, GenerationRun] = {}
        self._lock = threading.Lock()
        self._retention = max(1, retention_limit)

    def create(
        self,
        config: GenerationConfig,
        descriptors: List[ImageDescriptor],
        assets_root: Path,
        max_workers: Optional[int] = None,
        run_id: Optional[str] = None,
    ) -> GenerationRun:
        with self._lock:
            run_id = run_id or uuid.uuid4().hex
            run = GenerationRun(
                id=run_id,
                config=config,
                descriptors=descriptors,
                output_dir=assets_root / run_id,
                max_workers=max_workers,
            )
            self._runs[run_id] = run
            self._evict_if_needed()
            return run

    def _evict_if_needed(self) -> None:
        if len(self._runs) <= self._retention:
            return
        # Elimina primero las corridas terminadas más antiguas para acotar la memoria.
        finished: Iterable[tuple[str, GenerationRun]] = sorted(
            ((run_id, run) for run_id, run in self._runs.items() if run.finished_at),
            key=lambda item: item[1].finished_at or item[1].created_at,
        )
        for run_id, _ in finished:
            del self._runs[run_id]
            if len(self._runs) <= self._retention:
                return

    def get(self, run_id: str) -> Optional[GenerationRun]:
        with self._lock:
            return self._runs.get(run_id)

    def list(self) -> Iterable[GenerationRun]:
        with self._lock:
            return sorted(self._runs.values(), key=lambda run: run.created_at, reverse=True)

    def update_progress(self, run_id: str, done: int, message: Optional[str]) -> None:
        with self._lock:
            run = self._runs.get(run_id)
            if run:
                run.set_progress(done, message)

    def mark_running(self, run_id: str, worker_count: int, message: Optional[str] = None) -> None:
        with self._lock:
            run = self._runs.get(run_id)
            if run:
                run.worker_count = worker_count
                run.set_status(RunStatus.running, message)

    def mark_completed(self, run_id: str, report: GenerationReport, message: Optional[str] = None) -> None:
        with self._lock:
            run = self._runs.get(run_id)
            if run:
                run.worker_count = report.worker_count
                run.failures = failures_to_models(report)
                run.timing = report.timing()
                run.set_progress(report.total, message)
                run.set_status(RunStatus.completed, message)

    def mark_failed(self, run_id: str, error_message: str) -> None:
        with self._lock:
            run = self._runs.get(run_id)
            if run:
                run.set_status(RunStatus.failed, error_message)


def failures_to_models(report: GenerationReport) -> List[JobFailureModel]:
    return [JobFailureModel(**vars(failure)) for failure in report.failures]


__all__ = ["GenerationRun", "RunStore", "failures_to_models"]
