"""Service layer utilities for the layered art studio."""

from .art_runner import ArtPipeline
from .runs import GenerationRun, RunStore

__all__ = ["ArtPipeline", "GenerationRun", "RunStore"]
