"""
Jerarquía de errores de la canalización de generación de arte por capas.

Los errores de configuración son fatales y se lanzan antes de iniciar el pool;
el resto se limita a un único trabajo y el worker continúa con el siguiente.
"""

from __future__ import annotations

from typing import Optional


class GenerationError(Exception):
    """Error base de la generación; conserva el identificador de la imagen si se conoce."""

    def __init__(self, message: str, image_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.image_id = image_id


class ConfigError(GenerationError, ValueError):
    """Dimensiones u orden de capas inválidos, o descriptores mal formados."""


class LoadError(GenerationError):
    """Una capa no se pudo resolver, descargar o decodificar."""


class RenderError(GenerationError):
    """Falló el dibujo sobre el lienzo o la extracción del buffer."""


class CompressionError(GenerationError):
    """El cuantizador PNG no pudo codificar la imagen."""


class OutputWriteError(GenerationError, OSError):
    """No se pudo escribir el archivo de salida."""


__all__ = [
    "CompressionError",
    "ConfigError",
    "GenerationError",
    "LoadError",
    "OutputWriteError",
    "RenderError",
]
