"""
Compresión PNG con pérdida mediante cuantización a paleta.

Se prueban paletas cada vez más grandes y se conserva la primera que alcanza la
calidad máxima solicitada. La calidad se mide con una PSNR normalizada entre
la imagen original y la cuantizada (canales premultiplicados por alfa).
"""

from __future__ import annotations

import logging
import math
from io import BytesIO
from typing import Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from generation_errors import CompressionError, ConfigError


LOGGER = logging.getLogger("estratos.png")

DEFAULT_QUALITY: Tuple[float, float] = (0.6, 0.95)
PALETTE_STEPS: Tuple[int, ...] = (16, 32, 64, 128, 256)

# PSNR (dB) que corresponde a calidad 0.0 y 1.0 respectivamente.
_PSNR_FLOOR = 20.0
_PSNR_CEILING = 45.0


def validate_quality(quality: Sequence[float]) -> Tuple[float, float]:
    """Comprueba que la ventana de calidad sea un rango cerrado dentro de [0, 1]."""
    try:
        low, high = (float(value) for value in quality)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"La calidad debe ser un par (minima, maxima): {quality!r}") from exc
    if not (0.0 <= low <= high <= 1.0):
        raise ConfigError(f"Ventana de calidad invalida: [{low}, {high}]")
    return low, high


def _as_premultiplied(image: Image.Image) -> np.ndarray:
    array = np.asarray(image.convert("RGBA"), dtype=np.float32)
    alpha = array[..., 3:4] / 255.0
    return np.concatenate((array[..., :3] * alpha, array[..., 3:4]), axis=-1)


def quality_score(reference: np.ndarray, candidate: np.ndarray) -> float:
    """Devuelve la calidad en [0, 1] de `candidate` respecto a `reference`."""
    diff = reference - candidate
    mse = float(np.mean(diff * diff))
    if mse <= 0.0:
        return 1.0
    psnr = 10.0 * math.log10((255.0 ** 2) / mse)
    return float(np.clip((psnr - _PSNR_FLOOR) / (_PSNR_CEILING - _PSNR_FLOOR), 0.0, 1.0))


class PngOptimizer:
    """Cuantizador PNG con ventana de calidad configurable."""

    def __init__(self, quality: Sequence[float] = DEFAULT_QUALITY,
                 palette_steps: Sequence[int] = PALETTE_STEPS):
        self.quality = validate_quality(quality)
        self.palette_steps = tuple(sorted(int(step) for step in palette_steps if 2 <= int(step) <= 256))
        if not self.palette_steps:
            raise ConfigError("Se requiere al menos un tamano de paleta entre 2 y 256")

    def optimize(self, image: Image.Image) -> bytes:
        """Cuantiza y codifica `image`; si no alcanza la calidad mínima la guarda sin pérdida."""
        min_quality, max_quality = self.quality
        try:
            rgba = image.convert("RGBA")
            reference = _as_premultiplied(rgba)

            best: Optional[Tuple[float, Image.Image]] = None
            for colors in self.palette_steps:
                candidate = rgba.quantize(colors=colors, method=Image.Quantize.FASTOCTREE)
                score = quality_score(reference, _as_premultiplied(candidate))
                if best is None or score > best[0]:
                    best = (score, candidate)
                if score >= max_quality:
                    break

            assert best is not None
            score, quantized = best
            if score < min_quality:
                LOGGER.debug("Calidad %.3f por debajo del minimo %.2f; se guarda sin perdida", score, min_quality)
                return self._encode(rgba)
            return self._encode(quantized)
        except CompressionError:
            raise
        except (OSError, ValueError) as exc:
            raise CompressionError(f"No se pudo comprimir la imagen: {exc}") from exc

    def optimize_bytes(self, data: bytes) -> bytes:
        """Igual que `optimize` pero parte de una imagen ya codificada."""
        try:
            with Image.open(BytesIO(data)) as img:
                img.load()
                return self.optimize(img)
        except CompressionError:
            raise
        except OSError as exc:
            raise CompressionError(f"Buffer de imagen ilegible: {exc}") from exc

    @staticmethod
    def _encode(image: Image.Image) -> bytes:
        buffer = BytesIO()
        image.save(buffer, format="PNG", optimize=True)
        return buffer.getvalue()


__all__ = ["DEFAULT_QUALITY", "PALETTE_STEPS", "PngOptimizer", "quality_score", "validate_quality"]
