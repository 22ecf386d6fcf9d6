"""
Compositor de capas para arte generativo.

Cada imagen se arma dibujando sus capas (fondo primero) sobre un lienzo
reutilizable. Las capas se cargan en paralelo, pero el dibujo empieza solo
cuando todas terminaron de cargarse y sigue siempre el orden configurado.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Tuple

import requests
from PIL import Image

from art_config import GenerationConfig
from generation_errors import LoadError, RenderError
from png_optimizer import PngOptimizer


LOGGER = logging.getLogger("estratos.compositor")

# Filtro de mayor calidad disponible en Pillow (equivalente al preset "best").
BEST_RESAMPLING = Image.Resampling.LANCZOS
REMOTE_TIMEOUT_SECONDS = 30

SourceResolver = Callable[[str, Any], Any]


class Canvas:
    """Superficie RGBA de tamaño fijo que un único worker reutiliza entre trabajos."""

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise RenderError(f"Dimensiones de lienzo invalidas: {width}x{height}")
        self.width = width
        self.height = height
        self._image: Optional[Image.Image] = Image.new("RGBA", (width, height), (0, 0, 0, 0))

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def image(self) -> Image.Image:
        if self._image is None:
            raise RenderError("El lienzo ya fue liberado")
        return self._image

    def draw(self, layer: Image.Image) -> None:
        """Escala la capa al tamaño del lienzo y la compone encima de lo ya dibujado."""
        if layer.mode != "RGBA":
            layer = layer.convert("RGBA")
        if layer.size != self.size:
            layer = layer.resize(self.size, BEST_RESAMPLING)
        self.image.alpha_composite(layer)

    def snapshot(self) -> Image.Image:
        return self.image.copy()

    def clear(self) -> None:
        if self._image is not None:
            self._image.paste((0, 0, 0, 0), (0, 0, self.width, self.height))

    def is_blank(self) -> bool:
        return self.image.getbbox() is None

    def close(self) -> None:
        if self._image is not None:
            self._image.close()
            self._image = None


# ----------------------------------------------------------------------
# Resolución de fuentes
# ----------------------------------------------------------------------
class TraitDirectoryResolver:
    """Construye `{traits_dir}/{categoria}/{valor}` (modo archivo)."""

    def __init__(self, traits_dir: Path | str):
        self.traits_dir = Path(traits_dir)
        self._root = self.traits_dir.resolve()

    def __call__(self, category: str, value: Any) -> Path:
        path = (self.traits_dir / category / str(value)).resolve()
        # Rutas absolutas o con ".." no pueden salir de la biblioteca.
        if not path.is_relative_to(self._root):
            raise LoadError(f"La capa {category}={value!r} queda fuera de {self.traits_dir}")
        return path


class MappingResolver:
    """Busca la fuente en una tabla `{categoria: {valor: fuente}}` (modo buffer)."""

    def __init__(self, files: Mapping[str, Mapping[Any, Any]]):
        self.files = files

    def __call__(self, category: str, value: Any) -> Any:
        try:
            return self.files[category][value]
        except (KeyError, TypeError) as exc:
            raise LoadError(f"No hay fuente para la capa {category}={value!r}") from exc


class DirectSourceResolver:
    """El valor del descriptor ya es la fuente de la imagen."""

    def __call__(self, category: str, value: Any) -> Any:
        return value


# ----------------------------------------------------------------------
# Carga de capas
# ----------------------------------------------------------------------
class LayerLoader:
    """Decodifica fuentes de capa (rutas, URLs, bytes, archivos o imágenes PIL)."""

    def __init__(self) -> None:
        self._local = threading.local()

    def _session(self) -> requests.Session:
        # requests.Session no es seguro entre hilos: una por hilo de carga.
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def load(self, source: Any) -> Image.Image:
        try:
            if isinstance(source, Image.Image):
                return source.convert("RGBA")
            if isinstance(source, (bytes, bytearray, memoryview)):
                return self._decode(BytesIO(bytes(source)))
            if isinstance(source, str) and source.lower().startswith(("http://", "https://")):
                return self._load_remote(source)
            if isinstance(source, (str, Path)):
                return self._decode(Path(source))
            if hasattr(source, "read"):
                return self._decode(source)
        except LoadError:
            raise
        except (OSError, ValueError, requests.RequestException) as exc:
            raise LoadError(f"No se pudo cargar la capa {source!r}: {exc}") from exc
        raise LoadError(f"Tipo de fuente no soportado: {type(source).__name__}")

    def _load_remote(self, url: str) -> Image.Image:
        response = self._session().get(url, timeout=REMOTE_TIMEOUT_SECONDS)
        response.raise_for_status()
        return self._decode(BytesIO(response.content))

    @staticmethod
    def _decode(stream: Any) -> Image.Image:
        with Image.open(stream) as img:
            img.load()
            return img.convert("RGBA")


class LayerCompositor:
    """Dibuja las capas de un descriptor y devuelve el PNG comprimido."""

    def __init__(self,
                 config: GenerationConfig,
                 optimizer: Optional[PngOptimizer] = None,
                 loader_executor: Optional[Executor] = None,
                 loader: Optional[LayerLoader] = None):
        self.order: List[str] = list(config.order)
        self.width = config.width
        self.height = config.height
        self.optimizer = optimizer or PngOptimizer()
        self.loader = loader or LayerLoader()
        self._loader_executor = loader_executor

    def new_canvas(self) -> Canvas:
        return Canvas(self.width, self.height)

    def resolve_sources(self, traits: Mapping[str, Any], resolver: SourceResolver,
                        image_id: Optional[int] = None) -> List[Any]:
        sources = []
        for category in self.order:
            if category not in traits:
                raise LoadError(f"El descriptor no define la capa {category!r}", image_id=image_id)
            sources.append(resolver(category, traits[category]))
        return sources

    def load_layers(self, sources: List[Any]) -> List[Image.Image]:
        """Carga todas las capas; el resultado conserva el orden de `sources`."""
        if self._loader_executor is None:
            return [self.loader.load(source) for source in sources]
        return list(self._loader_executor.map(self.loader.load, sources))

    def render(self, layers: List[Image.Image], canvas: Canvas) -> Image.Image:
        """Dibuja en orden y devuelve el buffer crudo; el lienzo siempre queda limpio."""
        try:
            for layer in layers:
                canvas.draw(layer)
            return canvas.snapshot()
        except RenderError:
            raise
        except (OSError, ValueError) as exc:
            raise RenderError(f"Fallo el dibujo sobre el lienzo: {exc}") from exc
        finally:
            canvas.clear()

    def composite(self, descriptor: Any, resolver: SourceResolver, canvas: Canvas) -> bytes:
        image_id = getattr(descriptor, "id", None)
        traits = getattr(descriptor, "traits", descriptor)
        try:
            sources = self.resolve_sources(traits, resolver, image_id=image_id)
            layers = self.load_layers(sources)
            LOGGER.debug("Imagen %s: %d capas cargadas", image_id, len(layers))
            rendered = self.render(layers, canvas)
        except (LoadError, RenderError) as exc:
            if exc.image_id is None:
                exc.image_id = image_id
            raise
        finally:
            canvas.clear()
        return self.optimizer.optimize(rendered)


__all__ = [
    "BEST_RESAMPLING",
    "Canvas",
    "DirectSourceResolver",
    "LayerCompositor",
    "LayerLoader",
    "MappingResolver",
    "TraitDirectoryResolver",
]
