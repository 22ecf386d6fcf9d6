"""
Configuración de una corrida de generación: orden de capas y dimensiones.

El archivo JSON del proyecto suele traer más claves (rarezas, metadatos, etc.);
aquí solo se validan las que necesita el compositor y el resto se ignora.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from generation_errors import ConfigError


class GenerationConfig(BaseModel):
    """Orden de dibujo (primero = fondo) y tamaño del lienzo en píxeles."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    order: List[str] = Field(..., description="Categorías de capa de abajo hacia arriba.")
    width: int = Field(..., gt=0, description="Ancho del lienzo en píxeles.")
    height: int = Field(..., gt=0, description="Alto del lienzo en píxeles.")

    @field_validator("order")
    @classmethod
    def _validate_order(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("order debe contener al menos una categoria de capa")
        for name in value:
            if not isinstance(name, str) or not name.strip():
                raise ValueError("las categorias de order deben ser cadenas no vacias")
        return value


def coerce_config(config: Union[GenerationConfig, Mapping[str, Any]]) -> GenerationConfig:
    """Convierte un diccionario (o un modelo ya validado) en `GenerationConfig`."""
    if isinstance(config, GenerationConfig):
        return config
    if not isinstance(config, Mapping):
        raise ConfigError(f"Configuracion invalida: se esperaba un objeto, no {type(config).__name__}")
    try:
        return GenerationConfig.model_validate(dict(config))
    except ValidationError as exc:
        raise ConfigError(f"Configuracion invalida: {exc}") from exc


def load_generation_config(path: Union[str, Path]) -> GenerationConfig:
    """Lee el archivo JSON de configuración y devuelve la parte validada."""
    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as stream:
            data = json.load(stream)
    except FileNotFoundError as exc:
        raise ConfigError(f"No se encontro el archivo de configuracion: {config_path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"JSON invalido en {config_path}: {exc}") from exc
    return coerce_config(data)


__all__ = ["GenerationConfig", "coerce_config", "load_generation_config"]
