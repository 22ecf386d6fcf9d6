#!/usr/bin/env python3
"""
Lanzador del servicio web de Estratos Studio.

Antes de levantar uvicorn revisa que exista al menos una categoria de rasgos
y que el directorio de salida sea escribible.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Sequence

from paths import ASSETS_DIR, TRAITS_DIR

ENDPOINTS = (
    ("POST", "/api/runs", "corrida en segundo plano, escribe {id-1}.png en assets/{run_id}/"),
    ("GET", "/api/runs/{id}", "estado, avance y fallos de una corrida"),
    ("POST", "/api/render", "renderizado en memoria con capas en base64"),
    ("GET", "/api/diagnostics", "directorios, workers y ventana de calidad"),
)


def _trait_categories() -> list[tuple[str, int]]:
    if not TRAITS_DIR.exists():
        return []
    return [
        (entry.name, len(list(entry.glob("*.png"))))
        for entry in sorted(TRAITS_DIR.iterdir())
        if entry.is_dir()
    ]


def check_requirements(skip_checks: bool = False) -> bool:
    """Verifica dependencias web, biblioteca de rasgos y directorio de salida."""
    if skip_checks:
        return True

    try:
        import fastapi  # noqa: F401
        import uvicorn  # noqa: F401
    except ImportError as exc:
        print(f"[warn] Dependencia faltante: {exc}")
        print("       Ejecuta `pip install -e .` y vuelve a intentarlo.")
        return False

    categories = _trait_categories()
    if not categories:
        print(f"[warn] No se encontraron categorias de rasgos en {TRAITS_DIR}.")
        print("       Crea una carpeta por capa (p. ej. traits/background/) con sus PNG.")
        return False
    for name, count in categories:
        marker = "ok" if count else "warn"
        print(f"[{marker}] traits/{name}: {count} PNG")

    if not os.access(ASSETS_DIR, os.W_OK):
        print(f"[warn] No se puede escribir en {ASSETS_DIR}.")
        return False
    print(f"[ok] Salida en {ASSETS_DIR}")
    return True


def start_server(host: str, port: int, reload: bool) -> None:
    """Inicia el servidor FastAPI."""
    import uvicorn

    print(f"\n[info] Estratos Studio en http://{host}:{port}")
    for method, path, summary in ENDPOINTS:
        print(f"       {method:<5}{path:<20}{summary}")
    if reload:
        print("[info] Recarga automatica activa (modo desarrollo)")
    print("[info] Presiona Ctrl+C para detener el servidor\n")

    try:
        uvicorn.run("web_app:app", host=host, port=port, reload=reload)
    except KeyboardInterrupt:
        print("\n[info] Servidor detenido.")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Inicia la API de Estratos Studio: compone arte generativo por capas "
            f"con las imagenes de {TRAITS_DIR}."
        ),
        epilog="Para generar sin servidor usa `estratos-generate config.json sets.json`.",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Interfaz a enlazar (predeterminado: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8088, help="Puerto de escucha (predeterminado: 8088)")
    parser.add_argument(
        "--reload",
        dest="reload",
        action="store_true",
        default=True,
        help="Recarga el servidor al editar el codigo (por defecto encendida)",
    )
    parser.add_argument("--no-reload", dest="reload", action="store_false", help="Desactiva la recarga automatica")
    parser.add_argument(
        "--skip-checks",
        action="store_true",
        help="No revisa dependencias, categorias de rasgos ni el directorio de salida.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    print("== Estratos Studio: compositor de capas ==")
    print("=" * 50)

    if not check_requirements(skip_checks=args.skip_checks):
        print("\n[error] Configuracion incompleta. Corrige los puntos anteriores e intentalo de nuevo.")
        return 1

    start_server(host=args.host, port=args.port, reload=args.reload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
