"""
Project-wide filesystem helpers for the Estratos Studio project.

Provides absolute paths for the trait library and the generated assets so that
code does not rely on the current working directory (which varies between CLI,
server reloads, tests, or IDE tasks). Importing this module guarantees that the
expected writable folders exist before they are used elsewhere.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable


PROJECT_ROOT = Path(__file__).resolve().parent
TRAITS_DIR = PROJECT_ROOT / "traits"
ASSETS_DIR = PROJECT_ROOT / "assets"
CONFIG_PATH = PROJECT_ROOT / "config.json"


def ensure_directories(directories: Iterable[Path]) -> None:
    """Create the given directories (and parents) if they do not exist."""
    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


# Ensure writable directories are present once the module is imported.
ensure_directories((ASSETS_DIR,))
