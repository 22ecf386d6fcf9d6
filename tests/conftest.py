"""Pytest fixtures: a tiny trait library generated on the fly."""

from pathlib import Path
from typing import Dict

import pytest
from PIL import Image

from art_config import GenerationConfig
from helpers import BLUE, GREEN, RED, circle, solid


@pytest.fixture
def traits_dir(tmp_path: Path) -> Path:
    root = tmp_path / "traits"
    images: Dict[str, Dict[str, Image.Image]] = {
        "bg": {"red.png": solid(RED), "blue.png": solid(BLUE), "small-green.png": solid(GREEN, (10, 10))},
        "fg": {"circle.png": circle(), "green-circle.png": circle(GREEN, (50, 50))},
        "top": {"green.png": solid(GREEN)},
    }
    for category, files in images.items():
        (root / category).mkdir(parents=True)
        for name, image in files.items():
            image.save(root / category / name)
    return root


@pytest.fixture
def assets_dir(tmp_path: Path) -> Path:
    return tmp_path / "assets"


@pytest.fixture
def config() -> GenerationConfig:
    return GenerationConfig(order=["bg", "fg"], width=100, height=100)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.json"
    path.write_text('{"order": ["bg", "fg"], "width": 100, "height": 100, "breakdown": {}}', encoding="utf-8")
    return path
