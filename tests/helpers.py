"""Shared image helpers for the test suite."""

from PIL import Image, ImageDraw

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)
GREEN = (0, 200, 0, 255)


def solid(color, size=(100, 100)) -> Image.Image:
    return Image.new("RGBA", size, color)


def circle(color=BLUE, size=(100, 100)) -> Image.Image:
    image = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    w, h = size
    draw.ellipse((w // 4, h // 4, 3 * w // 4, 3 * h // 4), fill=color)
    return image


def assert_close(pixel, expected, tolerance=16) -> None:
    assert all(abs(a - b) <= tolerance for a, b in zip(pixel, expected)), (pixel, expected)


def make_sets(count: int, bg: str = "red.png", fg: str = "circle.png"):
    return [{"id": str(index), "bg": bg, "fg": fg} for index in range(1, count + 1)]
