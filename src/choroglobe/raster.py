"""Raster buffers and polygon fill/stroke onto Pillow images."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Sequence

from PIL import Image, ImageDraw

from .config import RGB
from .util import sha256_bytes

RGBA = tuple[int, int, int, int]


@dataclass(frozen=True, slots=True)
class RasterBuffer:
    """One finished RGBA frame for a single view.

    Surfaces receive it after composition and must treat `image` as read-only.
    """

    view: str
    image: Image.Image
    projection_key: tuple[Any, ...]

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def to_bytes(self) -> bytes:
        return self.image.tobytes()

    def digest(self) -> str:
        return sha256_bytes(self.to_bytes())

    def pixel(self, x: int, y: int) -> RGBA:
        return tuple(self.image.getpixel((x, y)))  # type: ignore[return-value]

    def save(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.image.save(path, format="PNG")
        return path


def rgba(color: RGB, alpha: float) -> RGBA:
    return (color[0], color[1], color[2], int(round(alpha * 255)))


def new_canvas(size: tuple[int, int], fill: RGBA = (0, 0, 0, 0)) -> Image.Image:
    return Image.new("RGBA", size, fill)


def iter_polygons(geometry: Any) -> Iterator[Any]:
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "Polygon":
        if not geometry.is_empty:
            yield geometry
        return
    if geom_type in {"MultiPolygon", "GeometryCollection"}:
        for part in geometry.geoms:
            yield from iter_polygons(part)


def fill_geometry(image: Image.Image, geometry: Any, fill: RGBA | int) -> None:
    """Fill pixel-space polygons (holes excluded) onto `image`.

    RGBA images are alpha-composited; `L` masks are painted directly.
    """
    polygons = list(iter_polygons(geometry))
    bounds = _pixel_bounds(polygons, image.size, pad=0)
    if bounds is None:
        return
    x0, y0, x1, y1 = bounds
    mask = Image.new("L", (x1 - x0, y1 - y0), 0)
    draw = ImageDraw.Draw(mask)
    for polygon in polygons:
        exterior = _shift(polygon.exterior.coords, x0, y0)
        if len(exterior) >= 3:
            draw.polygon(exterior, fill=255)
        for interior in polygon.interiors:
            hole = _shift(interior.coords, x0, y0)
            if len(hole) >= 3:
                draw.polygon(hole, fill=0)

    if image.mode == "RGBA":
        patch = Image.new("RGBA", mask.size, (0, 0, 0, 0))
        patch.paste(fill, mask=mask)
        image.alpha_composite(patch, dest=(x0, y0))
    else:
        image.paste(fill, (x0, y0), mask)


def stroke_geometry(image: Image.Image, geometry: Any, color: RGBA, width: int) -> None:
    """Alpha-composite polygon outlines (exterior and holes) onto an RGBA image."""
    polygons = list(iter_polygons(geometry))
    bounds = _pixel_bounds(polygons, image.size, pad=width)
    if bounds is None:
        return
    x0, y0, x1, y1 = bounds
    patch = Image.new("RGBA", (x1 - x0, y1 - y0), (0, 0, 0, 0))
    draw = ImageDraw.Draw(patch)
    for polygon in polygons:
        for ring in (polygon.exterior, *polygon.interiors):
            points = _shift(ring.coords, x0, y0)
            if len(points) >= 2:
                draw.line(points, fill=color, width=width, joint="curve")
    image.alpha_composite(patch, dest=(x0, y0))


def _pixel_bounds(
    polygons: Sequence[Any],
    size: tuple[int, int],
    *,
    pad: int,
) -> tuple[int, int, int, int] | None:
    if not polygons:
        return None
    min_x = min(p.bounds[0] for p in polygons) - pad
    min_y = min(p.bounds[1] for p in polygons) - pad
    max_x = max(p.bounds[2] for p in polygons) + pad
    max_y = max(p.bounds[3] for p in polygons) + pad
    x0 = max(int(math.floor(min_x)), 0)
    y0 = max(int(math.floor(min_y)), 0)
    x1 = min(int(math.ceil(max_x)) + 1, size[0])
    y1 = min(int(math.ceil(max_y)) + 1, size[1])
    if x1 <= x0 or y1 <= y0:
        return None
    return (x0, y0, x1, y1)


def _shift(coords: Any, dx: int, dy: int) -> list[tuple[float, float]]:
    return [(float(x) - dx, float(y) - dy) for x, y, *_ in coords]
