"""Land mask rasterization and the dotted stipple texture."""

from __future__ import annotations

import logging
import time
from typing import Any, Sequence

import numpy as np
from PIL import Image, ImageDraw

from .config import StippleConfig
from .models import CountryFeature
from .projection import RasterProjection
from .raster import fill_geometry, new_canvas, rgba

_LOGGER = logging.getLogger("choroglobe.stipple")

_LAND = 255


class StippleMaskRenderer:
    """Render every feature as land, then sample it on a grid into dots.

    When `cfg.cache_masks` is set, one mask per view is kept and replaced as
    soon as that view's projection key changes. The feature set handed in
    at construction never changes afterwards.
    """

    def __init__(self, features: Sequence[CountryFeature], cfg: StippleConfig) -> None:
        self._features = tuple(features)
        self.cfg = cfg
        self._mask_cache: dict[str, tuple[tuple[Any, ...], Image.Image]] = {}

    def land_mask(self, projection: RasterProjection) -> Image.Image:
        """`L` image sized to the projection: 255 on land, 0 elsewhere."""
        if self.cfg.cache_masks:
            cached = self._mask_cache.get(projection.view)
            if cached is not None and cached[0] == projection.key:
                return cached[1]
        mask = Image.new("L", projection.size, 0)
        for feature in self._features:
            fill_geometry(mask, projection.path(feature), _LAND)
        if self.cfg.cache_masks:
            self._mask_cache[projection.view] = (projection.key, mask)
        return mask

    def dot_positions(self, projection: RasterProjection) -> list[tuple[int, int]]:
        spacing = self.cfg.spacing_px
        samples = np.asarray(self.land_mask(projection))[::spacing, ::spacing]
        rows, cols = np.nonzero(samples > self.cfg.mask_threshold)
        return [(int(col) * spacing, int(row) * spacing) for row, col in zip(rows, cols)]

    def render(self, projection: RasterProjection) -> Image.Image:
        """Transparent RGBA texture with one translucent dot per land grid point."""
        t0 = time.perf_counter()
        texture = new_canvas(projection.size)
        draw = ImageDraw.Draw(texture)
        radius = self.cfg.dot_size_px / 2.0
        color = rgba(self.cfg.color, self.cfg.alpha)
        positions = self.dot_positions(projection)
        for x, y in positions:
            draw.ellipse((x - radius, y - radius, x + radius, y + radius), fill=color)
        _LOGGER.debug(
            "[stipple] %s %dx%d: %d dots in %.3fs",
            projection.view,
            projection.width,
            projection.height,
            len(positions),
            time.perf_counter() - t0,
        )
        return texture

    @property
    def cached_mask_count(self) -> int:
        return len(self._mask_cache)

    def clear_cache(self) -> None:
        self._mask_cache.clear()
