"""Choropleth composition: ocean, stipple, neutral land, value overlay."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Mapping

from PIL import Image

from .config import RGB, ColorsConfig, ViewStyleConfig
from .projection import RasterProjection
from .raster import RasterBuffer, fill_geometry, new_canvas, rgba, stroke_geometry
from .resolver import CountryRegistry
from .stipple import StippleMaskRenderer
from .store import ValueStore

_LOGGER = logging.getLogger("choroglobe.compositor")


@dataclass(frozen=True, slots=True)
class CompositeResult:
    raster: RasterBuffer
    # Overlay colour actually painted per code; codes left neutral are absent.
    fills: Mapping[str, RGB] = field(default_factory=dict)


class ChoroplethCompositor:
    """Build the final raster of one view from the current store state."""

    def __init__(
        self,
        registry: CountryRegistry,
        store: ValueStore,
        stipple: StippleMaskRenderer,
        colors: ColorsConfig,
    ) -> None:
        self.registry = registry
        self.store = store
        self.stipple = stipple
        self.colors = colors

    def compose(self, projection: RasterProjection, style: ViewStyleConfig) -> CompositeResult:
        t0 = time.perf_counter()
        canvas = self._ocean(projection, style)
        self._overlay_stipple(canvas, projection)
        self._fill_neutral_land(canvas, projection)
        fills = self._fill_values(canvas, projection, style)
        _LOGGER.debug(
            "[compose] %s %dx%d: %d coloured countries in %.3fs",
            projection.view,
            projection.width,
            projection.height,
            len(fills),
            time.perf_counter() - t0,
        )
        raster = RasterBuffer(view=projection.view, image=canvas, projection_key=projection.key)
        return CompositeResult(raster=raster, fills=fills)

    def _ocean(self, projection: RasterProjection, style: ViewStyleConfig) -> Image.Image:
        return new_canvas(projection.size, rgba(style.ocean_color, style.ocean_alpha))

    def _overlay_stipple(self, canvas: Image.Image, projection: RasterProjection) -> None:
        canvas.alpha_composite(self.stipple.render(projection))

    def _fill_neutral_land(self, canvas: Image.Image, projection: RasterProjection) -> None:
        base = rgba(self.colors.base_fill, self.colors.base_alpha)
        for feature in self.registry.resolved_features():
            fill_geometry(canvas, projection.path(feature), base)

    def _fill_values(
        self,
        canvas: Image.Image,
        projection: RasterProjection,
        style: ViewStyleConfig,
    ) -> dict[str, RGB]:
        border = rgba(self.colors.border_color, style.border_alpha)
        fills: dict[str, RGB] = {}
        for code, value in self.store.all_entries():
            if value <= 0:
                continue
            feature = self.registry.feature_for(code)
            if feature is None:
                continue
            color = self.store.get_color(code)
            if color is None:
                continue
            path = projection.path(feature)
            fill_geometry(canvas, path, rgba(color, self.colors.overlay_alpha))
            stroke_geometry(canvas, path, border, style.border_width_px)
            fills[code] = color
        return fills
