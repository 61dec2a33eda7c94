"""Sphere-texture and flat-map projections from lon/lat to raster pixels."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from shapely.affinity import affine_transform
from shapely.ops import clip_by_rect
from shapely.ops import transform as shapely_transform

from .config import ProjectionConfig
from .models import CountryFeature

_LOGGER = logging.getLogger("choroglobe.projection")

SPHERE_VIEW = "sphere"
FLAT_VIEW = "flat"

# Unit-sphere CRSs: projected metres equal the raw projection in radians, so
# pixel scale is applied separately as an affine transform.
_GEOGRAPHIC_CRS = "+proj=longlat +R=1 +no_defs"
_EQUIRECTANGULAR_CRS = "+proj=eqc +R=1 +no_defs"
_MERCATOR_CRS = "+proj=merc +R=1 +no_defs"


@dataclass(frozen=True, slots=True)
class RasterProjection:
    """lon/lat -> pixel transform for one raster size."""

    view: str
    crs: str
    width: int
    height: int
    scale: float
    translate: tuple[float, float]
    clip_lat: float | None = None
    _paths: dict[CountryFeature, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def key(self) -> tuple[Any, ...]:
        return (self.view, self.crs, self.width, self.height, self.scale, self.translate, self.clip_lat)

    def path(self, feature: CountryFeature) -> Any:
        """Pixel-space geometry for `feature`, memoized per projection."""
        cached = self._paths.get(feature)
        if cached is None:
            cached = self.project(feature.geometry)
            self._paths[feature] = cached
        return cached

    def project(self, geometry: Any) -> Any:
        if geometry is None or geometry.is_empty:
            return geometry
        source = geometry
        if self.clip_lat is not None:
            source = clip_by_rect(source, -180.0, -self.clip_lat, 180.0, self.clip_lat)
            if source.is_empty:
                return source
        transformer = _require_pyproj_transformer(self.crs)
        projected = shapely_transform(transformer.transform, source)
        tx, ty = self.translate
        return affine_transform(projected, [self.scale, 0.0, 0.0, -self.scale, tx, ty])

    def project_point(self, lon: float, lat: float) -> tuple[float, float]:
        if self.clip_lat is not None:
            lat = min(max(float(lat), -self.clip_lat), self.clip_lat)
        transformer = _require_pyproj_transformer(self.crs)
        x, y = transformer.transform(float(lon), float(lat))
        tx, ty = self.translate
        return (tx + self.scale * float(x), ty - self.scale * float(y))


def sphere_projection(width: int, height: int) -> RasterProjection:
    """Equirectangular mapping of the full 360x180 degree surface onto the raster."""
    return RasterProjection(
        view=SPHERE_VIEW,
        crs=_EQUIRECTANGULAR_CRS,
        width=width,
        height=height,
        scale=width / (2.0 * math.pi),
        translate=(width / 2.0, height / 2.0),
    )


def flat_projection(width: int, height: int, *, scale_divisor: float, max_lat: float) -> RasterProjection:
    return RasterProjection(
        view=FLAT_VIEW,
        crs=_MERCATOR_CRS,
        width=width,
        height=height,
        scale=width / scale_divisor,
        translate=(width / 2.0, height / 2.0),
        clip_lat=max_lat,
    )


class ProjectionEngine:
    """Owns the immutable sphere projection and the resizable flat projection."""

    def __init__(self, cfg: ProjectionConfig) -> None:
        self.cfg = cfg
        self._sphere = sphere_projection(cfg.sphere.width_px, cfg.sphere.height_px)
        self._flat: RasterProjection | None = None

    @property
    def sphere(self) -> RasterProjection:
        return self._sphere

    @property
    def flat(self) -> RasterProjection | None:
        return self._flat

    def projection_for(self, view: str) -> RasterProjection | None:
        if view == SPHERE_VIEW:
            return self._sphere
        if view == FLAT_VIEW:
            return self._flat
        raise ValueError(f"Unknown view: {view}")

    def flat_raster_size(self, container_width: int, container_height: int) -> tuple[int, int] | None:
        width = int(container_width) - self.cfg.flat.margin_x_px
        height = int(container_height) - self.cfg.flat.margin_y_px
        if width <= 0 or height <= 0:
            return None
        return (width, height)

    def configure_flat(self, container_width: int, container_height: int) -> RasterProjection | None:
        """Rebuild the flat projection for a host container; None if it has no area."""
        size = self.flat_raster_size(container_width, container_height)
        if size is None:
            _LOGGER.debug(
                "Ignoring flat projection for container %sx%s (no drawable area)",
                container_width,
                container_height,
            )
            return None
        self._flat = flat_projection(
            size[0],
            size[1],
            scale_divisor=self.cfg.flat.scale_divisor,
            max_lat=self.cfg.flat.max_lat,
        )
        _LOGGER.debug("Flat projection configured at %dx%d", size[0], size[1])
        return self._flat


@lru_cache(maxsize=4)
def _require_pyproj_transformer(target_crs: str) -> Any:
    try:
        from pyproj import Transformer
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for raster projections") from exc
    return Transformer.from_crs(_GEOGRAPHIC_CRS, target_crs, always_xy=True)
