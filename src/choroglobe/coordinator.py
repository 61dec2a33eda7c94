"""Keep the sphere texture and flat map in step with the value store."""

from __future__ import annotations

import enum
import logging
import time
from contextlib import contextmanager
from typing import Iterator

from .compositor import ChoroplethCompositor, CompositeResult
from .config import RenderConfig
from .projection import ProjectionEngine, RasterProjection
from .raster import RasterBuffer
from .resolver import CountryCodeResolver, CountryRegistry
from .sources import FeatureLoadReport, GeoFeatureSource
from .stipple import StippleMaskRenderer
from .store import Subscription, ValueStore
from .surfaces import DisplaySurface, ViewportSurface

_LOGGER = logging.getLogger("choroglobe.coordinator")


class CoordinatorState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"


class CoordinatorNotReadyError(RuntimeError):
    """Render requested before geometry finished loading (or after it failed)."""


class DualViewCoordinator:
    """Regenerate both rasters on every store change and publish them.

    Lifecycle: `initialize()` runs the single blocking feature load and moves
    UNINITIALIZED -> READY (or FAILED). Only READY accepts render requests.
    """

    def __init__(
        self,
        *,
        store: ValueStore,
        resolver: CountryCodeResolver,
        render_cfg: RenderConfig,
        sphere_surface: DisplaySurface,
        flat_surface: ViewportSurface,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.render_cfg = render_cfg
        self.sphere_surface = sphere_surface
        self.flat_surface = flat_surface

        self._state = CoordinatorState.UNINITIALIZED
        self._errors: tuple[str, ...] = ()
        self._registry: CountryRegistry | None = None
        self._engine: ProjectionEngine | None = None
        self._compositor: ChoroplethCompositor | None = None
        self._subscription: Subscription | None = None
        self._sphere_result: CompositeResult | None = None
        self._flat_result: CompositeResult | None = None
        self._batch_depth = 0
        self._pending_change = False
        self.render_passes = 0

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def errors(self) -> tuple[str, ...]:
        return self._errors

    @property
    def registry(self) -> CountryRegistry:
        self._require_ready()
        assert self._registry is not None
        return self._registry

    @property
    def engine(self) -> ProjectionEngine:
        self._require_ready()
        assert self._engine is not None
        return self._engine

    @property
    def sphere_result(self) -> CompositeResult | None:
        return self._sphere_result

    @property
    def flat_result(self) -> CompositeResult | None:
        return self._flat_result

    @property
    def sphere_raster(self) -> RasterBuffer | None:
        return self._sphere_result.raster if self._sphere_result else None

    @property
    def flat_raster(self) -> RasterBuffer | None:
        return self._flat_result.raster if self._flat_result else None

    def initialize(self, source: GeoFeatureSource) -> FeatureLoadReport:
        if self._state is not CoordinatorState.UNINITIALIZED:
            raise RuntimeError(f"Coordinator already initialized (state={self._state.value})")

        report = source.load_features()
        if not report.ok:
            if not report.errors:
                report.add_error("Geographic data source returned no features.")
            self._state = CoordinatorState.FAILED
            self._errors = tuple(report.errors)
            for msg in report.errors:
                _LOGGER.error("Initialization failed: %s", msg)
            return report

        registry = self.resolver.build_registry(report.features)
        engine = ProjectionEngine(self.render_cfg.projection)
        stipple = StippleMaskRenderer(registry.all_features, self.render_cfg.stipple)
        self._registry = registry
        self._engine = engine
        self._compositor = ChoroplethCompositor(registry, self.store, stipple, self.render_cfg.colors)
        report.add_info(
            f"Resolved {len(registry)} of {len(self.resolver.table)} tracked codes "
            f"across {len(registry.all_features)} features."
        )

        self._state = CoordinatorState.READY
        self._subscription = self.store.subscribe(self._on_value_changed)
        self.regenerate_sphere()
        if self._configure_flat_from_surface() is not None:
            self.regenerate_flat()
        return report

    def regenerate_sphere(self) -> RasterBuffer:
        self._require_ready()
        assert self._engine is not None and self._compositor is not None
        result = self._compositor.compose(self._engine.sphere, self.render_cfg.views.sphere)
        self._sphere_result = result
        self.sphere_surface.present(result.raster)
        return result.raster

    def regenerate_flat(self) -> RasterBuffer | None:
        """Recompose the flat raster; None while the flat view has no area."""
        self._require_ready()
        assert self._engine is not None and self._compositor is not None
        projection = self._engine.flat
        if projection is None:
            return None
        result = self._compositor.compose(projection, self.render_cfg.views.flat)
        self._flat_result = result
        self.flat_surface.present(result.raster)
        return result.raster

    def regenerate_all(self) -> None:
        t0 = time.perf_counter()
        self.regenerate_sphere()
        self.regenerate_flat()
        self.render_passes += 1
        _LOGGER.debug("[render] pass %d done in %.3fs", self.render_passes, time.perf_counter() - t0)

    def handle_flat_resize(self) -> RasterBuffer | None:
        """Re-read the flat viewport, rebuild its projection, redraw only the flat view."""
        self._require_ready()
        if self._configure_flat_from_surface() is None:
            return None
        return self.regenerate_flat()

    @contextmanager
    def batch_updates(self) -> Iterator[None]:
        """Coalesce store notifications into a single regeneration on exit."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending_change:
                self._pending_change = False
                if self._state is CoordinatorState.READY:
                    self.regenerate_all()

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def _on_value_changed(self, code: str, value: int) -> None:
        _LOGGER.debug("Value change %s=%d", code, value)
        if self._batch_depth > 0:
            self._pending_change = True
            return
        self.regenerate_all()

    def _configure_flat_from_surface(self) -> RasterProjection | None:
        assert self._engine is not None
        width, height = self.flat_surface.viewport_size()
        return self._engine.configure_flat(width, height)

    def _require_ready(self) -> None:
        if self._state is not CoordinatorState.READY:
            raise CoordinatorNotReadyError(
                f"Render requested while coordinator is {self._state.value}"
            )
