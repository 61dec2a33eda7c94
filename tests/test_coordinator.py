from __future__ import annotations

import pytest

from choroglobe.config import RenderConfig
from choroglobe.coordinator import CoordinatorNotReadyError, CoordinatorState, DualViewCoordinator
from choroglobe.models import CountryFeature
from choroglobe.resolver import CountryCodeResolver
from choroglobe.sources import StaticFeatureSource
from choroglobe.store import ColorScale, ValueStore

from .conftest import CODE_TABLE, RecordingSurface, make_features


def _fresh_coordinator(render_cfg: RenderConfig) -> tuple[DualViewCoordinator, ValueStore]:
    colors = render_cfg.colors
    store = ValueStore(ColorScale(colors.scale_light, colors.scale_dark))
    coordinator = DualViewCoordinator(
        store=store,
        resolver=CountryCodeResolver(CODE_TABLE),
        render_cfg=render_cfg,
        sphere_surface=RecordingSurface(),
        flat_surface=RecordingSurface(),
    )
    coordinator.initialize(StaticFeatureSource(make_features()))
    return coordinator, store


def test_render_before_initialize_is_rejected(coordinator: DualViewCoordinator) -> None:
    assert coordinator.state is CoordinatorState.UNINITIALIZED
    with pytest.raises(CoordinatorNotReadyError):
        coordinator.regenerate_sphere()
    with pytest.raises(CoordinatorNotReadyError):
        coordinator.handle_flat_resize()
    assert coordinator.sphere_raster is None


def test_failed_load_enters_failed_state(
    coordinator: DualViewCoordinator,
    store: ValueStore,
    sphere_surface: RecordingSurface,
    flat_surface: RecordingSurface,
) -> None:
    report = coordinator.initialize(StaticFeatureSource([]))

    assert not report.ok
    assert coordinator.state is CoordinatorState.FAILED
    assert coordinator.errors == ("Feature set is empty.",)
    with pytest.raises(CoordinatorNotReadyError):
        coordinator.regenerate_flat()

    store.set_value("USA", 50)
    assert sphere_surface.frames == []
    assert flat_surface.frames == []


def test_initialize_publishes_both_views(
    ready_coordinator: DualViewCoordinator,
    sphere_surface: RecordingSurface,
    flat_surface: RecordingSurface,
) -> None:
    assert ready_coordinator.state is CoordinatorState.READY
    assert len(sphere_surface.frames) == 1
    assert len(flat_surface.frames) == 1
    assert sphere_surface.frames[0] is ready_coordinator.sphere_raster
    assert (flat_surface.frames[0].width, flat_surface.frames[0].height) == (400, 200)
    assert ready_coordinator.registry.codes() == ("BRA", "USA", "ZAF")

    with pytest.raises(RuntimeError):
        ready_coordinator.initialize(StaticFeatureSource(make_features()))


def test_value_change_regenerates_both_views(
    ready_coordinator: DualViewCoordinator,
    store: ValueStore,
    sphere_surface: RecordingSurface,
    flat_surface: RecordingSurface,
) -> None:
    store.set_value("USA", 50)

    assert ready_coordinator.render_passes == 1
    assert len(sphere_surface.frames) == 2
    assert len(flat_surface.frames) == 2
    assert ready_coordinator.sphere_result is not None
    assert ready_coordinator.flat_result is not None
    assert ready_coordinator.sphere_result.fills == ready_coordinator.flat_result.fills
    assert set(ready_coordinator.sphere_result.fills) == {"USA"}


def test_idempotent_set_does_not_render(
    ready_coordinator: DualViewCoordinator,
    store: ValueStore,
    sphere_surface: RecordingSurface,
) -> None:
    store.set_value("USA", 50)
    store.set_value("USA", 50)
    store.set_value("BRA", 0)

    assert ready_coordinator.render_passes == 1
    assert len(sphere_surface.frames) == 2


def test_resize_redraws_only_the_flat_view(
    ready_coordinator: DualViewCoordinator,
    store: ValueStore,
    sphere_surface: RecordingSurface,
    flat_surface: RecordingSurface,
) -> None:
    store.set_value("BRA", 30)
    sphere_before = ready_coordinator.sphere_raster
    assert sphere_before is not None
    digest_before = sphere_before.digest()
    sphere_projection = ready_coordinator.engine.sphere

    flat_surface.viewport = (640, 400)
    raster = ready_coordinator.handle_flat_resize()

    assert raster is not None
    assert (raster.width, raster.height) == (600, 300)
    assert len(flat_surface.frames) == 3
    assert len(sphere_surface.frames) == 2
    assert ready_coordinator.sphere_raster is sphere_before
    assert ready_coordinator.sphere_raster.digest() == digest_before
    assert ready_coordinator.engine.sphere is sphere_projection


def test_resize_to_zero_area_is_ignored(
    ready_coordinator: DualViewCoordinator,
    flat_surface: RecordingSurface,
) -> None:
    flat_before = ready_coordinator.flat_raster

    flat_surface.viewport = (30, 60)
    assert ready_coordinator.handle_flat_resize() is None

    assert len(flat_surface.frames) == 1
    assert ready_coordinator.flat_raster is flat_before


def test_batched_changes_render_once_with_identical_output(
    ready_coordinator: DualViewCoordinator,
    store: ValueStore,
    render_cfg: RenderConfig,
    sphere_surface: RecordingSurface,
) -> None:
    with ready_coordinator.batch_updates():
        store.set_value("USA", 20)
        store.set_value("BRA", 60)
        store.set_value("ZAF", 95)
        assert len(sphere_surface.frames) == 1

    assert ready_coordinator.render_passes == 1
    assert len(sphere_surface.frames) == 2

    unbatched, other_store = _fresh_coordinator(render_cfg)
    other_store.set_value("USA", 20)
    other_store.set_value("BRA", 60)
    other_store.set_value("ZAF", 95)
    assert unbatched.render_passes == 3

    assert ready_coordinator.sphere_raster is not None and unbatched.sphere_raster is not None
    assert ready_coordinator.flat_raster is not None and unbatched.flat_raster is not None
    assert ready_coordinator.sphere_raster.to_bytes() == unbatched.sphere_raster.to_bytes()
    assert ready_coordinator.flat_raster.to_bytes() == unbatched.flat_raster.to_bytes()


def test_empty_batch_does_not_render(ready_coordinator: DualViewCoordinator) -> None:
    with ready_coordinator.batch_updates():
        pass
    assert ready_coordinator.render_passes == 0


def test_close_stops_regeneration(
    ready_coordinator: DualViewCoordinator,
    store: ValueStore,
    sphere_surface: RecordingSurface,
) -> None:
    ready_coordinator.close()
    store.set_value("USA", 80)

    assert ready_coordinator.render_passes == 0
    assert len(sphere_surface.frames) == 1


def test_unresolved_features_still_feed_the_stipple(
    ready_coordinator: DualViewCoordinator,
    features: list[CountryFeature],
) -> None:
    registry = ready_coordinator.registry
    assert len(registry.all_features) == len(features)
    assert registry.unresolved_ids == ("999",)
