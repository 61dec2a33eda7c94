from __future__ import annotations

from choroglobe.config import RenderConfig
from choroglobe.models import CountryFeature
from choroglobe.projection import ProjectionEngine
from choroglobe.stipple import StippleMaskRenderer


def test_land_mask_covers_every_feature_including_unresolved(
    features: list[CountryFeature],
    render_cfg: RenderConfig,
    engine: ProjectionEngine,
) -> None:
    renderer = StippleMaskRenderer(features, render_cfg.stipple)
    mask = renderer.land_mask(engine.sphere)

    assert mask.size == (360, 180)
    assert mask.getpixel((90, 54)) == 255
    assert mask.getpixel((250, 42)) == 255
    assert mask.getpixel((10, 10)) == 0
    # Interior ring of the holed polygon stays water.
    assert mask.getpixel((205, 118)) == 0


def test_dots_sit_on_the_grid_over_land_only(
    features: list[CountryFeature],
    render_cfg: RenderConfig,
    engine: ProjectionEngine,
) -> None:
    renderer = StippleMaskRenderer(features, render_cfg.stipple)
    positions = set(renderer.dot_positions(engine.sphere))

    assert positions
    assert all(x % 4 == 0 and y % 4 == 0 for x, y in positions)
    assert (88, 52) in positions
    assert (248, 40) in positions
    assert (196, 112) in positions
    assert (8, 8) not in positions
    assert (204, 116) not in positions


def test_texture_is_translucent_white_dots_on_transparent(
    features: list[CountryFeature],
    render_cfg: RenderConfig,
    engine: ProjectionEngine,
) -> None:
    renderer = StippleMaskRenderer(features, render_cfg.stipple)
    texture = renderer.render(engine.sphere)

    assert texture.mode == "RGBA"
    assert texture.getpixel((88, 52)) == (255, 255, 255, 38)
    assert texture.getpixel((90, 54))[3] == 0
    assert texture.getpixel((8, 8))[3] == 0


def test_stipple_is_deterministic_and_masks_are_cached(
    features: list[CountryFeature],
    render_cfg: RenderConfig,
    engine: ProjectionEngine,
) -> None:
    renderer = StippleMaskRenderer(features, render_cfg.stipple)

    first = renderer.render(engine.sphere).tobytes()
    second = renderer.render(engine.sphere).tobytes()
    assert first == second
    assert renderer.land_mask(engine.sphere) is renderer.land_mask(engine.sphere)

    cached = renderer.land_mask(engine.sphere)
    renderer.clear_cache()
    rebuilt = renderer.land_mask(engine.sphere)
    assert rebuilt is not cached
    assert rebuilt.tobytes() == cached.tobytes()


def test_resizing_keeps_one_cached_mask_per_view(
    features: list[CountryFeature],
    render_cfg: RenderConfig,
    engine: ProjectionEngine,
) -> None:
    renderer = StippleMaskRenderer(features, render_cfg.stipple)
    sphere_mask = renderer.land_mask(engine.sphere)

    for step in range(50):
        flat = engine.configure_flat(240 + step, 300)
        assert flat is not None
        renderer.render(flat)
        assert renderer.cached_mask_count <= 2

    assert renderer.cached_mask_count == 2
    assert renderer.land_mask(engine.sphere) is sphere_mask
    last = engine.flat
    assert last is not None
    assert renderer.land_mask(last).size == (249, 200)

    first = engine.configure_flat(240, 300)
    assert first is not None
    rebuilt = renderer.land_mask(first)
    assert rebuilt.size == (200, 200)
    assert renderer.land_mask(first) is rebuilt
