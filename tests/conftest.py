from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any

import pytest
import yaml
from shapely.geometry import Polygon, box

from choroglobe.compositor import ChoroplethCompositor
from choroglobe.config import _DEFAULT_RENDER, RenderConfig
from choroglobe.coordinator import DualViewCoordinator
from choroglobe.models import CountryFeature
from choroglobe.projection import ProjectionEngine
from choroglobe.resolver import CountryCodeResolver, CountryRegistry
from choroglobe.sources import StaticFeatureSource
from choroglobe.stipple import StippleMaskRenderer
from choroglobe.store import ColorScale, ValueStore

# Sphere raster of 360x180: one pixel per degree, x = lon + 180, y = 90 - lat.
SPHERE_SIZE = (360, 180)
FLAT_CONTAINER = (440, 300)

CODE_TABLE = {"840": "USA", "076": "BRA", "710": "ZAF", "156": "CHN"}

# Sample points on the sphere raster, chosen off the stipple grid (x, y = 2 mod 4).
USA_PX = (90, 54)
BRA_PX = (130, 102)
ZAF_PX = (198, 122)
ZAF_HOLE_PX = (206, 118)
UNRESOLVED_PX = (250, 42)
OCEAN_PX = (10, 10)

USA_LONLAT = (-90.0, 37.5)
BRA_LONLAT = (-50.0, -12.5)


def render_mapping(sphere: tuple[int, int] = SPHERE_SIZE) -> dict[str, Any]:
    raw = copy.deepcopy(_DEFAULT_RENDER)
    raw["projection"]["sphere"] = {"width_px": sphere[0], "height_px": sphere[1]}
    raw["projection"]["default_container"] = {
        "width_px": FLAT_CONTAINER[0],
        "height_px": FLAT_CONTAINER[1],
    }
    return raw


def make_features() -> list[CountryFeature]:
    zaf = Polygon(
        [(15, -35), (35, -35), (35, -20), (15, -20), (15, -35)],
        holes=[[(22, -31), (28, -31), (28, -25), (22, -25), (22, -31)]],
    )
    return [
        CountryFeature(feature_id="840", geometry=box(-100, 30, -80, 45), name="United States"),
        CountryFeature(feature_id="076", geometry=box(-60, -20, -40, -5), name="Brazil"),
        CountryFeature(feature_id="710", geometry=zaf, name="South Africa"),
        CountryFeature(feature_id="999", geometry=box(60, 40, 80, 55), name="Elsewhere"),
    ]


def make_topology() -> dict[str, Any]:
    """Unquantized topology with the same shapes as `make_features`."""

    def square(x0: float, y0: float, x1: float, y1: float) -> list[list[float]]:
        return [[x0, y0], [x1, y0], [x1, y1], [x0, y1], [x0, y0]]

    return {
        "type": "Topology",
        "arcs": [
            square(-100, 30, -80, 45),
            square(-60, -20, -40, -5),
            square(15, -35, 35, -20),
            [[22, -31], [22, -25], [28, -25], [28, -31], [22, -31]],
            square(60, 40, 80, 55),
        ],
        "objects": {
            "countries": {
                "type": "GeometryCollection",
                "geometries": [
                    {"type": "Polygon", "id": "840", "arcs": [[0]], "properties": {"name": "United States of America"}},
                    {"type": "MultiPolygon", "id": "076", "arcs": [[[1]]], "properties": {"name": "Brazil"}},
                    {"type": "Polygon", "id": "710", "arcs": [[2], [3]], "properties": {"name": "South Africa"}},
                    {"type": "Polygon", "id": "999", "arcs": [[4]]},
                    {"type": None, "id": "010"},
                ],
            }
        },
    }


class RecordingSurface:
    def __init__(self, viewport: tuple[int, int] = FLAT_CONTAINER) -> None:
        self.viewport = viewport
        self.frames: list[Any] = []

    def present(self, raster: Any) -> None:
        self.frames.append(raster)

    def viewport_size(self) -> tuple[int, int]:
        return self.viewport


@pytest.fixture
def render_cfg() -> RenderConfig:
    return RenderConfig.from_mapping(render_mapping())


@pytest.fixture
def features() -> list[CountryFeature]:
    return make_features()


@pytest.fixture
def resolver() -> CountryCodeResolver:
    return CountryCodeResolver(CODE_TABLE)


@pytest.fixture
def registry(resolver: CountryCodeResolver, features: list[CountryFeature]) -> CountryRegistry:
    return resolver.build_registry(features)


@pytest.fixture
def store(render_cfg: RenderConfig) -> ValueStore:
    colors = render_cfg.colors
    return ValueStore(ColorScale(colors.scale_light, colors.scale_dark))


@pytest.fixture
def engine(render_cfg: RenderConfig) -> ProjectionEngine:
    engine = ProjectionEngine(render_cfg.projection)
    engine.configure_flat(*FLAT_CONTAINER)
    return engine


@pytest.fixture
def compositor(
    registry: CountryRegistry,
    store: ValueStore,
    render_cfg: RenderConfig,
) -> ChoroplethCompositor:
    stipple = StippleMaskRenderer(registry.all_features, render_cfg.stipple)
    return ChoroplethCompositor(registry, store, stipple, render_cfg.colors)


@pytest.fixture
def sphere_surface() -> RecordingSurface:
    return RecordingSurface()


@pytest.fixture
def flat_surface() -> RecordingSurface:
    return RecordingSurface()


@pytest.fixture
def coordinator(
    store: ValueStore,
    resolver: CountryCodeResolver,
    render_cfg: RenderConfig,
    sphere_surface: RecordingSurface,
    flat_surface: RecordingSurface,
) -> DualViewCoordinator:
    return DualViewCoordinator(
        store=store,
        resolver=resolver,
        render_cfg=render_cfg,
        sphere_surface=sphere_surface,
        flat_surface=flat_surface,
    )


@pytest.fixture
def ready_coordinator(coordinator: DualViewCoordinator, features: list[CountryFeature]) -> DualViewCoordinator:
    report = coordinator.initialize(StaticFeatureSource(features))
    assert report.ok
    return coordinator


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A config.yaml with a cached topology and a three-country table."""
    data_dir = tmp_path / "data"
    (data_dir / "cache").mkdir(parents=True)
    (data_dir / "cache" / "countries.json").write_text(json.dumps(make_topology()), encoding="utf-8")
    tracked = [
        {"iso3": "USA", "iso_n3": "840", "name_en": "United States", "sample_value": 75},
        {"iso3": "BRA", "iso_n3": "076", "name_en": "Brazil", "sample_value": 45},
        {"iso3": "CHN", "iso_n3": "156", "name_en": "China", "sample_value": 90},
    ]
    (data_dir / "tracked_countries.yaml").write_text(yaml.safe_dump(tracked), encoding="utf-8")
    cfg = {
        "source": {
            "kind": "topojson",
            "url": "https://example.invalid/countries.json",
            "object_name": "countries",
            "cache_path": "data/cache/countries.json",
            "timeout_s": 5,
        },
        "paths": {
            "tracked_countries": "data/tracked_countries.yaml",
            "output_dir": "build/rasters",
            "manifests_dir": "build/manifests",
            "logs_dir": "build/logs",
        },
        "render": render_mapping(),
    }
    (tmp_path / "config.yaml").write_text(yaml.safe_dump(cfg), encoding="utf-8")
    return tmp_path
