"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, cast

import yaml


RGB = tuple[int, int, int]

_SOURCE_KINDS = ("topojson", "natural_earth")

# Render defaults; `RenderConfig.default()` parses this through the same
# validators as a YAML file.
_DEFAULT_RENDER: dict[str, Any] = {
    "projection": {
        "sphere": {"width_px": 2048, "height_px": 1024},
        "flat": {
            "scale_divisor": 6.0,
            "margin_x_px": 40,
            "margin_y_px": 100,
            "max_lat": 85.0511287798,
        },
        "default_container": {"width_px": 1280, "height_px": 820},
    },
    "stipple": {
        "spacing_px": 4,
        "dot_size_px": 2.0,
        "color": "#FFFFFF",
        "alpha": 0.15,
        "mask_threshold": 128,
        "cache_masks": True,
    },
    "colors": {
        "scale_light": "#FFE0B2",
        "scale_dark": "#CC5500",
        "base_fill": "#FFFFFF",
        "base_alpha": 0.64,
        "overlay_alpha": 0.8,
        "border_color": "#FFFFFF",
    },
    "views": {
        "sphere": {
            "ocean_color": "#0A1428",
            "ocean_alpha": 0.3,
            "border_alpha": 0.16,
            "border_width_px": 1,
        },
        "flat": {
            "ocean_color": "#0A1428",
            "ocean_alpha": 0.5,
            "border_alpha": 0.24,
            "border_width_px": 1,
        },
    },
}


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _positive_int(value: Any, field_name: str) -> int:
    out = _int(value, field_name)
    if out <= 0:
        raise ValueError(f"{field_name} must be > 0")
    return out


def _alpha(value: Any, field_name: str) -> float:
    out = _float(value, field_name)
    if out < 0.0 or out > 1.0:
        raise ValueError(f"{field_name} must be between 0 and 1")
    return out


def _color(value: Any, field_name: str) -> RGB:
    raw = _str(value, field_name)
    to_rgb = _require_color_parser()
    try:
        r, g, b = to_rgb(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid color for '{field_name}': '{raw}'") from exc
    return (round(r * 255), round(g * 255), round(b * 255))


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


def _optional_path(value: Any, field_name: str, root_dir: Path) -> Path | None:
    if value is None:
        return None
    return _path_from_cfg(value, field_name, root_dir)


@dataclass(frozen=True, slots=True)
class SourceConfig:
    kind: str
    url: str
    object_name: str
    cache_path: Path | None
    natural_earth_path: Path | None
    timeout_s: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> SourceConfig:
        kind = _str(raw.get("kind"), "source.kind").casefold()
        if kind not in _SOURCE_KINDS:
            raise ValueError("source.kind must be one of: " + ", ".join(_SOURCE_KINDS))
        natural_earth_path = _optional_path(
            raw.get("natural_earth_path"), "source.natural_earth_path", root_dir
        )
        if kind == "natural_earth" and natural_earth_path is None:
            raise ValueError("source.natural_earth_path is required when source.kind is natural_earth")
        timeout_s = _float(raw.get("timeout_s", 30.0), "source.timeout_s")
        if timeout_s <= 0:
            raise ValueError("source.timeout_s must be > 0")
        return cls(
            kind=kind,
            url=_str(raw.get("url"), "source.url"),
            object_name=_str(raw.get("object_name", "countries"), "source.object_name"),
            cache_path=_optional_path(raw.get("cache_path"), "source.cache_path", root_dir),
            natural_earth_path=natural_earth_path,
            timeout_s=timeout_s,
        )


@dataclass(frozen=True, slots=True)
class PathsConfig:
    tracked_countries: Path
    output_dir: Path
    manifests_dir: Path
    logs_dir: Path

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (self.output_dir, self.manifests_dir, self.logs_dir)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        return cls(
            tracked_countries=_path_from_cfg(
                raw.get("tracked_countries"), "paths.tracked_countries", root_dir
            ),
            output_dir=_path_from_cfg(raw.get("output_dir"), "paths.output_dir", root_dir),
            manifests_dir=_path_from_cfg(raw.get("manifests_dir"), "paths.manifests_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class RasterSizeConfig:
    width_px: int
    height_px: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], prefix: str) -> RasterSizeConfig:
        return cls(
            width_px=_positive_int(raw.get("width_px"), f"{prefix}.width_px"),
            height_px=_positive_int(raw.get("height_px"), f"{prefix}.height_px"),
        )


@dataclass(frozen=True, slots=True)
class FlatProjectionConfig:
    scale_divisor: float
    margin_x_px: int
    margin_y_px: int
    max_lat: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> FlatProjectionConfig:
        scale_divisor = _float(raw.get("scale_divisor"), "render.projection.flat.scale_divisor")
        if scale_divisor <= 0:
            raise ValueError("render.projection.flat.scale_divisor must be > 0")
        margin_x = _int(raw.get("margin_x_px"), "render.projection.flat.margin_x_px")
        margin_y = _int(raw.get("margin_y_px"), "render.projection.flat.margin_y_px")
        if margin_x < 0 or margin_y < 0:
            raise ValueError("render.projection.flat margins must be >= 0")
        max_lat = _float(raw.get("max_lat"), "render.projection.flat.max_lat")
        if max_lat <= 0.0 or max_lat >= 90.0:
            raise ValueError("render.projection.flat.max_lat must be between 0 and 90 (exclusive)")
        return cls(
            scale_divisor=scale_divisor,
            margin_x_px=margin_x,
            margin_y_px=margin_y,
            max_lat=max_lat,
        )


@dataclass(frozen=True, slots=True)
class ProjectionConfig:
    sphere: RasterSizeConfig
    flat: FlatProjectionConfig
    default_container: RasterSizeConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ProjectionConfig:
        return cls(
            sphere=RasterSizeConfig.from_mapping(
                _mapping(raw.get("sphere"), "render.projection.sphere"),
                "render.projection.sphere",
            ),
            flat=FlatProjectionConfig.from_mapping(
                _mapping(raw.get("flat"), "render.projection.flat")
            ),
            default_container=RasterSizeConfig.from_mapping(
                _mapping(raw.get("default_container"), "render.projection.default_container"),
                "render.projection.default_container",
            ),
        )


@dataclass(frozen=True, slots=True)
class StippleConfig:
    spacing_px: int
    dot_size_px: float
    color: RGB
    alpha: float
    mask_threshold: int
    cache_masks: bool

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> StippleConfig:
        dot_size = _float(raw.get("dot_size_px"), "render.stipple.dot_size_px")
        if dot_size <= 0:
            raise ValueError("render.stipple.dot_size_px must be > 0")
        threshold = _int(raw.get("mask_threshold"), "render.stipple.mask_threshold")
        if threshold < 0 or threshold > 254:
            raise ValueError("render.stipple.mask_threshold must be between 0 and 254")
        return cls(
            spacing_px=_positive_int(raw.get("spacing_px"), "render.stipple.spacing_px"),
            dot_size_px=dot_size,
            color=_color(raw.get("color"), "render.stipple.color"),
            alpha=_alpha(raw.get("alpha"), "render.stipple.alpha"),
            mask_threshold=threshold,
            cache_masks=_bool(raw.get("cache_masks"), "render.stipple.cache_masks"),
        )


@dataclass(frozen=True, slots=True)
class ColorsConfig:
    scale_light: RGB
    scale_dark: RGB
    base_fill: RGB
    base_alpha: float
    overlay_alpha: float
    border_color: RGB

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ColorsConfig:
        return cls(
            scale_light=_color(raw.get("scale_light"), "render.colors.scale_light"),
            scale_dark=_color(raw.get("scale_dark"), "render.colors.scale_dark"),
            base_fill=_color(raw.get("base_fill"), "render.colors.base_fill"),
            base_alpha=_alpha(raw.get("base_alpha"), "render.colors.base_alpha"),
            overlay_alpha=_alpha(raw.get("overlay_alpha"), "render.colors.overlay_alpha"),
            border_color=_color(raw.get("border_color"), "render.colors.border_color"),
        )


@dataclass(frozen=True, slots=True)
class ViewStyleConfig:
    ocean_color: RGB
    ocean_alpha: float
    border_alpha: float
    border_width_px: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], prefix: str) -> ViewStyleConfig:
        return cls(
            ocean_color=_color(raw.get("ocean_color"), f"{prefix}.ocean_color"),
            ocean_alpha=_alpha(raw.get("ocean_alpha"), f"{prefix}.ocean_alpha"),
            border_alpha=_alpha(raw.get("border_alpha"), f"{prefix}.border_alpha"),
            border_width_px=_positive_int(raw.get("border_width_px"), f"{prefix}.border_width_px"),
        )


@dataclass(frozen=True, slots=True)
class ViewsConfig:
    sphere: ViewStyleConfig
    flat: ViewStyleConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ViewsConfig:
        return cls(
            sphere=ViewStyleConfig.from_mapping(
                _mapping(raw.get("sphere"), "render.views.sphere"), "render.views.sphere"
            ),
            flat=ViewStyleConfig.from_mapping(
                _mapping(raw.get("flat"), "render.views.flat"), "render.views.flat"
            ),
        )


@dataclass(frozen=True, slots=True)
class RenderConfig:
    projection: ProjectionConfig
    stipple: StippleConfig
    colors: ColorsConfig
    views: ViewsConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RenderConfig:
        return cls(
            projection=ProjectionConfig.from_mapping(
                _mapping(raw.get("projection"), "render.projection")
            ),
            stipple=StippleConfig.from_mapping(_mapping(raw.get("stipple"), "render.stipple")),
            colors=ColorsConfig.from_mapping(_mapping(raw.get("colors"), "render.colors")),
            views=ViewsConfig.from_mapping(_mapping(raw.get("views"), "render.views")),
        )

    @classmethod
    def default(cls) -> RenderConfig:
        return cls.from_mapping(_DEFAULT_RENDER)


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    source: SourceConfig
    paths: PathsConfig
    render: RenderConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        render_raw = raw.get("render")
        return cls(
            source_path=source_path.resolve(),
            source=SourceConfig.from_mapping(_mapping(raw.get("source"), "source"), root_dir),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            render=(
                RenderConfig.default()
                if render_raw is None
                else RenderConfig.from_mapping(_mapping(render_raw, "render"))
            ),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)


@lru_cache(maxsize=1)
def _require_color_parser() -> Any:
    try:
        from matplotlib.colors import to_rgb
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for color parsing") from exc
    return to_rgb
