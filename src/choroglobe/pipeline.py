"""End-to-end runs: load geometry, apply values, render both views."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from .actions import apply_sample_values, apply_values, clear_all_values, randomize_values
from .config import AppConfig
from .coordinator import CoordinatorState, DualViewCoordinator
from .countries import code_table, load_tracked_countries
from .models import CountrySpec, RenderManifest
from .raster import RasterBuffer
from .resolver import CountryCodeResolver
from .sources import build_feature_source
from .store import ColorScale, ValueStore
from .surfaces import PngFileSurface
from .util import detect_git_commit, format_code_list, sha256_file, write_json

_LOGGER = logging.getLogger("choroglobe.pipeline")

SPHERE_FILENAME = "sphere_texture.png"
FLAT_FILENAME = "flat_map.png"
MANIFEST_FILENAME = "render_manifest.json"
INSPECT_FILENAME = "inspect_report.json"


@dataclass(slots=True)
class RenderRunReport:
    sphere_path: Path | None = None
    flat_path: Path | None = None
    manifest_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


@dataclass(frozen=True, slots=True)
class RenderOptions:
    values: Mapping[str, int] = field(default_factory=dict)
    use_sample: bool = True
    randomize: bool = False
    seed: int | None = None
    clear: bool = False
    flat_container: tuple[int, int] | None = None


def build_store(cfg: AppConfig) -> ValueStore:
    colors = cfg.render.colors
    return ValueStore(ColorScale(colors.scale_light, colors.scale_dark))


def run_render(cfg: AppConfig, options: RenderOptions | None = None) -> RenderRunReport:
    """Render the sphere texture and flat map PNGs plus a JSON manifest."""
    opts = options or RenderOptions()
    report = RenderRunReport()
    t0 = time.perf_counter()

    countries = _load_countries(cfg, report)
    if countries is None:
        return report

    store = build_store(cfg)
    if opts.use_sample:
        seeded = apply_sample_values(store, countries)
        report.add_info(f"Seeded {len(seeded)} sample values")

    container = opts.flat_container or (
        cfg.render.projection.default_container.width_px,
        cfg.render.projection.default_container.height_px,
    )
    sphere_surface = PngFileSurface(cfg.paths.output_dir / SPHERE_FILENAME)
    flat_surface = PngFileSurface(cfg.paths.output_dir / FLAT_FILENAME, viewport=container)
    coordinator = DualViewCoordinator(
        store=store,
        resolver=CountryCodeResolver(code_table(countries)),
        render_cfg=cfg.render,
        sphere_surface=sphere_surface,
        flat_surface=flat_surface,
    )

    load_report = coordinator.initialize(build_feature_source(cfg.source))
    report.infos.extend(f"[load] {line}" for line in load_report.infos)
    report.warnings.extend(f"[load] {line}" for line in load_report.warnings)
    if coordinator.state is not CoordinatorState.READY:
        report.errors.extend(f"[load] {line}" for line in load_report.errors)
        return report

    tracked = {country.iso3 for country in countries}
    unresolved_tracked = sorted(tracked - set(coordinator.registry.codes()))
    if unresolved_tracked:
        report.add_warning(
            "Tracked codes without a matching feature: " + format_code_list(unresolved_tracked)
        )

    if opts.clear:
        cleared = clear_all_values(store, coordinator=coordinator)
        report.add_info(f"Cleared {cleared} values")
    if opts.randomize:
        rng = random.Random(opts.seed)
        randomize_values(store, sorted(tracked), rng=rng, coordinator=coordinator)
        report.add_info(f"Randomized {len(tracked)} values (seed={opts.seed})")
    if opts.values:
        untracked = sorted(code for code in opts.values if code.strip().upper() not in tracked)
        if untracked:
            report.add_warning("Values set for untracked codes: " + format_code_list(untracked))
        changed = apply_values(store, opts.values, coordinator=coordinator)
        report.add_info(f"Applied {changed} explicit value changes")

    report.sphere_path = sphere_surface.path
    report.flat_path = flat_surface.path if coordinator.flat_raster is not None else None
    if report.flat_path is None:
        report.add_warning(f"Flat container {container[0]}x{container[1]} has no drawable area; flat map skipped.")

    rasters: dict[str, dict[str, Any]] = {}
    for raster, path in (
        (coordinator.sphere_raster, report.sphere_path),
        (coordinator.flat_raster, report.flat_path),
    ):
        if raster is not None and path is not None:
            rasters[raster.view] = _raster_entry(raster, path)

    manifest = RenderManifest.create(
        config_hash_sha256=sha256_file(cfg.source_path),
        git_commit=detect_git_commit(cfg.source_path.parent),
        values=dict(store.all_entries()),
        rasters=rasters,
        feature_count=len(coordinator.registry.all_features),
        resolved_codes=coordinator.registry.codes(),
    )
    report.manifest_path = cfg.paths.manifests_dir / MANIFEST_FILENAME
    write_json(report.manifest_path, manifest.to_dict())

    coloured = sum(1 for _, value in store.all_entries() if value > 0)
    report.summary = {
        "features_total": len(coordinator.registry.all_features),
        "codes_resolved": len(coordinator.registry),
        "countries_coloured": coloured,
        "render_passes": coordinator.render_passes,
    }
    coordinator.close()
    report.add_info(
        "Render summary: "
        + ", ".join(f"{key}={value}" for key, value in report.summary.items())
        + f" in {time.perf_counter() - t0:.2f}s"
    )
    report.add_info(f"Rasters written to {cfg.paths.output_dir}")
    return report


def run_inspect(cfg: AppConfig) -> RenderRunReport:
    """Report which tracked codes resolve to a source feature."""
    report = RenderRunReport()
    countries = _load_countries(cfg, report)
    if countries is None:
        return report

    load_report = build_feature_source(cfg.source).load_features()
    report.infos.extend(f"[load] {line}" for line in load_report.infos)
    report.warnings.extend(f"[load] {line}" for line in load_report.warnings)
    if not load_report.ok:
        report.errors.extend(f"[load] {line}" for line in load_report.errors)
        if not load_report.errors:
            report.add_error("[load] Geographic data source returned no features.")
        return report

    registry = CountryCodeResolver(code_table(countries)).build_registry(load_report.features)
    rows = []
    for country in sorted(countries, key=lambda item: item.iso3):
        feature = registry.feature_for(country.iso3)
        rows.append(
            {
                "iso3": country.iso3,
                "iso_n3": country.iso_n3,
                "name_en": country.name_en,
                "resolved": feature is not None,
                "feature_name": feature.name if feature is not None else None,
            }
        )
    missing = [row["iso3"] for row in rows if not row["resolved"]]
    unresolved_ids = sorted(str(item) for item in registry.unresolved_ids)
    payload = {
        "countries": rows,
        "feature_count": len(registry.all_features),
        "unresolved_feature_ids": unresolved_ids,
    }
    report.manifest_path = cfg.paths.manifests_dir / INSPECT_FILENAME
    write_json(report.manifest_path, payload)

    report.summary = {
        "features_total": len(registry.all_features),
        "codes_resolved": len(registry),
        "codes_missing": len(missing),
        "features_unresolved": len(unresolved_ids),
    }
    if missing:
        report.add_warning("Tracked codes without a matching feature: " + format_code_list(missing))
    report.add_info(f"Inspection report written to {report.manifest_path}")
    return report


def format_render_lines(report: RenderRunReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Completed with no errors.")
    return lines


def _load_countries(cfg: AppConfig, report: RenderRunReport) -> list[CountrySpec] | None:
    try:
        countries = load_tracked_countries(cfg.paths.tracked_countries)
    except (OSError, ValueError) as exc:
        report.add_error(f"Failed loading tracked countries '{cfg.paths.tracked_countries}': {exc}")
        return None
    if not countries:
        report.add_error("Tracked countries list is empty; nothing to render.")
        return None
    report.add_info(f"Loaded {len(countries)} tracked countries from {cfg.paths.tracked_countries}")
    return countries


def _raster_entry(raster: RasterBuffer, path: Path) -> dict[str, Any]:
    return {
        "path": str(path),
        "width": raster.width,
        "height": raster.height,
        "sha256": raster.digest(),
    }
