from __future__ import annotations

import json
from pathlib import Path

from PIL import Image

from choroglobe.config import load_config
from choroglobe.pipeline import RenderOptions, format_render_lines, run_inspect, run_render


def test_render_writes_both_rasters_and_manifest(project_dir: Path) -> None:
    cfg = load_config(project_dir / "config.yaml")

    report = run_render(cfg, RenderOptions(values={"BRA": 10}))

    assert report.ok, report.errors
    assert report.sphere_path is not None and report.flat_path is not None
    with Image.open(report.sphere_path) as sphere:
        assert sphere.size == (360, 180)
    with Image.open(report.flat_path) as flat:
        assert flat.size == (400, 200)

    assert report.manifest_path is not None
    manifest = json.loads(report.manifest_path.read_text(encoding="utf-8"))
    assert manifest["values"] == {"USA": 75, "BRA": 10, "CHN": 90}
    assert set(manifest["rasters"]) == {"sphere", "flat"}
    assert manifest["resolved_codes"] == ["BRA", "USA"]
    assert manifest["feature_count"] == 4
    assert report.summary["render_passes"] == 1
    assert any("CHN" in msg for msg in report.warnings)
    assert format_render_lines(report)[-1] == "[OK] Completed with no errors."


def test_clear_then_randomize_is_reproducible(project_dir: Path) -> None:
    cfg = load_config(project_dir / "config.yaml")

    options = RenderOptions(clear=True, randomize=True, seed=11)
    first = json.loads(run_render(cfg, options).manifest_path.read_text(encoding="utf-8"))  # type: ignore[union-attr]
    second = json.loads(run_render(cfg, options).manifest_path.read_text(encoding="utf-8"))  # type: ignore[union-attr]

    assert first["values"] == second["values"]
    assert first["rasters"]["sphere"]["sha256"] == second["rasters"]["sphere"]["sha256"]


def test_flat_container_without_area_skips_flat_map(project_dir: Path) -> None:
    cfg = load_config(project_dir / "config.yaml")

    report = run_render(cfg, RenderOptions(flat_container=(30, 60)))

    assert report.ok
    assert report.flat_path is None
    assert report.manifest_path is not None
    manifest = json.loads(report.manifest_path.read_text(encoding="utf-8"))
    assert set(manifest["rasters"]) == {"sphere"}
    assert any("no drawable area" in msg for msg in report.warnings)


def test_inspect_lists_resolution_per_tracked_country(project_dir: Path) -> None:
    cfg = load_config(project_dir / "config.yaml")

    report = run_inspect(cfg)

    assert report.ok
    assert report.manifest_path is not None
    payload = json.loads(report.manifest_path.read_text(encoding="utf-8"))
    resolved = {row["iso3"]: row["resolved"] for row in payload["countries"]}
    assert resolved == {"BRA": True, "CHN": False, "USA": True}
    assert payload["unresolved_feature_ids"] == ["710", "999"]
    assert report.summary["codes_missing"] == 1
