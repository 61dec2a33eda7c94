"""Country feature sources: world-atlas TopoJSON and Natural Earth files."""

from __future__ import annotations

import logging
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Iterator, Protocol, Sequence

import requests
from shapely.validation import make_valid

from .config import SourceConfig
from .models import CountryFeature, normalize_feature_id

_LOGGER = logging.getLogger("choroglobe.sources")


@dataclass(slots=True)
class FeatureLoadReport:
    """Outcome of the one blocking feature load."""

    features: tuple[CountryFeature, ...] = ()
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and bool(self.features)

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class GeoFeatureSource(Protocol):
    def load_features(self) -> FeatureLoadReport: ...


class StaticFeatureSource:
    """Serve an already-built feature set."""

    def __init__(self, features: Iterable[CountryFeature]) -> None:
        self._features = tuple(features)

    def load_features(self) -> FeatureLoadReport:
        report = FeatureLoadReport(features=self._features)
        if not self._features:
            report.add_error("Feature set is empty.")
        return report


class TopoJsonFeatureSource:
    """Fetch a world-atlas style TopoJSON topology and read one object as a layer.

    A cache file, when configured, is read instead of the network and is
    written after a successful download.
    """

    ID_COLUMNS = ("id",)
    NAME_COLUMNS = ("name",)

    def __init__(
        self,
        url: str,
        *,
        object_name: str = "countries",
        cache_path: Path | None = None,
        timeout_s: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.object_name = object_name
        self.cache_path = cache_path
        self.timeout_s = timeout_s
        self._session = session

    def load_features(self) -> FeatureLoadReport:
        report = FeatureLoadReport()
        gpd = _require_geopandas()
        try:
            with self._topology_file(report) as path:
                frame = gpd.read_file(path, layer=self.object_name)
        except requests.RequestException as exc:
            report.add_error(f"Failed to download geographic data from {self.url}: {exc}")
            return report
        except _require_read_errors() as exc:
            report.add_error(f"Failed reading TopoJSON object '{self.object_name}' from {self.url}: {exc}")
            return report

        features = _features_from_frame(frame, self.ID_COLUMNS, self.NAME_COLUMNS, report)
        if features is None:
            return report
        if not features:
            report.add_error(f"TopoJSON object '{self.object_name}' contains no polygon features.")
            return report
        report.features = features
        report.add_info(f"Loaded {len(features)} country features from TopoJSON.")
        return report

    @contextmanager
    def _topology_file(self, report: FeatureLoadReport) -> Iterator[Path]:
        if self.cache_path is not None and self.cache_path.exists():
            report.add_info(f"Using cached topology: {self.cache_path}")
            yield self.cache_path
            return

        payload = self._download()
        if self.cache_path is not None:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            self.cache_path.write_bytes(payload)
            report.add_info(f"Cached topology at {self.cache_path}")
            yield self.cache_path
            return

        with tempfile.TemporaryDirectory(prefix="choroglobe-") as tmp_dir:
            path = Path(tmp_dir) / "topology.json"
            path.write_bytes(payload)
            yield path

    def _download(self) -> bytes:
        session = self._session or requests.Session()
        _LOGGER.info("Fetching topology from %s", self.url)
        response = session.get(self.url, timeout=self.timeout_s)
        response.raise_for_status()
        return response.content


class NaturalEarthFeatureSource:
    """Read Natural Earth admin-0 polygons from a local file via GeoPandas."""

    ID_COLUMNS = ("ISO_N3", "ISO_N3_EH", "UN_A3", "iso_n3", "id")
    NAME_COLUMNS = ("NAME", "ADMIN", "NAME_LONG", "name")

    def __init__(self, path: Path) -> None:
        self.path = path

    def load_features(self) -> FeatureLoadReport:
        report = FeatureLoadReport()
        if not self.path.exists():
            report.add_error(f"Natural Earth file not found: {self.path}")
            return report
        gpd = _require_geopandas()
        try:
            frame = gpd.read_file(self.path)
        except _require_read_errors() as exc:
            report.add_error(f"Failed reading Natural Earth file '{self.path}': {exc}")
            return report

        features = _features_from_frame(frame, self.ID_COLUMNS, self.NAME_COLUMNS, report)
        if features is None:
            return report
        if not features:
            report.add_error(f"No polygon features found in {self.path}")
            return report
        report.features = features
        report.add_info(f"Loaded {len(features)} country features from {self.path}")
        return report


def build_feature_source(cfg: SourceConfig) -> GeoFeatureSource:
    if cfg.kind == "natural_earth":
        assert cfg.natural_earth_path is not None
        return NaturalEarthFeatureSource(cfg.natural_earth_path)
    return TopoJsonFeatureSource(
        cfg.url,
        object_name=cfg.object_name,
        cache_path=cfg.cache_path,
        timeout_s=cfg.timeout_s,
    )


def format_load_lines(report: FeatureLoadReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    return lines


def _features_from_frame(
    frame: Any,
    id_columns: Sequence[str],
    name_columns: Sequence[str],
    report: FeatureLoadReport,
) -> tuple[CountryFeature, ...] | None:
    """Turn a GeoDataFrame into features; None (with an error) if no id column exists."""
    if frame.crs is not None and frame.crs.to_epsg() != 4326:
        frame = frame.to_crs(epsg=4326)

    id_col = _first_existing_column(frame.columns, id_columns)
    if id_col is None:
        cols = ", ".join(str(c) for c in frame.columns)
        report.add_error(f"Could not detect numeric country id column. Available columns: {cols}")
        return None
    name_col = _first_existing_column(frame.columns, name_columns)
    report.add_info(f"Country id column selected: {id_col}")

    rows = []
    for row in frame.itertuples(index=False):
        row_dict = row._asdict()
        name = row_dict.get(name_col) if name_col else None
        rows.append((row_dict.get(id_col), name, row_dict.get("geometry")))
    return _build_features(rows, report)


def _build_features(
    rows: Iterable[tuple[Any, Any, Any]],
    report: FeatureLoadReport,
) -> tuple[CountryFeature, ...]:
    features: list[CountryFeature] = []
    skipped = 0
    for raw_id, raw_name, raw_geometry in rows:
        geometry = _to_polygonal(raw_geometry)
        if geometry is None:
            skipped += 1
            continue
        # Missing attribute values come back from GeoPandas as None or NaN.
        name = str(raw_name).strip() if raw_name is not None and raw_name == raw_name else None
        features.append(
            CountryFeature(
                feature_id=normalize_feature_id(raw_id),
                geometry=geometry,
                name=name or None,
            )
        )
    if skipped:
        report.add_warning(f"Skipped {skipped} features without polygon geometry.")
    return tuple(features)


def _to_polygonal(geometry: Any) -> Any | None:
    if geometry is None or getattr(geometry, "is_empty", True):
        return None
    if not geometry.is_valid:
        geometry = make_valid(geometry)
    if geometry.geom_type not in {"Polygon", "MultiPolygon", "GeometryCollection"}:
        return None
    return geometry


def _first_existing_column(columns: Iterable[str], candidates: Sequence[str]) -> str | None:
    existing = {str(col).lower(): str(col) for col in columns}
    for candidate in candidates:
        match = existing.get(candidate.lower())
        if match:
            return match
    return None


def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("geopandas is required for geographic data loading") from exc
    return gpd


@lru_cache(maxsize=1)
def _require_read_errors() -> tuple[type[Exception], ...]:
    """Errors `geopandas.read_file` raises for unreadable files or missing layers."""
    try:
        from pyogrio.errors import DataLayerError, DataSourceError
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyogrio is required for geographic data loading") from exc
    return (OSError, ValueError, DataSourceError, DataLayerError)
