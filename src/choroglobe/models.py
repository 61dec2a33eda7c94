"""Domain models shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _normalize_iso(value: str, expected_len: int, field_name: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != expected_len or not normalized.isalpha():
        raise ValueError(f"Invalid {field_name}: '{value}'")
    return normalized


def normalize_feature_id(value: Any) -> str | None:
    """Canonical form of a source feature id (zero-padded numeric ISO id)."""
    if value is None:
        return None
    if isinstance(value, float):
        if value != value:
            return None
        value = int(value)
    raw = str(value).strip()
    if not raw:
        return None
    if raw.isdigit():
        return raw.zfill(3)
    return raw


def normalize_code(value: str) -> str:
    return value.strip().upper()


@dataclass(frozen=True, slots=True)
class CountrySpec:
    """Tracked country record from `data/tracked_countries.yaml`."""

    iso3: str
    iso_n3: str
    name_en: str
    sample_value: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> CountrySpec:
        iso3 = _normalize_iso(_require_str(data.get("iso3"), "iso3"), 3, "iso3")
        iso_n3_raw = data.get("iso_n3")
        if isinstance(iso_n3_raw, int) and not isinstance(iso_n3_raw, bool):
            iso_n3_raw = str(iso_n3_raw)
        iso_n3 = _require_str(iso_n3_raw, "iso_n3")
        if not iso_n3.isdigit() or len(iso_n3) > 3:
            raise ValueError(f"Invalid iso_n3: '{iso_n3}'")
        name_en = _require_str(data.get("name_en"), "name_en")
        sample_raw = data.get("sample_value", 0)
        if not isinstance(sample_raw, int) or isinstance(sample_raw, bool):
            raise ValueError("Expected integer for 'sample_value'")
        if sample_raw < 0 or sample_raw > 100:
            raise ValueError("sample_value must be between 0 and 100")
        return cls(
            iso3=iso3,
            iso_n3=iso_n3.zfill(3),
            name_en=name_en,
            sample_value=sample_raw,
        )


@dataclass(frozen=True, slots=True, eq=False)
class CountryFeature:
    """One source feature with lon/lat geometry.

    Identity semantics: projections cache pixel paths per feature object, and
    the geometry is never mutated after load.
    """

    feature_id: str | None
    geometry: Any
    code: str | None = None
    name: str | None = None


@dataclass(frozen=True, slots=True)
class RenderManifest:
    """Render metadata written next to the raster outputs."""

    generated_at_utc: str
    config_hash_sha256: str
    git_commit: str | None
    values: Mapping[str, int]
    rasters: Mapping[str, Mapping[str, Any]]
    feature_count: int = 0
    resolved_codes: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def create(
        cls,
        *,
        config_hash_sha256: str,
        git_commit: str | None,
        values: Mapping[str, int],
        rasters: Mapping[str, Mapping[str, Any]],
        feature_count: int,
        resolved_codes: tuple[str, ...],
    ) -> RenderManifest:
        now = datetime.now(timezone.utc).isoformat()
        return cls(
            generated_at_utc=now,
            config_hash_sha256=config_hash_sha256,
            git_commit=git_commit,
            values=values,
            rasters=rasters,
            feature_count=feature_count,
            resolved_codes=resolved_codes,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at_utc": self.generated_at_utc,
            "config_hash_sha256": self.config_hash_sha256,
            "git_commit": self.git_commit,
            "values": dict(self.values),
            "rasters": {name: dict(info) for name, info in self.rasters.items()},
            "feature_count": self.feature_count,
            "resolved_codes": list(self.resolved_codes),
        }
