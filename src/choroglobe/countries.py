"""Tracked country list loading and indexing."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml

from .models import CountrySpec


def load_tracked_countries(path: Path) -> list[CountrySpec]:
    """Load and validate the tracked-country table."""
    if not path.exists():
        raise FileNotFoundError(f"Tracked countries file not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, list):
        raise ValueError(f"Expected list in {path}")

    countries: list[CountrySpec] = []
    seen_iso3: set[str] = set()
    seen_iso_n3: set[str] = set()
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Expected mapping at index {idx} in {path}")
        country = CountrySpec.from_mapping(item)
        if country.iso3 in seen_iso3:
            raise ValueError(f"Duplicate ISO3 '{country.iso3}' in {path}")
        if country.iso_n3 in seen_iso_n3:
            raise ValueError(f"Duplicate numeric id '{country.iso_n3}' in {path}")
        seen_iso3.add(country.iso3)
        seen_iso_n3.add(country.iso_n3)
        countries.append(country)
    return countries


def country_index_by_iso3(countries: Iterable[CountrySpec]) -> dict[str, CountrySpec]:
    return {country.iso3: country for country in countries}


def code_table(countries: Iterable[CountrySpec]) -> dict[str, str]:
    """Numeric feature id -> ISO3 lookup for the resolver."""
    return {country.iso_n3: country.iso3 for country in countries}


def sample_values(countries: Iterable[CountrySpec]) -> dict[str, int]:
    return {country.iso3: country.sample_value for country in countries}
