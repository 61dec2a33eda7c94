"""Feature id -> country code resolution and the renderable registry."""

from __future__ import annotations

import dataclasses
import logging
from types import MappingProxyType
from typing import Iterable, Mapping

from .models import CountryFeature, normalize_code, normalize_feature_id

_LOGGER = logging.getLogger("choroglobe.resolver")


class CountryRegistry:
    """Immutable view of loaded features keyed by resolved country code."""

    def __init__(
        self,
        all_features: tuple[CountryFeature, ...],
        by_code: Mapping[str, CountryFeature],
        unresolved_ids: tuple[str | None, ...],
    ) -> None:
        self._all_features = all_features
        self._by_code = MappingProxyType(dict(by_code))
        self._unresolved_ids = unresolved_ids

    @property
    def all_features(self) -> tuple[CountryFeature, ...]:
        """Every loaded feature, resolved or not (land mask input)."""
        return self._all_features

    @property
    def unresolved_ids(self) -> tuple[str | None, ...]:
        return self._unresolved_ids

    def feature_for(self, code: str) -> CountryFeature | None:
        return self._by_code.get(normalize_code(code))

    def resolved_features(self) -> tuple[CountryFeature, ...]:
        return tuple(self._by_code.values())

    def codes(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_code))

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and normalize_code(code) in self._by_code

    def __len__(self) -> int:
        return len(self._by_code)


class CountryCodeResolver:
    """Map source feature ids onto a closed set of country codes."""

    def __init__(self, table: Mapping[str, str]) -> None:
        normalized: dict[str, str] = {}
        for raw_id, code in table.items():
            feature_id = normalize_feature_id(raw_id)
            if feature_id is None:
                raise ValueError(f"Invalid feature id in code table: {raw_id!r}")
            normalized[feature_id] = normalize_code(code)
        self._table = MappingProxyType(normalized)

    @property
    def table(self) -> Mapping[str, str]:
        return self._table

    def resolve(self, feature_id: object) -> str | None:
        key = normalize_feature_id(feature_id)
        if key is None:
            return None
        return self._table.get(key)

    def build_registry(self, features: Iterable[CountryFeature]) -> CountryRegistry:
        resolved_all: list[CountryFeature] = []
        by_code: dict[str, CountryFeature] = {}
        unresolved: list[str | None] = []
        for feature in features:
            code = self.resolve(feature.feature_id)
            if code is None:
                unresolved.append(feature.feature_id)
                resolved_all.append(feature)
                continue
            resolved = dataclasses.replace(feature, code=code)
            resolved_all.append(resolved)
            if code in by_code:
                _LOGGER.warning(
                    "Feature id %s resolves to %s which is already mapped; keeping the first feature.",
                    feature.feature_id,
                    code,
                )
                continue
            by_code[code] = resolved

        _LOGGER.debug(
            "Registry built: %d features, %d resolved codes, %d unresolved ids",
            len(resolved_all),
            len(by_code),
            len(unresolved),
        )
        return CountryRegistry(tuple(resolved_all), by_code, tuple(unresolved))
