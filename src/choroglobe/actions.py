"""Bulk value operations: sample data, randomize, clear."""

from __future__ import annotations

import random
from contextlib import nullcontext
from typing import ContextManager, Iterable, Mapping

from .coordinator import DualViewCoordinator
from .countries import sample_values
from .models import CountrySpec
from .store import VALUE_MAX, VALUE_MIN, ValueStore


def apply_sample_values(store: ValueStore, countries: Iterable[CountrySpec]) -> Mapping[str, int]:
    """Seed the store with each tracked country's sample value (no notifications)."""
    values = sample_values(countries)
    store.seed(values)
    return values


def randomize_values(
    store: ValueStore,
    codes: Iterable[str],
    *,
    rng: random.Random | None = None,
    coordinator: DualViewCoordinator | None = None,
) -> dict[str, int]:
    generator = rng or random.Random()
    assigned: dict[str, int] = {}
    with _batch(coordinator):
        for code in codes:
            value = generator.randint(VALUE_MIN, VALUE_MAX)
            store.set_value(code, value)
            assigned[code] = value
    return assigned


def clear_all_values(store: ValueStore, *, coordinator: DualViewCoordinator | None = None) -> int:
    """Set every stored code to 0; returns how many values actually changed."""
    changed = 0
    with _batch(coordinator):
        for code, _ in store.all_entries():
            if store.set_value(code, VALUE_MIN):
                changed += 1
    return changed


def apply_values(
    store: ValueStore,
    values: Mapping[str, int],
    *,
    coordinator: DualViewCoordinator | None = None,
) -> int:
    changed = 0
    with _batch(coordinator):
        for code, value in values.items():
            if store.set_value(code, value):
                changed += 1
    return changed


def _batch(coordinator: DualViewCoordinator | None) -> ContextManager[None]:
    if coordinator is None:
        return nullcontext()
    return coordinator.batch_updates()
