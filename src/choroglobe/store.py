"""Per-country intensity values, the colour scale, and change notification."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Callable, Mapping

from .config import RGB
from .models import normalize_code

_LOGGER = logging.getLogger("choroglobe.store")

VALUE_MIN = 0
VALUE_MAX = 100

ValueListener = Callable[[str, int], None]


class ColorScale:
    """Linear RGB interpolation from a light to a dark colour over [0, 100]."""

    def __init__(self, light: RGB, dark: RGB) -> None:
        self.light = light
        self.dark = dark
        factory = _require_colormap_factory()
        # One lookup entry per integer value keeps integer inputs exact.
        self._cmap = factory(
            "choropleth",
            [_unit_rgb(light), _unit_rgb(dark)],
            N=VALUE_MAX - VALUE_MIN + 1,
        )

    def __call__(self, value: float) -> RGB:
        t = (float(value) - VALUE_MIN) / (VALUE_MAX - VALUE_MIN)
        t = min(max(t, 0.0), 1.0)
        r, g, b, _ = self._cmap(t)
        return (round(r * 255), round(g * 255), round(b * 255))


class Subscription:
    """Handle returned by `ValueStore.subscribe`."""

    def __init__(self, store: ValueStore, callback: ValueListener) -> None:
        self._store = store
        self.callback = callback

    @property
    def active(self) -> bool:
        return self._store.is_subscribed(self)

    def cancel(self) -> None:
        self._store.unsubscribe(self)


class ValueStore:
    """Country code -> integer value in [0, 100]; absent codes read as 0."""

    def __init__(self, color_scale: ColorScale, *, clamp: bool = True) -> None:
        self.color_scale = color_scale
        self.clamp = clamp
        self._values: dict[str, int] = {}
        self._subscriptions: list[Subscription] = []

    def set_value(self, code: str, value: int) -> bool:
        """Store `value` and notify subscribers; returns False for a no-op.

        Absent and 0 are the same state, so setting 0 on a code that was never
        set stores nothing and notifies no one.
        """
        key = normalize_code(code)
        new_value = self._coerce(value)
        if self._values.get(key, VALUE_MIN) == new_value:
            return False
        self._values[key] = new_value
        self._notify(key, new_value)
        return True

    def get_value(self, code: str) -> int:
        return self._values.get(normalize_code(code), VALUE_MIN)

    def get_color(self, code: str) -> RGB | None:
        value = self.get_value(code)
        if value == VALUE_MIN:
            return None
        return self.color_scale(value)

    def all_entries(self) -> tuple[tuple[str, int], ...]:
        return tuple(self._values.items())

    def seed(self, values: Mapping[str, int]) -> None:
        """Populate initial values without notifying subscribers."""
        for code, value in values.items():
            self._values[normalize_code(code)] = self._coerce(value)

    def subscribe(self, callback: ValueListener) -> Subscription:
        subscription = Subscription(self, callback)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    def is_subscribed(self, subscription: Subscription) -> bool:
        return subscription in self._subscriptions

    def _notify(self, code: str, value: int) -> None:
        # Snapshot so listeners may (un)subscribe during dispatch.
        for subscription in tuple(self._subscriptions):
            subscription.callback(code, value)

    def _coerce(self, value: Any) -> int:
        if not self.clamp:
            return int(value)
        number = round(float(value))
        if number < VALUE_MIN or number > VALUE_MAX:
            _LOGGER.debug("Clamping out-of-range value %s", value)
        return int(min(max(number, VALUE_MIN), VALUE_MAX))


def _unit_rgb(color: RGB) -> tuple[float, float, float]:
    return (color[0] / 255.0, color[1] / 255.0, color[2] / 255.0)


@lru_cache(maxsize=1)
def _require_colormap_factory() -> Any:
    try:
        from matplotlib.colors import LinearSegmentedColormap
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for the choropleth colour scale") from exc
    return LinearSegmentedColormap.from_list
