"""Deterministic fallback coordinates around a city anchor."""

from __future__ import annotations

import random

from projectmap.common.constants import DEFAULT_JITTER_DEGREES
from projectmap.common.errors import GeocodeUnresolvableError
from projectmap.common.models import Coordinates
from projectmap.geocode.anchors import CityAnchors


class AnchorFallback:
    """Anchor point plus a uniform offset of at most ``jitter_degrees`` per axis.

    Pass a seeded ``random.Random`` to make the offsets reproducible.
    """

    def __init__(
        self,
        anchors: CityAnchors,
        *,
        jitter_degrees: float = DEFAULT_JITTER_DEGREES,
        rng: random.Random | None = None,
    ) -> None:
        self.anchors = anchors
        self.jitter_degrees = jitter_degrees
        self.rng = rng or random.Random()

    def coordinates_for(self, city: str) -> Coordinates:
        anchor = self.anchors.lookup(city)
        if anchor is None:
            raise GeocodeUnresolvableError(f"No anchor configured for city {city!r}")
        return Coordinates(
            lat=anchor.lat + self.rng.uniform(-self.jitter_degrees, self.jitter_degrees),
            lng=anchor.lng + self.rng.uniform(-self.jitter_degrees, self.jitter_degrees),
        )
