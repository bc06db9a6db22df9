import random

import pytest

from projectmap.common.errors import GeocodeUnresolvableError
from projectmap.common.models import Coordinates
from projectmap.geocode.anchors import CityAnchors
from projectmap.geocode.fallback import AnchorFallback

CITIES = {
    "default_city": "Hyderabad",
    "cities": {
        "Hyderabad": {"lat": 17.385, "lng": 78.4867},
        "Bangalore": {"lat": 12.9716, "lng": 77.5946},
    },
    "aliases": {"Bengaluru": "Bangalore"},
}


def test_lookup_is_case_sensitive_with_aliases_and_default():
    anchors = CityAnchors.from_config(CITIES)

    assert anchors.lookup("Bangalore") == Coordinates(12.9716, 77.5946)
    assert anchors.lookup("Bengaluru") == Coordinates(12.9716, 77.5946)
    # Unknown spellings land on the default city.
    assert anchors.lookup("bangalore") == Coordinates(17.385, 78.4867)
    assert anchors.map_center("Atlantis") == Coordinates(17.385, 78.4867)
    assert anchors.popular_cities() == ["Hyderabad", "Bangalore"]


def test_lookup_without_default_city_returns_none():
    anchors = CityAnchors.from_config({**CITIES, "default_city": None})
    assert anchors.lookup("Atlantis") is None


def test_fallback_stays_inside_jitter_box():
    fallback = AnchorFallback(CityAnchors.from_config(CITIES), jitter_degrees=0.05, rng=random.Random(42))

    for _ in range(500):
        point = fallback.coordinates_for("Bangalore")
        assert abs(point.lat - 12.9716) <= 0.05
        assert abs(point.lng - 77.5946) <= 0.05


def test_fallback_is_reproducible_with_a_seed():
    anchors = CityAnchors.from_config(CITIES)
    first = AnchorFallback(anchors, rng=random.Random(3))
    second = AnchorFallback(anchors, rng=random.Random(3))

    assert [first.coordinates_for("Hyderabad") for _ in range(5)] == [
        second.coordinates_for("Hyderabad") for _ in range(5)
    ]


def test_fallback_raises_when_no_anchor_exists():
    fallback = AnchorFallback(CityAnchors.from_config({**CITIES, "default_city": None}))
    with pytest.raises(GeocodeUnresolvableError):
        fallback.coordinates_for("Atlantis")
