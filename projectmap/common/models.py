"""Data models shared by ingestion and geocoding."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from projectmap.common.errors import ContractError, ParseError, StatusTransitionError


class RecordStatus(str, Enum):
    SCRAPED = "Scraped"
    GEOCODING = "Geocoding"
    READY = "Ready"
    ERROR = "Error"

    @property
    def is_terminal(self) -> bool:
        return self in (RecordStatus.READY, RecordStatus.ERROR)


ALLOWED_TRANSITIONS: dict[RecordStatus, frozenset[RecordStatus]] = {
    RecordStatus.SCRAPED: frozenset({RecordStatus.GEOCODING}),
    RecordStatus.GEOCODING: frozenset({RecordStatus.READY, RecordStatus.ERROR}),
    RecordStatus.READY: frozenset(),
    RecordStatus.ERROR: frozenset(),
}


def check_transition(current: RecordStatus, target: RecordStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise StatusTransitionError(f"Illegal status transition: {current.value} -> {target.value}")


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


def _required_str(payload: dict, key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ParseError(f"Missing or empty field: {key}")
    return value.strip()


def _optional_str(payload: dict, key: str, default: str | None = None) -> str | None:
    value = payload.get(key)
    if value is None:
        return default
    return str(value).strip()


@dataclass(frozen=True)
class ProjectRecord:
    id: str
    name: str
    location: str
    city_name: str
    price_range: str = ""
    builder_name: str = ""
    bhk_possession: str | None = None
    image_url: str | None = None
    amenities_count: str | None = None
    coordinates: Coordinates | None = None
    status: RecordStatus = field(default=RecordStatus.SCRAPED)

    def __post_init__(self) -> None:
        if self.status is RecordStatus.READY and self.coordinates is None:
            raise ContractError(f"Record {self.id} is Ready without coordinates")

    @classmethod
    def from_dict(
        cls,
        payload: Any,
        *,
        fallback_id: str,
        default_city: str | None = None,
    ) -> "ProjectRecord":
        """Build a fresh ``Scraped`` record from one decoded stream unit.

        Incoming ``status`` and ``coordinates`` are ignored: every record enters
        the store un-geocoded.
        """
        if not isinstance(payload, dict):
            raise ParseError(f"Expected a JSON object, got {type(payload).__name__}")

        record_id = payload.get("id")
        if record_id in (None, ""):
            record_id = fallback_id

        city_name = _optional_str(payload, "cityName") or default_city
        if not city_name:
            raise ParseError("Missing or empty field: cityName")

        return cls(
            id=str(record_id),
            name=_required_str(payload, "name"),
            location=_required_str(payload, "location"),
            city_name=city_name,
            price_range=_optional_str(payload, "priceRange", "") or "",
            builder_name=_optional_str(payload, "builderName", "") or "",
            bhk_possession=_optional_str(payload, "bhkPossession"),
            image_url=_optional_str(payload, "imageUrl"),
            amenities_count=_optional_str(payload, "amenitiesCount"),
        )

    def with_status(self, status: RecordStatus, coordinates: Coordinates | None = None) -> "ProjectRecord":
        check_transition(self.status, status)
        if status is RecordStatus.GEOCODING:
            coordinates = self.coordinates
        return replace(self, status=status, coordinates=coordinates)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "cityName": self.city_name,
            "priceRange": self.price_range,
            "builderName": self.builder_name,
            "bhkPossession": self.bhk_possession,
            "imageUrl": self.image_url,
            "amenitiesCount": self.amenities_count,
            "coordinates": self.coordinates.to_dict() if self.coordinates is not None else None,
            "status": self.status.value,
        }
