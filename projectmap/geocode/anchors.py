"""City anchor lookup: map centers and fallback geocode points."""

from __future__ import annotations

from projectmap.common.models import Coordinates


class CityAnchors:
    def __init__(
        self,
        centers: dict[str, Coordinates],
        *,
        default_city: str | None = None,
        aliases: dict[str, str] | None = None,
    ) -> None:
        self.centers = dict(centers)
        self.default_city = default_city
        self.aliases = dict(aliases or {})

    @classmethod
    def from_config(cls, cities_config: dict) -> "CityAnchors":
        centers = {
            name: Coordinates(lat=float(point["lat"]), lng=float(point["lng"]))
            for name, point in cities_config["cities"].items()
        }
        return cls(
            centers,
            default_city=cities_config.get("default_city"),
            aliases=cities_config.get("aliases") or {},
        )

    def canonical_name(self, city: str) -> str | None:
        if city in self.centers:
            return city
        return self.aliases.get(city)

    def lookup(self, city: str) -> Coordinates | None:
        name = self.canonical_name(city)
        if name is not None:
            return self.centers[name]
        if self.default_city is not None:
            return self.centers[self.default_city]
        return None

    def map_center(self, city: str) -> Coordinates | None:
        return self.lookup(city)

    def popular_cities(self) -> list[str]:
        return list(self.centers)
