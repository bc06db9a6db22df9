"""Geocoder contract and provider implementations.

Every provider resolves ``(location, city, credential)`` to a
``GeocodeResult`` or ``None`` (unresolved). A missing credential never raises:
it yields a ``mocked`` placeholder so the caller's fallback path is taken the
same way as for a provider failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from projectmap.common.errors import GeocodeProviderError
from projectmap.common.http import HttpClient, HttpRequestError, TimeoutConfig

MOCK_PLACEHOLDER = (0.0, 0.0)


@dataclass(frozen=True)
class GeocodeResult:
    lat: float
    lng: float
    mocked: bool = False


class Geocoder(Protocol):
    def resolve(self, location: str, city: str, credential: str | None = None) -> GeocodeResult | None: ...


def _safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _valid_lat_lng(lat: float | None, lng: float | None) -> bool:
    if lat is None or lng is None:
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def is_usable(result: GeocodeResult | None) -> bool:
    if result is None or result.mocked:
        return False
    return _valid_lat_lng(result.lat, result.lng)


def mocked_result() -> GeocodeResult:
    lat, lng = MOCK_PLACEHOLDER
    return GeocodeResult(lat=lat, lng=lng, mocked=True)


class MockGeocoder:
    """Used when no provider is configured."""

    def resolve(self, location: str, city: str, credential: str | None = None) -> GeocodeResult | None:
        return mocked_result()


class PositionstackGeocoder:
    def __init__(
        self,
        http_client: HttpClient,
        *,
        endpoint: str = "http://api.positionstack.com/v1/forward",
        timeout: TimeoutConfig | None = None,
    ) -> None:
        self.http_client = http_client
        self.endpoint = endpoint
        self.timeout = timeout

    def resolve(self, location: str, city: str, credential: str | None = None) -> GeocodeResult | None:
        if not credential:
            return mocked_result()

        try:
            payload = self.http_client.get_json(
                self.endpoint,
                source_type="geocode",
                params={"access_key": credential, "query": f"{location}, {city}", "limit": 1},
                timeout=self.timeout,
            )
        except HttpRequestError as exc:
            raise GeocodeProviderError(f"positionstack request failed: {exc}") from exc

        if not isinstance(payload, dict):
            raise GeocodeProviderError("positionstack returned a non-object payload")
        if payload.get("error"):
            # Quota and key errors come back as a 200 with an error object.
            raise GeocodeProviderError(f"positionstack error: {payload['error']}")

        rows = payload.get("data") or []
        if not isinstance(rows, list) or not rows:
            return None

        first = rows[0] or {}
        lat = _safe_float(first.get("latitude"))
        lng = _safe_float(first.get("longitude"))
        if not _valid_lat_lng(lat, lng):
            return None
        return GeocodeResult(lat=lat, lng=lng, mocked=False)


class GeocodeEndpointGeocoder:
    """Client of a ``POST {location, cityName, apiKey?}`` geocode endpoint."""

    def __init__(self, http_client: HttpClient, *, endpoint: str, timeout: TimeoutConfig | None = None) -> None:
        self.http_client = http_client
        self.endpoint = endpoint
        self.timeout = timeout

    def resolve(self, location: str, city: str, credential: str | None = None) -> GeocodeResult | None:
        body: dict[str, Any] = {"location": location, "cityName": city}
        if credential:
            body["apiKey"] = credential

        try:
            payload = self.http_client.post_json(
                self.endpoint,
                source_type="geocode",
                payload=body,
                timeout=self.timeout,
            )
        except HttpRequestError as exc:
            if exc.status_code == 404:
                return None
            detail = exc.payload.get("error") if isinstance(exc.payload, dict) else None
            raise GeocodeProviderError(f"geocode endpoint failed: {detail or exc}") from exc

        if not isinstance(payload, dict):
            raise GeocodeProviderError("geocode endpoint returned a non-object payload")

        lat = _safe_float(payload.get("lat"))
        lng = _safe_float(payload.get("lng"))
        if not _valid_lat_lng(lat, lng):
            return None
        return GeocodeResult(lat=lat, lng=lng, mocked=bool(payload.get("mocked", False)))


def build_geocoder(geocoder_config: dict, http_client: HttpClient) -> Geocoder:
    timeout = TimeoutConfig(
        connect=float(geocoder_config.get("connect_timeout_seconds", 10)),
        read=float(geocoder_config.get("read_timeout_seconds", 20)),
    )
    provider = geocoder_config["provider"]
    if provider == "positionstack":
        return PositionstackGeocoder(http_client, endpoint=geocoder_config["endpoint"], timeout=timeout)
    if provider == "endpoint":
        return GeocodeEndpointGeocoder(http_client, endpoint=geocoder_config["endpoint"], timeout=timeout)
    return MockGeocoder()
