"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from projectmap.common.errors import ConfigError

GEOCODER_PROVIDERS = ("mock", "positionstack", "endpoint")


def _assert_mapping(obj, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_lat_lng(point, ctx: str) -> None:
    _assert_mapping(point, ctx)
    _assert_required_keys(point, {"lat", "lng"}, ctx)
    try:
        lat = float(point["lat"])
        lng = float(point["lng"])
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{ctx} lat/lng must be numeric") from exc
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise ConfigError(f"{ctx} is outside WGS84 bounds")


def _assert_positive(value, ctx: str) -> None:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{ctx} must be numeric") from exc
    if number <= 0:
        raise ConfigError(f"{ctx} must be positive")


def validate_cities_config(cfg, *, allow_unknown: bool = False) -> dict:
    cfg = _assert_mapping(cfg, "cities config")
    _assert_required_keys(cfg, {"cities", "default_city"}, "cities config")
    _assert_no_unknown_keys(cfg, {"cities", "default_city", "aliases"}, "cities config", allow_unknown)

    cities = _assert_mapping(cfg["cities"], "cities")
    if not cities:
        raise ConfigError("cities must be a non-empty mapping")
    for name, point in cities.items():
        _assert_lat_lng(point, f"cities.{name}")

    default_city = cfg["default_city"]
    if default_city is not None and default_city not in cities:
        raise ConfigError(f"default_city {default_city!r} is not a configured city")

    aliases = _assert_mapping(cfg.get("aliases") or {}, "aliases")
    for alias, target in aliases.items():
        if target not in cities:
            raise ConfigError(f"alias {alias!r} points at unknown city {target!r}")

    return cfg


def validate_pipeline_config(cfg, *, allow_unknown: bool = False) -> dict:
    cfg = _assert_mapping(cfg, "pipeline config")
    top_required = {"stream", "geocoder", "fallback", "worker"}
    _assert_required_keys(cfg, top_required, "pipeline config")
    _assert_no_unknown_keys(cfg, top_required, "pipeline config", allow_unknown)

    stream = _assert_mapping(cfg["stream"], "stream")
    _assert_required_keys(stream, {"sentinel", "chunk_size"}, "stream")
    _assert_positive(stream["chunk_size"], "stream.chunk_size")

    geocoder = _assert_mapping(cfg["geocoder"], "geocoder")
    _assert_required_keys(geocoder, {"provider", "rate_per_sec"}, "geocoder")
    if geocoder["provider"] not in GEOCODER_PROVIDERS:
        raise ConfigError(f"geocoder.provider must be one of: {', '.join(GEOCODER_PROVIDERS)}")
    if geocoder["provider"] in ("positionstack", "endpoint") and not geocoder.get("endpoint"):
        raise ConfigError(f"geocoder.endpoint is required for provider {geocoder['provider']}")
    _assert_positive(geocoder["rate_per_sec"], "geocoder.rate_per_sec")

    fallback = _assert_mapping(cfg["fallback"], "fallback")
    _assert_required_keys(fallback, {"jitter_degrees"}, "fallback")
    _assert_positive(fallback["jitter_degrees"], "fallback.jitter_degrees")

    worker = _assert_mapping(cfg["worker"], "worker")
    _assert_required_keys(worker, {"idle_poll_seconds"}, "worker")
    _assert_positive(worker["idle_poll_seconds"], "worker.idle_poll_seconds")

    return cfg
