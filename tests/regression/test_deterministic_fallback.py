import random
from pathlib import Path

from projectmap.common.config_loader import load_all_configs
from projectmap.geocode.providers import MockGeocoder
from projectmap.pipeline.session import ScrapeSession


def _run(seed: int, chunk_size: int) -> list[dict]:
    payload = Path("tests/fixtures/streams/hyderabad.sse").read_bytes()
    session = ScrapeSession.from_config(load_all_configs(Path("config")), MockGeocoder(), rng=random.Random(seed))
    session.new_search("Hyderabad")
    session.ingest(payload[i : i + chunk_size] for i in range(0, len(payload), chunk_size))
    session.processor.drain()
    return session.snapshot()["projects"]


def test_same_seed_gives_identical_output_regardless_of_chunking():
    assert _run(seed=9, chunk_size=7) == _run(seed=9, chunk_size=4096)


def test_different_seeds_move_fallback_points():
    first = [p["coordinates"] for p in _run(seed=1, chunk_size=64)]
    second = [p["coordinates"] for p in _run(seed=2, chunk_size=64)]
    assert first != second
