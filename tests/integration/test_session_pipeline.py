from __future__ import annotations

import logging
import random
import threading
from pathlib import Path

import pytest

from projectmap.common.config_loader import load_all_configs
from projectmap.common.errors import TransportError
from projectmap.common.models import RecordStatus
from projectmap.geocode.providers import GeocodeResult, PositionstackGeocoder
from projectmap.pipeline.session import ScrapeSession

HYDERABAD = (17.385, 78.4867)
BANGALORE = (12.9716, 77.5946)


class NoNetworkHttpClient:
    def get_json(self, *_args, **_kwargs):
        raise AssertionError("no HTTP call expected without a credential")


def _session(geocoder=None, *, credential=None, seed=5) -> ScrapeSession:
    bundle = load_all_configs(Path("config"))
    return ScrapeSession.from_config(
        bundle,
        geocoder or PositionstackGeocoder(NoNetworkHttpClient()),
        credential=credential,
        rng=random.Random(seed),
        session_id="session-test",
    )


def _within(point, anchor, box=0.05) -> bool:
    return abs(point["lat"] - anchor[0]) <= box and abs(point["lng"] - anchor[1]) <= box


@pytest.mark.integration
def test_two_city_stream_without_credential_resolves_in_order():
    payload = Path("tests/fixtures/streams/two_cities.ndjson").read_bytes()
    resolved: list[str] = []

    with _session() as session:
        original = session.store.update_status

        def tracking_update(record_id, status, coordinates=None):
            if status is RecordStatus.READY:
                resolved.append(record_id)
            return original(record_id, status, coordinates)

        session.store.update_status = tracking_update
        session.new_search("Hyderabad")
        session.start()
        added = session.ingest([payload[:37], payload[37:150], payload[150:]])
        assert session.wait_until_settled(timeout=10)
        snapshot = session.snapshot()

    assert added == 2
    assert resolved == ["a", "b"]
    projects = snapshot["projects"]
    assert [p["id"] for p in projects] == ["a", "b"]
    assert [p["status"] for p in projects] == ["Ready", "Ready"]
    assert _within(projects[0]["coordinates"], HYDERABAD)
    assert _within(projects[1]["coordinates"], BANGALORE)
    assert snapshot["map_center"] == {"lat": 17.385, "lng": 78.4867}
    assert snapshot["error"] is None


@pytest.mark.integration
def test_sse_stream_with_malformed_unit_keeps_going():
    payload = Path("tests/fixtures/streams/hyderabad.sse").read_bytes()

    with _session() as session:
        session.new_search("Hyderabad")
        added = session.ingest(payload[i : i + 64] for i in range(0, len(payload), 64))
        session.processor.drain()
        snapshot = session.snapshot()

    assert added == 3
    assert snapshot["dropped_units"] == 1
    assert snapshot["counts"] == {"Scraped": 0, "Geocoding": 0, "Ready": 3, "Error": 0}
    assert all(_within(p["coordinates"], HYDERABAD) for p in snapshot["projects"])


@pytest.mark.integration
def test_transport_failure_keeps_ingested_records_draining():
    def dropping_stream():
        yield b'{"id":"a","name":"N1","location":"Kollur","cityName":"Hyderabad"}\n'
        yield b'{"id":"b","name":"N2","location":"Kondapur","cityName":"Hyderabad"}\n{"id":"c",'
        raise TransportError("connection reset by peer")

    with _session() as session:
        session.new_search("Hyderabad")
        session.start()
        with pytest.raises(TransportError):
            session.ingest(dropping_stream())
        assert session.error == "connection reset by peer"
        assert session.is_streaming is False
        assert session.wait_until_settled(timeout=10)
        snapshot = session.snapshot()

    assert [p["id"] for p in snapshot["projects"]] == ["a", "b"]
    assert {p["status"] for p in snapshot["projects"]} == {"Ready"}


@pytest.mark.integration
def test_producer_error_unit_surfaces_as_transport_error():
    stream = [
        b'data: {"id":"a","name":"N1","location":"Kollur","cityName":"Hyderabad"}\n\n',
        b'data: {"error":"Waiting for selector `.projdis__prjcard` failed"}\n\n',
    ]

    with _session() as session:
        session.new_search("Hyderabad")
        with pytest.raises(TransportError, match="projdis__prjcard"):
            session.ingest(stream)
        session.processor.drain()

        assert session.store.get("a").status is RecordStatus.READY


@pytest.mark.integration
def test_new_search_discards_previous_city_and_late_results():
    entered = threading.Event()
    release = threading.Event()

    class GateGeocoder:
        def resolve(self, location, city, credential=None):
            if location == "Kollur":
                entered.set()
                release.wait(5)
            return GeocodeResult(17.49, 78.39)

    with _session(GateGeocoder(), credential="key-1") as session:
        first_epoch = session.new_search("Hyderabad")
        session.start()
        session.ingest([b'{"id":"a","name":"N1","location":"Kollur","cityName":"Hyderabad"}\n[DONE]\n'])
        assert entered.wait(5)

        second_epoch = session.new_search("Bangalore")
        session.ingest([b'{"id":"x","name":"N2","location":"Whitefield","cityName":"Bangalore"}\n[DONE]\n'])
        release.set()
        assert session.wait_until_settled(timeout=10)
        snapshot = session.snapshot()

    assert second_epoch == first_epoch + 1
    assert [p["id"] for p in snapshot["projects"]] == ["x"]
    assert snapshot["projects"][0]["status"] == "Ready"
    assert snapshot["map_center"] == {"lat": 12.9716, "lng": 77.5946}


@pytest.mark.integration
def test_duplicate_ids_in_stream_keep_first_delivery():
    stream = [
        b'{"id":"a","name":"First","location":"Kollur","cityName":"Hyderabad"}\n',
        b'{"id":"a","name":"Second","location":"Kollur","cityName":"Hyderabad"}\n[DONE]\n',
    ]

    with _session() as session:
        session.new_search("Hyderabad")
        assert session.ingest(stream) == 1
        assert session.store.get("a").name == "First"


@pytest.mark.integration
def test_generated_ids_stay_unique_across_streams_in_one_search():
    with _session() as session:
        session.new_search("Hyderabad")
        assert session.ingest([b'{"name":"N1","location":"Kollur"}\n[DONE]\n']) == 1
        assert session.ingest(
            [
                b'{"id":"project-1","name":"Producer","location":"Kondapur"}\n',
                b'{"name":"N2","location":"Gachibowli"}\n[DONE]\n',
            ]
        ) == 2

        ids = [record.id for record in session.store.records()]

    assert len(session.store.records()) == 3
    assert len(set(ids)) == 3
    assert ids[1] == "project-1"
    assert ids[0].startswith("project-") and ids[0] != "project-1"


@pytest.mark.integration
def test_sentinel_closes_the_chunk_source_early():
    state = {"closed": False, "served": 0}

    def chunks():
        try:
            yield b'{"id":"a","name":"N","location":"Kollur","cityName":"Hyderabad"}\n[DONE]\n'
            state["served"] += 1
            yield b'{"id":"b","name":"N","location":"Kollur","cityName":"Hyderabad"}\n'
        finally:
            state["closed"] = True

    with _session() as session:
        session.new_search("Hyderabad")
        assert session.ingest(chunks()) == 1

    assert state == {"closed": True, "served": 0}


@pytest.mark.integration
def test_stream_orphaned_by_new_search_is_logged_and_discarded(caplog):
    with _session() as session:
        session.new_search("Hyderabad")

        def chunks():
            yield b'{"id":"a","name":"N1","location":"Kollur","cityName":"Hyderabad"}\n'
            session.new_search("Bangalore")
            yield b'{"id":"b","name":"N2","location":"Kondapur","cityName":"Hyderabad"}\n[DONE]\n'

        with caplog.at_level(logging.INFO, logger="projectmap"):
            assert session.ingest(chunks()) == 1

        assert len(session.store) == 0
        assert session.city == "Bangalore"

    events = [getattr(record, "event", None) for record in caplog.records]
    assert "STREAM_ORPHANED" in events
    assert "STREAM_END" not in events
    orphaned = next(record for record in caplog.records if getattr(record, "event", None) == "STREAM_ORPHANED")
    assert orphaned.city == "Hyderabad"
    assert orphaned.status == "discarded"
