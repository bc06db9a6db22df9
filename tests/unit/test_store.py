from __future__ import annotations

import pytest

from projectmap.common.errors import StatusTransitionError
from projectmap.common.models import Coordinates, ProjectRecord, RecordStatus
from projectmap.pipeline.store import RecordStore


def _record(record_id: str, name: str = "Project", city: str = "Hyderabad") -> ProjectRecord:
    return ProjectRecord(id=record_id, name=name, location="Kukatpally", city_name=city)


def test_append_keeps_arrival_order_and_ignores_duplicates():
    store = RecordStore()

    assert store.append_scraped(_record("b")) is True
    assert store.append_scraped(_record("a")) is True
    assert store.append_scraped(_record("b", name="Changed")) is False

    assert [r.id for r in store.records()] == ["b", "a"]
    assert store.get("b").name == "Project"
    assert len(store) == 2


def test_find_next_pending_is_fifo_over_scraped_records():
    store = RecordStore()
    for record_id in ("a", "b", "c"):
        store.append_scraped(_record(record_id))

    assert store.find_next_pending().id == "a"
    store.update_status("a", RecordStatus.GEOCODING)
    assert store.find_next_pending().id == "b"
    store.update_status("b", RecordStatus.GEOCODING)
    store.update_status("b", RecordStatus.READY, Coordinates(1.0, 2.0))
    assert store.find_next_pending().id == "c"


def test_update_status_for_unknown_id_is_a_no_op():
    store = RecordStore()
    assert store.update_status("missing", RecordStatus.GEOCODING) is False
    assert store.records() == []


def test_status_never_moves_backwards():
    store = RecordStore()
    store.append_scraped(_record("a"))
    store.update_status("a", RecordStatus.GEOCODING)
    store.update_status("a", RecordStatus.ERROR)

    with pytest.raises(StatusTransitionError):
        store.update_status("a", RecordStatus.SCRAPED)
    with pytest.raises(StatusTransitionError):
        store.update_status("a", RecordStatus.READY, Coordinates(1.0, 2.0))
    assert store.get("a").status is RecordStatus.ERROR


def test_scraped_cannot_jump_straight_to_ready():
    store = RecordStore()
    store.append_scraped(_record("a"))

    with pytest.raises(StatusTransitionError):
        store.update_status("a", RecordStatus.READY, Coordinates(1.0, 2.0))


def test_append_normalises_status_and_coordinates():
    store = RecordStore()
    record = ProjectRecord(
        id="a",
        name="N",
        location="L",
        city_name="Pune",
        coordinates=Coordinates(1.0, 2.0),
        status=RecordStatus.READY,
    )
    store.append_scraped(record)

    assert store.get("a").status is RecordStatus.SCRAPED
    assert store.get("a").coordinates is None


def test_reset_clears_records_and_bumps_epoch():
    store = RecordStore()
    store.append_scraped(_record("a"))
    before = store.epoch

    assert store.reset() == before + 1
    assert store.records() == []
    assert store.find_next_pending() is None
    assert store.append_scraped(_record("a")) is True


def test_counts_pending_and_map_markers():
    store = RecordStore()
    for record_id in ("a", "b", "c"):
        store.append_scraped(_record(record_id))
    store.update_status("a", RecordStatus.GEOCODING)
    store.update_status("a", RecordStatus.READY, Coordinates(17.4, 78.5))
    store.update_status("b", RecordStatus.GEOCODING)

    assert store.counts() == {"Scraped": 1, "Geocoding": 1, "Ready": 1, "Error": 0}
    assert store.pending_count() == 2
    assert store.is_settled() is False
    assert store.map_markers() == [
        {"id": "a", "name": "Project", "location": "Kukatpally", "priceRange": "", "lat": 17.4, "lng": 78.5}
    ]
