"""Ordered, id-indexed record store shared by ingestion and geocoding.

Records are kept in arrival order. Every read and write takes ``lock``; it is
re-entrant so the geocode processor can hold it across a pick-and-mark or an
epoch-check-and-write.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace

from projectmap.common.logging import get_logger, log_event
from projectmap.common.models import Coordinates, ProjectRecord, RecordStatus


class RecordStore:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.lock = threading.RLock()
        self.logger = logger or get_logger("store")
        self._records: dict[str, ProjectRecord] = {}
        self._epoch = 0

    @property
    def epoch(self) -> int:
        with self.lock:
            return self._epoch

    def __len__(self) -> int:
        with self.lock:
            return len(self._records)

    def append_scraped(self, record: ProjectRecord) -> bool:
        with self.lock:
            if record.id in self._records:
                log_event(
                    self.logger,
                    "duplicate record ignored",
                    level=logging.DEBUG,
                    epoch=self._epoch,
                    record_id=record.id,
                    event="RECORD_DUPLICATE",
                    status="skipped",
                )
                return False
            if record.status is not RecordStatus.SCRAPED or record.coordinates is not None:
                record = replace(record, status=RecordStatus.SCRAPED, coordinates=None)
            self._records[record.id] = record
            return True

    def update_status(
        self,
        record_id: str,
        status: RecordStatus,
        coordinates: Coordinates | None = None,
    ) -> bool:
        with self.lock:
            current = self._records.get(record_id)
            if current is None:
                log_event(
                    self.logger,
                    "status update for unknown record",
                    level=logging.WARNING,
                    epoch=self._epoch,
                    record_id=record_id,
                    event="RECORD_UNKNOWN",
                    status=status.value,
                )
                return False
            self._records[record_id] = current.with_status(status, coordinates)
            return True

    def find_next_pending(self) -> ProjectRecord | None:
        with self.lock:
            for record in self._records.values():
                if record.status is RecordStatus.SCRAPED:
                    return record
            return None

    def reset(self) -> int:
        with self.lock:
            self._records = {}
            self._epoch += 1
            return self._epoch

    def get(self, record_id: str) -> ProjectRecord | None:
        with self.lock:
            return self._records.get(record_id)

    def records(self) -> list[ProjectRecord]:
        with self.lock:
            return list(self._records.values())

    def counts(self) -> dict[str, int]:
        with self.lock:
            counts = {status.value: 0 for status in RecordStatus}
            for record in self._records.values():
                counts[record.status.value] += 1
            return counts

    def pending_count(self) -> int:
        with self.lock:
            return sum(1 for record in self._records.values() if not record.status.is_terminal)

    def is_settled(self) -> bool:
        return self.pending_count() == 0

    def map_markers(self) -> list[dict]:
        """Ready records in arrival order, shaped for a map layer."""
        with self.lock:
            return [
                {
                    "id": record.id,
                    "name": record.name,
                    "location": record.location,
                    "priceRange": record.price_range,
                    "lat": record.coordinates.lat,
                    "lng": record.coordinates.lng,
                }
                for record in self._records.values()
                if record.status is RecordStatus.READY and record.coordinates is not None
            ]
