"""Sequential geocode worker.

One cycle claims the earliest ``Scraped`` record, resolves it, and writes the
outcome back. At most one geocoder call is ever outstanding, so records are
resolved strictly in arrival order. Each write-back is dropped if the store
was reset while the call was in flight.
"""

from __future__ import annotations

import logging
import threading
import time

from projectmap.common.errors import GeocodeProviderError, GeocodeUnresolvableError
from projectmap.common.logging import get_logger, log_event
from projectmap.common.models import Coordinates, ProjectRecord, RecordStatus
from projectmap.common.time_utils import elapsed_ms
from projectmap.geocode.fallback import AnchorFallback
from projectmap.geocode.providers import Geocoder, is_usable
from projectmap.pipeline.store import RecordStore


class GeocodeQueueProcessor:
    def __init__(
        self,
        store: RecordStore,
        geocoder: Geocoder,
        fallback: AnchorFallback,
        *,
        credential: str | None = None,
        idle_poll_seconds: float = 0.5,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.geocoder = geocoder
        self.fallback = fallback
        self.credential = credential
        self.idle_poll_seconds = idle_poll_seconds
        self.logger = logger or get_logger("geocode")
        self.processed_count = 0
        self._flight = threading.Lock()
        self._wakeup = threading.Event()
        self._stop = threading.Event()
        self._idle = threading.Condition()
        self._thread: threading.Thread | None = None

    @property
    def in_flight(self) -> bool:
        return self._flight.locked()

    def process_next(self) -> bool:
        """Run one cycle. Returns False when nothing was claimed."""
        if not self._flight.acquire(blocking=False):
            return False
        try:
            with self.store.lock:
                record = self.store.find_next_pending()
                if record is None:
                    return False
                epoch = self.store.epoch
                self.store.update_status(record.id, RecordStatus.GEOCODING)

            started_at = time.monotonic()
            status, coordinates = self._resolve(record, epoch)
            self._write_back(record, epoch, status, coordinates, elapsed_ms(started_at))
            return True
        finally:
            self._flight.release()
            with self._idle:
                self._idle.notify_all()

    def _resolve(self, record: ProjectRecord, epoch: int) -> tuple[RecordStatus, Coordinates | None]:
        result = None
        try:
            result = self.geocoder.resolve(record.location, record.city_name, self.credential)
        except GeocodeProviderError as exc:
            log_event(
                self.logger,
                f"geocoder failed, using anchor fallback: {exc}",
                level=logging.WARNING,
                epoch=epoch,
                city=record.city_name,
                record_id=record.id,
                event="GEOCODE_PROVIDER_FAIL",
                status="fallback",
                error_code=exc.error_code,
            )
        except Exception:
            self.logger.exception(
                "unexpected geocoder failure",
                extra={"epoch": epoch, "record_id": record.id, "error_code": "UNEXPECTED_ERROR"},
            )

        if is_usable(result):
            return RecordStatus.READY, Coordinates(lat=result.lat, lng=result.lng)

        try:
            return RecordStatus.READY, self.fallback.coordinates_for(record.city_name)
        except GeocodeUnresolvableError as exc:
            log_event(
                self.logger,
                str(exc),
                level=logging.WARNING,
                epoch=epoch,
                city=record.city_name,
                record_id=record.id,
                event="GEOCODE_UNRESOLVED",
                status="error",
                error_code=exc.error_code,
            )
            return RecordStatus.ERROR, None

    def _write_back(
        self,
        record: ProjectRecord,
        epoch: int,
        status: RecordStatus,
        coordinates: Coordinates | None,
        duration_ms: int,
    ) -> None:
        with self.store.lock:
            if self.store.epoch != epoch:
                log_event(
                    self.logger,
                    "discarded result from a superseded search",
                    epoch=epoch,
                    record_id=record.id,
                    event="GEOCODE_STALE",
                    status="discarded",
                    duration_ms=duration_ms,
                )
                return
            self.store.update_status(record.id, status, coordinates)
        self.processed_count += 1
        log_event(
            self.logger,
            "record geocoded",
            level=logging.DEBUG,
            epoch=epoch,
            city=record.city_name,
            record_id=record.id,
            event="GEOCODE_DONE",
            status=status.value,
            duration_ms=duration_ms,
        )

    def drain(self) -> int:
        """Process pending records on the calling thread until none remain."""
        cycles = 0
        while self.process_next():
            cycles += 1
        return cycles

    def trigger(self) -> None:
        self._wakeup.set()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="geocode-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        self._wakeup.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        def _idle() -> bool:
            return not self.in_flight and self.store.find_next_pending() is None

        with self._idle:
            return self._idle.wait_for(_idle, timeout)

    def _run(self) -> None:
        while not self._stop.is_set():
            self._wakeup.wait(self.idle_poll_seconds)
            self._wakeup.clear()
            # Each completion chains straight into the next pick.
            while not self._stop.is_set() and self.process_next():
                pass
