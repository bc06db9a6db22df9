"""Per-search session: owns the store, the geocode worker, and the stream state."""

from __future__ import annotations

import itertools
import logging
import random
from types import TracebackType
from typing import Any, Iterable

from projectmap.common.config_loader import ConfigBundle
from projectmap.common.constants import DEFAULT_JITTER_DEGREES, STREAM_SENTINEL
from projectmap.common.errors import TransportError
from projectmap.common.ids import generate_id_nonce, generate_session_id
from projectmap.common.logging import get_logger, log_event
from projectmap.geocode.anchors import CityAnchors
from projectmap.geocode.fallback import AnchorFallback
from projectmap.geocode.providers import Geocoder
from projectmap.ingest.chunk_parser import ChunkParser, EndOfStream, ParsedItem, StreamFault
from projectmap.pipeline.queue_processor import GeocodeQueueProcessor
from projectmap.pipeline.store import RecordStore


class ScrapeSession:
    def __init__(
        self,
        geocoder: Geocoder,
        anchors: CityAnchors,
        *,
        credential: str | None = None,
        jitter_degrees: float = DEFAULT_JITTER_DEGREES,
        rng: random.Random | None = None,
        sentinel: str = STREAM_SENTINEL,
        idle_poll_seconds: float = 0.5,
        session_id: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.session_id = session_id or generate_session_id()
        self.logger = logger or get_logger("session")
        self.anchors = anchors
        self.sentinel = sentinel
        self.store = RecordStore(logger=self.logger)
        self.processor = GeocodeQueueProcessor(
            self.store,
            geocoder,
            AnchorFallback(anchors, jitter_degrees=jitter_degrees, rng=rng),
            credential=credential,
            idle_poll_seconds=idle_poll_seconds,
            logger=self.logger,
        )
        self.city: str | None = None
        self.is_streaming = False
        self.error: str | None = None
        self.dropped_units = 0
        # Never reset, so ids generated for id-less records stay unique for the session.
        self._id_prefix = f"project-{generate_id_nonce()}"
        self._id_sequence = itertools.count(1)

    @classmethod
    def from_config(
        cls,
        bundle: ConfigBundle,
        geocoder: Geocoder,
        *,
        credential: str | None = None,
        rng: random.Random | None = None,
        session_id: str | None = None,
        logger: logging.Logger | None = None,
    ) -> "ScrapeSession":
        pipeline = bundle.pipeline
        return cls(
            geocoder,
            CityAnchors.from_config(bundle.cities),
            credential=credential,
            jitter_degrees=float(pipeline["fallback"]["jitter_degrees"]),
            rng=rng,
            sentinel=str(pipeline["stream"]["sentinel"]),
            idle_poll_seconds=float(pipeline["worker"]["idle_poll_seconds"]),
            session_id=session_id,
            logger=logger,
        )

    def __enter__(self) -> "ScrapeSession":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def start(self) -> None:
        self.processor.start()

    def close(self, timeout: float | None = 5.0) -> None:
        self.processor.stop(timeout)

    def new_search(self, city: str) -> int:
        epoch = self.store.reset()
        self.city = city
        self.error = None
        self.is_streaming = False
        self.dropped_units = 0
        log_event(
            self.logger,
            "new search",
            session_id=self.session_id,
            epoch=epoch,
            city=city,
            event="SEARCH_START",
            status="ok",
        )
        return epoch

    def map_center(self):
        if self.city is None:
            return None
        return self.anchors.map_center(self.city)

    def ingest(self, chunks: Iterable[bytes]) -> int:
        """Feed a byte stream into the store. Returns the number of records added.

        Raises ``TransportError`` when the transport fails or the producer
        reports an error; records added before that point stay in the store
        and keep geocoding.
        """
        parser = ChunkParser(
            default_city=self.city,
            sentinel=self.sentinel,
            logger=self.logger,
            id_prefix=self._id_prefix,
            id_sequence=self._id_sequence,
        )
        epoch = self.store.epoch
        added = 0
        orphaned = False
        self.is_streaming = True
        try:
            for chunk in chunks:
                count = self._apply(parser.feed(chunk), epoch)
                if count is None:
                    orphaned = True
                    break
                added += count
                if parser.finished:
                    break
            else:
                count = self._apply(parser.close(), epoch)
                if count is None:
                    orphaned = True
                else:
                    added += count
        except TransportError as exc:
            self.error = str(exc)
            log_event(
                self.logger,
                f"stream failed: {exc}",
                level=logging.ERROR,
                session_id=self.session_id,
                epoch=epoch,
                city=self.city,
                event="STREAM_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            raise
        finally:
            # Releases the transport when we stop before the producer does.
            close = getattr(chunks, "close", None)
            if close is not None:
                close()
            if self.store.epoch == epoch:
                self.is_streaming = False
                self.dropped_units += parser.dropped_units

        if orphaned:
            log_event(
                self.logger,
                "stream orphaned by a newer search",
                level=logging.WARNING,
                session_id=self.session_id,
                epoch=epoch,
                city=parser.default_city,
                event="STREAM_ORPHANED",
                status="discarded",
            )
            return added

        log_event(
            self.logger,
            "stream finished",
            session_id=self.session_id,
            epoch=epoch,
            city=self.city,
            event="STREAM_END",
            status="ok",
        )
        return added

    def _apply(self, items: list[ParsedItem], epoch: int) -> int | None:
        added = 0
        for item in items:
            if isinstance(item, StreamFault):
                raise TransportError(item.message)
            if isinstance(item, EndOfStream):
                break
            with self.store.lock:
                if self.store.epoch != epoch:
                    # A newer search replaced the store; this stream is orphaned.
                    return None
                if self.store.append_scraped(item):
                    added += 1
            self.processor.trigger()
        return added

    def wait_until_settled(self, timeout: float | None = None) -> bool:
        return self.processor.wait_until_idle(timeout)

    def snapshot(self) -> dict[str, Any]:
        center = self.map_center()
        return {
            "session_id": self.session_id,
            "epoch": self.store.epoch,
            "city": self.city,
            "map_center": center.to_dict() if center is not None else None,
            "is_streaming": self.is_streaming,
            "error": self.error,
            "counts": self.store.counts(),
            "processed_count": self.processor.processed_count,
            "dropped_units": self.dropped_units,
            "projects": [record.to_dict() for record in self.store.records()],
        }
