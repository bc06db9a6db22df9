"""Incremental parser for the listing stream.

Accepts raw byte chunks in either NDJSON framing (one object per line) or
Server-Sent-Event framing (``data: <json>`` lines closed by a blank line) and
emits parsed units in stream order. Only complete lines are consumed, so the
output never depends on where the transport split the bytes.
"""

from __future__ import annotations

import codecs
import itertools
import json
import logging
from dataclasses import dataclass
from typing import Iterator, Union

from projectmap.common.constants import STREAM_SENTINEL
from projectmap.common.errors import ParseError
from projectmap.common.ids import generate_record_id
from projectmap.common.logging import get_logger, log_event
from projectmap.common.models import ProjectRecord

SSE_DATA_PREFIX = "data:"
SSE_IGNORED_FIELDS = ("event:", "id:", "retry:")


@dataclass(frozen=True)
class EndOfStream:
    pass


@dataclass(frozen=True)
class StreamFault:
    message: str


ParsedItem = Union[ProjectRecord, EndOfStream, StreamFault]


class ChunkParser:
    def __init__(
        self,
        *,
        default_city: str | None = None,
        sentinel: str = STREAM_SENTINEL,
        logger: logging.Logger | None = None,
        id_prefix: str = "project",
        id_sequence: Iterator[int] | None = None,
    ) -> None:
        self.default_city = default_city
        self.id_prefix = id_prefix
        self.sentinel = sentinel
        self.logger = logger or get_logger("ingest")
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._sse_data: list[str] = []
        # Shared with the owning session so generated ids never repeat across streams.
        self._ids = id_sequence if id_sequence is not None else itertools.count(1)
        self.finished = False
        self.dropped_units = 0

    def feed(self, chunk: bytes) -> list[ParsedItem]:
        if self.finished:
            return []
        self._buffer += self._decoder.decode(chunk)
        return self._drain_lines()

    def close(self) -> list[ParsedItem]:
        """Flush whatever is left once the transport has ended."""
        if self.finished:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        items = self._drain_lines()
        if self.finished:
            return items
        if self._buffer:
            tail, self._buffer = self._buffer, ""
            items.extend(self._handle_line(tail.rstrip("\r")))
        if not self.finished and self._sse_data:
            items.extend(self._dispatch_sse())
        return items

    def _drain_lines(self) -> list[ParsedItem]:
        items: list[ParsedItem] = []
        while not self.finished:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline].rstrip("\r")
            self._buffer = self._buffer[newline + 1 :]
            items.extend(self._handle_line(line))
        return items

    def _handle_line(self, line: str) -> list[ParsedItem]:
        if not line.strip():
            if self._sse_data:
                return self._dispatch_sse()
            return []
        if line.startswith(SSE_DATA_PREFIX):
            value = line[len(SSE_DATA_PREFIX) :]
            if value.startswith(" "):
                value = value[1:]
            self._sse_data.append(value)
            return []
        if line.startswith(":") or line.startswith(SSE_IGNORED_FIELDS):
            return []
        # A bare line ends any SSE event left open, then counts as one NDJSON unit.
        items = self._dispatch_sse() if self._sse_data else []
        if self.finished:
            return items
        items.extend(self._parse_unit(line))
        return items

    def _dispatch_sse(self) -> list[ParsedItem]:
        unit = "\n".join(self._sse_data)
        self._sse_data = []
        return self._parse_unit(unit)

    def _parse_unit(self, unit: str) -> list[ParsedItem]:
        text = unit.strip()
        if text == self.sentinel:
            self.finished = True
            return [EndOfStream()]

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            self._drop(f"invalid JSON unit: {exc.msg}")
            return []

        if isinstance(payload, dict) and payload.get("error") and "name" not in payload:
            self.finished = True
            return [StreamFault(message=str(payload["error"]))]

        fallback_id = None
        if isinstance(payload, dict) and payload.get("id") in (None, ""):
            fallback_id = generate_record_id(next(self._ids), prefix=self.id_prefix)
        try:
            record = ProjectRecord.from_dict(
                payload,
                fallback_id=fallback_id or "",
                default_city=self.default_city,
            )
        except ParseError as exc:
            self._drop(str(exc))
            return []
        return [record]

    def _drop(self, reason: str) -> None:
        self.dropped_units += 1
        log_event(
            self.logger,
            f"dropped stream unit: {reason}",
            level=logging.WARNING,
            event="UNIT_DROPPED",
            status="skipped",
            error_code=ParseError.error_code,
        )
