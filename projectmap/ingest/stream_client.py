"""Transport for the listing stream endpoint."""

from __future__ import annotations

from typing import Iterator

from projectmap.common.errors import TransportError
from projectmap.common.http import HttpClient, HttpRequestError, TimeoutConfig


class StreamClient:
    def __init__(
        self,
        http_client: HttpClient,
        *,
        chunk_size: int = 1024,
        timeout: TimeoutConfig | None = None,
    ) -> None:
        self.http_client = http_client
        self.chunk_size = chunk_size
        self.timeout = timeout

    def iter_chunks(self, url: str, params: dict | None = None) -> Iterator[bytes]:
        try:
            yield from self.http_client.stream_bytes(
                url,
                params=params,
                chunk_size=self.chunk_size,
                timeout=self.timeout,
            )
        except HttpRequestError as exc:
            raise TransportError(str(exc)) from exc

    def iter_city_chunks(self, url: str, city: str) -> Iterator[bytes]:
        return self.iter_chunks(url, params={"cityName": city})
