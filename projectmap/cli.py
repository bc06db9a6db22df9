"""CLI entrypoint: stream one city's listings and geocode them."""

from __future__ import annotations

import argparse
import os
import random
import sys
from pathlib import Path

from projectmap.common.config_loader import load_all_configs
from projectmap.common.constants import CREDENTIAL_ENV_VAR, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from projectmap.common.errors import PipelineError, TransportError
from projectmap.common.fs import iter_file_chunks, write_json
from projectmap.common.http import HttpClient, RetryConfig, TimeoutConfig
from projectmap.common.ids import generate_session_id
from projectmap.common.logging import build_logger, log_event
from projectmap.common.models import RecordStatus
from projectmap.geocode.providers import build_geocoder
from projectmap.ingest.stream_client import StreamClient
from projectmap.pipeline.session import ScrapeSession


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("city")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--stream-url", default=None)
    source.add_argument("--input", default=None, help="replay a captured NDJSON or SSE stream file")
    parser.add_argument("--api-key", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--output", default="./data/out/projects.json")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--drain-timeout", type=float, default=300.0)
    parser.add_argument("--log-dir", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    return parser.parse_args(argv)


def _http_client(pipeline_cfg: dict) -> HttpClient:
    geocoder_cfg = pipeline_cfg["geocoder"]
    return HttpClient(
        timeout=TimeoutConfig(
            connect=float(geocoder_cfg.get("connect_timeout_seconds", 10)),
            read=float(geocoder_cfg.get("read_timeout_seconds", 20)),
        ),
        retry=RetryConfig(max_attempts=int(geocoder_cfg.get("max_attempts", 3))),
        geocode_rate_per_sec=float(geocoder_cfg["rate_per_sec"]),
    )


def _stream_client(pipeline_cfg: dict, http_client: HttpClient) -> StreamClient:
    stream_cfg = pipeline_cfg["stream"]
    return StreamClient(
        http_client,
        chunk_size=int(stream_cfg["chunk_size"]),
        timeout=TimeoutConfig(
            connect=float(stream_cfg.get("connect_timeout_seconds", 10)),
            read=float(stream_cfg.get("read_timeout_seconds", 120)),
        ),
    )


def run_command(args: argparse.Namespace) -> int:
    session_id = generate_session_id()
    log_dir = Path(args.log_dir) if args.log_dir else None
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None

    logger = build_logger(session_id, log_dir=log_dir, level=args.log_level)
    bundle = load_all_configs(Path(args.config_dir), overlay_config_dir=overlay_config_dir)
    credential = args.api_key or os.environ.get(CREDENTIAL_ENV_VAR) or None
    rng = random.Random(args.seed) if args.seed is not None else None

    transport_failed = False
    with _http_client(bundle.pipeline) as http_client:
        geocoder = build_geocoder(bundle.pipeline["geocoder"], http_client)
        with ScrapeSession.from_config(
            bundle,
            geocoder,
            credential=credential,
            rng=rng,
            session_id=session_id,
            logger=logger,
        ) as session:
            session.new_search(args.city)
            session.start()

            if args.input:
                chunks = iter_file_chunks(Path(args.input), int(bundle.pipeline["stream"]["chunk_size"]))
            else:
                chunks = _stream_client(bundle.pipeline, http_client).iter_city_chunks(args.stream_url, args.city)

            try:
                session.ingest(chunks)
            except TransportError:
                transport_failed = True

            settled = session.wait_until_settled(timeout=args.drain_timeout)
            snapshot = session.snapshot()

    write_json(Path(args.output), snapshot)
    counts = snapshot["counts"]
    log_event(
        logger,
        f"session finished with {counts[RecordStatus.READY.value]} ready records",
        session_id=session_id,
        epoch=snapshot["epoch"],
        city=args.city,
        event="SESSION_END",
        status="ok" if settled else "timeout",
    )

    if transport_failed or not settled or counts[RecordStatus.ERROR.value] > 0:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
