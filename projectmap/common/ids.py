"""Session and record identifier helpers."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def generate_session_id() -> str:
    now = datetime.now(tz=timezone.utc)
    # Sortable id without external dependency.
    return now.strftime("session-%Y%m%dT%H%M%S%fZ")


def generate_record_id(sequence: int, prefix: str = "project") -> str:
    return f"{prefix}-{sequence}"


def generate_id_nonce() -> str:
    # Keeps parser-generated ids apart from producer ids shaped like project-N.
    return uuid.uuid4().hex[:8]
