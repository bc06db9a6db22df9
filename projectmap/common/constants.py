"""Application constants."""

USER_AGENT = "projectmap/0.3 (+listing-geocoder)"
STREAM_SENTINEL = "[DONE]"
DEFAULT_JITTER_DEGREES = 0.05
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
CREDENTIAL_ENV_VAR = "POSITIONSTACK_API_KEY"
JSON_LOG_FIELDS = (
    "timestamp",
    "session_id",
    "epoch",
    "city",
    "record_id",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "error_code",
    "message",
)
