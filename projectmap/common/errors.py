"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class ContractError(PipelineError):
    """Raised when record invariants are broken."""

    error_code = "CONTRACT_ERROR"


class StatusTransitionError(ContractError):
    """Raised for a status change that would move a record backwards."""

    error_code = "STATUS_TRANSITION_ERROR"


class TransportError(PipelineError):
    """Raised when the listing stream itself fails. Fatal to ingestion only."""

    error_code = "TRANSPORT_ERROR"


class ParseError(PipelineError):
    """Raised for one malformed stream unit. Logged and skipped."""

    error_code = "PARSE_ERROR"


class GeocodeProviderError(PipelineError):
    """Raised when the geocoding provider fails; the record falls back to its anchor."""

    error_code = "GEOCODE_PROVIDER_ERROR"


class GeocodeUnresolvableError(PipelineError):
    """Raised when neither the provider nor an anchor yields coordinates."""

    error_code = "GEOCODE_UNRESOLVABLE"
