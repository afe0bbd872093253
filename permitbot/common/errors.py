"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that a refresh cycle absorbs."""

    error_code = "STAGE_ERROR"


class MalformedRecord(PipelineError):
    """Raised when a single native record cannot be mapped."""

    error_code = "MALFORMED_RECORD"


class StoreError(PipelineError):
    """Raised when the record store cannot be opened."""

    error_code = "STORE_ERROR"
