"""
Error taxonomy for the query pipeline.

None of these are retried. The GeoServices layer maps each one to an
HTTP status and an Esri-style error body.
"""


class ParquetGeoError(Exception):
    """Base class for all query pipeline failures."""

    status_code = 500


class ConfigurationError(ParquetGeoError):
    """Layer metadata or service configuration is missing or malformed."""

    status_code = 500


class TranslationError(ParquetGeoError, ValueError):
    """A request parameter could not be translated into SQL."""

    status_code = 400


class ConnectionNotReadyError(ParquetGeoError):
    """The DuckDB connection has not finished (or failed) initialization."""

    status_code = 503


class ExecutionError(ParquetGeoError):
    """DuckDB rejected or failed the statement, or it timed out."""

    status_code = 500
