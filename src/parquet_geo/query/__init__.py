"""Parquet Query Service — GeoServices query translation over DuckDB."""

from .builder import build_statements
from .catalog import get_config, get_layer, list_layers, list_services
from .engine import ConnectionState, EngineConnection, QueryExecutor, query_features
from .errors import (
    ConfigurationError,
    ConnectionNotReadyError,
    ExecutionError,
    ParquetGeoError,
    TranslationError,
)
from .models import GeometryFilter, LayerMetadata, QueryRequest, SqlStatementSet
from .params import normalize_params

__all__ = [
    "build_statements",
    "get_config",
    "get_layer",
    "list_layers",
    "list_services",
    "ConnectionState",
    "EngineConnection",
    "QueryExecutor",
    "query_features",
    "ConfigurationError",
    "ConnectionNotReadyError",
    "ExecutionError",
    "ParquetGeoError",
    "TranslationError",
    "GeometryFilter",
    "LayerMetadata",
    "QueryRequest",
    "SqlStatementSet",
    "normalize_params",
]
