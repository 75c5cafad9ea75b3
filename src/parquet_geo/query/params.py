"""
Translate raw GeoServices query parameters into a QueryRequest.

ArcGIS clients send everything as strings (query string or form body);
internal callers may pass typed values. Both are accepted.
"""

import logging
from typing import Any, Mapping, Optional

from .errors import ConfigurationError, TranslationError
from .geometry import parse_spatial_reference
from .models import OBJECTID_FIELD, LayerMetadata, QueryRequest

logger = logging.getLogger(__name__)

_TRUE = ("true", "1", "yes")
_FALSE = ("false", "0", "no", "")

INTEGER_FIELD_TYPES = {
    "int8", "int16", "int32", "int64", "integer", "bigint",
    "uint8", "uint16", "uint32", "uint64",
}


def resolve_out_fields(field_names: list[str], out_fields: Optional[str]) -> list[str]:
    """
    Resolve an outFields selection against the layer's field list.

    ``*`` (or nothing) selects every field in metadata order. An explicit
    comma-separated list keeps only the names the layer knows about, still
    in metadata order; unknown names are dropped.
    """
    if out_fields is None or out_fields.strip() in ("", "*"):
        return list(field_names)

    requested = {name.strip() for name in out_fields.split(",") if name.strip()}
    if "*" in requested:
        return list(field_names)

    resolved = [name for name in field_names if name in requested]
    dropped = requested.difference(resolved)
    if dropped:
        logger.debug("Ignoring unknown outFields: %s", ", ".join(sorted(dropped)))
    return resolved


def normalize_params(raw: Mapping[str, Any], layer: LayerMetadata) -> QueryRequest:
    """Validate raw protocol parameters and bind them to a layer."""
    if not layer.fields:
        raise ConfigurationError(
            f"Layer '{layer.name}' has no field list configured"
        )

    field_names = [name for name in layer.field_names if name != layer.geometry_field]
    # The synthesized identifier is always emitted, never selected from data
    out_fields = resolve_out_fields(
        [name for name in field_names if name.upper() != OBJECTID_FIELD],
        _str(raw, "outFields"),
    )

    where = _str(raw, "where")
    if where is not None and where.strip() in ("", "1=1"):
        where = None

    record_count = _int(raw, "resultRecordCount")
    if record_count is None or record_count <= 0:
        record_count = layer.max_record_count
    record_count = min(record_count, layer.max_record_count)

    offset = _int(raw, "resultOffset")
    if offset is not None and offset < 0:
        raise TranslationError(f"resultOffset must not be negative: {offset}")

    object_ids = _object_ids(raw.get("objectIds"))
    if object_ids:
        _check_integer_id_field(layer)

    return QueryRequest(
        where=where,
        object_ids=object_ids,
        geometry=raw.get("geometry") or None,
        spatial_rel=_str(raw, "spatialRel"),
        in_sr=parse_spatial_reference(raw.get("inSR")),
        reprojection_sr=layer.crs,
        out_fields=out_fields,
        order_by_fields=_str(raw, "orderByFields"),
        result_record_count=record_count,
        result_offset=offset or None,
        return_count_only=_bool(raw, "returnCountOnly"),
        return_extent_only=_bool(raw, "returnExtentOnly"),
        id_field=layer.id_field,
        geometry_field=layer.geometry_field,
        geometry_encoding=layer.geometry_encoding,
        dataset=layer.dataset,
        known_fields=field_names,
    )


def _check_integer_id_field(layer: LayerMetadata):
    """objectIds are matched as integers against the layer's id column."""
    for field in layer.fields:
        if field.name == layer.id_field and field.type.lower() not in INTEGER_FIELD_TYPES:
            raise ConfigurationError(
                f"objectIds needs an integer id field; '{field.name}' on layer "
                f"'{layer.name}' is {field.type}"
            )


def _str(raw: Mapping[str, Any], key: str) -> Optional[str]:
    val = raw.get(key)
    if val is None:
        return None
    return str(val)


def _bool(raw: Mapping[str, Any], key: str, default: bool = False) -> bool:
    val = raw.get(key)
    if val is None:
        return default
    if isinstance(val, bool):
        return val
    text = str(val).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise TranslationError(f"Invalid boolean for {key}: {val}")


def _int(raw: Mapping[str, Any], key: str) -> Optional[int]:
    val = raw.get(key)
    if val is None or val == "":
        return None
    if isinstance(val, bool):
        raise TranslationError(f"Invalid integer for {key}: {val}")
    try:
        return int(val)
    except (ValueError, TypeError):
        raise TranslationError(f"Invalid integer for {key}: {val}") from None


def _object_ids(val) -> Optional[list[int]]:
    if val is None or val == "":
        return None
    items = val.split(",") if isinstance(val, str) else list(val)
    try:
        return [int(str(x).strip()) for x in items if str(x).strip()]
    except ValueError:
        raise TranslationError(f"Invalid objectIds: {val}") from None
