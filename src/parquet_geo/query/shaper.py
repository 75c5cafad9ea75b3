"""
Reshape raw DuckDB rows into GeoServices responses.

Empty results keep the exact shape of populated ones: a data request
always yields a FeatureCollection with a (possibly empty) features list.
"""

import json
import logging
from typing import Any, Optional, Sequence

from .errors import ExecutionError
from .models import LayerMetadata

logger = logging.getLogger(__name__)

PROVIDER_NAME = "parquet-geo"
PROVIDER_DESCRIPTION = "DuckDB GeoParquet Provider"


def shape_count(rows: Sequence[Sequence[Any]]) -> dict:
    """First column of the first row, as ``{"count": N}``."""
    if not rows or not rows[0]:
        raise ExecutionError("Count query returned no rows")
    return {"count": int(rows[0][0] or 0)}


def shape_extent(
    count_rows: Sequence[Sequence[Any]],
    extent_rows: Sequence[Sequence[Any]],
    spatial_reference: int,
) -> dict:
    """Count plus the bounding box of the matching geometries."""
    result = shape_count(count_rows)
    extent = None
    if extent_rows and extent_rows[0] and extent_rows[0][0] is not None:
        xmin, ymin, xmax, ymax = extent_rows[0][:4]
        extent = {
            "xmin": xmin,
            "ymin": ymin,
            "xmax": xmax,
            "ymax": ymax,
            "spatialReference": {"wkid": spatial_reference},
        }
    result["extent"] = extent
    return result


def shape_feature_collection(
    rows: Sequence[Sequence[Any]],
    layer: LayerMetadata,
    fields: Optional[Sequence[str]] = None,
) -> dict:
    """Parse the single JSON payload and attach the metadata envelope.

    ``fields`` are the resolved output field names; the envelope describes
    only those (all layer fields when omitted).
    """
    payload = rows[0][0] if rows and rows[0] else None
    collection = _parse_payload(payload)

    features = collection.get("features")
    if not isinstance(features, list):
        features = []

    return {
        "type": "FeatureCollection",
        "features": features,
        "metadata": build_metadata_envelope(layer, fields),
    }


def build_metadata_envelope(
    layer: LayerMetadata, fields: Optional[Sequence[str]] = None
) -> dict:
    descriptors = layer.fields
    if fields is not None:
        selected = set(fields)
        descriptors = [f for f in layer.fields if f.name in selected]
    return {
        "name": PROVIDER_NAME,
        "description": PROVIDER_DESCRIPTION,
        "idField": layer.id_field,
        "fields": [f.as_dict() for f in descriptors],
        "maxRecordCount": layer.max_record_count,
        "returnExceededLimitFeatures": True,
        "supportsPagination": True,
    }


def _parse_payload(payload: Optional[Any]) -> dict:
    """Decode the engine's JSON payload.

    A missing payload reads as an empty collection, but text that is not
    JSON is an engine fault and raises ExecutionError rather than being
    reported as an empty result.
    """
    # DuckDB hands JSON back as text; other bindings may already decode it
    if payload is None:
        return {}
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ExecutionError(f"Engine returned invalid JSON: {e}") from e
    if not isinstance(payload, dict):
        logger.warning("Unexpected feature payload type: %s", type(payload).__name__)
        return {}
    return payload
