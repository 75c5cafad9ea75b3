"""
Serialize a GeoJSON query response -> Esri JSON response.

Esri JSON is the native JSON format for ArcGIS Feature Services.
It differs from GeoJSON in geometry representation:
- Polygons use {"rings": [[[x,y],...], ...]}
- Polylines use {"paths": [[[x,y],...], ...]}
- Points use {"x": val, "y": val}
- SpatialReference is an object: {"wkid": 4326}

Count and extent responses pass through unchanged.
"""

from parquet_geo.query.geometry import ESRI_GEOMETRY_TYPE_MAP, geojson_to_esri
from parquet_geo.query.models import OBJECTID_FIELD, LayerMetadata

from ..metadata import esri_field, oid_field


def serialize(result: dict, layer: LayerMetadata) -> dict:
    """Convert a FeatureCollection response to an Esri JSON FeatureSet."""

    if "features" not in result:
        return result

    features = []
    for feature in result["features"]:
        features.append(
            {
                "attributes": feature.get("properties") or {},
                "geometry": geojson_to_esri(feature.get("geometry")),
            }
        )

    metadata = result.get("metadata") or {}

    return {
        "objectIdFieldName": OBJECTID_FIELD,
        "uniqueIdField": {"name": OBJECTID_FIELD, "isSystemMaintained": True},
        "geometryType": ESRI_GEOMETRY_TYPE_MAP.get(
            layer.geometry_type, "esriGeometryPolygon"
        ),
        "spatialReference": {"wkid": layer.crs},
        "fields": _build_field_definitions(layer, features),
        "features": features,
        "exceededTransferLimit": bool(metadata.get("limitExceeded", False)),
    }


def _build_field_definitions(layer: LayerMetadata, features: list[dict]) -> list[dict]:
    """Field definitions for the attributes actually returned."""
    if features:
        returned = set(features[0]["attributes"])
    else:
        returned = {f.name for f in layer.fields}

    fields = [oid_field()]
    for f in layer.fields:
        if f.name in returned and f.name.upper() != OBJECTID_FIELD:
            fields.append(esri_field(f.name, f.type, f.alias))
    return fields
