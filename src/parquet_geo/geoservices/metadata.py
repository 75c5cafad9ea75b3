"""
Build Esri GeoServices metadata responses from layer configuration.

These are the relatively static JSON responses for /FeatureServer
and /FeatureServer/{layer_id} — called once when a layer is added
to an ArcGIS map.
"""

from parquet_geo.query.catalog import ServiceConfig
from parquet_geo.query.geometry import ESRI_GEOMETRY_TYPE_MAP
from parquet_geo.query.models import OBJECTID_FIELD, LayerMetadata

ESRI_FIELD_TYPES = {
    "string": "esriFieldTypeString",
    "int32": "esriFieldTypeInteger",
    "int64": "esriFieldTypeInteger",
    "integer": "esriFieldTypeInteger",
    "float": "esriFieldTypeSingle",
    "double": "esriFieldTypeDouble",
    "boolean": "esriFieldTypeSmallInteger",
    "date": "esriFieldTypeDate",
    "timestamp": "esriFieldTypeDate",
}

DEFAULT_EXTENT = {"xmin": -180, "ymin": -90, "xmax": 180, "ymax": 90}


def esri_field(name: str, field_type: str, alias: str = None) -> dict:
    return {
        "name": name,
        "type": ESRI_FIELD_TYPES.get(field_type, "esriFieldTypeString"),
        "alias": alias or name,
    }


def oid_field() -> dict:
    return {
        "name": OBJECTID_FIELD,
        "type": "esriFieldTypeOID",
        "alias": OBJECTID_FIELD,
        "sqlType": "sqlTypeInteger",
    }


def build_service_metadata(service_id: str, service: ServiceConfig) -> dict:
    """Build /FeatureServer response."""
    layers = []
    for i, layer in enumerate(service.layers):
        layers.append(
            {
                "id": i,
                "name": layer.name,
                "type": "Feature Layer",
                "geometryType": ESRI_GEOMETRY_TYPE_MAP.get(
                    layer.geometry_type, "esriGeometryPolygon"
                ),
            }
        )

    max_record_count = max(
        (layer.max_record_count for layer in service.layers), default=2000
    )
    crs = service.layers[0].crs if service.layers else 4326

    return {
        "currentVersion": 11.0,
        "serviceDescription": service.description
        or f"Parquet-backed feature service: {service_id}",
        "hasVersionedData": False,
        "supportsDisconnectedEditing": False,
        "supportedQueryFormats": "JSON, geoJSON",
        "maxRecordCount": max_record_count,
        "capabilities": "Query",
        "layers": layers,
        "tables": [],
        "spatialReference": {"wkid": crs, "latestWkid": crs},
    }


def build_layer_metadata(layer: LayerMetadata, layer_id: int) -> dict:
    """Build /FeatureServer/{layer_id} response."""
    fields = [oid_field()]
    for f in layer.fields:
        if f.name == layer.geometry_field or f.name.upper() == OBJECTID_FIELD:
            continue
        fields.append(esri_field(f.name, f.type, f.alias))

    return {
        "currentVersion": 11.0,
        "id": layer_id,
        "name": layer.name,
        "type": "Feature Layer",
        "description": layer.description,
        "geometryType": ESRI_GEOMETRY_TYPE_MAP.get(
            layer.geometry_type, "esriGeometryPolygon"
        ),
        "objectIdField": OBJECTID_FIELD,
        "fields": fields,
        "extent": {**DEFAULT_EXTENT, "spatialReference": {"wkid": layer.crs}},
        "maxRecordCount": layer.max_record_count,
        "supportedQueryFormats": "JSON, geoJSON",
        "capabilities": "Query",
        "advancedQueryCapabilities": {
            "supportsDistinct": False,
            "supportsOrderBy": True,
            "supportsPagination": True,
            "supportsQueryWithResultType": False,
            "supportsReturningGeometryCentroid": False,
            "supportsStatistics": False,
        },
        "hasAttachments": False,
        "htmlPopupType": "esriServerHTMLPopupTypeAsHTMLText",
    }
