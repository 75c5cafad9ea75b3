"""
FeatureServer routes.

Implements the subset of Esri GeoServices REST that ArcGIS clients
need for map visualization.

ArcGIS clients send query parameters via:
- GET with URL query parameters
- POST with application/x-www-form-urlencoded body

Both must be handled. _get_query_params() merges both sources.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from parquet_geo.query.catalog import get_layer, get_service
from parquet_geo.query.engine import query_features

from ..metadata import build_layer_metadata, build_service_metadata
from ..serializers import esri_json

logger = logging.getLogger(__name__)
router = APIRouter()


async def _get_query_params(request: Request) -> dict:
    """Merge query string and form body params.

    ArcGIS Pro sends POST with form-encoded body for query requests.
    Query string params take precedence over form body.
    """
    params = dict(request.query_params)

    if request.method == "POST":
        content_type = request.headers.get("content-type", "")
        if "form" in content_type or "urlencoded" in content_type:
            form_data = await request.form()
            for key, value in form_data.items():
                if key not in params:
                    params[key] = value

    return params


def _resolve_service(service_id: str):
    try:
        return get_service(service_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


def _resolve_layer(service_id: str, layer_id: int):
    try:
        return get_layer(service_id, layer_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


@router.get("/{service_id}/FeatureServer")
@router.post("/{service_id}/FeatureServer")
async def feature_server_info(service_id: str):
    """
    Service-level metadata.

    ArcGIS clients call this to discover layers, spatial reference,
    and capabilities.
    """
    service = _resolve_service(service_id)
    return build_service_metadata(service_id, service)


@router.get("/{service_id}/FeatureServer/{layer_id}")
@router.post("/{service_id}/FeatureServer/{layer_id}")
async def layer_info(service_id: str, layer_id: int):
    """
    Layer-level metadata.

    Returns field definitions, geometry type, extent, objectIdField,
    maxRecordCount, supportedQueryFormats, etc.
    """
    layer = _resolve_layer(service_id, layer_id)
    return build_layer_metadata(layer, layer_id)


@router.get("/{service_id}/FeatureServer/{layer_id}/query")
@router.post("/{service_id}/FeatureServer/{layer_id}/query")
async def query_layer(request: Request, service_id: str, layer_id: int):
    """
    Feature query — the workhorse endpoint.

    Hands the raw GeoServices params to the query engine, then
    serializes to the requested format (f=geojson keeps the
    FeatureCollection envelope, f=json converts to Esri JSON).
    """
    p = await _get_query_params(request)
    layer = _resolve_layer(service_id, layer_id)

    result = await query_features(layer, p, request.app.state.executor)

    if p.get("f") == "geojson":
        return result
    return esri_json.serialize(result, layer)
