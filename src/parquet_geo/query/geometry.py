"""
Geometry filter translation and coordinate utilities.

Handles:
- Esri JSON / GeoJSON / bbox string -> Shapely geometry conversion
- Spatial reference parsing (WKID integers and Esri JSON objects)
- Coordinate system transformation
- Spatial relation -> DuckDB predicate mapping
- GeoJSON -> Esri JSON geometry conversion for responses
"""

import json
import logging
from functools import lru_cache
from typing import Optional, Union

import pyproj
from pyproj.exceptions import CRSError, ProjError
from shapely import ops
from shapely.errors import ShapelyError
from shapely.geometry import (
    LinearRing,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
    box,
    mapping,
    shape,
)
from shapely.geometry.polygon import orient
from shapely.geometry.base import BaseGeometry

from .errors import TranslationError
from .models import GeometryFilter
from .sql import quote_literal

logger = logging.getLogger(__name__)

DEFAULT_SPATIAL_REFERENCE = 4326

# Esri WKIDs that predate the EPSG registration of Web Mercator
WEB_MERCATOR_ALIASES = {102100: 3857, 102113: 3857, 900913: 3857}

SPATIAL_RELATIONS = {
    "esriSpatialRelIntersects": "ST_Intersects",
    "esriSpatialRelEnvelopeIntersects": "ST_Intersects",
    "esriSpatialRelWithin": "ST_Within",
    "esriSpatialRelContains": "ST_Contains",
}

ESRI_GEOMETRY_TYPE_MAP = {
    "Point": "esriGeometryPoint",
    "MultiPoint": "esriGeometryMultipoint",
    "LineString": "esriGeometryPolyline",
    "MultiLineString": "esriGeometryPolyline",
    "Polygon": "esriGeometryPolygon",
    "MultiPolygon": "esriGeometryPolygon",
}


def translate_geometry_filter(
    geometry: Union[str, dict, None],
    spatial_rel: Optional[str],
    in_sr: Optional[int],
    reprojection_sr: int,
    geometry_column_sql: str,
) -> Optional[GeometryFilter]:
    """
    Turn a GeoServices geometry + spatialRel into a DuckDB predicate.

    The geometry is reprojected into ``reprojection_sr`` (the layer CRS)
    before it is serialized into the ``ST_GeomFromGeoJSON`` literal.
    Returns None when no geometry was supplied.
    """
    if geometry is None or (isinstance(geometry, str) and geometry.strip() == ""):
        return None

    relation = spatial_rel or "esriSpatialRelIntersects"
    predicate_fn = SPATIAL_RELATIONS.get(relation)
    if predicate_fn is None:
        raise TranslationError(f"Unsupported spatialRel: {relation}")

    geom, embedded_sr = parse_geometry(geometry)
    source_sr = in_sr or embedded_sr or DEFAULT_SPATIAL_REFERENCE
    target_sr = normalize_wkid(reprojection_sr)
    geom = reproject(geom, source_sr, target_sr)

    geojson = json.loads(json.dumps(mapping(geom)))
    literal = quote_literal(json.dumps(geojson, separators=(",", ":")))
    predicate = f"{predicate_fn}({geometry_column_sql}, ST_GeomFromGeoJSON({literal}))"

    return GeometryFilter(
        geometry=geojson,
        relation=relation,
        predicate_function=predicate_fn,
        spatial_reference=target_sr,
        predicate=predicate,
    )


def parse_geometry(geometry: Union[str, dict]) -> tuple[BaseGeometry, Optional[int]]:
    """
    Parse a geometry parameter into a Shapely geometry.

    Handles:
    - Envelope: {"xmin":..., "ymin":..., "xmax":..., "ymax":...}
    - Point: {"x":..., "y":...}
    - Multipoint: {"points": [...]}
    - Polyline: {"paths": [...]}
    - Polygon: {"rings": [...]}
    - GeoJSON geometry objects
    - Plain strings: "xmin,ymin,xmax,ymax" or "x,y"

    Returns (geometry, embedded_wkid). The wkid is None unless the
    geometry carried its own spatialReference.
    """
    if isinstance(geometry, str):
        try:
            geometry = json.loads(geometry)
        except json.JSONDecodeError:
            return _parse_coordinate_string(geometry), None

    if not isinstance(geometry, dict):
        raise TranslationError(f"Cannot parse geometry: {geometry!r}")

    embedded_sr = None
    if geometry.get("spatialReference"):
        embedded_sr = parse_spatial_reference(geometry["spatialReference"])

    try:
        geom = _esri_to_shapely(geometry)
    except (KeyError, TypeError, ValueError, IndexError, ShapelyError) as e:
        raise TranslationError(f"Malformed geometry: {e}") from e

    if geom.is_empty:
        raise TranslationError("Geometry filter is empty")
    return geom, embedded_sr


def _parse_coordinate_string(text: str) -> BaseGeometry:
    try:
        parts = [float(x) for x in text.split(",")]
    except ValueError:
        raise TranslationError(f"Cannot parse geometry: {text}") from None
    if len(parts) == 4:
        return box(*parts)
    if len(parts) == 2:
        return Point(*parts)
    raise TranslationError(f"Cannot parse geometry: {text}")


def _esri_to_shapely(geom: dict) -> BaseGeometry:
    if "type" in geom and "coordinates" in geom:
        return shape(geom)
    if "xmin" in geom:
        return box(
            float(geom["xmin"]),
            float(geom["ymin"]),
            float(geom["xmax"]),
            float(geom["ymax"]),
        )
    if "x" in geom:
        return Point(float(geom["x"]), float(geom["y"]))
    if "points" in geom:
        return MultiPoint([tuple(p[:2]) for p in geom["points"]])
    if "paths" in geom:
        lines = [LineString([tuple(c[:2]) for c in path]) for path in geom["paths"]]
        return lines[0] if len(lines) == 1 else MultiLineString(lines)
    if "rings" in geom:
        return _rings_to_polygon(geom["rings"])
    raise TranslationError(f"Unsupported geometry: {sorted(geom)}")


def _rings_to_polygon(rings: list) -> BaseGeometry:
    """
    Build a (Multi)Polygon from Esri rings.

    Esri outer rings are clockwise and holes counter-clockwise. Each hole
    is assigned to the first outer ring that covers it.
    """
    shells = []
    holes = []
    for ring in rings:
        linear_ring = LinearRing([tuple(c[:2]) for c in ring])
        (holes if linear_ring.is_ccw else shells).append(linear_ring)

    # Counter-clockwise only input: treat every ring as an outer ring
    if not shells:
        shells, holes = holes, []

    polygons = [(shell, []) for shell in shells]
    for hole in holes:
        for shell, shell_holes in polygons:
            if Polygon(shell).covers(Point(hole.coords[0])):
                shell_holes.append(hole)
                break
        else:
            polygons.append((hole, []))

    built = [Polygon(shell, shell_holes) for shell, shell_holes in polygons]
    if len(built) == 1:
        return built[0]
    return MultiPolygon(built)


def normalize_wkid(wkid: int) -> int:
    return WEB_MERCATOR_ALIASES.get(int(wkid), int(wkid))


def parse_spatial_reference(sr) -> Optional[int]:
    """
    Parse a spatial reference parameter from Esri clients.

    ArcGIS Pro sends inSR/outSR as a JSON spatial reference object like:
      {"wkid":4326,"latestWkid":4326,"xyTolerance":...}
    Plain WKID integers (e.g. "4326") are also accepted.

    Returns the (normalized) WKID as an integer, or None when absent.
    """
    if sr is None or sr == "":
        return None
    if isinstance(sr, bool):
        raise TranslationError(f"Invalid spatial reference: {sr!r}")
    if isinstance(sr, int):
        return normalize_wkid(sr)
    if isinstance(sr, str):
        try:
            return normalize_wkid(int(sr))
        except ValueError:
            pass
        try:
            sr = json.loads(sr)
        except json.JSONDecodeError:
            raise TranslationError(f"Invalid spatial reference: {sr}") from None
    if isinstance(sr, dict):
        wkid = sr.get("latestWkid") or sr.get("wkid")
        if wkid is not None:
            try:
                return normalize_wkid(int(wkid))
            except (TypeError, ValueError):
                pass
    raise TranslationError(f"Unsupported spatial reference: {sr!r}")


@lru_cache(maxsize=32)
def _transformer(from_srid: int, to_srid: int) -> pyproj.Transformer:
    return pyproj.Transformer.from_crs(
        f"EPSG:{from_srid}", f"EPSG:{to_srid}", always_xy=True
    )


def reproject(geom: BaseGeometry, from_srid: int, to_srid: int) -> BaseGeometry:
    """Reproject a Shapely geometry using pyproj."""
    from_srid = normalize_wkid(from_srid)
    to_srid = normalize_wkid(to_srid)
    if from_srid == to_srid:
        return geom
    try:
        transformer = _transformer(from_srid, to_srid)
        projected = ops.transform(transformer.transform, geom)
    except (CRSError, ProjError) as e:
        raise TranslationError(
            f"Cannot reproject geometry from {from_srid} to {to_srid}: {e}"
        ) from e
    logger.debug("Reprojected geometry filter EPSG:%s -> EPSG:%s", from_srid, to_srid)
    return projected


def geojson_to_esri(geometry: Optional[dict]) -> Optional[dict]:
    """Convert a GeoJSON geometry dict to its Esri JSON representation."""
    if not geometry:
        return None
    geom_type = geometry.get("type")
    coords = geometry.get("coordinates")

    if geom_type == "Point":
        return {"x": coords[0], "y": coords[1]}
    elif geom_type == "MultiPoint":
        return {"points": [list(p) for p in coords]}
    elif geom_type == "LineString":
        return {"paths": [coords]}
    elif geom_type == "MultiLineString":
        return {"paths": list(coords)}
    elif geom_type in ("Polygon", "MultiPolygon"):
        geom = shape(geometry)
        polys = [geom] if geom_type == "Polygon" else list(geom.geoms)
        rings = []
        for poly in polys:
            # Esri expects clockwise shells and counter-clockwise holes
            poly = orient(poly, sign=-1.0)
            rings.append([list(c) for c in poly.exterior.coords])
            for interior in poly.interiors:
                rings.append([list(c) for c in interior.coords])
        return {"rings": rings}

    return None
