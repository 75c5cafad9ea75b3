"""
Pydantic models shared across the query pipeline and the GeoServices surface.
These models are API-agnostic — they represent query semantics, not wire formats.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

# Name of the identifier synthesized for every returned feature
OBJECTID_FIELD = "OBJECTID"


class FieldDescriptor(BaseModel):
    """One attribute column of a layer."""

    name: str
    type: str = "string"
    alias: Optional[str] = None

    def as_dict(self) -> dict:
        return {"name": self.name, "type": self.type, "alias": self.alias or self.name}


class LayerMetadata(BaseModel):
    """Description of a Parquet dataset exposed as a feature layer.

    Owned by the configuration provider; the pipeline never mutates it.
    """

    name: str
    dataset: str  # path, glob or URL handed to read_parquet()
    fields: list[FieldDescriptor] = Field(default_factory=list)
    id_field: Optional[str] = None
    geometry_field: str = "geometry"
    geometry_encoding: Literal["native", "wkb"] = "native"
    geometry_type: str = "Polygon"  # Point, LineString, Polygon, ...
    crs: int = 4326
    max_record_count: int = Field(default=2000, gt=0)
    description: str = ""

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]


class QueryRequest(BaseModel):
    """A normalized query against one layer, built per inbound call."""

    # Attribute
    where: Optional[str] = None
    object_ids: Optional[list[int]] = None

    # Spatial
    geometry: Optional[Union[str, dict]] = None
    spatial_rel: Optional[str] = None
    in_sr: Optional[int] = None
    reprojection_sr: int = 4326

    # Fields
    out_fields: list[str] = Field(default_factory=list)
    order_by_fields: Optional[str] = None

    # Pagination
    result_record_count: int = Field(gt=0)
    result_offset: Optional[int] = Field(default=None, ge=0)

    # Response modifiers
    return_count_only: bool = False
    return_extent_only: bool = False

    # Layer
    id_field: Optional[str] = None
    geometry_field: str = "geometry"
    geometry_encoding: Literal["native", "wkb"] = "native"
    dataset: str
    known_fields: list[str] = Field(default_factory=list)

    @property
    def mode(self) -> str:
        """Statement shape: ``extent``, ``count`` or ``features``."""
        if self.return_extent_only:
            return "extent"
        if self.return_count_only:
            return "count"
        return "features"


class GeometryFilter(BaseModel):
    """A reprojected geometry plus the SQL predicate testing it."""

    geometry: dict  # GeoJSON geometry in the layer's CRS
    relation: str
    predicate_function: str
    spatial_reference: int
    predicate: str


class SqlStatementSet(BaseModel):
    """Statements for one request, all sharing the same WHERE clause."""

    where: Optional[str] = None
    data_sql: str
    count_sql: str
    extent_sql: str
