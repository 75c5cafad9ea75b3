"""GeoServices response serializers."""

from . import esri_json

__all__ = ["esri_json"]
