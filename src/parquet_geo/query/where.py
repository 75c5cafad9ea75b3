"""Compose the single WHERE expression shared by every statement of a request."""

from typing import Optional, Sequence

from .errors import ConfigurationError
from .sql import quote_identifier, sanitize_where


def combine_object_ids_and_where(
    where: Optional[str],
    object_ids: Optional[Sequence[int]],
    id_field: Optional[str],
) -> Optional[str]:
    """
    Combine an objectIds filter and a free-form where into one expression.

    An empty (or missing) id list adds no constraint.
    """
    where = sanitize_where(where)
    if not object_ids:
        return where

    if not id_field:
        raise ConfigurationError("objectIds filter requires an id field on the layer")

    id_list = ", ".join(str(int(oid)) for oid in object_ids)
    id_comparison = f"{quote_identifier(id_field)} IN ({id_list})"
    if where is None:
        return id_comparison
    return f"({where}) AND {id_comparison}"


def compose_where(
    where: Optional[str],
    object_ids: Optional[Sequence[int]],
    id_field: Optional[str],
    spatial_predicate: Optional[str] = None,
) -> Optional[str]:
    """Merge attribute, objectIds and spatial constraints; None if unconstrained."""
    combined = combine_object_ids_and_where(where, object_ids, id_field)
    if not spatial_predicate:
        return combined
    if not combined:
        return spatial_predicate
    return f"({combined}) AND {spatial_predicate}"
