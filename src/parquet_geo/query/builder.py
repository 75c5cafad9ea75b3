"""
Query builder. Translates a QueryRequest into DuckDB SQL against
a (hive-partitioned) Parquet dataset.

Every statement of a set is built from the same composed WHERE clause,
so a count and the features it counts can never disagree.
"""

import logging

from .geometry import translate_geometry_filter
from .models import OBJECTID_FIELD, QueryRequest, SqlStatementSet
from .sql import (
    geometry_expression,
    parquet_source,
    quote_identifier,
    quote_literal,
    sanitize_order,
)
from .where import compose_where

logger = logging.getLogger(__name__)


def build_statements(request: QueryRequest) -> SqlStatementSet:
    """Build the data, count and extent statements for one request."""
    geom_sql = geometry_expression(request.geometry_field, request.geometry_encoding)

    geometry_filter = translate_geometry_filter(
        request.geometry,
        request.spatial_rel,
        request.in_sr,
        request.reprojection_sr,
        geom_sql,
    )
    where = compose_where(
        request.where,
        request.object_ids,
        request.id_field,
        geometry_filter.predicate if geometry_filter else None,
    )
    where_sql = f" WHERE {where}" if where else ""
    source = parquet_source(request.dataset)

    statements = SqlStatementSet(
        where=where,
        data_sql=_data_sql(request, source, where_sql, geom_sql),
        count_sql=f"SELECT COUNT(*) AS count FROM {source}{where_sql}",
        extent_sql=_extent_sql(source, where_sql, geom_sql),
    )
    logger.debug("Built statements for %s: where=%s", request.dataset, where)
    return statements


def _data_sql(request: QueryRequest, source: str, where_sql: str, geom_sql: str) -> str:
    """
    Two-stage feature statement.

    Stage one pages the filtered rows and numbers them; stage two folds
    them into a single GeoJSON FeatureCollection value.
    """
    fields = [quote_identifier(name) for name in request.out_fields]
    geom_col = quote_identifier(request.geometry_field)
    oid = quote_identifier(OBJECTID_FIELD)

    page_geometry = geom_col if geom_sql == geom_col else f"{geom_sql} AS {geom_col}"
    page_columns = ", ".join(fields + [page_geometry])
    numbered_columns = ", ".join(fields + [geom_col])

    order_by = _order_clause(request)
    order_sql = f"\n            ORDER BY {order_by}" if order_by else ""

    offset = request.result_offset
    if offset:
        objectid_sql = f"ROW_NUMBER() OVER () + {int(offset)}"
        offset_sql = f" OFFSET {int(offset)}"
    else:
        objectid_sql = "ROW_NUMBER() OVER ()"
        offset_sql = ""

    properties = ", ".join(
        [f"{quote_literal(OBJECTID_FIELD)}, {oid}"]
        + [
            f"{quote_literal(name)}, {quote_identifier(name)}"
            for name in request.out_fields
        ]
    )

    return f"""WITH geodata AS (
        SELECT {numbered_columns}, {objectid_sql} AS {oid}
        FROM (
            SELECT {page_columns}
            FROM {source}{where_sql}{order_sql}
            LIMIT {int(request.result_record_count)}{offset_sql}
        ) AS page
    )
    SELECT json_object(
        'type', 'FeatureCollection',
        'features', array_agg(
            json_object(
                'type', 'Feature',
                'geometry', ST_AsGeoJSON({geom_col})::JSON,
                'properties', json_object({properties})
            ) ORDER BY {oid}
        )
    ) AS geojson_featurecollection
    FROM geodata"""


def _extent_sql(source: str, where_sql: str, geom_sql: str) -> str:
    return f"""SELECT MIN(ST_XMin(g)) AS xmin, MIN(ST_YMin(g)) AS ymin,
        MAX(ST_XMax(g)) AS xmax, MAX(ST_YMax(g)) AS ymax
    FROM (SELECT {geom_sql} AS g FROM {source}{where_sql}) AS extent_source"""


def _order_clause(request: QueryRequest) -> str:
    if not request.order_by_fields:
        return ""
    known = {name.lower() for name in request.known_fields}
    terms = []
    for term in request.order_by_fields.split(","):
        tokens = term.split()
        # Clients sort by the synthesized OBJECTID; scan order already matches it
        if tokens and tokens[0].upper() == OBJECTID_FIELD and tokens[0].lower() not in known:
            continue
        terms.append(term)
    return sanitize_order(",".join(terms), request.known_fields)
