"""Tests for SQL statement assembly."""

import json
import re

import pytest

from parquet_geo.query.builder import build_statements
from parquet_geo.query.errors import TranslationError
from parquet_geo.query.params import normalize_params

ENVELOPE = json.dumps({"xmin": -95.5, "ymin": 35, "xmax": -84.5, "ymax": 45})


def _statements(layer, **params):
    return build_statements(normalize_params(params, layer))


def _where_of(sql: str) -> str:
    """The text between WHERE and the next clause keyword (or the end)."""
    match = re.search(r" WHERE (.*?)(?:\n|\) AS extent_source|$)", sql, re.DOTALL)
    return match.group(1) if match else None


class TestPagination:
    """Test LIMIT / OFFSET and identifier synthesis."""

    def test_no_offset(self, layer):
        statements = _statements(layer, resultRecordCount=10)
        assert "OFFSET" not in statements.data_sql
        assert 'ROW_NUMBER() OVER () AS "OBJECTID"' in statements.data_sql

    def test_offset_shifts_identifier(self, layer):
        statements = _statements(layer, resultRecordCount=10, resultOffset=30)
        assert 'ROW_NUMBER() OVER () + 30 AS "OBJECTID"' in statements.data_sql
        assert "OFFSET 30" in statements.data_sql

    @pytest.mark.parametrize("count", [1, 7, 100])
    def test_limit_appears_once(self, layer, count):
        statements = _statements(layer, resultRecordCount=count)
        assert re.findall(r"\bLIMIT (\d+)", statements.data_sql) == [str(count)]

    def test_default_limit_is_max_record_count(self, layer):
        statements = _statements(layer)
        assert f"LIMIT {layer.max_record_count}" in statements.data_sql


class TestWhereConsistency:
    """The data, count and extent statements share one WHERE clause."""

    @pytest.mark.parametrize(
        "params",
        [
            {},
            {"where": "status = 'open'"},
            {"objectIds": "1,2,3"},
            {"geometry": ENVELOPE},
            {"where": "confidence > 0.5", "objectIds": "4", "geometry": ENVELOPE},
        ],
    )
    def test_same_where_everywhere(self, layer, params):
        statements = _statements(layer, **params)
        data_where = _where_of(statements.data_sql)
        assert data_where == statements.where
        assert _where_of(statements.count_sql) == data_where
        assert _where_of(statements.extent_sql) == data_where

    def test_no_constraints_no_where(self, layer):
        statements = _statements(layer)
        assert statements.where is None
        assert " WHERE " not in statements.data_sql
        assert " WHERE " not in statements.count_sql

    def test_where_and_object_ids(self, layer):
        statements = _statements(layer, where="status='open'", objectIds="1,2,3")
        assert "status='open'" in statements.where
        assert '"id" IN (1, 2, 3)' in statements.where
        assert " AND " in statements.where

    def test_spatial_predicate_on_geometry_column(self, layer):
        statements = _statements(
            layer, geometry=ENVELOPE, spatialRel="esriSpatialRelIntersects"
        )
        assert statements.where.startswith(
            'ST_Intersects(ST_GeomFromWKB("geometry"), ST_GeomFromGeoJSON(\''
        )

    def test_native_geometry_column(self, layer):
        native = layer.model_copy(update={"geometry_encoding": "native"})
        statements = _statements(native, geometry=ENVELOPE)
        assert statements.where.startswith('ST_Intersects("geometry", ')
        assert "ST_GeomFromWKB" not in statements.data_sql


class TestStatementShape:
    """Test projection, ordering and the count/extent statements."""

    def test_count_statement(self, layer):
        statements = _statements(layer, where="status = 'open'")
        assert statements.count_sql.startswith("SELECT COUNT(*) AS count FROM read_parquet(")
        assert "filename=true, hive_partitioning=1" in statements.count_sql

    def test_extent_statement(self, layer):
        statements = _statements(layer, returnExtentOnly=True)
        assert "MIN(ST_XMin(g))" in statements.extent_sql
        assert "MAX(ST_YMax(g))" in statements.extent_sql

    def test_projection_uses_requested_fields(self, layer):
        statements = _statements(layer, outFields="name,status")
        sql = statements.data_sql
        assert "json_object('OBJECTID', \"OBJECTID\", 'name', \"name\", 'status', \"status\")" in sql
        assert '"confidence"' not in sql

    def test_feature_collection_envelope(self, layer):
        sql = _statements(layer).data_sql
        assert "'type', 'FeatureCollection'" in sql
        assert "'type', 'Feature'" in sql
        assert 'ST_AsGeoJSON("geometry")::JSON' in sql
        assert 'ORDER BY "OBJECTID"' in sql

    def test_no_order_by(self, layer):
        sql = _statements(layer).data_sql
        assert sql.count("ORDER BY") == 1  # only inside array_agg

    def test_order_by_fields(self, layer):
        sql = _statements(layer, orderByFields="confidence DESC, name").data_sql
        assert 'ORDER BY "confidence" DESC, "name"' in sql

    def test_order_by_unknown_field_rejected(self, layer):
        with pytest.raises(TranslationError):
            _statements(layer, orderByFields="secret DESC")

    def test_order_by_synthesized_objectid_is_ignored(self, layer):
        sql = _statements(layer, orderByFields="OBJECTID ASC").data_sql
        assert sql.count("ORDER BY") == 1

    def test_dataset_locator_is_quoted(self, layer):
        odd = layer.model_copy(update={"dataset": "/data/o'hare/*.parquet"})
        sql = _statements(odd).count_sql
        assert "read_parquet('/data/o''hare/*.parquet'" in sql

    def test_unknown_spatial_relation_rejected(self, layer):
        with pytest.raises(TranslationError):
            _statements(layer, geometry=ENVELOPE, spatialRel="esriSpatialRelCrosses")
