"""
Shared test fixtures.

Writes a small hive-partitioned Parquet dataset with WKB point geometries
and opens DuckDB connections against it. Tests that need the DuckDB
spatial extension are skipped when it cannot be installed.
"""

import asyncio

import pyarrow as pa
import pyarrow.parquet as pq
import pytest
from shapely import wkb as wkb_mod
from shapely.geometry import Point

from parquet_geo.query.catalog import (
    AppConfig,
    EngineSettings,
    ServiceConfig,
    reset_config,
    set_config,
)
from parquet_geo.query.engine import EngineConnection, QueryExecutor
from parquet_geo.query.models import FieldDescriptor, LayerMetadata

N_POINTS = 20


@pytest.fixture(scope="session")
def dataset_path(tmp_path_factory):
    """Create test places: 20 points along y=40, partitioned by region."""
    root = tmp_path_factory.mktemp("places")

    ids = list(range(1, N_POINTS + 1))
    xs = [-100.0 + i for i in ids]
    table = pa.table(
        {
            "id": pa.array(ids, type=pa.int64()),
            "name": pa.array([f"P{i:03d}" for i in ids]),
            "status": pa.array(["open" if i % 2 == 0 else "closed" for i in ids]),
            "confidence": pa.array([i / N_POINTS for i in ids], type=pa.float64()),
            "region": pa.array(["east" if x > -90 else "west" for x in xs]),
            "geometry": pa.array(
                [wkb_mod.dumps(Point(x, 40.0)) for x in xs], type=pa.binary()
            ),
        }
    )
    pq.write_to_dataset(table, root_path=str(root), partition_cols=["region"])
    return f"{root}/*/*.parquet"


def make_layer(dataset: str = "/data/places/*.parquet", **overrides) -> LayerMetadata:
    values = {
        "name": "places",
        "dataset": dataset,
        "id_field": "id",
        "geometry_field": "geometry",
        "geometry_encoding": "wkb",
        "geometry_type": "Point",
        "crs": 4326,
        "max_record_count": 100,
        "fields": [
            FieldDescriptor(name="id", type="int64"),
            FieldDescriptor(name="name", type="string", alias="Name"),
            FieldDescriptor(name="status", type="string"),
            FieldDescriptor(name="confidence", type="double"),
            FieldDescriptor(name="region", type="string"),
        ],
    }
    values.update(overrides)
    return LayerMetadata(**values)


@pytest.fixture
def layer():
    """Layer metadata pointing at a dataset that is never read."""
    return make_layer()


@pytest.fixture
def places_layer(dataset_path):
    """Layer metadata for the on-disk test dataset."""
    return make_layer(dataset_path)


@pytest.fixture(autouse=True)
def setup_config(dataset_path):
    """Install a config with one service holding the test layer."""
    set_config(
        AppConfig(
            engine=EngineSettings(extensions=[]),
            services={
                "test": ServiceConfig(
                    description="Test places",
                    layers=[make_layer(dataset_path)],
                )
            },
        )
    )
    yield
    reset_config()


@pytest.fixture(scope="session")
def plain_connection():
    """A ready DuckDB connection without any extensions."""
    connection = EngineConnection(EngineSettings(extensions=[]))
    asyncio.run(connection.initialize())
    yield connection
    connection.close()


@pytest.fixture(scope="session")
def spatial_connection():
    """A ready DuckDB connection with the spatial extension loaded."""
    connection = EngineConnection(EngineSettings(extensions=["spatial"]))
    state = asyncio.run(connection.initialize())
    if not connection.is_ready:
        pytest.skip(f"DuckDB spatial extension not available ({state.value})")
    yield connection
    connection.close()


@pytest.fixture
def spatial_executor(spatial_connection):
    return QueryExecutor(spatial_connection, timeout=30)
