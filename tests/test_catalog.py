"""Tests for the YAML layer catalog."""

import pytest

from parquet_geo.query.catalog import (
    get_config,
    get_layer,
    get_service,
    list_layers,
    list_services,
    load_config,
    parse_config,
    reset_config,
)
from parquet_geo.query.errors import ConfigurationError

CONFIG_YAML = """
engine:
  extensions: [spatial]
  threads: 2
  settings:
    s3_region: ${TEST_REGION}
services:
  parks:
    description: City parks
    layers:
      - name: parks
        dataset: ${TEST_DATASET}
        id_field: park_id
        geometry_type: Polygon
        fields:
          - {name: park_id, type: int64}
          - {name: label, type: string, alias: Label}
"""


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_REGION", "eu-west-1")
    monkeypatch.setenv("TEST_DATASET", "s3://bucket/parks/*/*.parquet")
    path = tmp_path / "layers.yml"
    path.write_text(CONFIG_YAML)
    return path


class TestLoadConfig:
    """Test reading and validating config files."""

    def test_load(self, config_file):
        config = load_config(str(config_file))
        assert config.engine.extensions == ["spatial"]
        assert config.engine.threads == 2
        layer = config.services["parks"].layers[0]
        assert layer.id_field == "park_id"
        assert layer.field_names == ["park_id", "label"]
        assert layer.geometry_encoding == "native"
        assert layer.max_record_count == 2000

    def test_env_interpolation(self, config_file):
        config = load_config(str(config_file))
        assert config.engine.settings["s3_region"] == "eu-west-1"
        assert config.services["parks"].layers[0].dataset == (
            "s3://bucket/parks/*/*.parquet"
        )

    def test_unset_env_var_is_left_alone(self, tmp_path, monkeypatch):
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        path = tmp_path / "layers.yml"
        path.write_text("engine:\n  memory_limit: ${NOT_SET_ANYWHERE}\n")
        assert load_config(str(path)).engine.memory_limit == "${NOT_SET_ANYWHERE}"

    def test_env_var_selects_path(self, config_file, monkeypatch):
        monkeypatch.setenv("PARQUET_GEO_CONFIG", str(config_file))
        reset_config()
        assert list_services() == ["parks"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(str(tmp_path / "missing.yml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "layers.yml"
        path.write_text("services: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_invalid_layer(self):
        raw = {"services": {"x": {"layers": [{"name": "no dataset"}]}}}
        with pytest.raises(ConfigurationError):
            parse_config(raw)

    def test_non_positive_max_record_count(self):
        raw = {
            "services": {
                "x": {
                    "layers": [
                        {"name": "l", "dataset": "d.parquet", "max_record_count": 0}
                    ]
                }
            }
        }
        with pytest.raises(ConfigurationError):
            parse_config(raw)


class TestLookup:
    """Test service/layer lookup against the installed config."""

    def test_list_services(self):
        assert list_services() == ["test"]

    def test_get_service(self):
        assert get_service("test").description == "Test places"

    def test_unknown_service(self):
        with pytest.raises(KeyError):
            get_service("nope")

    def test_get_layer(self):
        assert get_layer("test", 0).name == "places"
        assert len(list_layers("test")) == 1

    def test_unknown_layer(self):
        with pytest.raises(KeyError):
            get_layer("test", 1)
        with pytest.raises(KeyError):
            get_layer("test", -1)

    def test_singleton(self):
        assert get_config() is get_config()
