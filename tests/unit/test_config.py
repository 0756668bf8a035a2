"""
Unit tests for configuration loading.
"""

import pytest
import yaml

from tablewright.config import (
    CatalogConfig,
    ConsistencyMode,
    DeploymentConfig,
    TablewrightConfig,
)
from tablewright.exceptions import ConfigurationError


class TestFromYaml:
    """Test TablewrightConfig.from_yaml()."""

    def test_load(self, temp_config_file):
        config = TablewrightConfig.from_yaml(temp_config_file)

        assert config.service_name == "tablewright-test"
        assert config.database.database == "tablewright_test"
        assert config.deployment.consistency_mode == ConsistencyMode.COMPENSATE
        assert config.deployment.reload_notify_channel == "pgrst"
        assert config.logging.level == "DEBUG"

    def test_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = TablewrightConfig.from_yaml(path)

        assert config.catalog == CatalogConfig()
        assert config.deployment.consistency_mode is None
        assert config.deployment.data_schema == "public"

    def test_env_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TW_TEST_DB_HOST", "db.internal")
        path = tmp_path / "env.yaml"
        path.write_text(yaml.dump({"database": {"host": "${TW_TEST_DB_HOST}"}}))

        config = TablewrightConfig.from_yaml(path)

        assert config.database.host == "db.internal"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            TablewrightConfig.from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("database: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            TablewrightConfig.from_yaml(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.dump({"deployment": {"consistency_mode": "sometimes"}}))

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            TablewrightConfig.from_yaml(path)


class TestValidation:
    """Test configuration consistency checks."""

    def test_valid(self, sample_config):
        sample_config.validate_config()

    def test_same_catalog_tables(self, sample_config):
        sample_config.catalog.columns_table = sample_config.catalog.tables_table

        with pytest.raises(ConfigurationError, match="must be different"):
            sample_config.validate_config()

    def test_pool_sizes(self, sample_config):
        sample_config.database.min_size = 20

        with pytest.raises(ConfigurationError, match="min_size"):
            sample_config.validate_config()

    def test_negative_max_initial_rows(self):
        with pytest.raises(ValueError):
            DeploymentConfig(max_initial_rows=-1)


class TestToYaml:
    """Test TablewrightConfig.to_yaml()."""

    def test_round_trip(self, tmp_path, sample_config):
        path = tmp_path / "out.yaml"

        sample_config.to_yaml(path)
        reloaded = TablewrightConfig.from_yaml(path)

        assert reloaded.database == sample_config.database
        assert reloaded.deployment == sample_config.deployment

    def test_omits_unset_optionals(self, tmp_path):
        path = tmp_path / "out.yaml"

        TablewrightConfig().to_yaml(path)
        data = yaml.safe_load(path.read_text())

        assert "consistency_mode" not in data["deployment"]
        assert data["catalog"]["schema_name"] == "tablewright"
