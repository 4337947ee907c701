"""Tests for configuration loading."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml

from treeflow.core.config import TreeflowConfig, configure_logging, load_config
from treeflow.core.errors import ConfigError


def _write(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data) if not isinstance(data, str) else data)
    return path


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_when_no_file(self, tmp_path):
        config = load_config(search_paths=[tmp_path / "missing.yaml"])

        assert config == TreeflowConfig()
        assert config.cache.max_items == 1000
        assert config.cache.default_ttl_seconds == 3600

    def test_explicit_path(self, tmp_path):
        path = _write(
            tmp_path / "config.yaml",
            {"log_level": "DEBUG", "cache": {"max_items": 10}, "tree_render_max_depth": 5},
        )

        config = load_config(path)

        assert config.log_level == "debug"
        assert config.cache.max_items == 10
        assert config.cache.max_size_bytes == 50 * 1024 * 1024
        assert config.tree_render_max_depth == 5

    def test_first_search_path_wins(self, tmp_path):
        project = _write(tmp_path / "project" / "config.yaml", {"cache": {"max_items": 1}})
        user = _write(tmp_path / "user" / "config.yaml", {"cache": {"max_items": 2}})

        config = load_config(search_paths=[project, user])

        assert config.cache.max_items == 1

    def test_empty_file_uses_defaults(self, tmp_path):
        path = _write(tmp_path / "config.yaml", "")

        assert load_config(path) == TreeflowConfig()

    def test_missing_explicit_path(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = _write(tmp_path / "config.yaml", "cache: [unclosed")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = _write(tmp_path / "config.yaml", "- a\n- b\n")

        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    @pytest.mark.parametrize(
        "data",
        [
            {"log_level": "loud"},
            {"cache": {"max_items": 0}},
            {"cache": {"default_ttl_seconds": -1}},
        ],
    )
    def test_invalid_values(self, tmp_path, data):
        path = _write(tmp_path / "config.yaml", data)

        with pytest.raises(ConfigError, match="Invalid config"):
            load_config(path)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_sets_package_level(self):
        logger = logging.getLogger("treeflow")
        previous = logger.level
        try:
            configure_logging(TreeflowConfig(log_level="debug"))
            assert logger.level == logging.DEBUG
            assert logging.getLogger("treeflow.core.workflow").getEffectiveLevel() == logging.DEBUG
        finally:
            logger.setLevel(previous)
