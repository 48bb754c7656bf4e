"""Unit tests for archgroup.config."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from archgroup.config import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    GroupingConfig,
    _apply_env_overrides,
    default_config_toml,
    load_config,
)
from archgroup.models.enums import Dimension


# ---------------------------------------------------------------------------
# GroupingConfig model tests
# ---------------------------------------------------------------------------


class TestGroupingConfig:
    def test_defaults(self) -> None:
        cfg = GroupingConfig()
        assert cfg.module_prefix == "module."
        assert cfg.path_delimiter == "/"
        assert cfg.level_depth == 5
        assert cfg.full_name_separator == "##"
        assert cfg.clean_tags is False
        assert cfg.refresh_references is True
        assert cfg.log_file is None
        assert cfg.backup_dimensions == list(Dimension)

    def test_prefix_for(self) -> None:
        cfg = GroupingConfig(custom_prefix="$c_")
        assert cfg.prefix_for(Dimension.CUSTOM) == "$c_"
        assert cfg.prefix_for(Dimension.LEVEL) == "level."

    def test_level_label(self) -> None:
        assert GroupingConfig().level_label(3) == "Level3"

    def test_extra_fields_ignored(self) -> None:
        cfg = GroupingConfig(unknown_field="value")
        assert not hasattr(cfg, "unknown_field")

    def test_depth_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            GroupingConfig(level_depth=0)

    def test_delimiter_must_not_be_empty(self) -> None:
        with pytest.raises(ValidationError):
            GroupingConfig(path_delimiter="")


# ---------------------------------------------------------------------------
# Environment override tests
# ---------------------------------------------------------------------------


class TestEnvOverrides:
    def test_apply_known_field(self) -> None:
        with patch.dict(os.environ, {"ARCHGROUP_MODULE_PREFIX": "m:"}):
            result = _apply_env_overrides({})
        assert result["module_prefix"] == "m:"

    def test_ignore_unknown_field(self) -> None:
        with patch.dict(os.environ, {"ARCHGROUP_UNKNOWN_THING": "val"}):
            result = _apply_env_overrides({})
        assert "unknown_thing" not in result

    def test_env_overrides_existing(self) -> None:
        with patch.dict(os.environ, {"ARCHGROUP_LOG_LEVEL": "DEBUG"}):
            result = _apply_env_overrides({"log_level": "INFO"})
        assert result["log_level"] == "DEBUG"


# ---------------------------------------------------------------------------
# load_config tests
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_load_no_file(self, tmp_path: Path) -> None:
        cfg = load_config(project_dir=tmp_path)
        assert cfg == GroupingConfig()

    def test_load_sectioned_toml(self, tmp_path: Path) -> None:
        config_dir = tmp_path / DEFAULT_CONFIG_DIR
        config_dir.mkdir()
        (config_dir / DEFAULT_CONFIG_FILE).write_text(
            '[tags]\nmodule_prefix = "mod:"\n\n[grouping]\nclean_tags = true\n'
        )
        cfg = load_config(project_dir=tmp_path)
        assert cfg.module_prefix == "mod:"
        assert cfg.clean_tags is True

    def test_load_explicit_path(self, tmp_path: Path) -> None:
        config_file = tmp_path / "custom.toml"
        config_file.write_text('level_depth = 3\n')
        cfg = load_config(config_path=config_file, project_dir=tmp_path)
        assert cfg.level_depth == 3

    def test_env_override_with_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "custom.toml"
        config_file.write_text('refresh_references = true\n')
        with patch.dict(os.environ, {"ARCHGROUP_REFRESH_REFERENCES": "false"}):
            cfg = load_config(config_path=config_file)
        assert cfg.refresh_references is False

    def test_invalid_value_raises(self, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.toml"
        config_file.write_text("level_depth = 0\n")
        with pytest.raises(ValidationError):
            load_config(config_path=config_file)


# ---------------------------------------------------------------------------
# default_config_toml
# ---------------------------------------------------------------------------


class TestDefaultConfigToml:
    def test_valid_toml(self) -> None:
        data = tomllib.loads(default_config_toml())
        assert data["tags"]["module_prefix"] == "module."

    def test_round_trips_to_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "default.toml"
        config_file.write_text(default_config_toml())
        assert load_config(config_path=config_file) == GroupingConfig()
