"""archgroup configuration management.

Loads configuration from TOML files with environment variable overrides
(``ARCHGROUP_`` prefix).  Uses :mod:`tomllib` on Python 3.11+.

A :class:`GroupingConfig` is built once and handed to every component
constructor; nothing in the package reads configuration from globals.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from archgroup.models.enums import Dimension

# ---------------------------------------------------------------------------
# Default paths
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_DIR = ".archgroup"
DEFAULT_CONFIG_FILE = "config.toml"

# ---------------------------------------------------------------------------
# Configuration model
# ---------------------------------------------------------------------------


class GroupingConfig(BaseModel):
    """Tag grammar, graph vocabulary and runtime options.

    All fields can be overridden via environment variables with the
    ``ARCHGROUP_`` prefix.  For example ``ARCHGROUP_MODULE_PREFIX=$m_``.
    """

    # Tag grammar
    level_prefix: str = "level."
    module_prefix: str = "module."
    architecture_prefix: str = "architecture."
    custom_prefix: str = "custom."
    path_delimiter: str = "/"
    level_depth: int = 5
    full_name_separator: str = "##"

    # Member vocabulary
    object_label: str = "Object"
    tags_property: str = "Tags"

    # Container vocabulary
    level_label_prefix: str = "Level"
    module_label: str = "Module"
    architecture_label: str = "ArchiModel"
    subset_label: str = "Subset"
    custom_label: str = "Custom"
    aggregation_label: str = "CustomView"
    hidden_architecture_label: str = "HiddenArchiModel"
    hidden_subset_label: str = "HiddenSubset"
    hidden_module_label: str = "HiddenModule"

    # Edge types
    aggregates_edge: str = "Aggregates"
    contains_edge: str = "Contains"
    has_edge: str = "HAS"
    references_edge: str = "References"

    # Backup vocabulary
    save_label: str = "GroupingSave"
    save_entry_label: str = "GroupingSaveEntry"
    save_entry_edge: str = "HAS_ENTRY"
    backed_by_edge: str = "BACKED_BY"
    backup_dimensions: list[Dimension] = Field(
        default_factory=lambda: [
            Dimension.LEVEL,
            Dimension.MODULE,
            Dimension.ARCHITECTURE,
            Dimension.CUSTOM,
        ]
    )

    # Runtime options
    clean_tags: bool = False
    refresh_references: bool = True
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    model_config = {"extra": "ignore"}

    @field_validator("level_depth")
    @classmethod
    def _positive_depth(cls, value: int) -> int:
        if value < 1:
            raise ValueError("level_depth must be at least 1")
        return value

    @field_validator("path_delimiter", "full_name_separator")
    @classmethod
    def _non_empty_separator(cls, value: str) -> str:
        if not value:
            raise ValueError("separators must not be empty")
        return value

    def prefix_for(self, dimension: Dimension) -> str:
        """Return the tag prefix configured for *dimension*."""
        return {
            Dimension.LEVEL: self.level_prefix,
            Dimension.MODULE: self.module_prefix,
            Dimension.ARCHITECTURE: self.architecture_prefix,
            Dimension.CUSTOM: self.custom_prefix,
        }[dimension]

    def level_label(self, depth: int) -> str:
        """Return the container label of level *depth* (1-based)."""
        return f"{self.level_label_prefix}{depth}"


# ---------------------------------------------------------------------------
# Loader helpers
# ---------------------------------------------------------------------------


def _apply_env_overrides(data: dict) -> dict:
    """Apply ARCHGROUP_ environment variable overrides to *data*."""
    prefix = "ARCHGROUP_"
    field_names = set(GroupingConfig.model_fields.keys())
    for key, value in os.environ.items():
        if key.startswith(prefix):
            field = key[len(prefix):].lower()
            if field in field_names:
                data[field] = value
    return data


def load_config(config_path: Path | None = None, project_dir: Path | None = None) -> GroupingConfig:
    """Load configuration from a TOML file with env-var overrides.

    Parameters
    ----------
    config_path:
        Explicit path to a TOML file.  When *None*, looks for
        ``<project_dir>/.archgroup/config.toml``.
    project_dir:
        Project root directory.  Defaults to :func:`Path.cwd`.

    Returns
    -------
    GroupingConfig
        Parsed and validated configuration.
    """
    project = project_dir or Path.cwd()
    path = config_path or (project / DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE)

    data: dict = {}
    if path.exists():
        with open(path, "rb") as fh:
            data = tomllib.load(fh)

    # Flatten nested TOML sections if present
    flat: dict = {}
    for k, v in data.items():
        if isinstance(v, dict):
            flat.update(v)
        else:
            flat[k] = v

    flat = _apply_env_overrides(flat)
    return GroupingConfig(**flat)


def default_config_toml() -> str:
    """Return default configuration as a TOML string."""
    return """\
# archgroup configuration

[tags]
level_prefix = "level."
module_prefix = "module."
architecture_prefix = "architecture."
custom_prefix = "custom."
path_delimiter = "/"

[grouping]
clean_tags = false
refresh_references = true

[general]
log_level = "INFO"
"""
