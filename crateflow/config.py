"""Build configuration and its layered merge.

The effective :class:`BuildConfig` is built by :func:`merge_build_config` from plain mapping
layers. The override order used by the pipeline is, lowest to highest:

1. built-in defaults (the :class:`BuildConfig` field defaults),
2. ``[package.metadata.crateflow]`` in ``Cargo.toml``,
3. ``CRATEFLOW_*`` environment variables,
4. explicit command-line overrides.

The merge is shallow and right-biased: a later layer replaces a whole value, lists included.
A ``None`` value in a later layer leaves the earlier value in place.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic import Field, ValidationError, field_validator

from crateflow.data.utils import BaseModelWithDocstrings, NonEmptyString, PathComponent
from crateflow.env import get_crateflow_platform, get_crateflow_profile, get_host_platform
from crateflow.errors import ConfigError

DEFAULT_CHECKS: List[str] = ["build", "clippy"]
"""Checks run by ``crateflow check`` when none are declared."""


class BuildConfig(BaseModelWithDocstrings):
    """Derived build arguments shared by every pipeline stage."""

    profile: PathComponent = "release"
    """The cargo profile to build with."""
    platform: PathComponent = Field(default_factory=get_host_platform)
    """The platform identifier; selects the cache namespace."""
    target: Optional[str] = None
    """Optional cargo target triple for cross compilation."""
    toolchain_channel: Optional[str] = None
    """Optional rustup channel, passed to cargo as ``+<channel>``."""
    cargo_extra_args: List[str] = Field(default_factory=list)
    """Extra arguments appended to every cargo build command."""
    build_inputs: List[Path] = Field(default_factory=list)
    """Prefixes of native libraries needed at runtime. Their ``lib/`` directories make up the
    shared-library search path."""
    native_build_inputs: List[Path] = Field(default_factory=list)
    """Prefixes of native tools needed at build time only (e.g. pkg-config)."""
    checks: List[NonEmptyString] = Field(default_factory=lambda: list(DEFAULT_CHECKS))
    """Names of the checks run by ``crateflow check``."""
    lint_deny: List[NonEmptyString] = Field(default_factory=lambda: ["warnings"])
    """Lint groups promoted to errors by the lint check."""
    out_dir: NonEmptyString = "result"
    """Output directory name, relative to the project root."""
    strict_deps: bool = True
    """Keep build-time tools off the runtime library path."""
    source_include: List[NonEmptyString] = Field(default_factory=list)
    """Extra glob patterns kept by the source filter (e.g. 'assets/*.json')."""

    @field_validator("out_dir")
    @classmethod
    def _validate_out_dir(cls, value: str) -> str:
        path = Path(value)
        if path.is_absolute() or ".." in path.parts or len(path.parts) != 1:
            raise ValueError(f"out_dir must be a plain directory name, got '{value}'")
        return value

    @property
    def runtime_inputs(self) -> List[Path]:
        """Inputs whose libraries are visible to the built executable at runtime."""
        if self.strict_deps:
            return list(self.build_inputs)
        return list(self.build_inputs) + list(self.native_build_inputs)

    @property
    def workspace_inputs(self) -> List[Path]:
        """Inputs exposed by the development workspace: everything the build sees."""
        return list(self.build_inputs) + list(self.native_build_inputs)


_FIELDS = frozenset(BuildConfig.model_fields)


def merge_build_config(*layers: Optional[Mapping[str, Any]]) -> BuildConfig:
    """Merge configuration layers into a validated :class:`BuildConfig`.

    Parameters
    ----------
    layers : Optional[Mapping[str, Any]]
        Layers from lowest to highest precedence. ``None`` layers are skipped. Keys use the
        field names of :class:`BuildConfig`; dashes are accepted in place of underscores.

    Returns
    -------
    BuildConfig
        The validated configuration.

    Raises
    ------
    ConfigError
        If a layer contains an unknown key or the merged values do not validate.
    """
    merged: Dict[str, Any] = {}
    for layer in layers:
        if layer is None:
            continue
        for raw_key, value in layer.items():
            key = raw_key.replace("-", "_")
            if key not in _FIELDS:
                raise ConfigError(f"Unknown configuration key '{raw_key}'")
            if value is None:
                continue
            merged[key] = value
    try:
        return BuildConfig(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid build configuration: {e}") from e


def env_config_layer() -> Dict[str, Any]:
    """The configuration layer read from ``CRATEFLOW_*`` environment variables."""
    return {"platform": get_crateflow_platform(), "profile": get_crateflow_profile()}
