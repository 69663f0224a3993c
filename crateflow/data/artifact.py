"""Built artifacts, their launch environment and the wrapper tying both together."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from pydantic import Field, field_validator

from .utils import BaseModelWithDocstrings, HexDigest, NonEmptyString


class BuiltArtifact(BaseModelWithDocstrings):
    """The installed output of a package build."""

    name: NonEmptyString
    """The package name; also the executable name."""
    version: NonEmptyString
    """The package version."""
    out_dir: Path
    """The namespaced output directory."""
    fingerprint: HexDigest
    """Fingerprint of the dependency cache entry the artifact was built against."""
    platform: NonEmptyString
    """Platform identifier of the build."""
    profile: NonEmptyString = "release"
    """The build profile."""
    source_digest: Optional[str] = None
    """Digest of the source snapshot the artifact was built from."""

    @property
    def executable(self) -> Path:
        """The installed executable, ``<out_dir>/bin/<name>``."""
        return self.out_dir / "bin" / self.name


class EnvironmentVariableSet(BaseModelWithDocstrings):
    """Variables exported into the wrapped artifact and the development workspace."""

    variables: Dict[str, str] = Field(default_factory=dict)
    """Mapping from variable name to its resolved value, ordered by name."""

    @field_validator("variables")
    @classmethod
    def _sort_variables(cls, value: Dict[str, str]) -> Dict[str, str]:
        return dict(sorted(value.items()))

    def to_bytes(self) -> bytes:
        """Canonical ``NAME=value`` encoding, one variable per line."""
        return "".join(f"{k}={v}\n" for k, v in self.variables.items()).encode("utf-8")

    def apply(self, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Overlay the variables on a base environment.

        Parameters
        ----------
        base : Optional[Mapping[str, str]]
            The environment to start from. Defaults to the current process environment.

        Returns
        -------
        Dict[str, str]
            A new mapping; ``base`` is not modified.
        """
        env = dict(os.environ if base is None else base)
        env.update(self.variables)
        return env


class WrappedArtifact(BaseModelWithDocstrings):
    """A built executable plus the environment set before each invocation."""

    artifact: BuiltArtifact
    """The real executable."""
    environment: EnvironmentVariableSet
    """Variables applied before delegating to the executable."""
