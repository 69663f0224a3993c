"""Derivation of the environment variable set from declared native inputs.

This is the single rule shared by the launch wrapper, the development workspace and the
toolchain invocations. Keeping it pure (inputs in, variables out) is what keeps the three
contexts from drifting apart.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from crateflow.data import EnvironmentVariableSet

LIBRARY_PATH_VARIABLE = "LD_LIBRARY_PATH"
"""The shared-library search path variable exported on every platform."""

DARWIN_LIBRARY_PATH_VARIABLE = "DYLD_LIBRARY_PATH"
"""Additionally exported when the platform identifier names a Darwin system."""

PathLike = Union[str, Path]


def _join_subdirs(inputs: Sequence[PathLike], subdir: str) -> str:
    seen: List[str] = []
    for prefix in inputs:
        entry = str(Path(prefix) / subdir)
        if entry not in seen:
            seen.append(entry)
    return os.pathsep.join(seen)


def library_path(inputs: Sequence[PathLike]) -> str:
    """Join the ``lib`` directories of the given prefixes into a search path.

    Parameters
    ----------
    inputs : Sequence[PathLike]
        Install prefixes of native inputs, in priority order.

    Returns
    -------
    str
        ``<input>/lib`` entries separated by ``os.pathsep``, without duplicates. Empty if no
        inputs are given.

    Examples
    --------
    >>> library_path(["/opt/openssl", "/opt/zlib"])
    '/opt/openssl/lib:/opt/zlib/lib'
    """
    return _join_subdirs(inputs, "lib")


def binary_path(inputs: Sequence[PathLike]) -> str:
    """Join the ``bin`` directories of the given prefixes into a search path."""
    return _join_subdirs(inputs, "bin")


def derive_environment(
    inputs: Sequence[PathLike], platform: Optional[str] = None
) -> EnvironmentVariableSet:
    """Compute the environment variable set for the given native inputs.

    Parameters
    ----------
    inputs : Sequence[PathLike]
        Install prefixes of native inputs.
    platform : Optional[str]
        Platform identifier (e.g. ``aarch64-darwin``). Darwin platforms also get
        ``DYLD_LIBRARY_PATH``.

    Returns
    -------
    EnvironmentVariableSet
        The variables. Equal inputs always yield byte-identical sets.
    """
    value = library_path(inputs)
    variables: Dict[str, str] = {LIBRARY_PATH_VARIABLE: value}
    if platform is not None and platform.endswith("-darwin"):
        variables[DARWIN_LIBRARY_PATH_VARIABLE] = value
    return EnvironmentVariableSet(variables=variables)


def prepend_search_path(env: Dict[str, str], variable: str, entries: str) -> Dict[str, str]:
    """Prepend ``entries`` to a search-path variable of ``env`` in place and return ``env``."""
    if not entries:
        return env
    current = env.get(variable)
    env[variable] = entries if not current else entries + os.pathsep + current
    return env
