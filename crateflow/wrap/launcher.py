"""Launch wrappers for built executables.

A wrapper is data, not a script: the launch record stores the environment variable set next
to the artifact, and :func:`launch` applies it to the child process before delegating to the
real executable.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence

from pydantic import ValidationError

from crateflow.data import (
    BuiltArtifact,
    EnvironmentVariableSet,
    WrappedArtifact,
    load_json_file,
    save_json_file,
)
from crateflow.errors import LaunchError

logger = logging.getLogger(__name__)

LAUNCH_RECORD_PATH = Path("share") / "crateflow" / "launch.json"
"""Location of the launch record, relative to the artifact's output directory."""


def wrap_artifact(artifact: BuiltArtifact, environment: EnvironmentVariableSet) -> WrappedArtifact:
    """Attach an environment variable set to a built artifact and persist the launch record.

    Parameters
    ----------
    artifact : BuiltArtifact
        The artifact to wrap.
    environment : EnvironmentVariableSet
        Variables to set before every invocation.

    Returns
    -------
    WrappedArtifact
        The wrapped artifact.
    """
    wrapped = WrappedArtifact(artifact=artifact, environment=environment)
    save_json_file(wrapped, artifact.out_dir / LAUNCH_RECORD_PATH)
    return wrapped


def load_wrapped_artifact(out_dir: Path) -> WrappedArtifact:
    """Load the launch record of an installed artifact.

    The output directory is taken from ``out_dir`` rather than from the record, so outputs
    that were staged elsewhere and moved into place still resolve correctly.

    Raises
    ------
    LaunchError
        If the record is missing or unreadable.
    """
    out_dir = Path(out_dir)
    record = out_dir / LAUNCH_RECORD_PATH
    try:
        wrapped = load_json_file(WrappedArtifact, record)
    except FileNotFoundError as e:
        raise LaunchError(f"No launch record at {record}; run 'crateflow build' first") from e
    except (ValidationError, ValueError) as e:
        raise LaunchError(f"Corrupt launch record {record}: {e}") from e
    artifact = wrapped.artifact.model_copy(update={"out_dir": out_dir})
    return wrapped.model_copy(update={"artifact": artifact})


def exit_code_of(returncode: int) -> int:
    # A child killed by signal N reports -N; shells report that as 128 + N
    if returncode < 0:
        return 128 - returncode
    return returncode


def launch(
    wrapped: WrappedArtifact,
    args: Sequence[str] = (),
    base_env: Optional[Mapping[str, str]] = None,
) -> int:
    """Run a wrapped artifact and return its exit code.

    Standard streams are inherited, so the child's output reaches the caller unchanged.

    Parameters
    ----------
    wrapped : WrappedArtifact
        The artifact and its environment.
    args : Sequence[str]
        Arguments passed to the executable.
    base_env : Optional[Mapping[str, str]]
        Environment the wrapper's variables are applied over. Defaults to the current one.

    Returns
    -------
    int
        The executable's exit code.

    Raises
    ------
    LaunchError
        If the executable cannot be started.
    """
    executable = wrapped.artifact.executable
    env = wrapped.environment.apply(base_env)
    logger.debug("Launching %s with %s", executable, dict(wrapped.environment.variables))
    try:
        proc = subprocess.run([str(executable), *args], env=env)
    except OSError as e:
        raise LaunchError(f"Cannot start {executable}: {e}") from e
    return exit_code_of(proc.returncode)
