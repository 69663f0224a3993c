"""Interactive development workspaces with the build's environment."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from pydantic import Field

from crateflow.compile import Toolchain
from crateflow.config import BuildConfig
from crateflow.data import EnvironmentVariableSet
from crateflow.data.utils import BaseModelWithDocstrings
from crateflow.env import get_default_shell
from crateflow.errors import LaunchError
from crateflow.logging import get_logger
from crateflow.wrap import binary_path, derive_environment, exit_code_of, prepend_search_path

logger = get_logger("Workspace")


class Workspace(BaseModelWithDocstrings):
    """The tools and environment of a development session."""

    tools: List[str] = Field(default_factory=list)
    """Executables the session is expected to provide."""
    inputs: List[Path] = Field(default_factory=list)
    """Install prefixes of the native inputs exposed to the session."""
    environment: EnvironmentVariableSet
    """Variables exported into the session, derived exactly as for the wrapped artifact."""
    shell: str
    """The shell started by :func:`enter_workspace`."""

    def missing_tools(self) -> List[str]:
        """Tools that cannot be found on the session's ``PATH``."""
        path = self.session_env().get("PATH")
        return [tool for tool in self.tools if shutil.which(tool, path=path) is None]

    def session_env(self, base_env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """The full environment of the session."""
        env = self.environment.apply(base_env)
        return prepend_search_path(env, "PATH", binary_path(self.inputs))


def provision_workspace(
    config: BuildConfig, toolchain: Toolchain, checks: Optional[Sequence[str]] = None
) -> Workspace:
    """Assemble the development workspace of a project.

    No build artifact is needed or produced.

    Parameters
    ----------
    config : BuildConfig
        The build configuration; supplies the native inputs.
    toolchain : Toolchain
        The toolchain whose executables the session needs.
    checks : Optional[Sequence[str]]
        Checks whose tools are added to the session. Defaults to ``config.checks``.

    Returns
    -------
    Workspace
        The workspace description.
    """
    tools = list(toolchain.tools())
    for check in checks if checks is not None else config.checks:
        tools += toolchain.check_tools(check)
    inputs = config.workspace_inputs
    return Workspace(
        tools=list(dict.fromkeys(tools)),
        inputs=inputs,
        environment=derive_environment(inputs, config.platform),
        shell=get_default_shell(),
    )


def enter_workspace(
    workspace: Workspace,
    command: Optional[str] = None,
    base_env: Optional[Mapping[str, str]] = None,
) -> int:
    """Start a shell session inside the workspace.

    Parameters
    ----------
    workspace : Workspace
        The workspace to enter.
    command : Optional[str]
        A command for the shell to run instead of an interactive session.
    base_env : Optional[Mapping[str, str]]
        The environment the workspace is applied over. Defaults to the current one.

    Returns
    -------
    int
        The exit code of the session.

    Raises
    ------
    LaunchError
        If the shell cannot be started.
    """
    missing = workspace.missing_tools()
    if missing:
        logger.warning("Workspace tools not found on PATH: %s", ", ".join(missing))

    argv = [workspace.shell] if command is None else [workspace.shell, "-c", command]
    try:
        proc = subprocess.run(argv, env=workspace.session_env(base_env))
    except OSError as e:
        raise LaunchError(f"Cannot start shell {workspace.shell}: {e}") from e
    return exit_code_of(proc.returncode)
