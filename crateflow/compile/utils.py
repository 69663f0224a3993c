"""Utility functions shared by the build stages."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from crateflow.errors import ToolchainError

from .toolchain import ToolResult

logger = logging.getLogger(__name__)


def run_command(
    command: Sequence[str],
    cwd: Path,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> ToolResult:
    """Run a toolchain command and capture its output.

    Parameters
    ----------
    command : Sequence[str]
        The command line.
    cwd : Path
        Working directory of the command.
    env : Optional[Mapping[str, str]]
        Full environment of the child process. Defaults to the inherited environment.
    timeout : Optional[float]
        Seconds after which the command is killed.

    Returns
    -------
    ToolResult
        The exit code and combined output. A nonzero exit code is not an error here.

    Raises
    ------
    ToolchainError
        If the executable cannot be found or the command times out.
    """
    command = [str(part) for part in command]
    logger.debug("Running %s (cwd=%s)", " ".join(command), cwd)
    try:
        proc = subprocess.run(
            command,
            cwd=str(cwd),
            env=None if env is None else dict(env),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise ToolchainError(f"Executable not found: {command[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise ToolchainError(f"Command timed out after {timeout}s: {' '.join(command)}") from e

    output = (proc.stdout or "") + (proc.stderr or "")
    if output:
        logger.debug("%s output:\n%s", command[0], output.rstrip())
    return ToolResult(command=command, returncode=proc.returncode, output=output)


def truncate_output(output: str, max_lines: int = 40) -> str:
    """Keep the last ``max_lines`` lines of tool output for error messages."""
    lines = output.rstrip().split("\n")
    if len(lines) <= max_lines:
        return output.rstrip()
    skipped = len(lines) - max_lines
    return "\n".join([f"[... {skipped} earlier lines omitted]"] + lines[-max_lines:])


def copy_target_dir(source: Path, dest: Path) -> Path:
    """Copy cached dependency outputs into a private target directory.

    Modification times are preserved so the toolchain's own freshness checks still consider
    the copied outputs up to date.

    Parameters
    ----------
    source : Path
        The cache entry's target directory. May be missing for an empty dependency graph.
    dest : Path
        The directory to create. It must not exist yet.

    Returns
    -------
    Path
        ``dest``.
    """
    if source.is_dir():
        shutil.copytree(source, dest, symlinks=True)
        # Cache entries may be read-only; the private copy must be writable
        for dirpath, _, filenames in os.walk(dest):
            os.chmod(dirpath, 0o755)
            for filename in filenames:
                path = os.path.join(dirpath, filename)
                if not os.path.islink(path):
                    os.chmod(path, os.stat(path).st_mode | 0o200)
    else:
        dest.mkdir(parents=True)
    return dest


def tree_snapshot(root: Path) -> List[tuple]:
    """List ``(relative path, size, mtime_ns)`` of every file below ``root``, sorted.

    Used to assert that read-only stages leave a directory untouched.
    """
    entries = []
    for dirpath, _, filenames in os.walk(root):
        for filename in filenames:
            path = Path(dirpath) / filename
            st = path.lstat()
            entries.append((path.relative_to(root).as_posix(), st.st_size, st.st_mtime_ns))
    return sorted(entries)
