"""Filtered source snapshots.

Only the files cargo needs to compile the package are copied: Rust sources, TOML files (the
manifests and ``.cargo/config.toml``), the lockfile and any extra patterns declared in the
build configuration. Build outputs and VCS metadata are never part of a snapshot.
"""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Iterator, List, Sequence

from crateflow.data import MANIFEST_FILE_NAME, SourceTree
from crateflow.errors import ManifestError

logger = logging.getLogger(__name__)

_KEEP_SUFFIXES = (".rs", ".toml")
_KEEP_NAMES = ("Cargo.lock",)
_KEEP_PATTERNS = (".cargo/config",)
_EXCLUDED_DIRS = frozenset({"target", ".git", ".hg", ".svn", ".jj", ".direnv", "node_modules"})


def _is_excluded_dir(name: str) -> bool:
    return name in _EXCLUDED_DIRS or name == "result" or name.startswith("result-")


def is_source_file(relative: str, include: Sequence[str] = ()) -> bool:
    """Check whether a project-relative POSIX path belongs in the source snapshot.

    Parameters
    ----------
    relative : str
        The path relative to the project root, using ``/`` separators.
    include : Sequence[str]
        Extra glob patterns to keep.

    Returns
    -------
    bool
        True if the file should be copied.
    """
    path = PurePosixPath(relative)
    if any(_is_excluded_dir(part) for part in path.parts[:-1]):
        return False
    if path.name in _KEEP_NAMES or path.suffix in _KEEP_SUFFIXES:
        return True
    if relative in _KEEP_PATTERNS:
        return True
    return any(fnmatch.fnmatch(relative, pattern) for pattern in include)


def _collect_files(root: Path, include: Sequence[str]) -> List[str]:
    files: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirpath = Path(dirpath)
        # Prune in place so excluded trees are never descended into
        dirnames[:] = sorted(d for d in dirnames if not _is_excluded_dir(d))
        for filename in filenames:
            relative = (dirpath / filename).relative_to(root).as_posix()
            if is_source_file(relative, include):
                files.append(relative)
    return sorted(files)


def _digest(root: Path, files: Sequence[str]) -> str:
    h = hashlib.sha256()
    for relative in files:
        h.update(relative.encode("utf-8"))
        h.update(b"\0")
        h.update((root / relative).read_bytes())
        h.update(b"\0")
    return h.hexdigest()


@contextmanager
def extract_source(root: Path, include: Sequence[str] = ()) -> Iterator[SourceTree]:
    """Create a filtered, read-only snapshot of a project directory.

    The snapshot lives in a temporary directory that is removed when the context exits. The
    project directory itself is never written to.

    Parameters
    ----------
    root : Path
        The project root. It must contain ``Cargo.toml``.
    include : Sequence[str]
        Extra glob patterns (relative to the root) to keep in the snapshot.

    Yields
    ------
    SourceTree
        The snapshot.

    Raises
    ------
    ManifestError
        If the project root has no ``Cargo.toml``.
    """
    root = Path(root).resolve()
    if not (root / MANIFEST_FILE_NAME).is_file():
        raise ManifestError(f"No {MANIFEST_FILE_NAME} found in {root}")

    files = _collect_files(root, include)
    with tempfile.TemporaryDirectory(prefix="crateflow-src-") as tmp:
        snapshot = Path(tmp) / "source"
        snapshot.mkdir()
        for relative in files:
            dest = snapshot / relative
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(root / relative, dest)
            dest.chmod(0o444)
        tree = SourceTree(root=snapshot, files=files, digest=_digest(snapshot, files))
        logger.debug("Extracted %d source files from %s", len(files), root)
        try:
            yield tree
        finally:
            # Read-only files must be made writable again before the directory is removed
            for relative in files:
                (snapshot / relative).chmod(0o644)
