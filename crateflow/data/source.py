"""The filtered source snapshot handed to every build stage."""

from __future__ import annotations

from pathlib import Path
from typing import List

from .utils import FrozenModelWithDocstrings, HexDigest


class SourceTree(FrozenModelWithDocstrings):
    """A read-only snapshot of the files relevant to the build."""

    root: Path
    """The snapshot directory. It only exists while the snapshot is open."""
    files: List[str]
    """Sorted POSIX paths of the snapshot files, relative to ``root``."""
    digest: HexDigest
    """SHA-256 over the relative paths and contents of all files."""

    def path_of(self, relative: str) -> Path:
        """Get the absolute snapshot path of a file."""
        return self.root / relative
