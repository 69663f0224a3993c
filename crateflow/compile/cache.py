"""Dependency cache service with get-or-build semantics.

An entry is committed by building into a private staging directory, writing its
``entry.json`` record there, and atomically renaming the staging directory into place.
A directory without ``entry.json`` is never an entry, so an interrupted or failed build
cannot leave anything that looks complete.

At most one build runs per key. Inside a process, concurrent callers for a key share the
first caller's in-flight build and receive its entry or its exception. Across processes,
:class:`LocalDependencyCache` serializes builders with a file lock and re-checks the store
after acquiring it.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import Future
from contextlib import AbstractContextManager, nullcontext
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError
from tvm_ffi.utils import FileLock

from crateflow.data import CacheKey, DependencyCacheEntry, load_json_file, save_json_file
from crateflow.env import get_crateflow_cache_path

logger = logging.getLogger(__name__)

ENTRY_RECORD_NAME = "entry.json"
"""Name of the record that marks an entry directory as complete."""

BuildFn = Callable[[Path], None]
"""Callback compiling the dependencies into the given (not yet existing) target directory."""


class DependencyCache(ABC):
    """Abstract cache of dependencies-only builds, keyed by :class:`CacheKey`.

    Subclasses decide where committed entries live and how they are found again; this base
    class implements the single-flight and atomic commit logic shared by all stores.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._inflight: Dict[CacheKey, "Future[DependencyCacheEntry]"] = {}

    @abstractmethod
    def lookup(self, key: CacheKey) -> Optional[DependencyCacheEntry]:
        """Get the committed entry for a key.

        Parameters
        ----------
        key : CacheKey
            The key to look up.

        Returns
        -------
        Optional[DependencyCacheEntry]
            The entry, or None if no complete entry exists for exactly this key.
        """
        ...

    @abstractmethod
    def entries(self) -> List[DependencyCacheEntry]:
        """List all committed entries."""
        ...

    @abstractmethod
    def evict(self, key: CacheKey) -> bool:
        """Remove the entry for a key.

        Returns
        -------
        bool
            True if an entry was removed.
        """
        ...

    @abstractmethod
    def _entry_path(self, key: CacheKey) -> Path:
        """The directory a committed entry for ``key`` lives in."""
        ...

    def _exclusive(self, key: CacheKey) -> AbstractContextManager:
        """Context manager excluding builders of the same key in other processes."""
        return nullcontext()

    def _register(self, entry: DependencyCacheEntry) -> None:
        """Hook called after an entry has been committed."""

    def get_or_build(
        self, key: CacheKey, pname: str, packages: List[str], build_fn: BuildFn
    ) -> DependencyCacheEntry:
        """Return the entry for a key, building it first if it does not exist.

        Parameters
        ----------
        key : CacheKey
            The key of the wanted entry.
        pname : str
            Name recorded on a newly built entry.
        packages : List[str]
            Dependencies recorded on a newly built entry.
        build_fn : BuildFn
            Compiles the dependencies into the target directory it is given. Any exception
            aborts the build; nothing is committed and the exception propagates.

        Returns
        -------
        DependencyCacheEntry
            The committed entry for ``key``.
        """
        entry = self.lookup(key)
        if entry is not None:
            logger.info("Dependency cache hit for %s (%s)", pname, key)
            return entry

        with self._lock:
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future

        if not owner:
            logger.info("Waiting for in-flight dependency build of %s (%s)", pname, key)
            return future.result()

        try:
            entry = self._build_exclusive(key, pname, packages, build_fn)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(entry)
            return entry
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def _build_exclusive(
        self, key: CacheKey, pname: str, packages: List[str], build_fn: BuildFn
    ) -> DependencyCacheEntry:
        with self._exclusive(key):
            # Double-check after acquiring the lock (another process may have built it)
            entry = self.lookup(key)
            if entry is not None:
                logger.info("Dependency cache hit for %s (%s) after waiting", pname, key)
                return entry
            logger.info("Dependency cache miss for %s (%s), building", pname, key)
            entry = self._commit(key, pname, packages, build_fn)
            self._register(entry)
            return entry

    def _commit(
        self, key: CacheKey, pname: str, packages: List[str], build_fn: BuildFn
    ) -> DependencyCacheEntry:
        final_path = self._entry_path(key)
        final_path.parent.mkdir(parents=True, exist_ok=True)
        if final_path.exists():
            # Left behind by an older, interrupted layout; never a valid entry
            shutil.rmtree(final_path)

        staging = final_path.with_name(f".{final_path.name}.tmp-{uuid.uuid4().hex}")
        staging.mkdir()
        try:
            entry = DependencyCacheEntry(key=key, pname=pname, path=final_path, packages=packages)
            build_fn(staging / "target")
            save_json_file(entry, staging / ENTRY_RECORD_NAME)
            os.replace(staging, final_path)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        return entry


class LocalDependencyCache(DependencyCache):
    """On-disk dependency cache shared by all processes on the machine.

    Entries live in ``<root>/deps/<platform>/<profile>/<fingerprint>/``. The root defaults
    to ``CRATEFLOW_CACHE_PATH``.
    """

    _LOCK_SUFFIX = ".lock"
    """Suffix of the per-key lock file placed next to the entry directory."""

    def __init__(self, root: Optional[Path] = None) -> None:
        super().__init__()
        self._root = Path(root) if root is not None else get_crateflow_cache_path()

    @property
    def root(self) -> Path:
        return self._root

    def _namespace_path(self, key: CacheKey) -> Path:
        return self._root / "deps" / key.platform / key.profile

    def _entry_path(self, key: CacheKey) -> Path:
        return self._namespace_path(key) / key.directory_name

    def _exclusive(self, key: CacheKey) -> AbstractContextManager:
        namespace = self._namespace_path(key)
        namespace.mkdir(parents=True, exist_ok=True)
        return FileLock(str(namespace / f".{key.directory_name}{self._LOCK_SUFFIX}"))

    def _load(self, record: Path) -> Optional[DependencyCacheEntry]:
        try:
            return load_json_file(DependencyCacheEntry, record)
        except FileNotFoundError:
            return None
        except (ValidationError, ValueError) as e:
            logger.warning("Ignoring corrupt cache record %s: %s", record, e)
            return None

    def lookup(self, key: CacheKey) -> Optional[DependencyCacheEntry]:
        entry = self._load(self._entry_path(key) / ENTRY_RECORD_NAME)
        if entry is None or entry.key != key:
            return None
        return entry

    def entries(self) -> List[DependencyCacheEntry]:
        found = []
        for record in sorted((self._root / "deps").glob(f"*/*/*/{ENTRY_RECORD_NAME}")):
            entry = self._load(record)
            if entry is not None:
                found.append(entry)
        return found

    def evict(self, key: CacheKey) -> bool:
        with self._exclusive(key):
            path = self._entry_path(key)
            if not path.exists():
                return False
            # Unpublish first so readers never see a half-deleted entry
            trash = path.with_name(f".{path.name}.evict-{uuid.uuid4().hex}")
            os.replace(path, trash)
            shutil.rmtree(trash, ignore_errors=True)
            logger.info("Evicted dependency cache entry %s", key)
            return True


class InMemoryDependencyCache(DependencyCache):
    """Dependency cache whose index lives in process memory.

    Compiled outputs are still written to disk, under a private temporary directory that is
    removed by :meth:`clear`. Useful for tests and one-off builds that must not touch the
    shared cache.
    """

    def __init__(self) -> None:
        super().__init__()
        self._entries: Dict[CacheKey, DependencyCacheEntry] = {}
        self._root: Optional[Path] = None

    def _entry_path(self, key: CacheKey) -> Path:
        with self._lock:
            if self._root is None:
                self._root = Path(tempfile.mkdtemp(prefix="crateflow-cache-"))
            root = self._root
        return root / key.platform / key.profile / key.directory_name

    def _register(self, entry: DependencyCacheEntry) -> None:
        with self._lock:
            self._entries[entry.key] = entry

    def lookup(self, key: CacheKey) -> Optional[DependencyCacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def entries(self) -> List[DependencyCacheEntry]:
        with self._lock:
            return list(self._entries.values())

    def evict(self, key: CacheKey) -> bool:
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None:
            return False
        shutil.rmtree(entry.path, ignore_errors=True)
        return True

    def clear(self) -> None:
        """Drop every entry and remove the backing directory."""
        with self._lock:
            self._entries.clear()
            root, self._root = self._root, None
        if root is not None:
            shutil.rmtree(root, ignore_errors=True)
