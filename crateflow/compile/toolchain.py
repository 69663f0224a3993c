"""Abstract base class for compiler toolchains."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from pydantic import BaseModel

from crateflow.config import BuildConfig
from crateflow.data import ProjectManifest


class ToolResult(BaseModel):
    """The outcome of a single toolchain invocation."""

    command: List[str]
    """The command line that was run."""
    returncode: int
    """The exit code of the tool."""
    output: str = ""
    """Combined standard output and standard error."""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class Toolchain(ABC):
    """Abstract base class for the compiler service used by the pipeline.

    A Toolchain is an opaque collaborator: the pipeline decides what to build, in which
    directory and against which cached dependency outputs; the toolchain only knows how to
    invoke its compiler, linter and formatter.

    Build methods raise :class:`~crateflow.errors.BuildError` when compilation fails. Check
    methods (``lint``, ``format_check``, ``test``) return a :class:`ToolResult` instead, since
    a failing check is a reportable outcome rather than a crash.
    """

    name: str = "toolchain"
    """Short identifier used in logs."""

    @staticmethod
    @abstractmethod
    def is_available() -> bool:
        """Check if this toolchain can be used in the current environment.

        Returns
        -------
        bool
            True if the toolchain's executables are installed, False otherwise.
        """
        ...

    @abstractmethod
    def can_build(self, manifest: ProjectManifest) -> bool:
        """Check if this toolchain understands the given project manifest.

        Parameters
        ----------
        manifest : ProjectManifest
            The project to check.

        Returns
        -------
        bool
            True if this toolchain can build the project, False otherwise.
        """
        ...

    @abstractmethod
    def tools(self) -> List[str]:
        """Names of the executables this toolchain contributes to a development workspace."""
        ...

    def check_tools(self, check: str) -> List[str]:
        """Executables needed by the named check, beyond :meth:`tools`. None by default."""
        return []

    @abstractmethod
    def build_dependencies(self, source_dir: Path, target_dir: Path, config: BuildConfig) -> None:
        """Compile only the dependency graph of a dummy source tree.

        Parameters
        ----------
        source_dir : Path
            A dependencies-only source tree (manifests plus stub sources).
        target_dir : Path
            The directory that receives the compiled dependency outputs.
        config : BuildConfig
            The build configuration.

        Raises
        ------
        BuildError
            If any dependency fails to compile.
        """
        ...

    @abstractmethod
    def build_package(
        self, source_dir: Path, target_dir: Path, name: str, config: BuildConfig
    ) -> Path:
        """Compile the project against the dependency outputs already in ``target_dir``.

        Parameters
        ----------
        source_dir : Path
            The project source snapshot.
        target_dir : Path
            A private, writable copy of the dependency cache outputs.
        name : str
            The package name; the executable to produce.
        config : BuildConfig
            The build configuration.

        Returns
        -------
        Path
            Path of the compiled executable inside ``target_dir``.

        Raises
        ------
        BuildError
            If the project fails to compile.
        """
        ...

    @abstractmethod
    def lint(self, source_dir: Path, target_dir: Path, config: BuildConfig) -> ToolResult:
        """Compile with lint diagnostics in ``config.lint_deny`` promoted to errors."""
        ...

    @abstractmethod
    def format_check(self, source_dir: Path, config: BuildConfig) -> ToolResult:
        """Check that the sources are formatted, without modifying them."""
        ...

    @abstractmethod
    def test(self, source_dir: Path, target_dir: Path, config: BuildConfig) -> ToolResult:
        """Build and run the project's test suite."""
        ...
