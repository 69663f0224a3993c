"""Built-in verification checks."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar, Dict, List, Type

from crateflow.compile import Toolchain, ToolResult, scratch_target_dir
from crateflow.compile.utils import truncate_output
from crateflow.config import BuildConfig
from crateflow.data import (
    CheckResult,
    CheckStatus,
    DependencyCacheEntry,
    ProjectManifest,
    SourceTree,
)
from crateflow.errors import BuildError, CrateflowError, ToolchainError
from crateflow.logging import get_logger

logger = get_logger("Check")


@dataclass(frozen=True)
class CheckContext:
    """Everything a check may read. Checks must not modify any of it."""

    source: SourceTree
    manifest: ProjectManifest
    entry: DependencyCacheEntry
    config: BuildConfig
    toolchain: Toolchain


class Check(ABC):
    """A named, independent pass/fail verification."""

    name: ClassVar[str]
    """Name used to declare the check in the build configuration."""

    def run(self, context: CheckContext) -> CheckResult:
        """Run the check and convert its outcome into a :class:`CheckResult`.

        Any exception raised while running the check is reported as an ``error`` result
        rather than raised, so one broken check never prevents the others from reporting.
        """
        start = time.monotonic()
        try:
            result = self._run(context)
        except CrateflowError as e:
            status, log = CheckStatus.ERROR, str(e)
        except Exception as e:
            logger.exception("Check %s raised an unexpected error", self.name)
            status, log = CheckStatus.ERROR, f"{type(e).__name__}: {e}"
        else:
            status = CheckStatus.PASSED if result.ok else CheckStatus.FAILED
            log = truncate_output(result.output)
        return CheckResult(
            name=self.name, status=status, log=log, duration_seconds=time.monotonic() - start
        )

    @abstractmethod
    def _run(self, context: CheckContext) -> ToolResult:
        ...


class BuildCheck(Check):
    """Passes if the package builds against the dependency cache entry."""

    name = "build"

    def _run(self, context: CheckContext) -> ToolResult:
        with scratch_target_dir(context.entry) as target_dir:
            try:
                binary = context.toolchain.build_package(
                    context.source.root, target_dir, context.manifest.name, context.config
                )
            except ToolchainError:
                raise
            except BuildError as e:
                # The source did not compile: a failed check, not a broken one
                return ToolResult(
                    command=["build", context.manifest.name], returncode=1, output=str(e)
                )
        return ToolResult(
            command=["build", context.manifest.name], returncode=0, output=f"built {binary.name}"
        )


class LintCheck(Check):
    """Passes if the package compiles with lint diagnostics promoted to errors."""

    name = "clippy"

    def _run(self, context: CheckContext) -> ToolResult:
        with scratch_target_dir(context.entry) as target_dir:
            return context.toolchain.lint(context.source.root, target_dir, context.config)


class FormatCheck(Check):
    """Passes if the sources are already formatted."""

    name = "fmt"

    def _run(self, context: CheckContext) -> ToolResult:
        return context.toolchain.format_check(context.source.root, context.config)


class TestCheck(Check):
    """Passes if the package's test suite passes."""

    name = "test"
    __test__ = False

    def _run(self, context: CheckContext) -> ToolResult:
        with scratch_target_dir(context.entry) as target_dir:
            return context.toolchain.test(context.source.root, target_dir, context.config)


CHECK_REGISTRY: Dict[str, Type[Check]] = {
    check.name: check for check in (BuildCheck, LintCheck, FormatCheck, TestCheck)
}
"""Check types by declared name."""


def available_checks() -> List[str]:
    return sorted(CHECK_REGISTRY)
