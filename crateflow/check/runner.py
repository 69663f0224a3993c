"""Verification runner executing independent checks against one cache entry."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

from crateflow.compile import Toolchain, verify_cache_entry
from crateflow.config import BuildConfig
from crateflow.data import (
    CheckReport,
    CheckResult,
    DependencyCacheEntry,
    ProjectManifest,
    SourceTree,
)
from crateflow.errors import ConfigError
from crateflow.logging import get_logger

from .checks import CHECK_REGISTRY, Check, CheckContext

logger = get_logger("VerificationRunner")


class VerificationRunner:
    """Runs a named set of checks and collects every result.

    All checks share the same read-only source snapshot and dependency cache entry. Each
    check that compiles works on its own copy of the cached outputs, so checks can run
    concurrently without coordinating with each other or with package builds.
    """

    def __init__(self, toolchain: Toolchain, max_workers: Optional[int] = None) -> None:
        self._toolchain = toolchain
        self._max_workers = max_workers

    @staticmethod
    def resolve_checks(names: Sequence[str]) -> List[Check]:
        """Instantiate checks by name, keeping the given order and dropping duplicates.

        Raises
        ------
        ConfigError
            If a name is not a known check.
        """
        unknown = [name for name in names if name not in CHECK_REGISTRY]
        if unknown:
            raise ConfigError(
                f"Unknown check(s) {unknown}. Available checks: {sorted(CHECK_REGISTRY)}"
            )
        return [CHECK_REGISTRY[name]() for name in dict.fromkeys(names)]

    def run(
        self,
        source: SourceTree,
        manifest: ProjectManifest,
        entry: DependencyCacheEntry,
        config: BuildConfig,
        names: Optional[Sequence[str]] = None,
    ) -> CheckReport:
        """Run checks and report their results.

        Parameters
        ----------
        source : SourceTree
            The filtered source snapshot.
        manifest : ProjectManifest
            The project.
        entry : DependencyCacheEntry
            The dependency cache entry the checks build against.
        config : BuildConfig
            The build configuration.
        names : Optional[Sequence[str]]
            Checks to run. Defaults to ``config.checks``.

        Returns
        -------
        CheckReport
            One result per check, in declaration order.

        Raises
        ------
        FingerprintMismatchError
            If ``entry`` does not match the manifest and configuration.
        ConfigError
            If a check name is unknown.
        """
        verify_cache_entry(entry, manifest, config)
        checks = self.resolve_checks(list(names) if names is not None else config.checks)
        if not checks:
            return CheckReport()

        context = CheckContext(
            source=source, manifest=manifest, entry=entry, config=config, toolchain=self._toolchain
        )
        workers = self._max_workers or len(checks)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {check.name: pool.submit(check.run, context) for check in checks}
            results: Dict[str, CheckResult] = {name: fut.result() for name, fut in futures.items()}

        report = CheckReport(results=[results[check.name] for check in checks])
        for result in report.results:
            logger.info("Check %s: %s", result.name, result.status.value)
        return report
