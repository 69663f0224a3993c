"""Results of verification checks."""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import Field

from .utils import BaseModelWithDocstrings, NonEmptyString


class CheckStatus(str, Enum):
    """Outcome of a single check."""

    PASSED = "passed"
    """The check ran and passed."""
    FAILED = "failed"
    """The check ran and reported a failure (e.g. a lint diagnostic)."""
    ERROR = "error"
    """The check could not run to completion (e.g. the toolchain is missing)."""


class CheckResult(BaseModelWithDocstrings):
    """The outcome of one check in one verification run."""

    name: NonEmptyString
    """Name of the check (e.g. 'clippy')."""
    status: CheckStatus
    """Whether the check passed."""
    log: str = Field(default="")
    """Tool output or error message."""
    duration_seconds: float = Field(default=0.0, ge=0)
    """Wall-clock duration of the check."""

    @property
    def passed(self) -> bool:
        return self.status == CheckStatus.PASSED


class CheckReport(BaseModelWithDocstrings):
    """All check results of a verification run, in the order the checks were declared."""

    results: List[CheckResult] = Field(default_factory=list)
    """One result per check."""

    @property
    def passed(self) -> bool:
        """True only if every check passed."""
        return all(result.passed for result in self.results)

    @property
    def failed(self) -> List[str]:
        """Names of the checks that did not pass."""
        return [result.name for result in self.results if not result.passed]

    def get(self, name: str) -> CheckResult:
        for result in self.results:
            if result.name == name:
                return result
        raise KeyError(name)
