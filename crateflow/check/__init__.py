"""Verification checks and the runner that executes them."""

from .checks import (
    CHECK_REGISTRY,
    BuildCheck,
    Check,
    CheckContext,
    FormatCheck,
    LintCheck,
    TestCheck,
    available_checks,
)
from .runner import VerificationRunner

__all__ = [
    "Check",
    "CheckContext",
    "BuildCheck",
    "LintCheck",
    "FormatCheck",
    "TestCheck",
    "CHECK_REGISTRY",
    "available_checks",
    "VerificationRunner",
]
