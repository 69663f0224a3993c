"""Toolchain adapter for Cargo projects."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import ClassVar, Dict, List

from crateflow.compile.toolchain import Toolchain, ToolResult
from crateflow.compile.utils import run_command, truncate_output
from crateflow.config import BuildConfig
from crateflow.data import MANIFEST_FILE_NAME, ProjectManifest
from crateflow.errors import BuildError
from crateflow.wrap.environment import binary_path, derive_environment, prepend_search_path

logger = logging.getLogger(__name__)


class CargoToolchain(Toolchain):
    """Toolchain that drives ``cargo``.

    Dependencies-only builds run ``cargo check`` followed by ``cargo build`` so that both the
    metadata used by clippy and the compiled libraries used by the final build end up in the
    cached target directory.

    Examples
    --------
    >>> toolchain = CargoToolchain()
    >>> toolchain.build_dependencies(dummy_dir, target_dir, config)
    >>> binary = toolchain.build_package(source_dir, copy_of_target_dir, "demo", config)
    """

    name = "cargo"

    _TOOLS: ClassVar[List[str]] = ["cargo", "rustc"]
    """Executables every cargo workspace needs."""

    _CHECK_TOOLS: ClassVar[Dict[str, List[str]]] = {
        "clippy": ["cargo-clippy", "clippy-driver"],
        "fmt": ["cargo-fmt", "rustfmt"],
    }
    """Extra executables needed by individual checks."""

    @staticmethod
    def is_available() -> bool:
        return shutil.which("cargo") is not None

    def can_build(self, manifest: ProjectManifest) -> bool:
        return manifest.manifest_path.name == MANIFEST_FILE_NAME

    def tools(self) -> List[str]:
        return list(self._TOOLS)

    def check_tools(self, check: str) -> List[str]:
        return list(self._CHECK_TOOLS.get(check, []))

    def _cargo(self, config: BuildConfig) -> List[str]:
        command = ["cargo"]
        if config.toolchain_channel:
            command.append(f"+{config.toolchain_channel}")
        return command

    def _build_args(self, config: BuildConfig, target_dir: Path) -> List[str]:
        args = ["--profile", config.profile, "--locked", "--target-dir", str(target_dir)]
        if config.target:
            args += ["--target", config.target]
        return args + list(config.cargo_extra_args)

    def _env(self, config: BuildConfig) -> Dict[str, str]:
        env = derive_environment(config.workspace_inputs, config.platform).apply()
        return prepend_search_path(env, "PATH", binary_path(config.native_build_inputs))

    def _profile_dir(self, config: BuildConfig) -> str:
        # cargo names the output directory of the dev and test profiles 'debug'
        if config.profile in ("dev", "test"):
            return "debug"
        return config.profile

    def _run_or_raise(self, command: List[str], source_dir: Path, config: BuildConfig) -> None:
        result = run_command(command, cwd=source_dir, env=self._env(config))
        if not result.ok:
            raise BuildError(
                f"'{' '.join(command[:3])}' exited with code {result.returncode}:\n"
                f"{truncate_output(result.output)}"
            )

    def build_dependencies(self, source_dir: Path, target_dir: Path, config: BuildConfig) -> None:
        build_args = self._build_args(config, target_dir)
        self._run_or_raise(
            self._cargo(config) + ["check", "--all-targets"] + build_args, source_dir, config
        )
        self._run_or_raise(self._cargo(config) + ["build"] + build_args, source_dir, config)

    def build_package(
        self, source_dir: Path, target_dir: Path, name: str, config: BuildConfig
    ) -> Path:
        command = self._cargo(config) + ["build", "--bin", name]
        self._run_or_raise(command + self._build_args(config, target_dir), source_dir, config)

        out_dir = target_dir
        if config.target:
            out_dir = out_dir / config.target
        binary = out_dir / self._profile_dir(config) / name
        if sys.platform == "win32":
            binary = binary.with_suffix(".exe")
        if not binary.is_file() or not os.access(binary, os.X_OK):
            raise BuildError(f"cargo did not produce an executable at {binary}")
        logger.debug("cargo produced %s", binary)
        return binary

    def lint(self, source_dir: Path, target_dir: Path, config: BuildConfig) -> ToolResult:
        command = self._cargo(config) + ["clippy", "--all-targets"]
        command += self._build_args(config, target_dir) + ["--"]
        for group in config.lint_deny:
            command += ["--deny", group]
        return run_command(command, cwd=source_dir, env=self._env(config))

    def format_check(self, source_dir: Path, config: BuildConfig) -> ToolResult:
        command = self._cargo(config) + ["fmt", "--all", "--", "--check"]
        return run_command(command, cwd=source_dir, env=self._env(config))

    def test(self, source_dir: Path, target_dir: Path, config: BuildConfig) -> ToolResult:
        command = self._cargo(config) + ["test"] + self._build_args(config, target_dir)
        return run_command(command, cwd=source_dir, env=self._env(config))
