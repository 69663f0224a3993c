import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from crateflow.compile import Toolchain, ToolchainRegistry
from crateflow.compile.toolchains import CargoToolchain
from crateflow.config import merge_build_config
from crateflow.data import load_project_manifest
from crateflow.errors import BuildError


def _create_mock_toolchain(name: str, can_build_result: bool = True) -> MagicMock:
    """Create a mock toolchain for testing dispatch logic."""
    toolchain = MagicMock(spec=Toolchain)
    toolchain.name = name
    toolchain.can_build.return_value = can_build_result
    return toolchain


def test_select_first_matching(demo_project: Path):
    manifest = load_project_manifest(demo_project)
    skipped = _create_mock_toolchain("skipped", can_build_result=False)
    first = _create_mock_toolchain("first")
    second = _create_mock_toolchain("second")

    registry = ToolchainRegistry([skipped, first, second])
    assert registry.select(manifest) is first
    skipped.can_build.assert_called_once_with(manifest)
    second.can_build.assert_not_called()


def test_select_without_toolchain(demo_project: Path):
    manifest = load_project_manifest(demo_project)
    with pytest.raises(BuildError, match="No available toolchain can build 'demo'"):
        ToolchainRegistry([]).select(manifest)


def test_get_instance_is_singleton(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(ToolchainRegistry, "_instance", None)
    monkeypatch.setattr(CargoToolchain, "is_available", staticmethod(lambda: False))
    registry = ToolchainRegistry.get_instance()
    assert ToolchainRegistry.get_instance() is registry
    assert registry._toolchains == []


def test_cargo_commands(tmp_path: Path):
    toolchain = CargoToolchain()
    config = merge_build_config(
        {
            "platform": "x86_64-linux",
            "toolchain_channel": "nightly",
            "target": "aarch64-unknown-linux-gnu",
            "cargo_extra_args": ["--features", "cli"],
            "lint_deny": ["warnings", "clippy::pedantic"],
        }
    )
    cargo = toolchain._cargo(config)
    assert cargo == ["cargo", "+nightly"]
    assert toolchain._build_args(config, tmp_path) == [
        "--profile",
        "release",
        "--locked",
        "--target-dir",
        str(tmp_path),
        "--target",
        "aarch64-unknown-linux-gnu",
        "--features",
        "cli",
    ]
    assert toolchain.check_tools("clippy") == ["cargo-clippy", "clippy-driver"]
    assert toolchain.check_tools("build") == []


def test_cargo_profile_dir():
    toolchain = CargoToolchain()
    assert toolchain._profile_dir(merge_build_config({"profile": "dev"})) == "debug"
    assert toolchain._profile_dir(merge_build_config({"profile": "bench"})) == "bench"


def test_cargo_env_exposes_native_inputs():
    config = merge_build_config(
        {
            "platform": "x86_64-linux",
            "build_inputs": ["/opt/ssl"],
            "native_build_inputs": ["/opt/pkgconf"],
        }
    )
    env = CargoToolchain()._env(config)
    assert env["LD_LIBRARY_PATH"] == "/opt/ssl/lib:/opt/pkgconf/lib"
    assert env["PATH"].startswith("/opt/pkgconf/bin")


def test_cargo_can_build(demo_project: Path):
    assert CargoToolchain().can_build(load_project_manifest(demo_project))


@pytest.mark.requires_cargo
def test_cargo_builds_dependencies_and_package(tmp_path: Path):
    project = tmp_path / "hello"
    (project / "src").mkdir(parents=True)
    (project / "Cargo.toml").write_text(
        '[package]\nname = "hello"\nversion = "0.1.0"\nedition = "2021"\n'
    )
    (project / "Cargo.lock").write_text(
        'version = 3\n\n[[package]]\nname = "hello"\nversion = "0.1.0"\n'
    )
    (project / "src" / "main.rs").write_text('fn main() { println!("hi"); }\n')
    config = merge_build_config({"profile": "dev"})
    toolchain = CargoToolchain()

    toolchain.build_dependencies(project, tmp_path / "target", config)
    binary = toolchain.build_package(project, tmp_path / "target", "hello", config)
    assert binary == tmp_path / "target" / "debug" / "hello"


if __name__ == "__main__":
    pytest.main(sys.argv)
