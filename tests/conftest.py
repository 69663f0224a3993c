import logging
import shutil
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

import crateflow.logging as crateflow_logging
from crateflow.compile import Toolchain, ToolResult
from crateflow.config import BuildConfig
from crateflow.data import ProjectManifest
from crateflow.errors import BuildError

DEMO_MAIN = 'fn main() {\n    println!("hello");\n}\n'


def _cargo_available() -> bool:
    """Check if a real cargo executable is on PATH.

    Returns
    -------
    bool
        True if cargo can be found, False otherwise.
    """
    return shutil.which("cargo") is not None


def pytest_collection_modifyitems(config: pytest.Config, items: List[pytest.Item]) -> None:
    """Modify pytest collection to skip tests that require cargo when it is not installed."""
    if _cargo_available():
        return

    skip_cargo = pytest.mark.skip(reason="cargo not available on PATH, skip test")
    for item in items:
        if any(item.iter_markers(name="requires_cargo")):
            item.add_marker(skip_cargo)


@pytest.fixture
def tmp_cache_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Use isolated temporary directory for cache in all tests.

    This fixture sets CRATEFLOW_CACHE_PATH to a unique temporary directory for each test,
    preventing cache pollution between tests.
    """
    cache_dir = tmp_path / "cache"
    monkeypatch.setenv("CRATEFLOW_CACHE_PATH", str(cache_dir))
    monkeypatch.delenv("CRATEFLOW_PLATFORM", raising=False)
    monkeypatch.delenv("CRATEFLOW_PROFILE", raising=False)
    return cache_dir


@pytest.fixture
def isolated_logging():
    """Remove the handler installed by configure_logging() once the test is done.

    The handler is bound to the sys.stderr of the test that installed it, which pytest closes
    afterwards.
    """
    yield
    logger = logging.getLogger("crateflow")
    if crateflow_logging._handler is not None:
        logger.removeHandler(crateflow_logging._handler)
        crateflow_logging._handler = None
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


class FakeToolchain(Toolchain):
    """Toolchain stand-in whose 'binaries' are small shell scripts.

    The dependency build records the Rust sources it was given, so tests can assert it only
    ever sees stubs. The package build fails on sources containing ``compile_error!`` and
    produces a script that prints ``LD_LIBRARY_PATH`` and its arguments.
    """

    name = "fake"

    def __init__(self, exit_code: int = 0) -> None:
        self.exit_code = exit_code
        self.fail_dependencies = False
        self.dependency_delay = 0.0
        self.dependency_builds = 0
        self.package_builds = 0
        self.dependency_sources: List[Dict[str, str]] = []
        self._lock = threading.Lock()

    @staticmethod
    def is_available() -> bool:
        return True

    def can_build(self, manifest: ProjectManifest) -> bool:
        return True

    def tools(self) -> List[str]:
        return ["sh"]

    def check_tools(self, check: str) -> List[str]:
        return {"clippy": ["fake-clippy"]}.get(check, [])

    @staticmethod
    def _rust_sources(source_dir: Path) -> Dict[str, str]:
        return {
            p.relative_to(source_dir).as_posix(): p.read_text()
            for p in sorted(source_dir.rglob("*.rs"))
        }

    def build_dependencies(self, source_dir: Path, target_dir: Path, config: BuildConfig) -> None:
        with self._lock:
            self.dependency_builds += 1
            self.dependency_sources.append(self._rust_sources(source_dir))
        if self.dependency_delay:
            time.sleep(self.dependency_delay)
        target_dir.mkdir(parents=True)
        lock = (source_dir / "Cargo.lock").read_text()
        (target_dir / "deps.lock").write_text(lock)
        if self.fail_dependencies:
            raise BuildError("error[E0463]: can't find crate for `libfoo`")

    def build_package(
        self, source_dir: Path, target_dir: Path, name: str, config: BuildConfig
    ) -> Path:
        with self._lock:
            self.package_builds += 1
        sources = self._rust_sources(source_dir)
        if any("compile_error!" in text for text in sources.values()):
            raise BuildError("error: expected item, found `compile_error`")
        if not (target_dir / "deps.lock").is_file():
            raise BuildError("dependency outputs missing from target directory")

        out = target_dir / config.profile
        out.mkdir(parents=True, exist_ok=True)
        # Incremental state written next to the cached outputs, as cargo does
        (target_dir / "deps.lock").write_text("modified by package build\n")
        binary = out / name
        binary.write_text(
            "#!/bin/sh\n"
            'echo "LD_LIBRARY_PATH=$LD_LIBRARY_PATH"\n'
            'echo "ARGS=$*"\n'
            f"exit {self.exit_code}\n"
        )
        binary.chmod(0o755)
        return binary

    def _marker_result(self, command: str, source_dir: Path, marker: str) -> ToolResult:
        offending = [
            path for path, text in self._rust_sources(source_dir).items() if marker in text
        ]
        if offending:
            output = "".join(f"warning: {marker} in {path}\n" for path in offending)
            return ToolResult(command=[command], returncode=1, output=output)
        return ToolResult(command=[command], returncode=0, output="")

    def lint(self, source_dir: Path, target_dir: Path, config: BuildConfig) -> ToolResult:
        return self._marker_result("clippy", source_dir, "lint_violation")

    def format_check(self, source_dir: Path, config: BuildConfig) -> ToolResult:
        return self._marker_result("fmt", source_dir, "badly_formatted")

    def test(self, source_dir: Path, target_dir: Path, config: BuildConfig) -> ToolResult:
        return self._marker_result("test", source_dir, "failing_test")


@pytest.fixture
def fake_toolchain() -> FakeToolchain:
    return FakeToolchain()


def _lock_entry(name: str, version: str) -> str:
    checksum = f"{name}-{version}".encode().hex().ljust(64, "0")[:64]
    return (
        "[[package]]\n"
        f'name = "{name}"\n'
        f'version = "{version}"\n'
        'source = "registry+https://github.com/rust-lang/crates.io-index"\n'
        f'checksum = "{checksum}"\n'
    )


def write_project(
    root: Path,
    name: str = "demo",
    version: str = "1.0.0",
    deps: Sequence[Tuple[str, str]] = (("libfoo", "2.3.0"),),
    main: str = DEMO_MAIN,
    metadata: Optional[str] = None,
) -> Path:
    """Write a minimal cargo project with a lockfile."""
    root.mkdir(parents=True, exist_ok=True)
    manifest = f'[package]\nname = "{name}"\nversion = "{version}"\nedition = "2021"\n'
    if metadata:
        manifest += f"\n[package.metadata.crateflow]\n{metadata}\n"
    manifest += "\n[dependencies]\n" + "".join(f'{d} = "{v}"\n' for d, v in deps)
    (root / "Cargo.toml").write_text(manifest)

    members = [f'[[package]]\nname = "{name}"\nversion = "{version}"\n']
    members[0] += "dependencies = [" + ", ".join(f'"{d}"' for d, _ in deps) + "]\n"
    lock = "version = 3\n\n" + "\n".join(members + [_lock_entry(d, v) for d, v in deps])
    (root / "Cargo.lock").write_text(lock)

    (root / "src").mkdir(exist_ok=True)
    (root / "src" / "main.rs").write_text(main)
    return root


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing cargo projects below ``tmp_path``; the first argument is the dir name."""

    def _make(dirname: str = "demo", **kwargs) -> Path:
        return write_project(tmp_path / dirname, **kwargs)

    return _make


@pytest.fixture
def demo_project(make_project: Callable[..., Path]) -> Path:
    """The 'demo' 1.0.0 project depending on libfoo 2.3.0."""
    return make_project("demo")
