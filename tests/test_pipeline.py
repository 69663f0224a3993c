import sys
from pathlib import Path

import pytest

from crateflow import Pipeline
from crateflow.compile import LocalDependencyCache
from crateflow.compile.utils import tree_snapshot
from crateflow.errors import (
    ConfigError,
    DependencyBuildError,
    FingerprintMismatchError,
    ManifestError,
    SourceBuildError,
)

OVERRIDES = {"platform": "x86_64-linux"}


@pytest.fixture(autouse=True)
def _use_tmp_cache_dir(tmp_cache_dir: Path) -> None:
    """Automatically use tmp_cache_dir for all tests in this module."""


def _pipeline(root: Path, toolchain, **overrides) -> Pipeline:
    return Pipeline(root, overrides={**OVERRIDES, **overrides}, toolchain=toolchain)


def test_pipeline_derives_manifest_and_config(make_project, fake_toolchain):
    root = make_project("demo", metadata='profile = "dev"\nbuild_inputs = ["/opt/ssl"]')
    pipeline = _pipeline(root, fake_toolchain)

    assert pipeline.manifest.name == "demo"
    assert pipeline.config.profile == "dev"
    assert pipeline.cache_key.namespace == "x86_64-linux/dev"
    assert pipeline.out_dir == root.resolve() / "result"
    assert pipeline.runtime_environment().variables == {"LD_LIBRARY_PATH": "/opt/ssl/lib"}
    assert isinstance(pipeline.cache, LocalDependencyCache)


def test_command_line_overrides_manifest_metadata(make_project, fake_toolchain, monkeypatch):
    root = make_project("demo", metadata='profile = "dev"')
    monkeypatch.setenv("CRATEFLOW_PROFILE", "bench")
    assert _pipeline(root, fake_toolchain).config.profile == "bench"
    assert _pipeline(root, fake_toolchain, profile="release").config.profile == "release"


def test_unknown_metadata_key(make_project, fake_toolchain):
    root = make_project("demo", metadata="optimise = true")
    with pytest.raises(ConfigError):
        _pipeline(root, fake_toolchain)


def test_missing_project(tmp_path: Path, fake_toolchain):
    with pytest.raises(ManifestError):
        _pipeline(tmp_path, fake_toolchain)


def test_build_then_run(demo_project: Path, fake_toolchain, capfd):
    pipeline = _pipeline(demo_project, fake_toolchain, build_inputs=["/opt/ssl"])
    wrapped = pipeline.build()

    assert wrapped.artifact.executable == demo_project.resolve() / "result" / "bin" / "demo"
    assert wrapped.environment.variables["LD_LIBRARY_PATH"] == "/opt/ssl/lib"

    assert pipeline.run(["--flag"]) == 0
    out = capfd.readouterr().out
    assert "LD_LIBRARY_PATH=/opt/ssl/lib" in out
    assert "ARGS=--flag" in out
    # The output was current, so run did not rebuild
    assert fake_toolchain.package_builds == 1


def test_run_builds_when_missing(demo_project: Path, fake_toolchain):
    fake_toolchain.exit_code = 5
    assert _pipeline(demo_project, fake_toolchain).run() == 5
    assert fake_toolchain.package_builds == 1


def test_run_rebuilds_after_source_change(demo_project: Path, fake_toolchain):
    pipeline = _pipeline(demo_project, fake_toolchain)
    pipeline.build()
    (demo_project / "src" / "main.rs").write_text("fn main() { std::process::exit(0) }\n")

    assert pipeline.run() == 0
    assert fake_toolchain.package_builds == 2
    assert fake_toolchain.dependency_builds == 1


def test_run_rebuilds_after_environment_change(demo_project: Path, fake_toolchain):
    _pipeline(demo_project, fake_toolchain).build()
    pipeline = _pipeline(demo_project, fake_toolchain, build_inputs=["/opt/zlib"])
    assert pipeline.run() == 0
    assert fake_toolchain.package_builds == 2


def test_fresh_build_of_two_projects_sharing_a_lock(make_project, fake_toolchain):
    a = _pipeline(make_project("a"), fake_toolchain).build()
    b = _pipeline(make_project("b"), fake_toolchain).build()

    assert fake_toolchain.dependency_builds == 1
    assert fake_toolchain.package_builds == 2
    assert a.artifact.fingerprint == b.artifact.fingerprint


def test_source_edit_reuses_dependency_cache(demo_project: Path, fake_toolchain):
    pipeline = _pipeline(demo_project, fake_toolchain)
    pipeline.build()
    entry = pipeline.cache.lookup(pipeline.cache_key)
    before = tree_snapshot(entry.path)

    (demo_project / "src" / "main.rs").write_text('fn main() { println!("edited"); }\n')
    _pipeline(demo_project, fake_toolchain).build()

    assert fake_toolchain.dependency_builds == 1
    assert fake_toolchain.package_builds == 2
    assert tree_snapshot(entry.path) == before


def test_lock_change_rebuilds_dependencies(make_project, fake_toolchain):
    old = _pipeline(make_project("demo"), fake_toolchain)
    old.build()
    new = _pipeline(make_project("demo", deps=[("libfoo", "2.4.0")]), fake_toolchain)
    new.build()

    assert fake_toolchain.dependency_builds == 2
    assert old.cache_key != new.cache_key
    assert new.cache.lookup(old.cache_key) is not None
    assert new.cache.lookup(new.cache_key) is not None


def test_lock_change_during_pipeline_lifetime(make_project, fake_toolchain):
    root = make_project("demo")
    pipeline = _pipeline(root, fake_toolchain)
    make_project("demo", deps=[("libfoo", "2.4.0")])

    with pytest.raises(FingerprintMismatchError):
        pipeline.build()
    assert fake_toolchain.dependency_builds == 0
    assert pipeline.cache.lookup(pipeline.cache_key) is None

    reloaded = _pipeline(root, fake_toolchain)
    reloaded.build()
    entry = reloaded.cache.lookup(reloaded.cache_key)
    assert entry.key.fingerprint != pipeline.cache_key.fingerprint
    assert "2.4.0" in (entry.target_dir / "deps.lock").read_text()


def test_source_error_reports_package_stage(demo_project: Path, fake_toolchain):
    pipeline = _pipeline(demo_project, fake_toolchain)
    (demo_project / "src" / "main.rs").write_text('compile_error!("broken");\n')

    with pytest.raises(SourceBuildError):
        pipeline.build()
    # Dependencies were still built and committed
    assert pipeline.cache.lookup(pipeline.cache_key) is not None


def test_dependency_error_reports_dependency_stage(demo_project: Path, fake_toolchain):
    fake_toolchain.fail_dependencies = True
    pipeline = _pipeline(demo_project, fake_toolchain)
    with pytest.raises(DependencyBuildError):
        pipeline.build()
    assert pipeline.cache.lookup(pipeline.cache_key) is None
    assert fake_toolchain.package_builds == 0
    assert not pipeline.out_dir.exists()


def test_check_does_not_touch_outputs(demo_project: Path, fake_toolchain):
    pipeline = _pipeline(demo_project, fake_toolchain)
    pipeline.build()
    project_before = tree_snapshot(demo_project)

    report = pipeline.check(["build", "clippy", "fmt"])
    assert report.passed
    assert tree_snapshot(demo_project) == project_before


def test_check_uses_declared_checks(make_project, fake_toolchain):
    root = make_project("demo", metadata='checks = ["fmt"]')
    report = _pipeline(root, fake_toolchain).check()
    assert [r.name for r in report.results] == ["fmt"]


def test_workspace_environment_matches_wrapper(demo_project: Path, fake_toolchain):
    pipeline = _pipeline(demo_project, fake_toolchain, build_inputs=["/opt/ssl"])
    wrapped = pipeline.build()
    workspace = pipeline.workspace()
    assert workspace.environment.to_bytes() == wrapped.environment.to_bytes()


def test_workspace_does_not_build(demo_project: Path, fake_toolchain):
    workspace = _pipeline(demo_project, fake_toolchain).workspace()
    assert workspace.tools == ["sh", "fake-clippy"]
    assert fake_toolchain.dependency_builds == 0
    assert fake_toolchain.package_builds == 0


def test_develop_runs_command(demo_project: Path, fake_toolchain, monkeypatch):
    monkeypatch.setenv("SHELL", "/bin/sh")
    assert _pipeline(demo_project, fake_toolchain).develop("exit 2") == 2


if __name__ == "__main__":
    pytest.main(sys.argv)
