import stat
import sys
from pathlib import Path

import pytest

from crateflow.compile.utils import tree_snapshot
from crateflow.errors import ManifestError
from crateflow.source import DUMMY_RUST_SOURCE, extract_source, is_source_file, make_dummy_source


@pytest.mark.parametrize(
    "relative, expected",
    [
        ("Cargo.toml", True),
        ("Cargo.lock", True),
        ("src/main.rs", True),
        ("src/bin/tool.rs", True),
        (".cargo/config", True),
        (".cargo/config.toml", True),
        ("README.md", False),
        ("target/release/demo", False),
        ("target/debug/build/foo.rs", False),
        (".git/HEAD", False),
        ("result/bin/demo", False),
        ("result-2/bin/demo", False),
        ("assets/data.json", False),
    ],
)
def test_is_source_file(relative: str, expected: bool):
    assert is_source_file(relative) is expected


def test_is_source_file_include_patterns():
    assert is_source_file("assets/data.json", ["assets/*.json"])
    assert not is_source_file("target/assets/data.json", ["*/assets/*.json"])


def test_extract_source_filters_files(demo_project: Path):
    (demo_project / "README.md").write_text("# demo\n")
    (demo_project / "target" / "release").mkdir(parents=True)
    (demo_project / "target" / "release" / "stale.rs").write_text("junk")
    (demo_project / ".git").mkdir()
    (demo_project / ".git" / "config.toml").write_text("junk")

    with extract_source(demo_project) as tree:
        assert tree.files == ["Cargo.lock", "Cargo.toml", "src/main.rs"]
        assert tree.path_of("src/main.rs").read_text() == (demo_project / "src/main.rs").read_text()
        assert stat.S_IMODE(tree.path_of("src/main.rs").stat().st_mode) == 0o444
        root = tree.root
    assert not root.exists()


def test_extract_source_does_not_modify_project(demo_project: Path):
    before = tree_snapshot(demo_project)
    with extract_source(demo_project):
        pass
    assert tree_snapshot(demo_project) == before


def test_digest_tracks_source_changes(demo_project: Path):
    with extract_source(demo_project) as tree:
        first = tree.digest
    with extract_source(demo_project) as tree:
        assert tree.digest == first

    (demo_project / "src" / "main.rs").write_text("fn main() { std::process::exit(3) }\n")
    with extract_source(demo_project) as tree:
        assert tree.digest != first


def test_extract_source_requires_manifest(tmp_path: Path):
    with pytest.raises(ManifestError, match="No Cargo.toml"):
        with extract_source(tmp_path):
            pass


def test_dummy_source_stubs_rust_files(demo_project: Path, tmp_path: Path):
    (demo_project / "src" / "lib.rs").write_text("pub fn answer() -> u32 { 42 }\n")
    (demo_project / ".cargo").mkdir()
    (demo_project / ".cargo" / "config.toml").write_text("[build]\njobs = 2\n")

    with extract_source(demo_project) as tree:
        dummy = make_dummy_source(tree, tmp_path / "dummy")

    assert (dummy / "src" / "main.rs").read_text() == DUMMY_RUST_SOURCE
    assert (dummy / "src" / "lib.rs").read_text() == DUMMY_RUST_SOURCE
    assert (dummy / "Cargo.toml").read_text() == (demo_project / "Cargo.toml").read_text()
    assert (dummy / "Cargo.lock").read_text() == (demo_project / "Cargo.lock").read_text()
    assert (dummy / ".cargo" / "config.toml").read_text() == "[build]\njobs = 2\n"


def test_dummy_source_is_independent_of_project_code(make_project, tmp_path: Path):
    a = make_project("a", main="fn main() {}\n")
    b = make_project("b", main="fn main() { compile_error!(\"nope\"); }\n")
    with extract_source(a) as tree_a, extract_source(b) as tree_b:
        dummy_a = make_dummy_source(tree_a, tmp_path / "dummy-a")
        dummy_b = make_dummy_source(tree_b, tmp_path / "dummy-b")
    assert (dummy_a / "src/main.rs").read_text() == (dummy_b / "src/main.rs").read_text()


if __name__ == "__main__":
    pytest.main(sys.argv)
