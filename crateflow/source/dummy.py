"""Dummy sources for dependencies-only builds.

A dependencies-only build sees the manifests and the lockfile of the project, but every Rust
source file is replaced by the same stub. The compiled result therefore only depends on the
dependency graph and never on the project's own code.
"""

from __future__ import annotations

import shutil
from pathlib import Path, PurePosixPath

from crateflow.data import SourceTree

DUMMY_RUST_SOURCE = """\
#![allow(clippy::all)]
#![allow(dead_code)]
#![cfg_attr(any(target_os = "none", target_os = "uefi"), no_std)]
#![cfg_attr(any(target_os = "none", target_os = "uefi"), no_main)]

#[allow(unused_extern_crates)]
extern crate core;

#[cfg_attr(any(target_os = "none", target_os = "uefi"), panic_handler)]
#[allow(dead_code)]
fn panic(_info: &::core::panic::PanicInfo<'_>) -> ! {
    loop {}
}

pub fn main() {}
"""


def _is_manifest_file(path: PurePosixPath) -> bool:
    if path.name in ("Cargo.toml", "Cargo.lock"):
        return True
    if path.name in ("rust-toolchain", "rust-toolchain.toml"):
        return True
    return len(path.parts) >= 2 and path.parts[-2] == ".cargo"


def make_dummy_source(tree: SourceTree, dest: Path) -> Path:
    """Write the dependencies-only variant of a source tree.

    Parameters
    ----------
    tree : SourceTree
        The filtered project snapshot.
    dest : Path
        Directory to write to. It is created if missing.

    Returns
    -------
    Path
        ``dest``.
    """
    dest.mkdir(parents=True, exist_ok=True)
    for relative in tree.files:
        path = PurePosixPath(relative)
        out = dest / relative
        if _is_manifest_file(path):
            out.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(tree.path_of(relative), out)
        elif path.suffix == ".rs":
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(DUMMY_RUST_SOURCE)
    return dest
