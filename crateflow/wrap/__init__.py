"""Environment derivation and launch wrappers for built executables."""

from .environment import (
    LIBRARY_PATH_VARIABLE,
    binary_path,
    derive_environment,
    library_path,
    prepend_search_path,
)
from .launcher import (
    LAUNCH_RECORD_PATH,
    exit_code_of,
    launch,
    load_wrapped_artifact,
    wrap_artifact,
)

__all__ = [
    "LIBRARY_PATH_VARIABLE",
    "library_path",
    "binary_path",
    "derive_environment",
    "prepend_search_path",
    "LAUNCH_RECORD_PATH",
    "wrap_artifact",
    "load_wrapped_artifact",
    "launch",
    "exit_code_of",
]
