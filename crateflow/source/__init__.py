"""Source extraction: filtered project snapshots and dependency-only dummy sources."""

from .dummy import DUMMY_RUST_SOURCE, make_dummy_source
from .extractor import extract_source, is_source_file

__all__ = ["extract_source", "is_source_file", "make_dummy_source", "DUMMY_RUST_SOURCE"]
