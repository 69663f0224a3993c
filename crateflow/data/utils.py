"""Shared pydantic building blocks of the crateflow records."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, StringConstraints

NonEmptyString = Annotated[str, StringConstraints(min_length=1)]
"""Type alias for non-empty strings with minimum length of 1."""

HexDigest = Annotated[str, StringConstraints(pattern=r"^[0-9a-f]{64}$")]
"""Type alias for a lowercase hex SHA-256 digest, as used for fingerprints."""

PathComponent = Annotated[str, StringConstraints(pattern=r"^[A-Za-z0-9_+-][A-Za-z0-9_.+-]*$")]
"""Type alias for a name used as a single cache directory level (platform, profile). No path
separators, and no leading dot."""


class BaseModelWithDocstrings(BaseModel):
    """Base model with the attribute docstrings being extracted to the model JSON schema."""

    model_config = ConfigDict(use_attribute_docstrings=True)


class FrozenModelWithDocstrings(BaseModelWithDocstrings):
    """Immutable, hashable variant for records that must not change once created, such as
    cache keys and committed cache entries."""

    model_config = ConfigDict(frozen=True, use_attribute_docstrings=True)
