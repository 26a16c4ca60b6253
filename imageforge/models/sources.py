"""Build sources: where the build context comes from."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class DirectorySource(BaseModel):
    """A plain directory used as the build context."""

    model_config = ConfigDict(frozen=True)

    type: Literal["DIRECTORY"] = "DIRECTORY"
    directory: Path


class SnapshotSource(BaseModel):
    """A directory archived with exclusions before use.

    When ``cache_id`` is omitted the archive is single-use and is removed
    once the build is done.  Passing a ``cache_id`` keeps the archive in
    the on-disk cache for later builds.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["SNAPSHOT"] = "SNAPSHOT"
    directory: Path
    exclude: tuple[str, ...] = ()
    cache_id: str | None = None


class GitSource(BaseModel):
    """A git working copy, archived at a specific commit."""

    model_config = ConfigDict(frozen=True)

    type: Literal["GIT"] = "GIT"
    directory: Path
    commit_id: str = "HEAD"


BuildSource = Annotated[
    Union[DirectorySource, SnapshotSource, GitSource],
    Field(discriminator="type"),
]
