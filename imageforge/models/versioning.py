"""Versioning strategies: how a build's version tag is derived."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class PlainVersioning(BaseModel):
    """Use the caller-provided value verbatim as the version tag."""

    model_config = ConfigDict(frozen=True)

    type: Literal["PLAIN"] = "PLAIN"
    value: str


class FileVersioning(BaseModel):
    """Hash the contents of a file or directory tree into the version tag."""

    model_config = ConfigDict(frozen=True)

    type: Literal["FILE"] = "FILE"
    from_file: Path


class GitVersioning(BaseModel):
    """Derive the version tag from a git commit of a working-copy subpath.

    ``commit_id="HEAD"`` means the latest commit touching ``directory``,
    not the repository's HEAD.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["GIT"] = "GIT"
    directory: Path
    commit_id: str = "HEAD"


VersioningStrategy = Annotated[
    Union[PlainVersioning, FileVersioning, GitVersioning],
    Field(discriminator="type"),
]
