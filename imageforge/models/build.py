"""Build request and result models.

A ``BuildSpecification`` is the immutable request handed to the facade.
It resolves to exactly one ``ImageReference`` (the dedupe key) and, once
built, to a digest-pinned ``BuildResult``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from imageforge.models.sources import BuildSource
from imageforge.models.versioning import VersioningStrategy

TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
DIGEST_PATTERN = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[a-fA-F0-9]{32,}$")
SECRET_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def strip_tag(name: str) -> str:
    """Drop a ``:tag`` suffix from an image name, keeping registry ports."""
    slash = name.rfind("/")
    colon = name.rfind(":")
    if colon > slash:
        return name[:colon]
    return name


# ---------------------------------------------------------------------------
# Backend targets
# ---------------------------------------------------------------------------


class LocalTarget(BaseModel):
    """Build with the local container tool."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["local"] = "local"


class RemoteTarget(BaseModel):
    """Build on the remote build service.

    Parameters
    ----------
    project:
        Project the remote build runs in.
    service_account_email:
        Principal the remote build executes as.
    bucket:
        Bucket the build-context archive is uploaded to.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["remote"] = "remote"
    project: str
    service_account_email: str
    bucket: str

    @property
    def member(self) -> str:
        """IAM member string for the executing service account."""
        return f"serviceAccount:{self.service_account_email}"

    @property
    def service_account_resource(self) -> str:
        return f"projects/{self.project}/serviceAccounts/{self.service_account_email}"


BuildTarget = Annotated[Union[LocalTarget, RemoteTarget], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class BuildSpecification(BaseModel):
    """Everything needed to build and publish one image."""

    model_config = ConfigDict(frozen=True)

    registry_url: str
    image_name: str
    versioning: VersioningStrategy
    build_source: BuildSource
    tags: tuple[str, ...] = ()
    cache_from_tag: str | None = None
    build_args: dict[str, str | None] = {}
    dockerfile: Path | None = None
    platform: str | None = None
    secrets: dict[str, SecretStr] = {}
    grant_permissions: bool = False
    target: BuildTarget = LocalTarget()

    @field_validator("build_source", mode="before")
    @classmethod
    def _coerce_directory(cls, value: Any) -> Any:
        if isinstance(value, (str, Path)):
            return {"type": "DIRECTORY", "directory": value}
        return value

    @field_validator("tags")
    @classmethod
    def _check_tags(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for tag in value:
            if not TAG_PATTERN.match(tag):
                raise ValueError(f"Invalid image tag {tag!r}")
        return value

    @field_validator("secrets")
    @classmethod
    def _check_secret_names(cls, value: dict[str, SecretStr]) -> dict[str, SecretStr]:
        for name in value:
            if not SECRET_NAME_PATTERN.match(name):
                raise ValueError(f"Invalid secret name {name!r}")
        return value

    @property
    def is_remote(self) -> bool:
        return isinstance(self.target, RemoteTarget)


# ---------------------------------------------------------------------------
# References and results
# ---------------------------------------------------------------------------


class ImageReference(BaseModel):
    """``{registry}/{image}:{version_tag}``: the dedupe key for a build."""

    model_config = ConfigDict(frozen=True)

    registry_url: str
    image_name: str
    version_tag: str

    @field_validator("version_tag")
    @classmethod
    def _check_tag(cls, value: str) -> str:
        if not TAG_PATTERN.match(value):
            raise ValueError(f"Invalid version tag {value!r}")
        return value

    @property
    def base(self) -> str:
        """Image name without a tag, ``{registry}/{image}``."""
        separator = "" if self.registry_url.endswith("/") else "/"
        return f"{self.registry_url}{separator}{self.image_name}"

    @property
    def uri(self) -> str:
        return f"{self.base}:{self.version_tag}"

    def with_tag(self, tag: str) -> str:
        """Return ``{base}:{tag}`` for an additional or cache tag."""
        return f"{self.base}:{tag}"

    def __str__(self) -> str:
        return self.uri


class BuildResult(BaseModel):
    """A digest-pinned image, ``{image}@{algorithm}:{hex}``.

    Never carries a mutable tag, so it is safe to treat as
    content-addressed once returned.
    """

    model_config = ConfigDict(frozen=True)

    image: str
    digest: str

    @field_validator("image")
    @classmethod
    def _check_image(cls, value: str) -> str:
        if "@" in value or strip_tag(value) != value:
            raise ValueError(f"Image name must not carry a tag or digest: {value!r}")
        return value

    @field_validator("digest")
    @classmethod
    def _check_digest(cls, value: str) -> str:
        if not DIGEST_PATTERN.match(value):
            raise ValueError(f"Invalid image digest {value!r}")
        return value

    @property
    def uri(self) -> str:
        return f"{self.image}@{self.digest}"

    @classmethod
    def parse(cls, pinned: str) -> BuildResult:
        """Parse ``name[:tag]@algo:hex``; the tag, if any, is dropped."""
        name, sep, digest = pinned.partition("@")
        if not sep:
            raise ValueError(f"Not a digest-pinned image reference: {pinned!r}")
        return cls(image=strip_tag(name), digest=digest)

    def __str__(self) -> str:
        return self.uri
