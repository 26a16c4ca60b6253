"""Version tag resolution.

Tags carry their origin as a prefix (``hash_`` for content hashes,
``git_`` for commits) so a FILE tag can never collide with a GIT tag and
stale tags identify where they came from.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from imageforge.config import ForgeConfig
from imageforge.core.errors import ConfigurationError
from imageforge.core.gitrepo import git_unique_id
from imageforge.core.hasher import hash_tree
from imageforge.models.build import TAG_PATTERN, BuildSpecification, ImageReference
from imageforge.models.versioning import (
    FileVersioning,
    GitVersioning,
    PlainVersioning,
    VersioningStrategy,
)

logger = logging.getLogger(__name__)

FILE_TAG_PREFIX = "hash_"
GIT_TAG_PREFIX = "git_"


class VersionResolver:
    """Turns a versioning strategy into a version tag."""

    def __init__(self, config: ForgeConfig | None = None) -> None:
        self._config = config or ForgeConfig()

    async def resolve(self, versioning: VersioningStrategy) -> str:
        """Return the version tag for ``versioning``.

        Raises ``ConfigurationError`` for unsupported strategies, invalid
        explicit values, missing paths, or unresolvable commits.
        """
        if isinstance(versioning, PlainVersioning):
            if not TAG_PATTERN.match(versioning.value):
                raise ConfigurationError(
                    f"Invalid explicit version {versioning.value!r}: not a valid image tag"
                )
            return versioning.value

        if isinstance(versioning, FileVersioning):
            path = Path(versioning.from_file)
            try:
                digest = await asyncio.to_thread(
                    hash_tree, path, self._config.version_hash_length
                )
            except OSError as exc:
                raise ConfigurationError(f"Cannot hash version source {path}: {exc}") from exc
            return f"{FILE_TAG_PREFIX}{digest}"

        if isinstance(versioning, GitVersioning):
            _, unique_id = await asyncio.to_thread(
                git_unique_id,
                Path(versioning.directory),
                versioning.commit_id,
                digest_length=self._config.path_digest_length,
            )
            return f"{GIT_TAG_PREFIX}{unique_id}"

        raise ConfigurationError(f"Invalid versioning input {versioning!r}")

    async def resolve_reference(self, spec: BuildSpecification) -> ImageReference:
        """Compute the image reference a specification builds."""
        tag = await self.resolve(spec.versioning)
        reference = ImageReference(
            registry_url=spec.registry_url,
            image_name=spec.image_name,
            version_tag=tag,
        )
        logger.debug("Resolved %s to %s", spec.image_name, reference)
        return reference
