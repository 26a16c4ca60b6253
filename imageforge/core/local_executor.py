"""Local build backend: drives the container tool on this host.

Pipeline, strictly sequential per build:

1. remove any stale local image for the reference (best effort)
2. pull the cache-source image (best effort)
3. materialize the build context
4. materialize secrets
5. build
6. push the primary tag, then tag and push each additional tag
7. inspect the image for its repository digest
8. remove every temporary directory created on the way (always)
"""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
from pathlib import Path

from imageforge.config import ForgeConfig
from imageforge.core.commands import CommandRunner, run_command, try_optional_step
from imageforge.core.errors import (
    CommandError,
    ConfigurationError,
    ImageBuildError,
    ImageForgeError,
    ResultShapeError,
)
from imageforge.core.secrets import SecretBundle, SecretMaterializer
from imageforge.core.source_archiver import SourceArchiver
from imageforge.models.build import BuildResult, BuildSpecification, ImageReference
from imageforge.models.sources import BuildSource, DirectorySource, GitSource, SnapshotSource

logger = logging.getLogger(__name__)


def build_tool_args(spec: BuildSpecification, reference: ImageReference, context: str) -> list[str]:
    """Flags shared by local and remote ``build`` invocations.

    Returns everything after ``-t <ref>`` except the secret mount.
    """
    args: list[str] = []
    if spec.dockerfile is not None:
        dockerfile = spec.dockerfile
        if not dockerfile.is_absolute() and context != ".":
            dockerfile = Path(context) / dockerfile
        args += ["-f", str(dockerfile)]
    if spec.platform:
        args += ["--platform", spec.platform]
    for name, value in spec.build_args.items():
        args += ["--build-arg", f"{name}={value or ''}"]
    if spec.cache_from_tag:
        args += ["--cache-from", reference.with_tag(spec.cache_from_tag)]
    return args


class LocalBuildExecutor:
    """Builds, pushes and pins an image with the local container tool.

    Parameters
    ----------
    config:
        Tool names and the ``pull_existing`` switch.
    archiver:
        Produces archives for git and snapshot sources.
    runner:
        Command runner for the container tool; swapped out in tests.
    """

    backend = "local"

    def __init__(
        self,
        config: ForgeConfig | None = None,
        *,
        archiver: SourceArchiver | None = None,
        secrets: SecretMaterializer | None = None,
        runner: CommandRunner = run_command,
    ) -> None:
        self._config = config or ForgeConfig()
        self._archiver = archiver or SourceArchiver(self._config, runner=runner)
        self._secrets = secrets or SecretMaterializer(self._config)
        self._runner = runner

    @property
    def _tool(self) -> str:
        return self._config.container_tool

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def build(self, spec: BuildSpecification, reference: ImageReference) -> BuildResult:
        """Run the full pipeline for ``reference``.

        Any failure outside the best-effort steps is raised as
        ``ImageBuildError`` carrying the reference, with the original
        error as its cause.
        """
        uri = reference.uri
        to_clean: list[Path] = []
        try:
            await try_optional_step(
                f"remove stale image {uri}",
                lambda: self._runner([self._tool, "image", "rm", uri]),
            )

            if spec.cache_from_tag:
                cache_uri = reference.with_tag(spec.cache_from_tag)
                await try_optional_step(
                    f"pull cache image {cache_uri}",
                    lambda: self._runner([self._tool, "pull", cache_uri]),
                )

            if self._config.pull_existing and await self._pull_existing(uri):
                logger.info("Image %s already exists in the registry; skipping build", uri)
            else:
                context = await self._materialize_context(spec.build_source, to_clean)
                await self._build(spec, reference, context, to_clean)
                await self._push(spec, reference)

            result = await self._resolve_digest(reference)
        except (ImageForgeError, OSError) as exc:
            logger.error("Failed to build local image %s: %s", uri, exc)
            raise ImageBuildError(uri, exc) from exc
        finally:
            self._cleanup(to_clean)

        logger.info("Built %s as %s", uri, result.uri)
        return result

    async def _pull_existing(self, uri: str) -> bool:
        try:
            await self._runner([self._tool, "pull", uri])
        except CommandError:
            return False
        return True

    async def _materialize_context(self, source: BuildSource, to_clean: list[Path]) -> Path:
        if isinstance(source, DirectorySource):
            directory = Path(source.directory)
            if not directory.is_dir():
                raise ConfigurationError(f"Build directory does not exist: {directory}")
            return directory

        if isinstance(source, GitSource):
            archive = await self._archiver.from_git(source.directory, source.commit_id)
        elif isinstance(source, SnapshotSource):
            archive = await self._archiver.from_directory(
                source.directory, cache_id=source.cache_id, exclude=source.exclude
            )
        else:
            raise ConfigurationError(f"Unsupported build source {source!r}")

        try:
            tmp_dir = Path(tempfile.mkdtemp(prefix="imageforge-build-"))
            to_clean.append(tmp_dir)
            return await self._archiver.extract(archive, tmp_dir)
        finally:
            archive.clean()

    async def _build(
        self,
        spec: BuildSpecification,
        reference: ImageReference,
        context: Path,
        to_clean: list[Path],
    ) -> None:
        argv = [self._tool, "build", str(context), "-t", reference.uri]
        argv += build_tool_args(spec, reference, str(context))

        env: dict[str, str] = {}
        if spec.secrets:
            mount = self._secrets.materialize_local(SecretBundle(spec.secrets))
            to_clean.append(mount.directory)
            argv += mount.build_args
            env.update(mount.env)

        logger.info("Building %s from %s", reference.uri, context)
        await self._runner(argv, env=env or None)

    async def _push(self, spec: BuildSpecification, reference: ImageReference) -> None:
        await self._runner([self._tool, "image", "push", reference.uri])
        for tag in spec.tags:
            tagged = reference.with_tag(tag)
            await self._runner([self._tool, "tag", reference.uri, tagged])
            await self._runner([self._tool, "image", "push", tagged])

    async def _resolve_digest(self, reference: ImageReference) -> BuildResult:
        result = await self._runner([self._tool, "image", "inspect", reference.uri])
        try:
            info = json.loads(result.stdout)
            repo_digests = info[0]["RepoDigests"]
        except (ValueError, LookupError, TypeError) as exc:
            raise ResultShapeError(
                f"Unexpected image inspect output for {reference.uri}: {exc}"
            ) from exc
        if not repo_digests:
            raise ResultShapeError(f"Image {reference.uri} has no repository digest")

        # Prefer the digest recorded for this repository.
        pinned = next(
            (d for d in repo_digests if isinstance(d, str) and d.startswith(f"{reference.base}@")),
            repo_digests[0],
        )
        if not isinstance(pinned, str):
            raise ResultShapeError(f"Image digest for {reference.uri} is not a string")
        try:
            return BuildResult.parse(pinned)
        except ValueError as exc:
            raise ResultShapeError(f"Invalid digest {pinned!r} for {reference.uri}") from exc

    @staticmethod
    def _cleanup(paths: list[Path]) -> None:
        for path in paths:
            shutil.rmtree(path, ignore_errors=True)
