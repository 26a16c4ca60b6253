"""Remote build backend: dispatches the build to a remote build service.

The build context is archived, uploaded (and retained) in a bucket, and
a multi-step job is submitted: optional cache pull, optional secret
materialization, the build itself, and one tag step per extra tag.  The
job's overall terminal state is authoritative; individual steps are not
retried here.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from imageforge.config import ForgeConfig
from imageforge.core.commands import try_optional_step
from imageforge.core.errors import (
    ConfigurationError,
    ImageBuildError,
    ImageForgeError,
    RemoteBuildError,
    ResultShapeError,
)
from imageforge.core.hasher import hash_text
from imageforge.core.local_executor import build_tool_args
from imageforge.core.secrets import (
    REMOTE_SECRET_VOLUME,
    RemoteSecretBinding,
    SecretBundle,
    SecretMaterializer,
)
from imageforge.core.source_archiver import SourceArchive, SourceArchiver
from imageforge.models.build import (
    BuildResult,
    BuildSpecification,
    ImageReference,
    RemoteTarget,
    strip_tag,
)
from imageforge.models.remote import (
    RemoteBuildJob,
    RemoteBuildOutcome,
    RemoteBuildStep,
    StorageSourceRef,
)
from imageforge.models.sources import BuildSource, DirectorySource, GitSource, SnapshotSource
from imageforge.remote.services import (
    BlobStorage,
    IamGranter,
    RemoteBuildService,
    SecretManager,
    StoredObject,
)

logger = logging.getLogger(__name__)

BUCKET_ROLES = ("roles/storage.objectViewer",)
PROJECT_ROLES = ("roles/logging.logWriter", "roles/cloudbuild.builds.builder")


class RemoteBuildExecutor:
    """Builds an image on the remote build service.

    Parameters
    ----------
    build_service:
        Submits jobs and awaits their terminal outcome.
    storage:
        Receives the build-context archive.
    secret_manager:
        Holds ephemeral secrets; required only for builds with secrets.
    iam:
        Grants the executing principal access; required only when a
        specification asks for ``grant_permissions``.
    """

    backend = "remote"

    def __init__(
        self,
        build_service: RemoteBuildService,
        storage: BlobStorage,
        *,
        secret_manager: SecretManager | None = None,
        iam: IamGranter | None = None,
        config: ForgeConfig | None = None,
        archiver: SourceArchiver | None = None,
        secrets: SecretMaterializer | None = None,
    ) -> None:
        self._service = build_service
        self._storage = storage
        self._secret_manager = secret_manager
        self._iam = iam
        self._config = config or ForgeConfig()
        self._archiver = archiver or SourceArchiver(self._config)
        self._secrets = secrets or SecretMaterializer(self._config)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def build(self, spec: BuildSpecification, reference: ImageReference) -> BuildResult:
        """Run the remote pipeline for ``reference``.

        Failures are raised as ``ImageBuildError`` carrying the reference.
        The single-use archive and the ephemeral secret are released on
        every path.
        """
        uri = reference.uri
        archive: SourceArchive | None = None
        binding: RemoteSecretBinding | None = None
        try:
            target = spec.target
            if not isinstance(target, RemoteTarget):
                raise ConfigurationError(f"Remote build of {uri} requires a remote target")

            archive = await self._resolve_archive(spec.build_source, reference)
            stored = await self._storage.upload(
                target.bucket, self._object_name(spec, archive), archive.path
            )
            logger.info("Uploaded build context for %s to gs://%s/%s", uri, stored.bucket, stored.name)

            if spec.grant_permissions:
                await self._grant_permissions(target)

            if spec.secrets:
                if self._secret_manager is None:
                    raise ConfigurationError(
                        f"Build of {uri} has secrets but no secret manager was provided"
                    )
                binding = await self._secrets.materialize_remote(
                    SecretBundle(spec.secrets), target, self._secret_manager
                )

            job = self.assemble_job(spec, reference, stored, binding)
            logger.info("Submitting remote build for %s (%d steps)", uri, len(job.steps))
            outcome = await self._service.run_build(target.project, job)
            result = self.extract_result(outcome, spec.image_name)
        except (ImageForgeError, OSError) as exc:
            logger.error("Failed to build remote image %s: %s", uri, exc)
            raise ImageBuildError(uri, exc) from exc
        finally:
            if binding is not None and self._secret_manager is not None:
                manager = self._secret_manager
                bound = binding
                await try_optional_step(
                    f"delete ephemeral secret {bound.secret_id}",
                    lambda: self._secrets.release_remote(bound, manager),
                    absorb=(Exception,),
                )
            if archive is not None:
                archive.clean()

        logger.info("Built %s as %s", uri, result.uri)
        return result

    async def _resolve_archive(self, source: BuildSource, reference: ImageReference) -> SourceArchive:
        if isinstance(source, GitSource):
            return await self._archiver.from_git(source.directory, source.commit_id)
        if isinstance(source, SnapshotSource):
            return await self._archiver.from_directory(
                source.directory, cache_id=source.cache_id, exclude=source.exclude
            )
        if isinstance(source, DirectorySource):
            # The reference carries the version, so a new version gets a new archive.
            cache_id = hash_text(reference.uri, self._config.path_digest_length)
            return await self._archiver.from_directory(source.directory, cache_id=cache_id)
        raise ConfigurationError(f"Unsupported build source {source!r}")

    def _object_name(self, spec: BuildSpecification, archive: SourceArchive) -> str:
        return f"{self._config.remote_source_prefix}/{spec.image_name}/{archive.path.name}"

    async def _grant_permissions(self, target: RemoteTarget) -> None:
        if self._iam is None:
            raise ConfigurationError(
                f"grant_permissions requested for {target.service_account_email} "
                "but no IAM granter was provided"
            )
        for role in BUCKET_ROLES:
            await self._iam.grant_bucket_role(target.bucket, role, target.member)
        for role in PROJECT_ROLES:
            await self._iam.grant_project_role(target.project, role, target.member)

    # ------------------------------------------------------------------
    # Job assembly and result extraction
    # ------------------------------------------------------------------

    def assemble_job(
        self,
        spec: BuildSpecification,
        reference: ImageReference,
        source: StoredObject,
        binding: RemoteSecretBinding | None = None,
    ) -> RemoteBuildJob:
        """Build the ordered step list and job description."""
        target = spec.target
        if not isinstance(target, RemoteTarget):
            raise ConfigurationError(f"Remote build of {reference.uri} requires a remote target")

        builder = self._config.remote_builder_image
        steps: list[RemoteBuildStep] = []

        if spec.cache_from_tag:
            steps.append(
                RemoteBuildStep(
                    name=builder,
                    args=("pull", reference.with_tag(spec.cache_from_tag)),
                    allow_failure=True,
                )
            )

        build_args = ["build", "-t", reference.uri, *build_tool_args(spec, reference, ".")]
        env: tuple[str, ...] = ()
        volumes: tuple = ()
        if binding is not None:
            steps.append(binding.materialize_step(builder))
            build_args += binding.build_args
            env = ("DOCKER_BUILDKIT=1",)
            volumes = (REMOTE_SECRET_VOLUME,)
        build_args.append(".")
        steps.append(RemoteBuildStep(name=builder, args=tuple(build_args), env=env, volumes=volumes))

        tagged_images = [reference.with_tag(tag) for tag in spec.tags]
        for tagged in tagged_images:
            steps.append(RemoteBuildStep(name=builder, args=("tag", reference.uri, tagged)))

        return RemoteBuildJob(
            service_account=target.service_account_resource,
            images=(reference.uri, *tagged_images),
            timeout_seconds=self._config.remote_timeout_seconds,
            logging=self._config.remote_logging,
            machine_type=self._config.remote_machine_type,
            requested_verify_option=self._config.remote_verify_option,
            source_provenance_hash=self._config.remote_source_provenance_hash,
            steps=tuple(steps),
            available_secrets=(binding.available_secret,) if binding is not None else (),
            source=StorageSourceRef(bucket=source.bucket, object_name=source.name),
        )

    @staticmethod
    def extract_result(outcome: RemoteBuildOutcome | None, image_name: str) -> BuildResult:
        """Turn a terminal outcome into a digest-pinned result."""
        if outcome is None:
            raise ResultShapeError(f"No results from build process for {image_name}")
        if not outcome.succeeded:
            raise RemoteBuildError(
                f"Remote build of {image_name} finished with status {outcome.status}: "
                f"{outcome.status_detail or 'no detail'} (logs: {outcome.log_url or 'unavailable'})"
            )
        if outcome.images is None:
            raise ResultShapeError(f"No results from build process for {image_name}")
        if not outcome.images:
            raise ResultShapeError(f"No images built while building {image_name}")

        built = outcome.images[0]
        if not built.name:
            raise ResultShapeError(f"No image name returned while building {image_name}")
        if not built.digest:
            raise ResultShapeError(f"No image digest returned while building {image_name}")
        try:
            return BuildResult(image=strip_tag(built.name), digest=built.digest)
        except ValidationError as exc:
            raise ResultShapeError(f"Invalid image result for {image_name}: {exc}") from exc
