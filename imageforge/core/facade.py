"""Single entry point for image builds.

The facade resolves a specification's image reference, dedupes through
the ``BuildCoordinator`` and hands the build to the backend the
specification's target names.
"""

from __future__ import annotations

import logging

from imageforge.config import ForgeConfig
from imageforge.core.coordinator import BuildCoordinator
from imageforge.core.errors import ConfigurationError
from imageforge.core.local_executor import LocalBuildExecutor
from imageforge.core.remote_executor import RemoteBuildExecutor
from imageforge.core.version_resolver import VersionResolver
from imageforge.models.build import (
    BuildResult,
    BuildSpecification,
    BuildTarget,
    ImageReference,
    LocalTarget,
    RemoteTarget,
)

logger = logging.getLogger(__name__)


def select_target(
    project: str | None = None,
    service_account_email: str | None = None,
    bucket: str | None = None,
) -> BuildTarget:
    """Pick the backend from which remote fields are present.

    None of them selects the local backend, all of them the remote one.
    Anything in between is a configuration error.
    """
    fields = {
        "project": project,
        "service_account_email": service_account_email,
        "bucket": bucket,
    }
    present = [name for name, value in fields.items() if value]
    if not present:
        return LocalTarget()
    if len(present) == len(fields):
        return RemoteTarget(
            project=project, service_account_email=service_account_email, bucket=bucket
        )
    missing = sorted(set(fields) - set(present))
    raise ConfigurationError(
        f"Remote build needs project, service_account_email and bucket; "
        f"got {', '.join(present)} but missing {', '.join(missing)}"
    )


class BuildFacade:
    """Uniform build-request / build-result contract.

    Parameters
    ----------
    coordinator:
        Shared dedupe registry.  Inject one per process; a fresh one is
        created when omitted.
    local:
        Local backend.  Created from ``config`` when omitted.
    remote:
        Remote backend.  Without one, remote specifications are rejected.
    """

    def __init__(
        self,
        *,
        coordinator: BuildCoordinator[BuildResult] | None = None,
        local: LocalBuildExecutor | None = None,
        remote: RemoteBuildExecutor | None = None,
        resolver: VersionResolver | None = None,
        config: ForgeConfig | None = None,
    ) -> None:
        self._config = config or ForgeConfig()
        self.coordinator: BuildCoordinator[BuildResult] = coordinator or BuildCoordinator()
        self.local = local or LocalBuildExecutor(self._config)
        self.remote = remote
        self.resolver = resolver or VersionResolver(self._config)

    async def resolve(self, spec: BuildSpecification) -> ImageReference:
        """Return the image reference ``spec`` builds, without building."""
        return await self.resolver.resolve_reference(spec)

    async def build(self, spec: BuildSpecification) -> BuildResult:
        """Build ``spec`` at most once per process and return the pinned image."""
        reference = await self.resolve(spec)

        if isinstance(spec.target, RemoteTarget):
            if self.remote is None:
                raise ConfigurationError(
                    f"{reference.uri} targets the remote backend but no remote executor is configured"
                )
            executor: LocalBuildExecutor | RemoteBuildExecutor = self.remote
        else:
            executor = self.local

        key = BuildCoordinator.key(executor.backend, reference.uri)
        return await self.coordinator.get_or_create(
            key, lambda: executor.build(spec, reference)
        )
