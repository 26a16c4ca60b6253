"""Secret materialization for local and remote builds.

Secret values are serialized into a ``NAME=value`` block that the
Dockerfile consumes through a secret mount with id ``secrets``.  The
block never appears in build arguments, step arguments or logs; only an
indirection does (a file path or an environment variable name).
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import tempfile
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from pydantic import SecretStr

from imageforge.config import ForgeConfig
from imageforge.models.build import RemoteTarget
from imageforge.models.remote import RemoteBuildStep, SecretEnvBinding, StepVolume
from imageforge.remote.services import SecretManager

logger = logging.getLogger(__name__)

SECRET_MOUNT_ID = "secrets"
REMOTE_SECRET_ENV = "IMAGEFORGE_BUILD_SECRETS"
REMOTE_SECRET_VOLUME = StepVolume(name="imageforge-secrets", path="/imageforge-secrets")
REMOTE_SECRET_PATH = f"{REMOTE_SECRET_VOLUME.path}/{SECRET_MOUNT_ID}"
MATERIALIZE_STEP_ID = "materialize-secrets"


def secret_mount_args(source: str | Path) -> list[str]:
    """Build-tool arguments that mount ``source`` as the ``secrets`` secret."""
    return ["--secret", f"id={SECRET_MOUNT_ID},src={source}"]


class SecretBundle:
    """An ordered set of named secret values.

    ``repr`` never shows values; ``serialize()`` is the only way to get
    at them.
    """

    def __init__(self, secrets: Mapping[str, SecretStr | str]) -> None:
        self._values = {
            name: value if isinstance(value, SecretStr) else SecretStr(value)
            for name, value in secrets.items()
        }

    def __bool__(self) -> bool:
        return bool(self._values)

    def __len__(self) -> int:
        return len(self._values)

    @property
    def names(self) -> list[str]:
        return sorted(self._values)

    def serialize(self) -> str:
        """Shell-sourceable ``NAME=value`` lines, sorted by name."""
        lines = [
            f"{name}={shlex.quote(self._values[name].get_secret_value())}"
            for name in self.names
        ]
        return "".join(f"{line}\n" for line in lines)

    def __repr__(self) -> str:
        return f"SecretBundle(names={self.names})"


# ---------------------------------------------------------------------------
# Local: private temporary file
# ---------------------------------------------------------------------------


@dataclass
class LocalSecretMount:
    """A secrets file in a private temporary directory."""

    directory: Path
    path: Path

    @property
    def build_args(self) -> list[str]:
        return secret_mount_args(self.path)

    @property
    def env(self) -> dict[str, str]:
        # Secret mounts need the BuildKit builder.
        return {"DOCKER_BUILDKIT": "1"}

    def cleanup(self) -> None:
        shutil.rmtree(self.directory, ignore_errors=True)


# ---------------------------------------------------------------------------
# Remote: ephemeral secret-manager entry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RemoteSecretBinding:
    """An ephemeral secret-manager entry and how a remote job consumes it."""

    project: str
    secret_id: str
    version_name: str
    env: str = REMOTE_SECRET_ENV

    @property
    def available_secret(self) -> SecretEnvBinding:
        return SecretEnvBinding(version_name=self.version_name, env=self.env)

    def materialize_step(self, builder_image: str) -> RemoteBuildStep:
        """Step that writes the injected secret to the shared volume.

        ``$$`` escapes the variable from the build service's own
        substitution so bash expands it inside the step.
        """
        script = f'umask 077 && printf "%s" "$${self.env}" > {REMOTE_SECRET_PATH}'
        return RemoteBuildStep(
            id=MATERIALIZE_STEP_ID,
            name=builder_image,
            entrypoint="bash",
            args=("-c", script),
            secret_env=(self.env,),
            volumes=(REMOTE_SECRET_VOLUME,),
        )

    @property
    def build_args(self) -> list[str]:
        return secret_mount_args(REMOTE_SECRET_PATH)


class SecretMaterializer:
    """Turns a ``SecretBundle`` into what a build backend consumes."""

    def __init__(self, config: ForgeConfig | None = None) -> None:
        self._config = config or ForgeConfig()

    def materialize_local(self, bundle: SecretBundle) -> LocalSecretMount:
        """Write the bundle to a mode-0600 file in a fresh temporary directory.

        The caller owns the returned mount and must call ``cleanup()``.
        """
        directory = Path(tempfile.mkdtemp(prefix="imageforge-secrets-"))
        path = directory / SECRET_MOUNT_ID
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(bundle.serialize())
        except OSError:
            shutil.rmtree(directory, ignore_errors=True)
            raise
        logger.debug("Materialized %d secret(s) for a local build", len(bundle))
        return LocalSecretMount(directory=directory, path=path)

    async def materialize_remote(
        self,
        bundle: SecretBundle,
        target: RemoteTarget,
        secret_manager: SecretManager,
    ) -> RemoteSecretBinding:
        """Create a disposable secret readable only by the build's principal."""
        secret_id = f"{self._config.secret_prefix}-{uuid.uuid4().hex[:24]}"
        version_name = await secret_manager.create_secret(
            target.project,
            secret_id,
            bundle.serialize().encode("utf-8"),
            accessor=target.member,
            ttl_seconds=self._config.secret_ttl_seconds,
        )
        logger.info("Created ephemeral secret %s for a remote build", secret_id)
        return RemoteSecretBinding(
            project=target.project,
            secret_id=secret_id,
            version_name=version_name,
        )

    async def release_remote(
        self,
        binding: RemoteSecretBinding,
        secret_manager: SecretManager,
    ) -> None:
        """Delete the ephemeral secret once its job is terminal."""
        await secret_manager.delete_secret(binding.project, binding.secret_id)
        logger.info("Deleted ephemeral secret %s", binding.secret_id)
