"""Remote build job models.

These mirror the job description accepted by the remote build service:
an ordered list of steps plus the service account, images to register,
timeout, logging mode and a pointer to the uploaded build context.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class StepVolume(BaseModel):
    """A named volume shared between steps of one job."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str


class RemoteBuildStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str  # tool image the step runs in
    args: tuple[str, ...] = ()
    id: str | None = None
    entrypoint: str | None = None
    allow_failure: bool = False
    env: tuple[str, ...] = ()
    secret_env: tuple[str, ...] = ()
    volumes: tuple[StepVolume, ...] = ()


class SecretEnvBinding(BaseModel):
    """Expose a secret-manager version to steps as an environment variable."""

    model_config = ConfigDict(frozen=True)

    version_name: str
    env: str


class StorageSourceRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    bucket: str
    object_name: str


class RemoteBuildJob(BaseModel):
    model_config = ConfigDict(frozen=True)

    service_account: str
    images: tuple[str, ...]
    timeout_seconds: int
    logging: str
    machine_type: str
    requested_verify_option: str = "VERIFIED"
    source_provenance_hash: tuple[str, ...] = ("SHA256",)
    steps: tuple[RemoteBuildStep, ...]
    available_secrets: tuple[SecretEnvBinding, ...] = ()
    source: StorageSourceRef


class BuiltImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str | None = None
    digest: str | None = None


class RemoteBuildOutcome(BaseModel):
    """Terminal payload of a remote build job."""

    model_config = ConfigDict(frozen=True)

    status: str = "UNKNOWN"
    images: tuple[BuiltImage, ...] | None = None
    log_url: str | None = None
    status_detail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "SUCCESS"
