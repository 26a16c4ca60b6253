"""Protocols for the cloud services a remote build depends on.

The build engine never talks to a cloud SDK directly.  Callers inject
objects satisfying these Protocols; any object with matching async
methods qualifies, so SDK clients can be adapted with a thin wrapper
and tests can use in-memory fakes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from imageforge.models.remote import RemoteBuildJob, RemoteBuildOutcome


class StoredObject(BaseModel):
    """Location of an uploaded blob."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    name: str


@runtime_checkable
class RemoteBuildService(Protocol):
    """Creates a remote build job and waits for its terminal result."""

    async def run_build(self, project: str, job: RemoteBuildJob) -> RemoteBuildOutcome:
        """Submit ``job`` in ``project`` and return once it is terminal.

        Retrying failed steps, if any, is the service's concern.
        """
        ...


@runtime_checkable
class BlobStorage(Protocol):
    """Uploads build-context archives."""

    async def upload(self, bucket: str, name: str, source: Path) -> StoredObject:
        """Upload ``source`` to ``bucket/name``.

        Uploaded objects are retained after the build so the exact
        context that was used stays inspectable.
        """
        ...


@runtime_checkable
class SecretManager(Protocol):
    """Creates and deletes short-lived secrets."""

    async def create_secret(
        self,
        project: str,
        secret_id: str,
        payload: bytes,
        *,
        accessor: str,
        ttl_seconds: int,
    ) -> str:
        """Create ``secret_id`` holding ``payload``, readable by ``accessor``.

        Returns the full resource name of the secret version.
        """
        ...

    async def delete_secret(self, project: str, secret_id: str) -> None:
        ...


@runtime_checkable
class IamGranter(Protocol):
    """Adds role bindings.  Grants are idempotent; repeating one is safe."""

    async def grant_bucket_role(self, bucket: str, role: str, member: str) -> None:
        ...

    async def grant_project_role(self, project: str, role: str, member: str) -> None:
        ...
