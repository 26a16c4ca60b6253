"""Narrow interfaces to the remote build service and its supporting services."""

from imageforge.remote.services import (
    BlobStorage,
    IamGranter,
    RemoteBuildService,
    SecretManager,
    StoredObject,
)

__all__ = [
    "BlobStorage",
    "IamGranter",
    "RemoteBuildService",
    "SecretManager",
    "StoredObject",
]
