"""Imageforge data models: all Pydantic v2, all frozen (immutable)."""

from imageforge.models.build import (
    BuildResult,
    BuildSpecification,
    BuildTarget,
    ImageReference,
    LocalTarget,
    RemoteTarget,
)
from imageforge.models.remote import (
    BuiltImage,
    RemoteBuildJob,
    RemoteBuildOutcome,
    RemoteBuildStep,
    SecretEnvBinding,
    StepVolume,
    StorageSourceRef,
)
from imageforge.models.sources import (
    BuildSource,
    DirectorySource,
    GitSource,
    SnapshotSource,
)
from imageforge.models.versioning import (
    FileVersioning,
    GitVersioning,
    PlainVersioning,
    VersioningStrategy,
)

__all__ = [
    # versioning
    "VersioningStrategy",
    "PlainVersioning",
    "FileVersioning",
    "GitVersioning",
    # sources
    "BuildSource",
    "DirectorySource",
    "SnapshotSource",
    "GitSource",
    # build
    "BuildSpecification",
    "BuildTarget",
    "LocalTarget",
    "RemoteTarget",
    "ImageReference",
    "BuildResult",
    # remote
    "RemoteBuildStep",
    "StepVolume",
    "SecretEnvBinding",
    "StorageSourceRef",
    "RemoteBuildJob",
    "BuiltImage",
    "RemoteBuildOutcome",
]
