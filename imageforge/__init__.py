"""Imageforge: container-image builds with content-addressed caching.

Resolves a build description to a deterministic image reference, builds
it at most once per process with the local container tool or a remote
build service, and returns a digest-pinned image.
"""

__version__ = "0.1.0"
__description__ = "Container-image build orchestrator with content-addressed caching"

from imageforge.core.coordinator import BuildCoordinator
from imageforge.core.facade import BuildFacade, select_target
from imageforge.models.build import BuildResult, BuildSpecification, ImageReference

__all__ = [
    "BuildCoordinator",
    "BuildFacade",
    "BuildResult",
    "BuildSpecification",
    "ImageReference",
    "select_target",
    "__version__",
]
