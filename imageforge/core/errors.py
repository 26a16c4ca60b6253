"""Error taxonomy for image builds.

Configuration errors and tool failures are fatal and never retried.
Failures of best-effort steps never surface as exceptions (see
``imageforge.core.commands.try_optional_step``).
"""

from __future__ import annotations

from collections.abc import Sequence


class ImageForgeError(RuntimeError):
    """Base class for all imageforge failures."""


class ConfigurationError(ImageForgeError, ValueError):
    """Invalid or unsupported build input.  The message names the input."""


class CommandError(ImageForgeError):
    """An external tool exited with a nonzero status."""

    def __init__(
        self,
        argv: Sequence[str],
        returncode: int | None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip() or "no output"
        super().__init__(
            f"Command {' '.join(self.argv)!r} exited with status {returncode}: {detail}"
        )


class SourceArchiveError(ImageForgeError):
    """Creating, validating or extracting a build-context archive failed."""


class RemoteBuildError(ImageForgeError):
    """The remote build job did not finish successfully."""


class ResultShapeError(ImageForgeError):
    """A build reported success but its result lacks the image digest."""


class ImageBuildError(ImageForgeError):
    """A build failed; wraps the underlying error with the image reference.

    The original error is chained as ``__cause__``.
    """

    def __init__(self, reference: str, cause: BaseException) -> None:
        self.reference = reference
        self.cause = cause
        super().__init__(f"Failed to build image {reference}: {cause}")
