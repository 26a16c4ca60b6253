"""Asynchronous subprocess execution and best-effort step handling.

External tools (container tool, tar) run as asyncio subprocesses so one
build pipeline never blocks another.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from imageforge.core.errors import CommandError, ImageForgeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    """Anything that runs a command like ``run_command`` does."""

    def __call__(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> Awaitable[CommandResult]: ...


async def run_command(
    argv: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> CommandResult:
    """Run ``argv`` to completion and capture its output.

    ``env`` entries are layered over the current process environment.
    Raises ``CommandError`` on a nonzero exit status.
    """
    full_env = {**os.environ, **env} if env else None
    logger.debug("Running %s", " ".join(argv))

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=full_env,
            cwd=str(cwd) if cwd is not None else None,
        )
    except OSError as exc:
        raise CommandError(argv, None, stderr=str(exc)) from exc

    stdout_b, stderr_b = await proc.communicate()
    result = CommandResult(
        argv=tuple(argv),
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout_b.decode("utf-8", errors="replace"),
        stderr=stderr_b.decode("utf-8", errors="replace"),
    )
    if result.returncode != 0:
        raise CommandError(argv, result.returncode, result.stdout, result.stderr)
    return result


async def try_optional_step(
    description: str,
    step: Callable[[], Awaitable[Any]],
    *,
    absorb: tuple[type[BaseException], ...] = (ImageForgeError, OSError),
) -> None:
    """Run a best-effort step; failures are logged and dropped.

    By default only tool and filesystem failures are absorbed and
    programming errors still propagate.  Cleanup that talks to a
    third-party client passes ``absorb=(Exception,)``.
    """
    try:
        await step()
    except absorb as exc:
        logger.warning("Optional step '%s' failed (ignored): %s", description, exc)
