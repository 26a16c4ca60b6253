"""Git helpers for commit resolution and deterministic archives (GitPython).

All functions are blocking; async callers hand them to a worker thread.
"""

from __future__ import annotations

import logging
from pathlib import Path

import git

from imageforge.core.errors import ConfigurationError, SourceArchiveError
from imageforge.core.hasher import hash_text

logger = logging.getLogger(__name__)

# Fixed locale so archive contents never depend on the caller's environment.
DETERMINISTIC_ENV = {"LC_ALL": "C", "LANG": "C"}


def _git(directory: Path) -> git.Git:
    if not Path(directory).is_dir():
        raise ConfigurationError(f"Git working copy does not exist: {directory}")
    return git.Git(str(directory))


def resolve_commit(directory: Path, commit_id: str = "HEAD") -> str:
    """Resolve ``commit_id`` to a full commit hash.

    ``HEAD`` resolves to the latest commit touching ``directory`` itself
    rather than the repository HEAD, so unrelated commits elsewhere in
    the repository do not change the result.
    """
    g = _git(directory)
    try:
        if commit_id == "HEAD":
            commit = g.log("--max-count=1", "--format=%H", "HEAD", "--", ".")
        else:
            commit = g.rev_parse("--verify", f"{commit_id}^{{commit}}")
    except git.GitError as exc:
        raise ConfigurationError(
            f"Could not find commit {commit_id!r} in {directory}: {exc}"
        ) from exc

    commit = commit.strip()
    if not commit:
        raise ConfigurationError(f"Could not find commit {commit_id!r} in {directory}")
    return commit


def repository_prefix(directory: Path) -> str:
    """Path of ``directory`` relative to its repository root (``""`` at the root)."""
    g = _git(directory)
    try:
        return g.rev_parse("--show-prefix").strip()
    except git.GitError as exc:
        raise ConfigurationError(f"Not a git working copy: {directory}: {exc}") from exc


def archive_commit(directory: Path, commit: str, output: Path) -> None:
    """Write a deterministic ``tar.gz`` of ``directory`` at ``commit`` to ``output``.

    ``tar.umask=0022`` masks permissions and git records no local
    ownership or timestamps beyond the commit's own, so identical commits
    produce identical bytes.
    """
    g = _git(directory)
    try:
        g.execute(
            [
                "git",
                "-c",
                "tar.umask=0022",
                "archive",
                "--format=tar.gz",
                f"--output={output}",
                commit,
                ".",
            ],
            env=DETERMINISTIC_ENV,
        )
    except git.GitError as exc:
        raise SourceArchiveError(f"git archive of {commit} in {directory} failed: {exc}") from exc
    logger.debug("Archived %s at %s to %s", directory, commit, output)


def git_unique_id(directory: Path, commit_id: str = "HEAD", *, digest_length: int = 32) -> tuple[str, str]:
    """Return ``(commit, unique_id)`` for a working-copy subpath.

    ``unique_id`` is ``{prefix digest}-{commit}``: it names both the
    cached archive and the GIT version tag.
    """
    commit = resolve_commit(directory, commit_id)
    prefix = repository_prefix(directory)
    return commit, f"{hash_text(prefix, digest_length)}-{commit}"
