"""Content-addressed build-context archives.

Storage layout: {cache_dir}/{uniqueID}.tar.gz where uniqueID is always
``{path digest}-{commit or cache-id digest}``.

Archives are written to a temporary name, validated with ``tar -tzf``
and only then renamed into place, so the canonical cache path never
holds a corrupt archive.  An archive found at its canonical path is
reused as-is.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from imageforge.config import ForgeConfig
from imageforge.core.commands import CommandRunner, run_command
from imageforge.core.errors import CommandError, ConfigurationError, SourceArchiveError
from imageforge.core.gitrepo import DETERMINISTIC_ENV, archive_commit, git_unique_id
from imageforge.core.hasher import hash_text

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"


class SourceArchive:
    """A build-context tarball on disk.

    Parameters
    ----------
    path:
        Location of the archive in the cache directory.
    unique_id:
        Cache key the archive is stored under.
    commit:
        Resolved commit for git archives, ``None`` for directory snapshots.
    single_use:
        Whether ``clean()`` deletes the file.  Only archives keyed by an
        auto-generated cache id are single-use.
    """

    def __init__(
        self,
        path: Path,
        unique_id: str,
        *,
        commit: str | None = None,
        single_use: bool = False,
    ) -> None:
        self.path = path
        self.unique_id = unique_id
        self.commit = commit
        self._single_use = single_use

    @property
    def single_use(self) -> bool:
        return self._single_use

    def clean(self) -> None:
        """Delete the archive if it is single-use; cached archives stay."""
        if not self._single_use:
            return
        self._single_use = False
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove single-use archive %s: %s", self.path, exc)

    def __repr__(self) -> str:
        return f"SourceArchive({self.path!s}, single_use={self._single_use})"


class CachedArchiveInfo(BaseModel):
    """One entry of the on-disk archive cache."""

    model_config = ConfigDict(frozen=True)

    path: Path
    unique_id: str
    size_bytes: int
    modified_at: datetime


class SourceArchiver:
    """Creates and caches build-context archives.

    Parameters
    ----------
    config:
        Supplies the cache directory, tar binary and digest lengths.
    runner:
        Command runner used for ``tar``; swapped out in tests.
    """

    def __init__(
        self,
        config: ForgeConfig | None = None,
        *,
        runner: CommandRunner = run_command,
    ) -> None:
        self._config = config or ForgeConfig()
        self._runner = runner

    @property
    def cache_dir(self) -> Path:
        path = Path(self._config.cache_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _archive_path(self, unique_id: str) -> Path:
        return self.cache_dir / f"{unique_id}{ARCHIVE_SUFFIX}"

    @staticmethod
    def _temporary_path(final: Path) -> Path:
        # Unique per attempt so concurrent builders never share a temp file.
        return final.with_name(f"{final.name}.{uuid.uuid4().hex}.new")

    # ------------------------------------------------------------------
    # Git commits
    # ------------------------------------------------------------------

    async def from_git(self, directory: Path, commit_id: str = "HEAD") -> SourceArchive:
        """Archive ``directory`` as of ``commit_id``.

        Identical commits always produce identical bytes, so an archive
        already in the cache is reused without re-archiving.
        """
        commit, unique_id = await asyncio.to_thread(
            git_unique_id,
            Path(directory),
            commit_id,
            digest_length=self._config.path_digest_length,
        )
        final = self._archive_path(unique_id)
        if final.exists():
            logger.debug("Reusing cached git archive %s", final)
            return SourceArchive(final, unique_id, commit=commit)

        tmp = self._temporary_path(final)
        try:
            await asyncio.to_thread(archive_commit, Path(directory), commit, tmp)
            await self._validate(tmp)
            tmp.replace(final)
        finally:
            tmp.unlink(missing_ok=True)

        logger.info("Created git archive %s for commit %s", final.name, commit)
        return SourceArchive(final, unique_id, commit=commit)

    # ------------------------------------------------------------------
    # Directory snapshots
    # ------------------------------------------------------------------

    async def from_directory(
        self,
        directory: Path,
        *,
        cache_id: str | None = None,
        exclude: Sequence[str] = (),
    ) -> SourceArchive:
        """Snapshot ``directory`` into a tar.gz, honoring ``exclude`` globs.

        Without a ``cache_id`` a random one is generated and the archive
        is single-use.
        """
        single_use = cache_id is None
        if cache_id is None:
            cache_id = str(uuid.uuid4())

        try:
            canonical = Path(directory).resolve(strict=True)
        except OSError as exc:
            raise ConfigurationError(f"Build directory does not exist: {directory}") from exc
        if not canonical.is_dir():
            raise ConfigurationError(f"Build directory is not a directory: {directory}")

        length = self._config.path_digest_length
        unique_id = f"{hash_text(str(canonical), length)}-{hash_text(cache_id, length)}"
        final = self._archive_path(unique_id)
        if final.exists():
            logger.debug("Reusing cached directory archive %s", final)
            # Someone else created it; it is not ours to delete.
            return SourceArchive(final, unique_id)

        tmp = self._temporary_path(final)
        argv = [
            self._config.tar_binary,
            "-C",
            str(canonical),
            *[f"--exclude={pattern}" for pattern in exclude],
            # Drop host-specific extended attributes (e.g. macOS metadata).
            "--no-xattrs",
            "-zcf",
            str(tmp),
            ".",
        ]
        try:
            try:
                await self._runner(argv, env=DETERMINISTIC_ENV)
            except CommandError as exc:
                raise SourceArchiveError(f"tar failed for {canonical}: {exc}") from exc
            await self._validate(tmp)
            tmp.replace(final)
        finally:
            tmp.unlink(missing_ok=True)

        logger.info("Created directory archive %s from %s", final.name, canonical)
        return SourceArchive(final, unique_id, single_use=single_use)

    # ------------------------------------------------------------------
    # Validation and extraction
    # ------------------------------------------------------------------

    async def _validate(self, path: Path) -> None:
        try:
            await self._runner([self._config.tar_binary, "-tzf", str(path)])
        except CommandError as exc:
            raise SourceArchiveError(f"Archive {path} failed validation: {exc}") from exc

    async def extract(self, archive: SourceArchive, destination: Path) -> Path:
        """Unpack ``archive`` into an existing ``destination`` directory."""
        try:
            await self._runner(
                [self._config.tar_binary, "-zxf", str(archive.path), "-C", str(destination)]
            )
        except CommandError as exc:
            raise SourceArchiveError(
                f"Failed to extract {archive.path} to {destination}: {exc}"
            ) from exc
        return destination

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def list_cached(self) -> list[CachedArchiveInfo]:
        """Return cached archives, oldest first."""
        entries: list[CachedArchiveInfo] = []
        for path in self.cache_dir.glob(f"*{ARCHIVE_SUFFIX}"):
            stat = path.stat()
            entries.append(
                CachedArchiveInfo(
                    path=path,
                    unique_id=path.name.removesuffix(ARCHIVE_SUFFIX),
                    size_bytes=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return sorted(entries, key=lambda entry: entry.modified_at)

    def prune(self, older_than: timedelta) -> list[Path]:
        """Delete cached archives not modified within ``older_than``."""
        cutoff = datetime.now(timezone.utc) - older_than
        removed: list[Path] = []
        for entry in self.list_cached():
            if entry.modified_at < cutoff:
                entry.path.unlink(missing_ok=True)
                removed.append(entry.path)
        if removed:
            logger.info("Pruned %d cached archive(s) from %s", len(removed), self.cache_dir)
        return removed
