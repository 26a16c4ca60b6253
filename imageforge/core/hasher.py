"""Content hashing for version tags and cache keys.

Digests cover file *contents* only.  Paths, timestamps and permissions
never contribute, so identical trees hash identically on any host.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

_CHUNK_SIZE = 1024 * 1024


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def _truncate(digest: str, truncate_length: int | None) -> str:
    if truncate_length is None:
        return digest
    if truncate_length <= 0:
        raise ValueError(f"truncate_length must be positive, got {truncate_length}")
    return digest[:truncate_length]


def hash_bytes(content: bytes, truncate_length: int | None = None) -> str:
    """SHA-256 hex digest of ``content``, optionally truncated."""
    return _truncate(sha256_hex(content), truncate_length)


def hash_text(text: str, truncate_length: int | None = None) -> str:
    """Hash the UTF-8 encoding of ``text``."""
    return hash_bytes(text.encode("utf-8"), truncate_length)


def _update_with_file(path: Path, hasher: "hashlib._Hash") -> None:
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            hasher.update(chunk)


def _update_with_tree(path: Path, hasher: "hashlib._Hash") -> None:
    # Lexical order at each level; symlinks are skipped entirely.
    with os.scandir(path) as entries:
        ordered = sorted(entries, key=lambda entry: entry.name)
    for entry in ordered:
        child = Path(entry.path)
        if entry.is_file(follow_symlinks=False):
            _update_with_file(child, hasher)
        elif entry.is_dir(follow_symlinks=False):
            _update_with_tree(child, hasher)


def hash_file(path: Path | str, truncate_length: int | None = None) -> str:
    """Hash the contents of a single regular file."""
    hasher = hashlib.sha256()
    _update_with_file(Path(path), hasher)
    return _truncate(hasher.hexdigest(), truncate_length)


def hash_tree(path: Path | str, truncate_length: int | None = None) -> str:
    """Hash every regular file under ``path`` in a stable traversal order.

    ``path`` may also be a single file.  A missing or unreadable path
    raises ``OSError``; there is no retry.
    """
    root = Path(path)
    if root.is_file():
        return hash_file(root, truncate_length)
    if not root.is_dir():
        raise FileNotFoundError(f"Cannot hash missing path: {root}")

    hasher = hashlib.sha256()
    _update_with_tree(root, hasher)
    return _truncate(hasher.hexdigest(), truncate_length)
