"""
blobs/store.py -- Filesystem-backed blob store for uploaded documents.

put(key, data) writes the bytes under the configured root and returns the
public URL the document can be fetched from. The URL is what the rest of the
system stores; nothing else reads the files back.

Usage:
    blobs = LocalBlobStore(Path("uploads"), "https://cdn.example.org/uploads")
    url = blobs.put("verifications/passport.png", data)

Security: keys are resolved against the root and rejected if they escape it
("../", absolute paths). Callers still control the file name, so an existing
key is overwritten, matching an object store's PUT.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

logger = logging.getLogger("memberauth.blobs")


class BlobStore(Protocol):
    def put(self, key: str, data: bytes) -> str: ...


class LocalBlobStore:
    def __init__(self, root: Path, base_url: str) -> None:
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        """Map key to a file path under root.

        Each "/"-separated segment must be a plain file name; empty, "." and
        ".." segments are rejected, as are backslashes. The resolved path must
        equal the literal join (so symlinks cannot redirect it) and must not
        be an existing directory.
        """
        segments = key.split("/")
        if "\\" in key or any(seg in ("", ".", "..") for seg in segments):
            raise ValueError(f"Invalid blob key: {key!r}")
        expected = self.root.joinpath(*segments)
        path = expected.resolve()
        if path != expected or self.root not in path.parents:
            raise ValueError(f"Blob key escapes the storage root: {key!r}")
        if path.is_dir():
            raise ValueError(f"Blob key names a directory: {key!r}")
        return path

    def put(self, key: str, data: bytes) -> str:
        """Store data under key and return its public URL.

        Raises ValueError for keys outside the root and OSError if the write fails.
        """
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        rel = path.relative_to(self.root).as_posix()
        logger.info("Stored blob %s (%d bytes)", rel, len(data))
        return f"{self.base_url}/{quote(rel)}"
