"""Local bucket storage with signed download URLs.

Each bucket is a directory under the storage root. Object paths are
relative, slash-separated and may not escape their bucket.

Signed URL format::

    /storage/{bucket}/{path}?expires={unix}&token={hex_hmac}

The HMAC covers ``bucket``, ``path`` and ``expires`` so a link cannot be
re-pointed at another object or have its lifetime extended.
"""

import hashlib
import hmac
import logging
import time
from pathlib import Path
from urllib.parse import quote

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised for invalid object paths or conflicting writes."""


class LocalStorage:
    """Directory-backed object store."""

    def __init__(self, root: Path, secret_key: str) -> None:
        self.root = Path(root)
        self._secret = secret_key

    # ── Paths ────────────────────────────────────────────────────────────────

    def _resolve(self, bucket: str, path: str) -> Path:
        if not bucket or "/" in bucket or bucket in (".", ".."):
            raise StorageError(f"Invalid bucket name: {bucket!r}")
        if not path or path.startswith("/") or "\\" in path:
            raise StorageError(f"Invalid object path: {path!r}")
        bucket_dir = (self.root / bucket).resolve()
        target = (bucket_dir / path).resolve()
        if bucket_dir != target and bucket_dir not in target.parents:
            raise StorageError(f"Object path escapes bucket: {path!r}")
        return target

    def exists(self, bucket: str, path: str) -> bool:
        return self._resolve(bucket, path).is_file()

    def open(self, bucket: str, path: str) -> Path:
        """Return the filesystem path of an existing object.

        Raises:
            FileNotFoundError: If the object does not exist.
        """
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise FileNotFoundError(f"{bucket}/{path}")
        return target

    # ── Writes ───────────────────────────────────────────────────────────────

    def upload(self, bucket: str, path: str, data: bytes) -> str:
        """Store *data* at ``bucket/path``. Existing objects are never overwritten.

        Returns:
            The object path, for storing alongside the database row.
        """
        target = self._resolve(bucket, path)
        if target.exists():
            raise StorageError(f"Object already exists: {bucket}/{path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "xb") as fh:
            fh.write(data)
        logger.info("storage upload bucket=%s path=%s bytes=%d", bucket, path, len(data))
        return path

    def remove(self, bucket: str, paths: list[str]) -> int:
        """Delete objects; missing ones are ignored. Returns the number removed."""
        removed = 0
        for path in paths:
            target = self._resolve(bucket, path)
            try:
                target.unlink()
                removed += 1
            except FileNotFoundError:
                logger.warning("storage remove missing bucket=%s path=%s", bucket, path)
        return removed

    # ── Signed URLs ──────────────────────────────────────────────────────────

    def _sign(self, bucket: str, path: str, expires: int) -> str:
        message = f"{bucket}/{path}:{expires}"
        return hmac.new(self._secret.encode(), message.encode(), hashlib.sha256).hexdigest()

    def create_signed_url(self, bucket: str, path: str, expires_in: int = 60) -> str:
        """Return a relative URL that serves the object for *expires_in* seconds."""
        self._resolve(bucket, path)
        expires = int(time.time()) + expires_in
        token = self._sign(bucket, path, expires)
        return f"/storage/{quote(bucket)}/{quote(path)}?expires={expires}&token={token}"

    def verify_signed_url(self, bucket: str, path: str, expires: int, token: str) -> bool:
        """True if *token* was issued for this object and has not expired."""
        if time.time() > expires:
            return False
        expected = self._sign(bucket, path, expires)
        return hmac.compare_digest(token, expected)
