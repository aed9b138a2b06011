from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import os
import tempfile
import time
from pathlib import Path, PurePosixPath
from typing import Callable, Optional
from urllib.parse import quote, urlencode

from tadone.domain.common.errors import NotFoundError, ValidationError
from tadone.domain.tasks.ports import BlobStore

logger = logging.getLogger(__name__)


class FsBlobStore(BlobStore):
    """
    Audio blobs as files under `root`, keyed by relative posix paths
    (e.g. "audio/<owner>/<task>.ogg").

    Read URLs are `<url_base>/<key>?expires=<unix>&sig=<hmac-sha256>`; whatever
    serves `url_base` checks them with `verify_signed_url`.
    """

    def __init__(
        self,
        root: str | Path,
        url_base: str,
        secret: str,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        self._root = Path(root)
        self._url_base = url_base.rstrip("/")
        self._secret = secret.encode("utf-8")
        self._time = time_fn

    def path_for(self, key: str) -> Path:
        pure = PurePosixPath(key)
        if not key or pure.is_absolute() or ".." in pure.parts:
            raise ValidationError(f"Invalid blob key: {key!r}")
        return self._root.joinpath(*pure.parts)

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self.path_for(key)
        await asyncio.to_thread(self._write_atomic, path, data)
        logger.debug("Blob stored key=%s bytes=%s type=%s", key, len(data), content_type)

    async def get(self, key: str) -> bytes:
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise NotFoundError("Audio file not found.") from None

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        # missing blob is fine: delete is retried after partial failures
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.debug("Blob deleted key=%s", key)

    def signed_read_url(self, key: str, ttl_seconds: int) -> str:
        self.path_for(key)
        expires = int(self._time()) + int(ttl_seconds)
        query = urlencode({"expires": expires, "sig": self._sign(key, expires)})
        return f"{self._url_base}/{quote(key)}?{query}"

    def verify_signed_url(self, key: str, expires: int, sig: str, now: Optional[float] = None) -> bool:
        now = self._time() if now is None else now
        if int(expires) < now:
            return False
        return hmac.compare_digest(self._sign(key, int(expires)), sig or "")

    def _sign(self, key: str, expires: int) -> str:
        msg = f"{key}\n{expires}".encode("utf-8")
        return hmac.new(self._secret, msg, hashlib.sha256).hexdigest()

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
