"""Keyed document storage with conflict-aware upsert.

Backends report an existing immutable object at the key as
StorageConflictError. `upsert_document` resolves that by deleting the object
and writing once more; a second conflict is fatal. Every other storage error
propagates untouched, without delete or retry.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

import httpx

from .config import StorageConfig
from .errors import StorageConflictError, StorageError, StorageTransientError

logger = logging.getLogger("hourbill.store")

PDF_CONTENT_TYPE = "application/pdf"

# WebDAV answers that mean "an object is there and may not be replaced".
CONFLICT_STATUSES = frozenset({412, 423})


@dataclass(frozen=True)
class StoredDocument:
    key: str
    size: int
    content_type: str
    replaced: bool = False  # True when an existing object was deleted first


def document_key(invoice_id: str, ext: str = "pdf") -> str:
    """Deterministic storage key for an invoice document."""
    if not invoice_id or "/" in invoice_id or "\\" in invoice_id or invoice_id in (".", ".."):
        raise ValueError(f"Invalid invoice id for storage key: {invoice_id!r}")
    return f"invoices/{invoice_id}.{ext}"


class DocumentStore:
    """Interface for keyed binary storage."""

    def put(self, key: str, data: bytes, content_type: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def upsert_document(
    store: DocumentStore,
    key: str,
    data: bytes,
    content_type: str = PDF_CONTENT_TYPE,
) -> StoredDocument:
    """Write `data` at `key`, replacing an existing immutable object.

    On a conflict the existing object is deleted and the write is retried
    exactly once.
    """
    try:
        store.put(key, data, content_type)
    except StorageConflictError:
        logger.info("Object exists at %s; deleting and retrying once", key)
        store.delete(key)
        try:
            store.put(key, data, content_type)
        except StorageConflictError:
            logger.error("Conflict persists at %s after delete", key)
            raise
        return StoredDocument(key=key, size=len(data), content_type=content_type, replaced=True)

    return StoredDocument(key=key, size=len(data), content_type=content_type)


class LocalStore(DocumentStore):
    """Filesystem store. Objects are immutable: writes never overwrite."""

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.debug("LocalStore at %s", self.base_path)

    def _path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise StorageError(f"Key escapes store root: {key}", key=key)
        return path

    def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write a temp file, then hard-link it into place: the object
            # appears complete or not at all, and an existing one is kept.
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.link(tmp_name, path)
            finally:
                os.unlink(tmp_name)
        except FileExistsError as e:
            raise StorageConflictError(f"Object already exists: {key}", key=key) from e
        except OSError as e:
            raise StorageError(f"Write failed for {key}: {e}", key=key) from e
        logger.debug("Stored %s (%d bytes)", key, len(data))

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Delete failed for {key}: {e}", key=key) from e
        logger.debug("Deleted %s", key)


class WebDavStore(DocumentStore):
    """Nextcloud WebDAV store under /remote.php/dav/files/<user>/<root>/.

    Owns its httpx.Client; close it (or use as a context manager) when done.
    """

    def __init__(
        self,
        url: str,
        username: str,
        password: str,
        root: str = "hourbill",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.root = root.strip("/")
        self._dav_base = f"{url.rstrip('/')}/remote.php/dav/files/{username}"
        self._client = httpx.Client(
            auth=(username, password),
            timeout=timeout,
            transport=transport,
        )
        self._collections: set[str] = set()

    def _path(self, key: str) -> str:
        return f"{self.root}/{key}" if self.root else key

    def _url(self, path: str) -> str:
        return f"{self._dav_base}/{path}"

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, self._url(path), **kwargs)
        except httpx.TransportError as e:
            raise StorageTransientError(f"WebDAV {method} {path} failed: {e}", key=path) from e

    @staticmethod
    def _check(resp: httpx.Response, method: str, key: str) -> None:
        status = resp.status_code
        if resp.is_success:
            return
        message = f"WebDAV {method} {key} returned {status}"
        if status in CONFLICT_STATUSES:
            raise StorageConflictError(message, key=key, status_code=status)
        if status == 429 or status >= 500:
            raise StorageTransientError(message, key=key, status_code=status)
        raise StorageError(message, key=key, status_code=status)

    def _ensure_collections(self, path: str) -> None:
        parts = path.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            collection = "/".join(parts[:i])
            if collection in self._collections:
                continue
            resp = self._request("MKCOL", collection)
            # 405: collection already exists
            if resp.status_code != 405:
                self._check(resp, "MKCOL", collection)
            self._collections.add(collection)

    def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        self._ensure_collections(path)
        resp = self._request("PUT", path, content=data, headers={"Content-Type": content_type})
        self._check(resp, "PUT", key)
        logger.debug("Uploaded %s (%d bytes, status %d)", key, len(data), resp.status_code)

    def delete(self, key: str) -> None:
        resp = self._request("DELETE", self._path(key))
        if resp.status_code == 404:
            logger.debug("Delete %s: already absent", key)
            return
        self._check(resp, "DELETE", key)
        logger.debug("Deleted %s", key)

    def close(self) -> None:
        self._client.close()


def make_store(config: StorageConfig) -> DocumentStore:
    """Build the configured store."""
    if config.backend == "local":
        return LocalStore(config.local_path)
    if config.backend == "webdav":
        if not config.url or not config.username:
            raise ValueError("WebDAV storage requires url and username")
        return WebDavStore(
            url=config.url,
            username=config.username,
            password=config.password,
            root=config.root,
            timeout=config.timeout,
        )
    raise ValueError(f"Unknown storage backend: {config.backend}")
