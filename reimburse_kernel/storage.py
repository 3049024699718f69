"""
Object storage capability.

Contract:
    ``ObjectStore`` is the opaque byte store used for receipt originals and
    generated export artifacts: ``upload(key, data, content_type)`` returns
    the stored size, ``download(key)`` returns the bytes or raises a
    ``StorageError`` (``ObjectNotFoundError`` for an unknown key).  Durability is the backend's responsibility;
    the key layout is defined here.

Implementations:
    - ``InMemoryObjectStore`` -- process-local dict, for tests and the
      synchronous path in single-process deployments.
    - ``LocalObjectStore`` -- one file per key under a root directory.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol, runtime_checkable
from uuid import UUID

from reimburse_kernel.exceptions import (
    ConfigurationError,
    InvalidStorageKeyError,
    ObjectNotFoundError,
    ObjectUnreadableError,
)
from reimburse_kernel.logging_config import get_logger

logger = get_logger("storage")


@dataclass(frozen=True)
class UploadResult:
    key: str
    size: int
    content_type: str


@runtime_checkable
class ObjectStore(Protocol):
    """Byte storage keyed by opaque strings."""

    def upload(self, key: str, data: bytes, content_type: str) -> UploadResult: ...

    def download(self, key: str) -> bytes: ...


# =============================================================================
# Key layout
# =============================================================================


def export_storage_key(export_id: UUID | str, extension: str) -> str:
    """Key of a generated export artifact."""
    return f"exports/{export_id}.{extension}"


def receipt_storage_key(
    user_id: UUID | str, receipt_id: UUID | str, extension: str | None,
) -> str:
    """Key of an uploaded receipt original."""
    return f"receipts/{user_id}/{receipt_id}.{extension or 'bin'}"


# =============================================================================
# Implementations
# =============================================================================


class InMemoryObjectStore:
    """Thread-safe in-process object store."""

    def __init__(self) -> None:
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.Lock()

    def upload(self, key: str, data: bytes, content_type: str) -> UploadResult:
        with self._lock:
            self._objects[key] = (bytes(data), content_type)
        logger.debug("object_uploaded", extra={"key": key, "size": len(data)})
        return UploadResult(key=key, size=len(data), content_type=content_type)

    def download(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._objects[key][0]
            except KeyError:
                raise ObjectNotFoundError(key) from None

    def content_type(self, key: str) -> str:
        with self._lock:
            try:
                return self._objects[key][1]
            except KeyError:
                raise ObjectNotFoundError(key) from None

    def __contains__(self, key: str) -> bool:
        return key in self._objects

    def __len__(self) -> int:
        return len(self._objects)


class LocalObjectStore:
    """Filesystem-backed object store rooted at ``root``."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)

    def _path_for(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or key.startswith("/") or ".." in parts:
            raise InvalidStorageKeyError(key)
        return self._root.joinpath(*parts)

    def upload(self, key: str, data: bytes, content_type: str) -> UploadResult:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".part")
        tmp.write_bytes(data)
        tmp.replace(path)
        logger.debug("object_uploaded", extra={"key": key, "size": len(data)})
        return UploadResult(key=key, size=len(data), content_type=content_type)

    def download(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise ObjectNotFoundError(key) from None
        except OSError as exc:
            raise ObjectUnreadableError(key, exc.strerror or type(exc).__name__) from exc


def build_object_store(backend: str, root: str | None = None) -> ObjectStore:
    """Create the object store named by configuration.

    Raises:
        ConfigurationError: For an unknown backend or a ``local`` backend
            without a root directory.
    """
    if backend == "memory":
        return InMemoryObjectStore()
    if backend == "local":
        if not root:
            raise ConfigurationError("storage.root is required for the local backend")
        return LocalObjectStore(root)
    raise ConfigurationError(f"Unknown storage backend: {backend!r}")
