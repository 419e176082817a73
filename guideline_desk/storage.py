"""
Content storage abstraction for Guideline Desk.

Holds submitted payloads (private store) and published documents (public
store). Stores are addressed by URI:

    file:///var/lib/guideline-desk/contributions   local filesystem
    memory://                                      process-local, for tests
    s3://bucket/prefix                             not implemented yet

Keys are relative, slash-separated paths such as
``contributions/contrib_ab12/r1-9f3c2a7e.json``.
"""
from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict
from urllib.parse import urlparse


class ContentNotFound(KeyError):
    """No object stored under the requested key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(key)


class ContentExists(Exception):
    """An exclusive create found an object already stored under the key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object already exists: {key}")


class ContentStore(ABC):
    """Abstract base class for content storage."""

    @abstractmethod
    def put(self, key: str, data: bytes) -> None:
        """Write bytes under ``key``, replacing any existing object."""
        pass

    @abstractmethod
    def create(self, key: str, data: bytes) -> None:
        """Write bytes under ``key`` only if nothing is stored there.

        Raises:
            ContentExists: If the key is already taken.
        """
        pass

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Read the object under ``key``.

        Raises:
            ContentNotFound: If nothing is stored under the key.
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove the object under ``key``. Returns False if it was absent."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def get_uri(self, key: str = "") -> str:
        """Get the full URI of ``key`` (or of the store root)."""
        pass

    def put_json(self, key: str, data: Dict[str, Any]) -> None:
        self.put(key, json.dumps(data, indent=2, default=str).encode("utf-8"))

    def get_json(self, key: str) -> Dict[str, Any]:
        return json.loads(self.get(key).decode("utf-8"))


class FileContentStore(ContentStore):
    """Local filesystem content store (file:// URIs)."""

    def __init__(self, base_path: Path):
        """Initialize with the root directory of the store.

        Args:
            base_path: Directory under which all keys are resolved
        """
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        full_path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in full_path.parents:
            raise ValueError(f"Key escapes store root: {key}")
        return full_path

    def put(self, key: str, data: bytes) -> None:
        full_path = self._resolve(key)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = full_path.with_name(full_path.name + ".tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(full_path)

    def create(self, key: str, data: bytes) -> None:
        full_path = self._resolve(key)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(full_path, "xb") as f:
                f.write(data)
        except FileExistsError:
            raise ContentExists(key) from None

    def get(self, key: str) -> bytes:
        try:
            return self._resolve(key).read_bytes()
        except FileNotFoundError:
            raise ContentNotFound(key) from None

    def delete(self, key: str) -> bool:
        try:
            self._resolve(key).unlink()
        except FileNotFoundError:
            return False
        return True

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def get_uri(self, key: str = "") -> str:
        path = self.base_path.resolve()
        return f"file://{path / key}" if key else f"file://{path}"


class MemoryContentStore(ContentStore):
    """In-process content store (memory:// URIs)."""

    def __init__(self) -> None:
        self._objects: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._objects[key] = data

    def create(self, key: str, data: bytes) -> None:
        with self._lock:
            if key in self._objects:
                raise ContentExists(key)
            self._objects[key] = data

    def get(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._objects[key]
            except KeyError:
                raise ContentNotFound(key) from None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._objects.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._objects

    def keys(self):
        with self._lock:
            return sorted(self._objects)

    def get_uri(self, key: str = "") -> str:
        return f"memory://{key}"


def create_content_store(uri: str) -> ContentStore:
    """Factory function to create the appropriate ContentStore from a URI.

    Args:
        uri: Store URI (e.g., "file:///var/lib/guideline-desk/content")

    Returns:
        ContentStore instance for the URI scheme

    Raises:
        ValueError: If URI scheme is not supported
    """
    parsed = urlparse(uri)

    if parsed.scheme == "file":
        # file://./var/content keeps the relative path in netloc
        path = f"{parsed.netloc}{parsed.path}" if parsed.netloc else parsed.path
        return FileContentStore(Path(path))

    elif parsed.scheme == "memory":
        return MemoryContentStore()

    elif parsed.scheme == "s3":
        raise NotImplementedError(f"S3 storage not yet implemented. URI: {uri}")

    else:
        raise ValueError(
            f"Unsupported storage scheme: {parsed.scheme}. "
            f"Supported: file://, memory://, s3:// (planned)"
        )


@lru_cache(maxsize=None)
def get_content_store(uri: str) -> ContentStore:
    """Process-wide store for ``uri``.

    memory:// stores only make sense shared, so every caller asking for the
    same URI gets the same instance.
    """
    return create_content_store(uri)
