"""Object storage for export artifacts."""

import asyncio
import logging
from pathlib import Path, PurePosixPath
from typing import Protocol

from hiringkit.app.config import Settings
from hiringkit.app.errors import StorageError

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    """Protocol for artifact storage implementations."""

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under ``key`` and return a public URL.

        Raises:
            StorageError: If the write fails
        """
        ...

    async def get(self, key: str) -> bytes | None:
        """Read stored bytes, or None if the key is absent."""
        ...


def _validate_key(key: str) -> PurePosixPath:
    path = PurePosixPath(key)
    if path.is_absolute() or ".." in path.parts or not path.parts:
        raise StorageError(f"Invalid storage key: {key!r}")
    return path


class LocalObjectStorage:
    """Filesystem-backed storage served through the downloads route."""

    def __init__(self, root_dir: str, public_base_url: str) -> None:
        self._root = Path(root_dir)
        self._public_base_url = public_base_url.rstrip("/")

    def url_for(self, key: str) -> str:
        return f"{self._public_base_url}/{key}"

    def path_for(self, key: str) -> Path:
        return self._root / _validate_key(key)

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Write the object to disk."""
        path = self.path_for(key)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            raise StorageError(f"Failed to store {key}") from e
        return self.url_for(key)

    async def get(self, key: str) -> bytes | None:
        """Read the object from disk."""
        path = self.path_for(key)
        if not path.is_file():
            return None
        return await asyncio.to_thread(path.read_bytes)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)


class InMemoryObjectStorage:
    """In-memory storage for tests and local development."""

    def __init__(self, public_base_url: str = "memory://exports") -> None:
        self._public_base_url = public_base_url.rstrip("/")
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        _validate_key(key)
        self.objects[key] = (data, content_type)
        return f"{self._public_base_url}/{key}"

    async def get(self, key: str) -> bytes | None:
        stored = self.objects.get(key)
        return stored[0] if stored else None


def get_object_storage(settings: Settings) -> LocalObjectStorage:
    """Local storage rooted at the configured export directory."""
    return LocalObjectStorage(settings.export_storage_dir, settings.export_public_base_url)
