"""
Local filesystem backend.

Every path handed out by this module has been canonicalised and checked to
stay under the storage root. Blocking calls run in the default executor so the
event loop only suspends on them.
"""

import asyncio
import os
import shutil
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from common.errors import ConflictError, PathTraversalError
from common.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _iso_timestamp(seconds: float) -> str:
    return (
        datetime.fromtimestamp(seconds, tz=timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


class FileStat(BaseModel):
    """Metadata for one file or directory."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    is_directory: bool = Field(alias="isDirectory")
    size: int
    created: str
    modified: str

    @classmethod
    def from_path(cls, path: Path, is_directory: Optional[bool] = None) -> "FileStat":
        st = path.stat()
        if is_directory is None:
            is_directory = path.is_dir()
        # st_birthtime is only reported on some platforms
        created = getattr(st, "st_birthtime", None) or st.st_ctime
        return cls(
            name=path.name,
            is_directory=is_directory,
            size=st.st_size,
            created=_iso_timestamp(created),
            modified=_iso_timestamp(st.st_mtime),
        )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class _PathLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class LocalStorage:
    """Filesystem primitives confined to ``root``."""

    def __init__(
        self,
        root: str,
        temp_folder_name: str = "temp",
        serialize_paths: bool = True,
    ):
        self.root = Path(root).resolve()
        self.temp_folder_name = temp_folder_name
        self.serialize_paths = serialize_paths
        self._locks: Dict[str, _PathLock] = {}

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    def resolve(self, *parts: Optional[str], allow_root: bool = True) -> Path:
        """
        Compose ``root / part / part ...`` and canonicalise it.

        The parent directories are resolved but the final name is kept, so a
        symlink names the link rather than its target. Leading separators are
        treated as relative to the root. Paths that name an entry pass
        allow_root=False so the root itself cannot be targeted.

        Raises:
            PathTraversalError: the result is outside the root.
        """
        relative: List[str] = []
        for part in parts:
            if not part:
                continue
            if "\x00" in part:
                raise PathTraversalError()
            relative.append(part.lstrip("/\\"))

        joined = self.root.joinpath(*relative)
        if not relative or joined.name in ("", ".."):
            candidate = joined.resolve()
        else:
            # The final component is not followed, so a link is acted on as an entry
            candidate = joined.parent.resolve() / joined.name

        # Whatever a link points at must stay under the root too
        target = candidate.resolve()
        inside = (
            self.root in candidate.parents or (allow_root and candidate == self.root)
        ) and (self.root in target.parents or target == self.root)
        if not inside:
            logger.warning(event="path_traversal_rejected", parts=list(parts))
            raise PathTraversalError()
        return candidate

    @asynccontextmanager
    async def hold(self, *paths: Path) -> AsyncIterator[None]:
        """
        Exclusive access to ``paths`` for the duration of the block.

        Locks are taken in sorted order and released on every exit path. A
        no-op when path serialization is disabled.
        """
        if not self.serialize_paths:
            yield
            return

        keys = sorted({str(path) for path in paths})
        registered: List[str] = []
        acquired: List[str] = []
        try:
            for key in keys:
                entry = self._locks.get(key)
                if entry is None:
                    entry = self._locks[key] = _PathLock()
                entry.users += 1
                registered.append(key)
                await entry.lock.acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].lock.release()
            for key in registered:
                entry = self._locks[key]
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    async def ensure_root(self) -> None:
        await self._run(partial(self.root.mkdir, parents=True, exist_ok=True))

    async def exists(self, path: Path) -> bool:
        return await self._run(os.path.lexists, path)

    def _list_dir_sync(self, path: Path) -> List[FileStat]:
        with os.scandir(path) as it:
            entries = sorted(it, key=lambda entry: entry.name)
        # A link is reported by its own type, not its target's
        return [
            FileStat.from_path(Path(entry.path), is_directory=entry.is_dir(follow_symlinks=False))
            for entry in entries
        ]

    async def list_dir(self, path: Path) -> List[FileStat]:
        """Entries of a directory, sorted by name."""
        return await self._run(self._list_dir_sync, path)

    async def stat(self, path: Path) -> FileStat:
        return await self._run(FileStat.from_path, path)

    async def read_bytes(self, path: Path) -> bytes:
        return await self._run(path.read_bytes)

    def _write_bytes_sync(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def write_bytes(self, path: Path, data: bytes) -> None:
        """Write ``data``, creating parent directories as needed."""
        await self._run(self._write_bytes_sync, path, data)

    def _remove_sync(self, path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()

    async def remove(self, path: Path) -> None:
        """Delete a file, or a directory recursively."""
        await self._run(self._remove_sync, path)

    async def make_dirs(self, path: Path) -> None:
        """Recursive create; an existing directory is not an error."""
        await self._run(partial(path.mkdir, parents=True, exist_ok=True))

    def _rename_sync(self, source: Path, destination: Path) -> None:
        if os.path.lexists(destination):
            raise ConflictError()
        os.rename(source, destination)

    async def rename(self, source: Path, destination: Path) -> None:
        """
        Rename without replacing.

        Raises:
            ConflictError: ``destination`` already exists.
        """
        await self._run(self._rename_sync, source, destination)

    def _clean_temp_sync(self) -> int:
        temp_path = self.root / self.temp_folder_name
        if not temp_path.is_dir():
            return 0

        deleted = 0
        for entry in temp_path.iterdir():
            self._remove_sync(entry)
            deleted += 1
        return deleted

    async def clean_temp_folder(self) -> int:
        """Empty the temp folder. Returns the number of removed entries."""
        return await self._run(self._clean_temp_sync)
