"""
=============================================================================
FILE STORAGE
=============================================================================

Where downloads come from. The delivery handler only knows this
interface:

    storage.find_file(file_id) → StoredFile | None

    StoredFile
      ├─ descriptor   ResourceDescriptor (size, hash, mtime, name, type)
      └─ open()       a fresh binary stream, closed by whoever opened it

=============================================================================
FILESYSTEM STORAGE
=============================================================================

    storage/
    ├── reports/2024.pdf     id = uuid5(NAMESPACE_URL, "reports/2024.pdf")
    └── logo.png             id = uuid5(NAMESPACE_URL, "logo.png")

Ids are derived from the relative path, so the same tree gets the same
ids after a restart and a link handed out yesterday still works.

Descriptors are built when the tree is scanned, hashing each file once,
and kept together with the file's (size, mtime_ns). Lookups only stat
the file. When size or mtime changed since the scan, the file is hashed
again and gets a new descriptor with a new ETag.

=============================================================================
"""

import hashlib
import logging
import os
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Callable, Dict, List, Optional, Union

from .delivery.descriptor import (
    DEFAULT_HASH_CHUNK_SIZE,
    MediaType,
    ResourceDescriptor,
    describe_file,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredFile:
    """A found file: its metadata and a way to read it."""

    descriptor: ResourceDescriptor
    open: Callable[[], BinaryIO]


class FileStorage(ABC):
    """Lookup of stored files by id."""

    @abstractmethod
    def find_file(self, file_id: str) -> Optional[StoredFile]:
        """
        Return the file with this id, or None if there is none.

        May raise on I/O failure; absence is not an error.
        """
        pass


def file_id_for(relative_path: str) -> str:
    """Stable id for a path relative to the storage root."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, relative_path))


def _signature(path: Path) -> tuple[int, int]:
    stat = path.stat()
    return (stat.st_size, stat.st_mtime_ns)


class FileSystemStorage(FileStorage):
    """
    Serves every regular file under a root directory.

    Args:
        root_dir: Directory to serve
        hash_chunk_size: Read size used when hashing files
    """

    def __init__(self, root_dir: Union[str, Path], hash_chunk_size: int = DEFAULT_HASH_CHUNK_SIZE):
        self.root_dir = Path(root_dir).resolve()
        if not self.root_dir.is_dir():
            raise ValueError(f"Storage directory does not exist: {self.root_dir}")

        self.hash_chunk_size = hash_chunk_size
        self._lock = threading.Lock()
        self._index: Dict[str, Path] = {}
        self._descriptors: Dict[str, tuple[tuple[int, int], ResourceDescriptor]] = {}

        self.scan()

    def scan(self) -> int:
        """
        Re-read the directory tree and describe every file in it.
        Returns the number of files indexed.

        Files unchanged since the previous scan keep their descriptor;
        new and changed files are hashed here, not on first request.
        """
        with self._lock:
            previous = dict(self._descriptors)

        index: Dict[str, Path] = {}
        descriptors: Dict[str, tuple[tuple[int, int], ResourceDescriptor]] = {}
        hashed = 0

        for dirpath, dirnames, filenames in os.walk(self.root_dir):
            dirnames.sort()
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                if not path.is_file():
                    continue
                relative = path.relative_to(self.root_dir).as_posix()
                file_id = file_id_for(relative)

                try:
                    signature = _signature(path)
                    cached = previous.get(file_id)
                    if cached is None or cached[0] != signature:
                        cached = (signature, describe_file(file_id, path, self.hash_chunk_size))
                        hashed += 1
                except OSError as e:
                    logger.warning(f"Skipping {relative}: {e}")
                    continue

                index[file_id] = path
                descriptors[file_id] = cached

        with self._lock:
            self._index = index
            self._descriptors = descriptors

        logger.info(f"Indexed {len(index)} files under {self.root_dir} ({hashed} hashed)")
        return len(index)

    def files(self) -> List[tuple[str, str]]:
        """(id, relative path) for every indexed file."""
        with self._lock:
            items = list(self._index.items())
        return sorted(
            ((file_id, path.relative_to(self.root_dir).as_posix()) for file_id, path in items),
            key=lambda item: item[1],
        )

    def find_file(self, file_id: str) -> Optional[StoredFile]:
        with self._lock:
            path = self._index.get(file_id)
            cached = self._descriptors.get(file_id)

        if path is None:
            logger.debug(f"Lookup {file_id}: unknown id")
            return None

        try:
            signature = _signature(path)
        except FileNotFoundError:
            logger.debug(f"Lookup {file_id}: {path} is gone")
            with self._lock:
                self._index.pop(file_id, None)
                self._descriptors.pop(file_id, None)
            return None

        if cached is not None and cached[0] == signature:
            descriptor = cached[1]
        else:
            descriptor = describe_file(file_id, path, self.hash_chunk_size)
            with self._lock:
                self._descriptors[file_id] = (signature, descriptor)
            logger.debug(f"Lookup {file_id}: hashed {path}")

        return StoredFile(descriptor=descriptor, open=partial(open, path, "rb"))


class MemoryStorage(FileStorage):
    """
    Files held in memory. For tests and for embedding small fixed files.

        storage = MemoryStorage()
        storage.add("42", "hello.txt", b"hello")
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._files: Dict[str, tuple[ResourceDescriptor, bytes]] = {}

    def add(
        self,
        file_id: str,
        name: str,
        content: bytes,
        last_modified: Optional[datetime] = None,
        media_type: Optional[Union[MediaType, str]] = None,
    ) -> ResourceDescriptor:
        """
        Store content under file_id, replacing any previous file.

        The media type is guessed from the name when not given.
        """
        if isinstance(media_type, str):
            media_type = MediaType.parse(media_type)
        elif media_type is None:
            media_type = MediaType.guess(name)

        descriptor = ResourceDescriptor(
            id=file_id,
            size=len(content),
            original_name=name,
            content_hash=hashlib.sha512(content).hexdigest(),
            last_modified=last_modified or datetime.now(timezone.utc),
            media_type=media_type,
        )

        with self._lock:
            self._files[file_id] = (descriptor, bytes(content))
        return descriptor

    def remove(self, file_id: str) -> None:
        with self._lock:
            self._files.pop(file_id, None)

    def find_file(self, file_id: str) -> Optional[StoredFile]:
        with self._lock:
            entry = self._files.get(file_id)

        if entry is None:
            return None

        descriptor, content = entry
        return StoredFile(descriptor=descriptor, open=partial(BytesIO, content))
