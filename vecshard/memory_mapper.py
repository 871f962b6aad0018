"""Read-only memory mapping of a whole file."""

from __future__ import annotations

import logging
import mmap
import os

logger = logging.getLogger(__name__)


class MemoryMapper:
    """Maps a file read-only; ``buf`` exposes its bytes and ``file_size`` its length."""

    def __init__(self, filename) -> None:
        self.filename = os.fspath(filename)
        with open(self.filename, "rb") as fh:
            self.file_size = os.fstat(fh.fileno()).st_size
            if self.file_size:
                self._map: mmap.mmap | None = mmap.mmap(
                    fh.fileno(), 0, access=mmap.ACCESS_READ
                )
            else:
                self._map = None
        logger.info("File Size: %d", self.file_size)
        self.buf = memoryview(self._map if self._map is not None else b"")
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the mapping has been released."""
        return self._closed

    def close(self) -> None:
        """Release the mapping; calling it again does nothing."""
        if self._closed:
            return
        self.buf.release()
        if self._map is not None:
            self._map.close()
            self._map = None
        self._closed = True

    def __enter__(self) -> MemoryMapper:
        return self

    def __exit__(self, *args) -> None:
        self.close()