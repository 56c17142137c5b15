"""
Upload bookkeeping: the artifact source, the live session and outcomes.
"""

from __future__ import annotations

import asyncio
import io
import math
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Self


class UploadOutcome(str, Enum):
    """Terminal state of one upload call."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    BUSY = "busy"


@dataclass(frozen=True, slots=True)
class UploadSource:
    """
    A deployment artifact, backed by a file on disk or by bytes in memory.

    Usage:
        source = UploadSource.from_path("project.zip")
        chunk = source.read(0, 1024)
    """

    name: str
    size: int
    path: Path | None = None
    data: bytes | None = field(default=None, repr=False)

    @classmethod
    def from_path(cls, path: str | Path) -> Self:
        resolved = Path(path)
        return cls(name=resolved.name, size=resolved.stat().st_size, path=resolved)

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> Self:
        return cls(name=name, size=len(data), data=data)

    def read(self, offset: int, length: int) -> bytes:
        """Read length bytes starting at offset (fewer at end of file)."""
        if self.data is not None:
            return self.data[offset:offset + length]
        assert self.path is not None
        with self.path.open("rb") as f:
            f.seek(offset)
            return f.read(length)

    def open(self) -> IO[bytes]:
        """Binary stream over the whole artifact. Caller closes it."""
        if self.data is not None:
            return io.BytesIO(self.data)
        assert self.path is not None
        return self.path.open("rb")


def new_upload_id() -> str:
    """Opaque id, unique per upload attempt."""
    return f"upload_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def partition(size: int, chunk_size: int) -> list[tuple[int, int]]:
    """
    Split size bytes into (offset, length) chunks; only the last may be shorter.

    Returns ceil(size / chunk_size) chunks (none for an empty artifact).
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    count = math.ceil(size / chunk_size)
    return [
        (index * chunk_size, min(chunk_size, size - index * chunk_size))
        for index in range(count)
    ]


@dataclass(slots=True)
class UploadSession:
    """
    Bookkeeping of the one in-progress upload of a client.

    Attributes:
        upload_id: Opaque id sent with every request of this upload.
        file_name: Artifact name.
        bytes_total: Artifact size in bytes.
        chunk_size: Chunk size in bytes (0 for a whole-file upload).
        total_chunks: Number of chunks (0 for a whole-file upload).
        restart: Restart the project after deployment.
        succeeded: Chunk indices accepted by the service.
        failed: Chunk indices awaiting the retry phase.
        started_at: Unix timestamp of the start.
        cancel_event: Set once the user cancels.
        in_flight: Request tasks that cancel() aborts.
        token_sent: A state-changing request carried the token.
        chunks: (offset, length) of every chunk, from partition().
    """

    upload_id: str
    file_name: str
    bytes_total: int
    chunk_size: int
    total_chunks: int
    restart: bool = False
    succeeded: set[int] = field(default_factory=set)
    failed: set[int] = field(default_factory=set)
    started_at: float = field(default_factory=time.time)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    in_flight: set[asyncio.Future] = field(default_factory=set)
    token_sent: bool = False
    chunks: list[tuple[int, int]] = field(default_factory=list)

    @classmethod
    def chunked(cls, source: UploadSource, chunk_size: int, restart: bool) -> Self:
        chunks = partition(source.size, chunk_size)
        return cls(
            upload_id=new_upload_id(),
            file_name=source.name,
            bytes_total=source.size,
            chunk_size=chunk_size,
            total_chunks=len(chunks),
            restart=restart,
            chunks=chunks,
        )

    @classmethod
    def whole(cls, source: UploadSource, restart: bool) -> Self:
        return cls(
            upload_id=new_upload_id(),
            file_name=source.name,
            bytes_total=source.size,
            chunk_size=0,
            total_chunks=0,
            restart=restart,
        )

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def percent(self) -> float:
        if not self.total_chunks:
            return 0.0
        return round(len(self.succeeded) / self.total_chunks * 100, 1)

    def chunk_bounds(self, index: int) -> tuple[int, int]:
        """(offset, length) of one chunk."""
        return self.chunks[index]

    def elapsed(self) -> float:
        return time.time() - self.started_at
