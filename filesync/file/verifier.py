"""
Integrity Verifier

Design Decision: When to Hash
=============================

Options Considered:
1. Hash inline while streaming the body
   - No second read, but couples hashing to the network path

2. Hash after the connection closes, on a separate task
   - Connection handling stays a plain copy loop
   - Checksum can lag behind the write

Decision: Deferred task
- Scheduled once a file has been fully written and closed
- Waits a fixed delay (1s) before re-reading the file
- Result is logged only; it is never stored or compared

Tasks are fire-and-forget from the handler's point of view. The
verifier still holds references to them so they survive garbage
collection and can be awaited or cancelled on shutdown.
"""

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Set

import aiofiles
import aiofiles.os

from .storage import CHUNK_SIZE

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 1.0
DEFAULT_ALGORITHM = 'sha256'


@dataclass
class ChecksumRecord:
    """Result of one verification."""
    path: Path
    label: str
    algorithm: str
    digest: str
    size: int


async def compute_checksum(path: Path, algorithm: str = DEFAULT_ALGORITHM,
                           chunk_size: int = CHUNK_SIZE) -> str:
    """
    Hash a file without loading it into memory.

    Returns:
        Hex digest
    """
    hasher = hashlib.new(algorithm)

    async with aiofiles.open(path, 'rb') as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)

    return hasher.hexdigest()


class IntegrityVerifier:
    """
    Schedules post-write checksums of saved files.

    Usage:
        verifier = IntegrityVerifier()
        verifier.schedule(saved_path, label="report.txt")
        ...
        await verifier.wait()  # optional, e.g. on shutdown
    """

    def __init__(self, delay: float = DEFAULT_DELAY,
                 algorithm: str = DEFAULT_ALGORITHM):
        # Fail early on unknown algorithms
        hashlib.new(algorithm)

        self.delay = delay
        self.algorithm = algorithm
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of checks not yet finished."""
        return len(self._tasks)

    def schedule(self, path: Path, label: Optional[str] = None) -> asyncio.Task:
        """
        Start a delayed checksum of `path`.

        Args:
            path: File to hash (the actual saved path)
            label: Client-supplied name, logged for traceability

        Returns:
            The task; callers are not required to await it
        """
        task = asyncio.create_task(self._verify(Path(path), label or ''))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _verify(self, path: Path, label: str) -> Optional[ChecksumRecord]:
        await asyncio.sleep(self.delay)

        try:
            digest = await compute_checksum(path, self.algorithm)
            size = (await aiofiles.os.stat(path)).st_size
        except OSError as e:
            logger.error(f"Checksum of {path} ({label}) failed: {e}")
            return None

        logger.info(f"{self.algorithm} {path} ({label}): {digest}")
        return ChecksumRecord(
            path=path,
            label=label,
            algorithm=self.algorithm,
            digest=digest,
            size=size,
        )

    async def wait(self):
        """Wait for every in-flight check to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self):
        """Cancel in-flight checks."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug(f"Cancelled {len(tasks)} pending checksum(s)")
