"""
Transfer Session

Client side of one upload:
1. Open the local file
2. Send its basename, then the destination sub-path
3. Stream the body until EOF
4. Close the file and the connection

Any failure aborts the session. Nothing is retried and nothing is read
back from the server.
"""

import os
import asyncio
import logging
from pathlib import Path
from typing import Optional, Callable, Union

import aiofiles
import aiofiles.os

from .protocol import TransferMetadata, send_metadata, CHUNK_SIZE

logger = logging.getLogger(__name__)

# (bytes_sent, total_bytes)
ProgressCallback = Callable[[int, int], None]


class TransferSession:
    """
    Sends exactly one file over an already-open connection.

    The connection is closed when `run()` returns or raises.
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter,
                 source: Union[str, Path], destination: str,
                 chunk_size: int = CHUNK_SIZE,
                 on_progress: Optional[ProgressCallback] = None):
        self.reader = reader
        self.writer = writer
        self.source = Path(source)
        self.destination = destination
        self.chunk_size = chunk_size
        self.on_progress = on_progress
        self.bytes_sent = 0

    @property
    def metadata(self) -> TransferMetadata:
        return TransferMetadata(
            file_name=os.path.basename(self.source),
            file_path=self.destination,
        )

    async def run(self) -> int:
        """
        Drive the send sequence.

        Returns:
            Number of body bytes sent

        Raises:
            OSError: if the file cannot be read or the connection fails
        """
        try:
            async with aiofiles.open(self.source, 'rb') as f:
                total = (await aiofiles.os.stat(self.source)).st_size

                await send_metadata(self.writer, self.metadata)
                logger.debug(f"Sent metadata {self.metadata}")

                while True:
                    chunk = await f.read(self.chunk_size)
                    if not chunk:
                        break
                    self.writer.write(chunk)
                    await self.writer.drain()

                    self.bytes_sent += len(chunk)
                    if self.on_progress:
                        self.on_progress(self.bytes_sent, total)
        finally:
            await self._close()

        logger.info(f"Sent {self.source} -> {self.destination!r} "
                    f"({self.bytes_sent:,} bytes)")
        return self.bytes_sent

    async def _close(self):
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error while closing connection: {e}")


async def send_file(host: str, port: int, source: Union[str, Path],
                    destination: str, chunk_size: int = CHUNK_SIZE,
                    on_progress: Optional[ProgressCallback] = None,
                    timeout: Optional[float] = None) -> int:
    """
    Connect to a server and upload one file.

    The local file is checked before dialling so a missing file never
    leaves a half-open connection on the server.

    Returns:
        Number of body bytes sent

    Raises:
        FileNotFoundError: if `source` does not exist
        ConnectionError: if the server cannot be reached
    """
    source = Path(source)
    if not await aiofiles.os.path.isfile(source):
        raise FileNotFoundError(f"could not open file {source}")

    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout
        )
    except (OSError, asyncio.TimeoutError) as e:
        raise ConnectionError(f"failed to connect to {host}:{port}: {e}") from e

    logger.debug(f"Connected to {host}:{port}")

    session = TransferSession(
        reader, writer, source, destination,
        chunk_size=chunk_size,
        on_progress=on_progress,
    )
    return await session.run()
