"""
Connection Handler and Transfer Server

Each accepted connection carries exactly one file. The handler walks a
fixed sequence of states and stops at the first failure:

    RECEIVING_NAME -> RECEIVING_PATH -> PREPARING -> OPENING
        -> STREAMING -> COMPLETING -> DONE
                        (any step) -> FAILED

Failures are logged and the connection is dropped. Nothing is reported
back to the client, and a partially written file stays on disk.

Concurrency:
- One task per connection (asyncio.start_server), no limit
- Handlers share only the save root, which is read-only
- Two uploads resolving to the same path race; last writer wins
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Set, Tuple

import aiofiles

from .protocol import TransferMetadata, ProtocolError, recv_string, CHUNK_SIZE
from ..file.storage import SaveStore, ValidationError
from ..file.verifier import IntegrityVerifier

logger = logging.getLogger(__name__)


class HandlerState(Enum):
    """Connection handler states."""
    RECEIVING_NAME = "RECEIVING_NAME"
    RECEIVING_PATH = "RECEIVING_PATH"
    PREPARING = "PREPARING"
    OPENING = "OPENING"
    STREAMING = "STREAMING"
    COMPLETING = "COMPLETING"

    # Terminal
    DONE = "DONE"
    FAILED = "FAILED"


class ConnectionHandler:
    """
    Receives one file from one connection.

    Attributes set while running:
        state: current HandlerState
        metadata: TransferMetadata once both strings are read
        save_path: resolved destination once PREPARING succeeds
        bytes_received: body bytes written so far
        failed_state: state the handler was in when it failed
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter,
                 store: SaveStore,
                 verifier: Optional[IntegrityVerifier] = None,
                 chunk_size: int = CHUNK_SIZE):
        self.reader = reader
        self.writer = writer
        self.store = store
        self.verifier = verifier
        self.chunk_size = chunk_size

        self.state = HandlerState.RECEIVING_NAME
        self.failed_state: Optional[HandlerState] = None
        self.metadata: Optional[TransferMetadata] = None
        self.save_path: Optional[Path] = None
        self.bytes_received = 0

    @property
    def peer(self) -> Optional[Tuple[str, int]]:
        return self.writer.get_extra_info('peername')

    async def run(self) -> Optional[Path]:
        """
        Handle the connection to completion.

        Returns:
            The saved path, or None if the transfer was abandoned
        """
        logger.info(f"New upload coming from {self.peer}")

        try:
            self.state = HandlerState.RECEIVING_NAME
            file_name = await recv_string(self.reader)

            self.state = HandlerState.RECEIVING_PATH
            file_path = await recv_string(self.reader)
            self.metadata = TransferMetadata(file_name=file_name, file_path=file_path)

            self.state = HandlerState.PREPARING
            self.save_path = self.store.resolve(file_name, file_path)
            await self.store.prepare(self.save_path)
            logger.info(f"Will save file {self.save_path}")

            self.state = HandlerState.OPENING
            async with aiofiles.open(self.save_path, 'wb') as f:
                self.state = HandlerState.STREAMING
                while True:
                    chunk = await self.reader.read(self.chunk_size)
                    if not chunk:
                        break
                    await f.write(chunk)
                    self.bytes_received += len(chunk)

        except ValidationError as e:
            logger.warning(f"Rejected upload from {self.peer}: {e}")
            await self._fail()
            return None
        except ProtocolError as e:
            logger.error(f"Protocol error from {self.peer} in {self.state.value}: {e}")
            await self._fail()
            return None
        except OSError as e:
            logger.error(f"I/O error from {self.peer} in {self.state.value} "
                         f"({self.save_path}): {e}")
            await self._fail()
            return None
        except asyncio.CancelledError:
            logger.warning(f"Upload from {self.peer} cancelled in {self.state.value}")
            self.failed_state = self.state
            self.state = HandlerState.FAILED
            self.writer.close()
            raise
        except Exception as e:
            logger.error(f"Unexpected error from {self.peer} in {self.state.value}: {e}")
            await self._fail()
            return None

        self.state = HandlerState.COMPLETING
        await self._close()

        if self.verifier:
            self.verifier.schedule(self.save_path, label=self.metadata.file_name)

        logger.info(f"Saved {self.metadata.file_name!r} to {self.save_path} "
                    f"({self.bytes_received:,} bytes)")
        self.state = HandlerState.DONE
        return self.save_path

    async def _fail(self):
        self.failed_state = self.state
        self.state = HandlerState.FAILED
        await self._close()

    async def _close(self):
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error while closing connection {self.peer}: {e}")


class TransferServer:
    """
    TCP server that accepts uploads.

    Every connection is handled on its own task; the listener goes
    straight back to accepting.
    """

    def __init__(self, store: SaveStore, host: str = '0.0.0.0', port: int = 8469,
                 verifier: Optional[IntegrityVerifier] = None,
                 chunk_size: int = CHUNK_SIZE):
        self.store = store
        self.host = host
        self.port = port
        self.verifier = verifier
        self.chunk_size = chunk_size
        self.server: Optional[asyncio.AbstractServer] = None
        self._handlers: Set[asyncio.Task] = set()

        # Statistics
        self.connections_accepted = 0
        self.files_saved = 0
        self.transfers_failed = 0
        self.bytes_received = 0

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); differs from `port` when started on port 0."""
        if not self.server or not self.server.sockets:
            return self.host, self.port
        return self.server.sockets[0].getsockname()[:2]

    async def start(self):
        """
        Start listening.

        Raises:
            OSError: if the address cannot be bound
        """
        self.server = await asyncio.start_server(
            self._handle_connection,
            self.host,
            self.port
        )
        logger.info(f"Transfer server listening on {self.address}, "
                    f"saving to {self.store.root}")

    async def serve_forever(self):
        """Start if needed and serve until cancelled."""
        if not self.server:
            await self.start()
        await self.server.serve_forever()

    async def stop(self):
        """Stop accepting connections and abandon uploads still in progress."""
        if self.server:
            self.server.close()

            # Stalled clients would otherwise hold wait_closed() open
            handlers = list(self._handlers)
            for task in handlers:
                task.cancel()
            if handlers:
                await asyncio.gather(*handlers, return_exceptions=True)
                logger.info(f"Abandoned {len(handlers)} upload(s) in progress")

            await self.server.wait_closed()
            self.server = None
            logger.info(f"Transfer server stopped. Saved {self.files_saved} files, "
                        f"{self.bytes_received:,} bytes")

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter):
        """Handle an incoming connection."""
        self.connections_accepted += 1
        handler = ConnectionHandler(
            reader, writer, self.store,
            verifier=self.verifier,
            chunk_size=self.chunk_size,
        )

        task = asyncio.current_task()
        self._handlers.add(task)
        try:
            saved = await handler.run()
        except asyncio.CancelledError:
            self.transfers_failed += 1
            raise
        finally:
            self._handlers.discard(task)

        self.bytes_received += handler.bytes_received
        if saved is None:
            self.transfers_failed += 1
        else:
            self.files_saved += 1

    def get_stats(self) -> dict:
        """Get server statistics."""
        return {
            'connections_accepted': self.connections_accepted,
            'files_saved': self.files_saved,
            'transfers_failed': self.transfers_failed,
            'bytes_received': self.bytes_received,
            'pending_checksums': self.verifier.pending if self.verifier else 0,
            'port': self.address[1],
        }
