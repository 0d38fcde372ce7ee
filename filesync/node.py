"""
File Sync Node - Entry Points

Wires the components together for each role:
- Server: SaveStore + IntegrityVerifier + TransferServer
- Client: one TransferSession against the configured server

The configuration is built once by the caller and passed in; nothing
here reads process-wide state.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Union

from .config import Config
from .file import SaveStore, IntegrityVerifier
from .transfer import TransferServer, send_file
from .transfer.sender import ProgressCallback

logger = logging.getLogger(__name__)


def build_server(config: Config) -> TransferServer:
    """Create (but do not start) a server for `config`."""
    store = SaveStore(config.save_path, create_dirs=config.create_dirs)
    verifier = IntegrityVerifier(
        delay=config.verify_delay,
        algorithm=config.checksum_algorithm,
    )
    return TransferServer(
        store,
        host=config.listen_host,
        port=config.port_number,
        verifier=verifier,
        chunk_size=config.chunk_size,
    )


async def run_server(config: Config,
                     started: Optional[asyncio.Event] = None):
    """
    Serve uploads until cancelled.

    Args:
        config: Resolved configuration (server role)
        started: Set once the listener is bound
    """
    server = build_server(config)
    await server.start()

    if started:
        started.set()

    try:
        await server.serve_forever()
    finally:
        await server.stop()
        if server.verifier and server.verifier.pending:
            logger.info(f"Waiting for {server.verifier.pending} pending checksum(s)")
            await server.verifier.wait()


async def run_client(config: Config, source: Union[str, Path], destination: str,
                     on_progress: Optional[ProgressCallback] = None) -> int:
    """
    Upload one file to the configured server.

    Returns:
        Number of body bytes sent
    """
    logger.info(f"Uploading {source} to {config.server}:{config.port_number} "
                f"as {destination!r}")
    return await send_file(
        config.server,
        config.port_number,
        source,
        destination,
        chunk_size=config.chunk_size,
        on_progress=on_progress,
    )

