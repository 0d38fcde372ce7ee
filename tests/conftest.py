"""Shared helpers for transfer tests."""

import asyncio
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import pytest

from filesync.file import SaveStore, IntegrityVerifier
from filesync.transfer import TransferServer
from filesync.transfer.protocol import encode_string


class FakeWriter:
    """In-memory stand-in for asyncio.StreamWriter."""

    def __init__(self, peername=('127.0.0.1', 50000)):
        self.buffer = bytearray()
        self.closed = False
        self._peername = peername

    def write(self, data: bytes):
        if self.closed:
            raise ConnectionResetError("writer closed")
        self.buffer.extend(data)

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass

    def get_extra_info(self, name, default=None):
        if name == 'peername':
            return self._peername
        return default


def make_upload(file_name: str, file_path: str, body: bytes) -> bytes:
    """Raw bytes of one upload as a client would send them."""
    return encode_string(file_name) + encode_string(file_path) + body


def feed_reader(data: bytes, eof: bool = True) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


async def wait_until(predicate, timeout: float = 5.0):
    """Poll `predicate` until it is true or `timeout` expires."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@asynccontextmanager
async def running_server(root: Path, create_dirs: bool = False,
                         verifier: Optional[IntegrityVerifier] = None):
    """Start a TransferServer on a free loopback port."""
    server = TransferServer(
        SaveStore(root, create_dirs=create_dirs),
        host='127.0.0.1',
        port=0,
        verifier=verifier,
    )
    await server.start()
    try:
        yield server
    finally:
        await server.stop()
        if verifier:
            await verifier.cancel()


@pytest.fixture
def save_root(tmp_path):
    root = tmp_path / "received"
    root.mkdir()
    return root


@pytest.fixture
def source_file(tmp_path):
    """Factory writing a local file to upload."""
    def _make(name: str, content: bytes) -> Path:
        path = tmp_path / "outbox" / name
        path.parent.mkdir(exist_ok=True)
        path.write_bytes(content)
        return path
    return _make
