"""
File Transfer Protocol

Design Decision: Wire Format
============================

Options Considered:
1. HTTP multipart upload
   - Standard, but needs a web stack on both ends

2. Length-prefixed header + raw body
   - Lightweight, no dependencies
   - Body streams straight from socket to disk

Decision: Two length-prefixed strings followed by the raw body
- 8-byte big-endian signed length + UTF-8 bytes, twice
- No body length: the body ends when the sender closes
- One file per connection, no acknowledgement

Message Format:
```
+-------------+------------------+-------------+------------------+-------------+
| Length (8B) | file_name (UTF-8)| Length (8B) | file_path (UTF-8)| body ...EOF |
+-------------+------------------+-------------+------------------+-------------+
```

Reads use `readexactly`, so a string split across several TCP segments is
reassembled in full instead of being truncated at the first partial read.
"""

import asyncio
import struct
import logging
from dataclasses import dataclass
from typing import Union

from ..file.storage import CHUNK_SIZE

logger = logging.getLogger(__name__)

LENGTH_PREFIX = struct.Struct('>q')

# Metadata strings are names, not payloads
MAX_STRING_LENGTH = 1024 * 1024


class ProtocolError(IOError):
    """Malformed or truncated metadata on the wire."""


@dataclass
class TransferMetadata:
    """What the client says about the file it is about to send."""
    file_name: str
    file_path: str


def encode_string(value: Union[str, bytes]) -> bytes:
    """Length-prefix a string for the wire."""
    data = value.encode('utf-8') if isinstance(value, str) else bytes(value)
    return LENGTH_PREFIX.pack(len(data)) + data


async def send_string(writer: asyncio.StreamWriter, value: Union[str, bytes]):
    """Write one length-prefixed string and flush it."""
    writer.write(encode_string(value))
    await writer.drain()


async def recv_string(reader: asyncio.StreamReader) -> str:
    """
    Read one length-prefixed string.

    Raises:
        ProtocolError: on EOF before the string is complete, a bad
            length prefix, or bytes that are not UTF-8
    """
    try:
        prefix = await reader.readexactly(LENGTH_PREFIX.size)
    except asyncio.IncompleteReadError as e:
        raise ProtocolError(
            f"short read on length prefix ({len(e.partial)}/{LENGTH_PREFIX.size} bytes)"
        ) from e

    length = LENGTH_PREFIX.unpack(prefix)[0]

    # Sanity check
    if length < 0:
        raise ProtocolError(f"negative string length: {length}")
    if length > MAX_STRING_LENGTH:
        raise ProtocolError(f"string too large: {length}")

    try:
        data = await reader.readexactly(length) if length > 0 else b''
    except asyncio.IncompleteReadError as e:
        raise ProtocolError(
            f"short read on string ({len(e.partial)}/{length} bytes)"
        ) from e

    try:
        return data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise ProtocolError(f"string is not valid UTF-8: {e}") from e


async def send_metadata(writer: asyncio.StreamWriter, metadata: TransferMetadata):
    """Send file name then destination path."""
    await send_string(writer, metadata.file_name)
    await send_string(writer, metadata.file_path)

