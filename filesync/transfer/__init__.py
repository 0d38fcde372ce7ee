"""
Transfer Module - File Send/Receive

Handles the TCP wire format and both ends of a transfer.
"""

from .protocol import (
    TransferMetadata, ProtocolError, send_string, recv_string,
    send_metadata, CHUNK_SIZE,
)
from .sender import TransferSession, send_file
from .receiver import ConnectionHandler, HandlerState, TransferServer

__all__ = [
    'TransferMetadata',
    'ProtocolError',
    'send_string',
    'recv_string',
    'send_metadata',
    'CHUNK_SIZE',
    'TransferSession',
    'send_file',
    'ConnectionHandler',
    'HandlerState',
    'TransferServer',
]
