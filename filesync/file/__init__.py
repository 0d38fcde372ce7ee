"""
File Module - Save Paths and Integrity Checks

This module handles where received files land and how they are verified.
"""

from .storage import SaveStore, ValidationError, derive_name, CHUNK_SIZE
from .verifier import IntegrityVerifier, ChecksumRecord, compute_checksum

__all__ = [
    'SaveStore',
    'ValidationError',
    'derive_name',
    'CHUNK_SIZE',
    'IntegrityVerifier',
    'ChecksumRecord',
    'compute_checksum',
]
