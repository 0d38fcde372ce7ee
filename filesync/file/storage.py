"""
Save Store

Design Decision: Naming Received Files
======================================

Options Considered:
1. Keep the client-supplied filename
   - Readable, but the name is untrusted input

2. Content hash as the filename
   - Deduplicates, but unreadable on disk

3. Date of arrival + original extension
   - One file per (directory, day, extension)
   - Matches how the sync clients use it: a daily drop per folder

Decision: Date-derived names
- <save_root>/<file_path>/<YYYY-MM-DD><ext>
- Same day, same extension, same folder overwrites (last writer wins)
- No locking, no atomic rename

Path Containment:
`file_path` comes from the network. A joined path is resolved to an
absolute canonical path and must stay under the resolved save root,
otherwise the transfer is rejected before any file is opened.
"""

import os
import logging
from datetime import date
from pathlib import Path
from typing import Optional

import aiofiles.os

logger = logging.getLogger(__name__)

# Read/write size for file bodies and hashing: 256KB
CHUNK_SIZE = 256 * 1024


class ValidationError(ValueError):
    """Raised when a requested save path escapes the save root."""


def file_extension(file_name: str) -> str:
    """Extension of the basename of `file_name`, including the dot."""
    base = os.path.basename(file_name.replace('\\', '/'))
    return os.path.splitext(base)[1]


def derive_name(file_name: str, today: Optional[date] = None) -> str:
    """
    Build the server-side filename for an upload.

    Args:
        file_name: Client-supplied name, only its extension is used
        today: Date to stamp (defaults to the current local date)

    Returns:
        e.g. "2024-05-01.txt"
    """
    today = today or date.today()
    return today.isoformat() + file_extension(file_name)


class SaveStore:
    """
    Maps transfer metadata onto paths under the save root.

    Shared by every connection handler; holds no mutable state.
    """

    def __init__(self, root: Path, create_dirs: bool = False):
        """
        Initialize the store.

        Args:
            root: Save root directory
            create_dirs: Create missing destination directories on demand
        """
        self.root = Path(root)
        self.create_dirs = create_dirs

    @property
    def resolved_root(self) -> Path:
        return self.root.resolve()

    def resolve(self, file_name: str, file_path: str,
                today: Optional[date] = None) -> Path:
        """
        Compute the save path for an upload.

        Raises:
            ValidationError: if a name contains a NUL byte or the path
                resolves outside the save root
        """
        if "\x00" in file_name or "\x00" in file_path:
            raise ValidationError("NUL byte in file name or path")

        name = derive_name(file_name, today)
        root = self.resolved_root

        # Joined as a sub-path even when it looks absolute
        relative = file_path.replace('\\', '/').lstrip('/')
        joined = os.path.normpath(os.path.join(str(root), relative, name))
        try:
            save_path = Path(joined).resolve()
        except (OSError, ValueError) as e:
            raise ValidationError(f"path {file_path!r} cannot be resolved: {e}") from e

        if save_path != root and root not in save_path.parents:
            raise ValidationError(
                f"path {file_path!r} resolves outside save root {root}"
            )

        return save_path

    async def prepare(self, save_path: Path):
        """Create the parent directory of `save_path` if allowed."""
        if self.create_dirs:
            await aiofiles.os.makedirs(save_path.parent, exist_ok=True)
