"""
Owner-only materialization of secret material on disk.

Used for inline key material (keytabs) that external libraries can only
consume as a file path. The file is created with 0600 permissions before any
bytes are written, so the secret is never readable by other users.

Usage:
    path = write_secret_file(decode_inline_secret(conf_value), tmp_dir, "auth_keytab")
"""

import base64
import binascii
import os
from pathlib import Path
from typing import Union

OWNER_ONLY_FILE_MODE = 0o600
OWNER_ONLY_DIR_MODE = 0o700


def decode_inline_secret(value: str) -> bytes:
    """
    Decode base64-encoded inline secret material.

    Whitespace (line wrapping) is ignored.

    Raises:
        ValueError: If value is empty or not valid base64
    """
    compact = "".join(value.split())
    if not compact:
        raise ValueError("Inline secret is empty")
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Inline secret is not valid base64: {e}") from e


def write_secret_file(
    content: bytes,
    directory: Union[str, Path],
    filename: str,
) -> Path:
    """
    Write secret bytes to directory/filename with owner-only permissions.

    The directory is created if missing. An existing file is truncated and
    its permissions reset to 0600.

    Args:
        content: Secret bytes
        directory: Target directory
        filename: File name inside directory

    Returns:
        Path to the written file

    Raises:
        OSError: If the directory or file cannot be written
    """
    directory = Path(directory)
    if not directory.exists():
        directory.mkdir(parents=True, exist_ok=True, mode=OWNER_ONLY_DIR_MODE)

    path = directory / filename
    fd = os.open(
        path,
        os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
        OWNER_ONLY_FILE_MODE,
    )
    try:
        # mode argument is ignored when the file already existed
        os.chmod(path, OWNER_ONLY_FILE_MODE)
        view = memoryview(content)
        while view:
            written = os.write(fd, view)
            view = view[written:]
        os.fsync(fd)
    finally:
        os.close(fd)

    return path
