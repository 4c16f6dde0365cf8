"""
Security helpers module.

Provides owner-only materialization of secret material:
    - decode_inline_secret(): base64 inline secret to bytes
    - write_secret_file(): 0600 file write, directory created on demand
"""

from core.security.secure_files import (
    OWNER_ONLY_DIR_MODE,
    OWNER_ONLY_FILE_MODE,
    decode_inline_secret,
    write_secret_file,
)

__all__ = [
    "decode_inline_secret",
    "write_secret_file",
    "OWNER_ONLY_FILE_MODE",
    "OWNER_ONLY_DIR_MODE",
]
