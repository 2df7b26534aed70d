"""Content hashing used for deduplication keys and round-trip checks."""

import hashlib
import hmac
from typing import Union

DEFAULT_CHUNK_SIZE = 1024 * 1024


def calculate_hash(content: Union[bytes, bytearray, memoryview, str]) -> str:
    """Return the SHA-256 hex digest of ``content``.

    Text is hashed as its UTF-8 encoded bytes, so a file read as text and the
    same file read as bytes hash identically.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def hash_file(path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Hash a file on disk without loading it fully into memory."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def hashes_equal(a: str, b: str) -> bool:
    """Compare two hex digests in constant time."""
    if a is None or b is None:
        return False
    return hmac.compare_digest(a.lower(), b.lower())
