"""Content hashing used for duplicate detection and audit."""

import hashlib
from pathlib import Path


class ChecksumService:
    """SHA-256 content digests."""

    CHUNK_SIZE = 4096

    @staticmethod
    def compute(file_bytes: bytes) -> str:
        """Return the lowercase hex SHA-256 digest of the given bytes."""
        return hashlib.sha256(file_bytes).hexdigest()

    @classmethod
    def compute_file(cls, path: str | Path) -> str:
        """Hash a file in fixed-size blocks without loading it into memory."""
        sha256_hash = hashlib.sha256()
        with open(path, "rb") as f:
            for byte_block in iter(lambda: f.read(cls.CHUNK_SIZE), b""):
                sha256_hash.update(byte_block)
        return sha256_hash.hexdigest()
