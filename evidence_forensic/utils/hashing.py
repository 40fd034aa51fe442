"""
SHA-512 hashing helpers.

Every digest in the toolkit (evidence files, bundled assets, ledger
entries, mesh packets) is produced here as lowercase hex.
"""

import hashlib
from pathlib import Path
from typing import Optional, Union

from evidence_forensic.utils.exceptions import EvidenceIOError

CHUNK_SIZE = 8192
HEX_DIGEST_LENGTH = 128


def sha512_hex(data: bytes) -> str:
    """Return the SHA-512 digest of ``data`` as lowercase hex."""
    return hashlib.sha512(data).hexdigest()


def sha512_file(file_path: Union[str, Path]) -> str:
    """
    Stream a file through SHA-512 in fixed-size chunks.

    Produces the same digest as ``sha512_hex(path.read_bytes())``.

    Args:
        file_path: File to hash

    Returns:
        Lowercase hex digest

    Raises:
        EvidenceIOError: If the file cannot be opened or read
    """
    file_path = Path(file_path)
    digest = hashlib.sha512()

    try:
        with open(file_path, "rb") as f:
            while chunk := f.read(CHUNK_SIZE):
                digest.update(chunk)
    except OSError as e:
        raise EvidenceIOError(str(file_path), e.strerror or str(e), cause=e)

    return digest.hexdigest()


def truncate(digest: Optional[str], chars: int) -> str:
    """Return the first ``chars`` characters of a digest, for display only."""
    if digest is None:
        return ""
    return digest if len(digest) <= chars else digest[:chars]


def digests_match(expected: Optional[str], actual: Optional[str]) -> bool:
    """Compare two hex digests case-insensitively."""
    if not expected or not actual:
        return False
    return expected.strip().lower() == actual.strip().lower()
