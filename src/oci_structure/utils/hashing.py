"""Content digest helpers for blobs."""

import hashlib


def compute_digest(data: bytes, algorithm: str = "sha256") -> str:
    """Compute an OCI-style digest (``algorithm:hex``) of bytes data.

    Args:
        data: Bytes to hash
        algorithm: Hash algorithm to use

    Returns:
        The digest string
    """
    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return f"{algorithm}:{hasher.hexdigest()}"


def split_digest(digest: str) -> tuple[str, str]:
    """Split ``sha256:abc`` into ``("sha256", "abc")``.

    Raises:
        ValueError: If the digest has no algorithm prefix
    """
    algorithm, sep, hex_value = digest.partition(":")
    if not sep or not algorithm or not hex_value:
        raise ValueError(f"malformed digest: {digest!r}")
    return algorithm, hex_value
