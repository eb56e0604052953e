import hashlib

HASH_PREFIX = "sha256:"


def content_hash(data: bytes) -> str:
    """Deterministic digest of raw bytes, prefixed with the algorithm name."""
    return f"{HASH_PREFIX}{hashlib.sha256(data).hexdigest()}"


def text_hash(text: str) -> str:
    return content_hash(text.encode("utf-8"))


def combined_hash(chunks) -> str:
    """Digest of several byte chunks taken in order, as if concatenated."""
    digest = hashlib.sha256()
    for chunk in chunks:
        digest.update(chunk)
    return f"{HASH_PREFIX}{digest.hexdigest()}"
