from .chunk import chunk_by_size
from .hashing import canonical_bytes, canonical_json, fingerprint, sha256_hash
from .redact import redact

__all__ = [
    "chunk_by_size",
    "canonical_json",
    "canonical_bytes",
    "sha256_hash",
    "fingerprint",
    "redact",
]
