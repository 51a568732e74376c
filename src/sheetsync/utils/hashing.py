"""Canonical serialization and SHA-256 fingerprints.

A fingerprint is the hex SHA-256 digest of a value's canonical JSON form.
The canonical form sorts keys and uses compact separators, so two payloads
that differ only in key order produce the same fingerprint.  The same
canonical bytes are used to size cache entries, so the size the cache
accounts for is exactly the size of what was hashed.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any


def _default(value: Any) -> Any:
    """Normalise values :mod:`json` cannot encode on its own."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    raise TypeError(f"Object of type {type(value).__name__} is not fingerprintable")


def canonical_json(value: Any) -> str:
    """Return the canonical JSON text of *value*.

    Keys are sorted, separators are compact and non-ASCII characters are
    kept as-is.  Dataclasses, enums, tuples, sets and datetimes are
    normalised first.

    Examples
    --------
    >>> canonical_json({"b": [1, 2], "a": "é"})
    '{"a":"é","b":[1,2]}'
    """
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_default,
    )


def canonical_bytes(value: Any) -> bytes:
    """UTF-8 encoding of :func:`canonical_json`."""
    return canonical_json(value).encode("utf-8")


def sha256_hash(data: str | bytes) -> str:
    """Return the hex-encoded SHA-256 digest of *data*.

    Strings are encoded as UTF-8 before hashing.

    Parameters
    ----------
    data:
        Arbitrary string or bytes to hash.

    Returns
    -------
    str
        A 64-character lowercase hexadecimal string.

    Examples
    --------
    >>> sha256_hash("hello")[:16]
    '2cf24dba5fb0a30e'
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def fingerprint(value: Any) -> str:
    """Return the content fingerprint of an arbitrary structured value.

    Deterministic across processes and independent of dict key order.

    Examples
    --------
    >>> fingerprint({"b": 2, "a": 1}) == fingerprint({"a": 1, "b": 2})
    True
    """
    return sha256_hash(canonical_bytes(value))
