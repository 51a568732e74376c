"""Credential and payload redaction for debug dumps.

Before a request or response is written to a debug artifact,
:func:`redact` is applied.  It enforces the following rules:

* Values under **sensitive keys** (``authorization``, ``token``,
  ``access_token``, ``client_secret`` ...) are masked.
* The bearer **token is never present** in the output, wherever it appears.
* **Long cell strings** are replaced with ``<text:N_chars>`` so a dump of a
  large ``updateCells`` request stays readable and does not copy sheet
  contents wholesale into logs.
"""

from __future__ import annotations

import copy
import re
from typing import Any

# Substrings of key names (case-insensitive) whose values are masked.
_SENSITIVE_KEY_PATTERNS: frozenset[str] = frozenset({
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
    "cookie",
    "private_key",
    "api_key",
    "api-key",
})

_BEARER_RE = re.compile(r"(Bearer\s+)\S+")

MAX_STRING_CHARS = 512


def _mask_token(value: str, token: str | None) -> str:
    if token and token in value:
        suffix = token[-4:] if len(token) >= 4 else "****"
        placeholder = f"<redacted:...{suffix}>"
        if token in placeholder:
            placeholder = "<redacted>"
        value = value.replace(token, placeholder)
    return _BEARER_RE.sub(lambda m: f"{m.group(1)}<redacted>", value)


def _redact_value(value: Any, token: str | None) -> Any:
    if isinstance(value, dict):
        return _redact_dict(value, token)
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, token) for item in value]
    if isinstance(value, str):
        if len(value) > MAX_STRING_CHARS:
            return f"<text:{len(value)}_chars>"
        return _mask_token(value, token)
    if isinstance(value, (bytes, bytearray)):
        return f"<binary:{len(value)}_bytes>"
    return value


def _redact_dict(d: dict, token: str | None) -> dict:
    result: dict = {}
    for key, value in d.items():
        key_lower = key.lower() if isinstance(key, str) else ""
        if any(pat in key_lower for pat in _SENSITIVE_KEY_PATTERNS):
            if isinstance(value, str) and value:
                masked = _mask_token(value, token)
                result[key] = masked if masked != value else "<redacted>"
            else:
                result[key] = "<redacted>"
        else:
            result[key] = _redact_value(value, token)
    return result


def redact(payload: dict, token: str | None = None) -> dict:
    """Return a deep copy of *payload* with sensitive data redacted.

    Parameters
    ----------
    payload:
        The dictionary to sanitize (a request body, a set of headers or a
        response).
    token:
        The bearer token.  If supplied, every occurrence of this exact
        string anywhere in the payload is replaced.

    Returns
    -------
    dict
        A new dictionary.  The original *payload* is never mutated.

    Examples
    --------
    >>> redact({"Authorization": "Bearer ya29.abc123"})
    {'Authorization': 'Bearer <redacted>'}
    >>> redact({"values": [["x" * 600]]})
    {'values': [['<text:600_chars>']]}
    """
    return _redact_dict(copy.deepcopy(payload), token)
