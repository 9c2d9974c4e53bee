"""
Versioned JSON envelope for nested values persisted in text/JSONB columns.

Cached profiles, sync log error/success lists and raw provider payloads are
typed structures in memory. They are serialized only here, wrapped as
``{"v": <version>, "data": <payload>}`` so a reader can reject encodings it
does not understand instead of misinterpreting them.
"""

import json
from typing import Any

ENCODING_VERSION = 1


class EncodingError(Exception):
    """Raised when a stored envelope cannot be decoded."""

    pass


def encode_versioned(data: Any) -> str:
    """Wrap ``data`` (already JSON-compatible) in the current envelope."""
    return json.dumps({"v": ENCODING_VERSION, "data": data}, separators=(",", ":"))


def decode_versioned(raw: str | dict | None) -> Any:
    """
    Unwrap a stored envelope.

    Args:
        raw: JSON text, or an already-parsed dict (psycopg returns JSONB as dict)

    Returns:
        The payload, or None when nothing was stored

    Raises:
        EncodingError: If the envelope is malformed or has an unknown version
    """
    if raw is None:
        return None

    if isinstance(raw, str):
        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError as e:
            raise EncodingError(f"Stored value is not valid JSON: {e}") from e
    else:
        envelope = raw

    if not isinstance(envelope, dict) or "v" not in envelope or "data" not in envelope:
        raise EncodingError("Stored value is not a versioned envelope")

    version = envelope["v"]
    if version != ENCODING_VERSION:
        raise EncodingError(f"Unsupported encoding version: {version}")

    return envelope["data"]
