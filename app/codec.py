"""
Token Set serialization and field helpers.

A Token Set is a plain dict of provider token fields (access_token,
refresh_token, expires_in, ...). It is encoded as compact JSON with key order
preserved, which is the plaintext the cipher encrypts.
"""
import json
from typing import Any

from errors import CorruptPayload

TokenSet = dict[str, Any]


def encode(token_set: TokenSet) -> bytes:
    return json.dumps(token_set, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode(data: bytes | str) -> TokenSet:
    """Parse an encoded Token Set; raises CorruptPayload if it is not a JSON object."""
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        parsed = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CorruptPayload("Token payload is not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise CorruptPayload("Token payload is not an object")
    return parsed


def merge(old: TokenSet, new: TokenSet) -> TokenSet:
    """Shallow merge: fields in new win, fields only in old are kept."""
    merged = dict(old)
    merged.update(new)
    return merged


def refresh_token_of(token_set: TokenSet) -> str | None:
    # Some older records used the camel-case field name
    return token_set.get("refresh_token") or token_set.get("refreshToken") or None


def expires_in_of(token_set: TokenSet) -> int | None:
    value = token_set.get("expires_in")
    if isinstance(value, bool) or value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
