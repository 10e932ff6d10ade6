"""
Deterministic cache keys.

    derive(key) = sha256("resourceId|variant|provider").hexdigest()[:32]

No salt, no randomness: the same key hashes the same across restarts,
which is what lets the persistent tier find records again.
"""

import hashlib

from pydantic import ValidationError

from errors import InvalidLookupKey
from models import LookupKey

SEPARATOR = "|"
HASH_LENGTH = 32


def lookup_key(resource_type: str, resource_id: str, provider: str, variant: str) -> LookupKey:
    """Build a LookupKey, raising InvalidLookupKey for bad input."""
    fields = {"resource_id": resource_id, "provider": provider, "variant": variant}
    for name, value in fields.items():
        if not isinstance(value, str) or not value.strip():
            raise InvalidLookupKey(f"{name} must be a non-empty string, got {value!r}")
        if SEPARATOR in value:
            raise InvalidLookupKey(f"{name} must not contain '{SEPARATOR}': {value!r}")
    try:
        return LookupKey(resource_type=resource_type, **fields)
    except ValidationError as e:
        raise InvalidLookupKey(str(e)) from e


def serialize(key: LookupKey) -> str:
    return SEPARATOR.join((key.resource_id, key.variant, key.provider))


def derive(key: LookupKey) -> str:
    return hashlib.sha256(serialize(key).encode("utf-8")).hexdigest()[:HASH_LENGTH]
