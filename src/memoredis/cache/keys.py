"""Cache key schema for memoredis.

Entry key format: [{prefix}|]{logical_key}|{field}:{value}|{field}:{value}...

Where:
- prefix: optional namespace, so memoizers with different prefixes never collide
- logical_key: caller-chosen name of one memoized operation
- field:value: one token per argument, sorted by field name

Index set key: [{prefix}|]{logical_key}-keyset
Lock key:      lock-{entry key}

Scalar values are rendered as text. Nested values (mappings, sequences, sets,
dataclasses) are rendered as an HMAC-SHA1 fingerprint of their key-sorted
orjson serialization, so structurally equal values always produce the same key.
"""

from __future__ import annotations

import dataclasses
import hashlib
import hmac
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

import orjson

from memoredis.errors import ArgumentError, InvalidKeyError

KEY_DELIMITER = "|"
FIELD_DELIMITER = ":"
RESERVED = (FIELD_DELIMITER, KEY_DELIMITER)

SET_KEY_SUFFIX = "-keyset"
LOCK_PREFIX = "lock-"

# Stands in for the argument list of a call without arguments.
# Contains no FIELD_DELIMITER, so no rendered field can equal it.
NO_ARGS_TOKEN = "~"

FINGERPRINT_SECRET = b"memo"

_GLOB_SPECIAL = frozenset("*?[]\\")

Arguments = Union[Mapping[str, Any], Iterable[tuple[str, Any]], None]


def validate_safe_string(value: str, what: str = "key") -> str:
    """Reject empty strings and strings containing a reserved delimiter."""
    if not isinstance(value, str):
        raise InvalidKeyError(what, repr(value), "must be a string")
    if not value:
        raise InvalidKeyError(what, value, "must not be empty")
    for char in RESERVED:
        if char in value:
            raise InvalidKeyError(what, value, f"must not contain {char!r}")
    return value


_CANONICAL_OPTIONS = orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS


def _orjson_default(obj: Any) -> Any:
    if isinstance(obj, (set, frozenset)):
        # Element order must not depend on hash randomization
        return sorted(obj, key=_canonical)
    if isinstance(obj, tuple):
        return list(obj)
    raise TypeError(f"Type is not serializable: {type(obj).__name__}")


def _canonical(value: Any) -> bytes:
    return orjson.dumps(value, default=_orjson_default, option=_CANONICAL_OPTIONS)


def fingerprint(value: Any) -> str:
    """Deterministic fingerprint of a nested value, independent of key order."""
    try:
        canonical = _canonical(value)
    except orjson.JSONEncodeError as e:
        raise ArgumentError(f"Cannot fingerprint argument value: {e}") from e
    return hmac.new(FINGERPRINT_SECRET, canonical, hashlib.sha1).hexdigest()


@dataclass(frozen=True)
class Scalar:
    """Argument value rendered by its textual form."""

    value: Any

    def render(self) -> str:
        value = self.value
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        text = str(value)
        if KEY_DELIMITER in text:
            # A raw delimiter would forge an extra key segment
            return fingerprint(text)
        return text


@dataclass(frozen=True)
class Nested:
    """Argument value rendered by content fingerprint."""

    value: Any

    def render(self) -> str:
        return fingerprint(self.value)


ArgumentValue = Union[Scalar, Nested]


def to_argument(value: Any) -> ArgumentValue:
    """Classify a raw argument value."""
    if isinstance(value, (Scalar, Nested)):
        return value
    if isinstance(value, (str, bytes, int, float, bool)) or value is None:
        if isinstance(value, bytes):
            return Scalar(value.decode("utf-8", "backslashreplace"))
        return Scalar(value)
    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        return Nested(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return Nested(value)
    return Scalar(value)


def normalize_args(args: Arguments) -> list[tuple[str, ArgumentValue]]:
    """Turn a mapping or a list of pairs into field-sorted (name, value) pairs."""
    if args is None:
        return []
    items = args.items() if isinstance(args, Mapping) else args
    fields: dict[str, ArgumentValue] = {}
    for name, value in items:
        validate_safe_string(name, "argument field")
        fields[name] = to_argument(value)
    return sorted(fields.items())


def render_argument(name: str, value: Any) -> str:
    """Render one argument as a `field:value` token."""
    return f"{name}{FIELD_DELIMITER}{to_argument(value).render()}"


def render_args(args: Arguments) -> list[str]:
    return [render_argument(name, value) for name, value in normalize_args(args)]


def produce_key(prefix: str | None, logical_key: str) -> str:
    return f"{prefix}{KEY_DELIMITER}{logical_key}" if prefix else logical_key


def derive_key(prefix: str | None, logical_key: str, args: Arguments = None) -> str:
    """Cache key for one (logical key, arguments) pair."""
    tokens = render_args(args) or [NO_ARGS_TOKEN]
    return KEY_DELIMITER.join([produce_key(prefix, logical_key), *tokens])


def derive_set_key(prefix: str | None, logical_key: str) -> str:
    return f"{produce_key(prefix, logical_key)}{SET_KEY_SUFFIX}"


def derive_lock_name(cache_key: str) -> str:
    return f"{LOCK_PREFIX}{cache_key}"


def escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters."""
    return "".join(f"\\{char}" if char in _GLOB_SPECIAL else char for char in text)


def derive_invalidation_glob(
    prefix: str | None, logical_key: str, partial_args: Arguments = None
) -> str:
    """Glob matching every entry whose arguments include `partial_args`.

    Tokens are joined with `*` rather than the key delimiter so that a filter
    naming fields which are not adjacent in the entry key still matches.
    A glob can over-match (`id:7` also matches `id:70`); use `key_matches`
    to confirm candidates.
    """
    parts = [produce_key(prefix, logical_key), *render_args(partial_args)]
    return "*".join(escape_glob(part) for part in parts) + "*"


def key_matches(
    cache_key: str, prefix: str | None, logical_key: str, partial_args: Arguments = None
) -> bool:
    """Check that every rendered filter token is a whole segment of `cache_key`."""
    base = produce_key(prefix, logical_key) + KEY_DELIMITER
    if not cache_key.startswith(base):
        return False
    # Rendered tokens never contain KEY_DELIMITER, so splitting is unambiguous
    segments = set(cache_key[len(base) :].split(KEY_DELIMITER))
    return all(token in segments for token in render_args(partial_args))


class CacheKeys:
    """Cache key generator bound to one namespace prefix."""

    def __init__(self, prefix: str | None = None):
        if prefix:
            validate_safe_string(prefix, "prefix")
        self.prefix = prefix or None

    def entry(self, logical_key: str, args: Arguments = None) -> str:
        """Key for one cached result."""
        return derive_key(self.prefix, validate_safe_string(logical_key), args)

    def keyset(self, logical_key: str) -> str:
        """Key for the index set of a logical key."""
        return derive_set_key(self.prefix, validate_safe_string(logical_key))

    def lock(self, cache_key: str) -> str:
        """Lock name guarding computation of one entry."""
        return derive_lock_name(cache_key)

    def invalidation_pattern(self, logical_key: str, partial_args: Arguments = None) -> str:
        """Pattern for invalidating entries of a logical key.

        Use with SSCAN over `keyset(logical_key)`.
        """
        return derive_invalidation_glob(
            self.prefix, validate_safe_string(logical_key), partial_args
        )

    def matches(self, cache_key: str, logical_key: str, partial_args: Arguments = None) -> bool:
        return key_matches(cache_key, self.prefix, logical_key, partial_args)

    def parse_key(self, key: str) -> tuple[str, dict[str, str]] | None:
        """Parse an entry key into (logical_key, rendered fields).

        Returns None if the key doesn't belong to this namespace. Nested values
        come back as their fingerprints.
        """
        parts = key.split(KEY_DELIMITER)
        if self.prefix:
            if len(parts) < 3 or parts[0] != self.prefix:
                return None
            parts = parts[1:]
        if len(parts) < 2:
            return None

        fields: dict[str, str] = {}
        for token in parts[1:]:
            if token == NO_ARGS_TOKEN:
                continue
            name, sep, value = token.partition(FIELD_DELIMITER)
            if not sep:
                return None
            fields[name] = value
        return parts[0], fields
