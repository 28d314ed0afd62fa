"""
Canonical identifiers.

Entity references reach the services in several shapes: plain strings,
objects that convert to a string (``uuid.UUID``, ORM rows exposing
``id``), and wrappers such as ``{"_id": {"$oid": "..."}}``. ``normalize_id``
turns all of them into one validated, lower-case string or raises
``InvalidIdentifier``. It never returns a best-effort guess.
"""
import re
import secrets
import uuid
from collections.abc import Mapping
from typing import Any

from classroom.core.config import ID_FORMAT, ID_MAX_UNWRAP_DEPTH
from classroom.core.errors import InvalidIdentifier

ID_PATTERNS = {
    "hex24": re.compile(r"^[0-9a-f]{24}$"),
    "uuid": re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"),
}

# keys/attributes that may hold the wrapped id, checked in this order
ID_FIELDS = ("id", "_id", "$oid")


def _pattern(id_format: str) -> re.Pattern:
    try:
        return ID_PATTERNS[id_format]
    except KeyError:
        raise ValueError(f"unknown id format: {id_format!r}") from None


def new_id(id_format: str = ID_FORMAT) -> str:
    """Generate a fresh canonical id."""
    if id_format == "uuid":
        return str(uuid.uuid4())
    _pattern(id_format)
    return secrets.token_hex(12)


def is_canonical(value: Any, id_format: str = ID_FORMAT) -> bool:
    return isinstance(value, str) and _pattern(id_format).match(value) is not None


def _check(value: str, id_format: str) -> str:
    candidate = value.strip().lower()
    if not _pattern(id_format).match(candidate):
        raise InvalidIdentifier(f"Malformed identifier: {value[:64]!r}")
    return candidate


def _wrapped_value(ref: Any) -> Any:
    if isinstance(ref, Mapping):
        for field in ID_FIELDS:
            if field in ref:
                return ref[field]
        return None
    for field in ID_FIELDS:
        if field.isidentifier() and hasattr(ref, field):
            return getattr(ref, field)
    return None


def _has_own_str(ref: Any) -> bool:
    return type(ref).__str__ is not object.__str__


def normalize_id(ref: Any, *, id_format: str = ID_FORMAT, _depth: int = 0) -> str:
    """
    Return the canonical form of ``ref``.

    Raises InvalidIdentifier for None, numbers, degenerate conversions
    (``"[object Object]"``, default ``repr``-style strings) and wrappers
    nested deeper than ID_MAX_UNWRAP_DEPTH.
    """
    if _depth > ID_MAX_UNWRAP_DEPTH:
        raise InvalidIdentifier("Identifier is nested too deeply")

    if ref is None or isinstance(ref, (bool, int, float)):
        raise InvalidIdentifier("Identifier is missing or not a reference")

    if isinstance(ref, str):
        return _check(ref, id_format)

    if isinstance(ref, uuid.UUID):
        text = str(ref) if id_format == "uuid" else ref.hex
        return _check(text, id_format)

    if isinstance(ref, bytes):
        raise InvalidIdentifier("Identifier must be text")

    # reference objects with a meaningful string conversion
    if not isinstance(ref, Mapping) and _has_own_str(ref):
        text = str(ref)
        if _pattern(id_format).match(text.strip().lower()):
            return text.strip().lower()

    inner = _wrapped_value(ref)
    if inner is None:
        raise InvalidIdentifier(f"Cannot extract an identifier from {type(ref).__name__}")
    return normalize_id(inner, id_format=id_format, _depth=_depth + 1)


def normalize_optional_id(ref: Any, **kwargs) -> str | None:
    if ref is None or ref == "":
        return None
    return normalize_id(ref, **kwargs)
