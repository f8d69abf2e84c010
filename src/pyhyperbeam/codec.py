"""Typed parameter codec for request addresses.

A typed parameter carries its type as a ``+suffix`` on the name::

    greeting=hello
    count+integer=42
    ratio+float=0.5
    items+list=apple,banana
    owners+map=alice=1;bob=2

The wire form has to stay human-typeable, so there is no escape
mechanism for the ``,``/``;``/``=`` separators.  Values that would need
one are rejected with :class:`UnencodableValueError` instead of being
silently escaped.  Collection members may be text, integers or finite
floats; they travel in their canonical text form with no per-member
type tag, so decoding always yields text members.  Only collections of
text round-trip exactly.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from typing import Any, TypeAlias
from urllib.parse import quote, unquote

from pyhyperbeam.exceptions import DuplicateKeyError, TypeMismatchError, UnencodableValueError

#: Decoded values; collections always come back with text members.
TypedValue: TypeAlias = str | int | float | list[str] | Mapping[str, str]
ParamsInput: TypeAlias = Mapping[str, Any] | Iterable[tuple[str, Any]]

INTEGER = "integer"
FLOAT = "float"
LIST = "list"
MAP = "map"

LIST_SEPARATOR = ","
MAP_SEPARATOR = ";"
PAIR_SEPARATOR = "="

# Left literal on the wire; everything else the URL transport can't carry is percent-quoted.
_SAFE = ",;=+:@!$'()*/"
_NAME_FORBIDDEN = frozenset("+=&?#% \t\r\n")

_INTEGER_RE = re.compile(r"[+-]?\d+")
_FLOAT_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def quote_wire(text: str) -> str:
    """Percent-quote *text* for the transport, keeping the wire separators literal."""
    return quote(text, safe=_SAFE)


def _check_name(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise UnencodableValueError(f"parameter name must be non-empty text, got {name!r}", value=name)
    bad = sorted(ch for ch in set(name) if ch in _NAME_FORBIDDEN)
    if bad:
        raise UnencodableValueError(f"parameter name {name!r} contains reserved characters {bad}", value=name)
    return name


def _member_text(value: Any, *, context: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and math.isfinite(value):
        return repr(value)
    raise UnencodableValueError(
        f"{context} must be text or a finite number, got {type(value).__name__} {value!r}",
        value=value,
    )


def _encode_list(name: str, values: Iterable[Any]) -> str:
    items = [_member_text(v, context=f"list element of {name!r}") for v in values]
    if items == [""]:
        raise UnencodableValueError(
            f"list {name!r} with a single empty element is indistinguishable from an empty list",
            value=items,
        )
    for item in items:
        if LIST_SEPARATOR in item:
            raise UnencodableValueError(
                f"list element {item!r} of {name!r} contains the separator {LIST_SEPARATOR!r}",
                value=item,
            )
    return LIST_SEPARATOR.join(quote_wire(item) for item in items)


def _encode_map(name: str, mapping: Mapping[Any, Any]) -> str:
    entries: dict[str, str] = {}
    for raw_key, raw_value in mapping.items():
        if isinstance(raw_key, bool) or not isinstance(raw_key, (str, int)):
            raise UnencodableValueError(f"map key {raw_key!r} of {name!r} must be text", value=raw_key)
        key = str(raw_key)
        if key in entries:
            raise DuplicateKeyError(f"map {name!r} repeats key {key!r}", key=key)
        value = _member_text(raw_value, context=f"map value {key!r} of {name!r}")
        for part in (key, value):
            if MAP_SEPARATOR in part or PAIR_SEPARATOR in part:
                raise UnencodableValueError(
                    f"map entry {key!r}={value!r} of {name!r} contains {MAP_SEPARATOR!r} or {PAIR_SEPARATOR!r}",
                    value=part,
                )
        entries[key] = value
    return MAP_SEPARATOR.join(f"{quote_wire(k)}{PAIR_SEPARATOR}{quote_wire(v)}" for k, v in entries.items())


def encode_param(name: str, value: Any) -> str:
    """Encode one ``name``/``value`` pair into its wire form.

    Raises :class:`UnencodableValueError` or :class:`DuplicateKeyError`
    for values with no unambiguous wire form.
    """
    name = _check_name(name)

    if isinstance(value, bool):
        raise UnencodableValueError(f"boolean {name!r}={value!r} has no typed wire form", value=value)
    if isinstance(value, str):
        return f"{name}={quote_wire(value)}"
    if isinstance(value, int):
        return f"{name}+{INTEGER}={value}"
    if isinstance(value, float):
        if not math.isfinite(value):
            raise UnencodableValueError(f"float {name!r}={value!r} is not a finite number", value=value)
        return f"{name}+{FLOAT}={value!r}"
    if isinstance(value, Mapping):
        return f"{name}+{MAP}={_encode_map(name, value)}"
    if isinstance(value, (list, tuple)):
        return f"{name}+{LIST}={_encode_list(name, value)}"

    raise UnencodableValueError(
        f"{name!r}: values of type {type(value).__name__} have no wire form",
        value=value,
    )


def _decode_map(name: str, raw: str) -> dict[str, str]:
    result: dict[str, str] = {}
    if not raw:
        return result
    for entry in raw.split(MAP_SEPARATOR):
        if entry.count(PAIR_SEPARATOR) != 1:
            raise TypeMismatchError(f"map {name!r} has malformed entry {entry!r}", literal=entry)
        key_raw, value_raw = entry.split(PAIR_SEPARATOR)
        key = unquote(key_raw)
        if key in result:
            raise DuplicateKeyError(f"map {name!r} repeats key {key!r}", key=key)
        result[key] = unquote(value_raw)
    return result


def decode_param(wire: str) -> tuple[str, TypedValue]:
    """Decode one wire parameter back to ``(name, value)``.

    Raises :class:`TypeMismatchError` when the literal does not match the
    declared type, or when the type suffix is unknown.
    """
    if PAIR_SEPARATOR not in wire:
        raise TypeMismatchError(f"parameter {wire!r} has no value", literal=wire)
    key, raw = wire.split(PAIR_SEPARATOR, 1)
    name, _, kind = key.partition("+")
    if not name:
        raise TypeMismatchError(f"parameter {wire!r} has no name", literal=wire)

    if not kind:
        return name, unquote(raw)
    if kind == INTEGER:
        if not _INTEGER_RE.fullmatch(raw):
            raise TypeMismatchError(f"{name!r}: {raw!r} is not a valid integer", literal=raw)
        return name, int(raw)
    if kind == FLOAT:
        if not _FLOAT_RE.fullmatch(raw):
            raise TypeMismatchError(f"{name!r}: {raw!r} is not a valid float", literal=raw)
        return name, float(raw)
    if kind == LIST:
        return name, [unquote(item) for item in raw.split(LIST_SEPARATOR)] if raw else []
    if kind == MAP:
        return name, _decode_map(name, raw)

    raise TypeMismatchError(f"{name!r}: unknown type suffix {kind!r}", literal=wire)


def iter_params(params: ParamsInput | None) -> list[tuple[str, Any]]:
    """Normalize a mapping or pair sequence, rejecting repeated names."""
    if params is None:
        return []
    pairs = list(params.items()) if isinstance(params, Mapping) else [tuple(p) for p in params]
    seen: set[str] = set()
    for name, _value in pairs:
        if name in seen:
            raise DuplicateKeyError(f"parameter {name!r} given more than once", key=name)
        seen.add(name)
    return pairs


def encode_params(params: ParamsInput | None) -> str:
    """Encode parameters in insertion order, joined by ``&``."""
    return "&".join(encode_param(name, value) for name, value in iter_params(params))


def decode_params(query: str) -> dict[str, TypedValue]:
    """Decode an ``&``-joined parameter string (leading ``?`` allowed)."""
    query = query.removeprefix("?")
    result: dict[str, TypedValue] = {}
    if not query:
        return result
    for wire in query.split("&"):
        name, value = decode_param(wire)
        if name in result:
            raise DuplicateKeyError(f"parameter {name!r} given more than once", key=name)
        result[name] = value
    return result
