"""Request address construction.

An address has the shape::

    /<base>~<device>@<version>/<segment>/<segment>?<typed params>

``base`` is usually a process id and may be empty (``/~meta@1.0/info``).
Building an address is pure: every construction error is raised here,
before anything touches the network.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from pyhyperbeam.codec import ParamsInput, encode_params, iter_params, quote_wire
from pyhyperbeam.exceptions import InvalidSegmentError

SEGMENT_SEPARATOR = "/"

_SEGMENT_FORBIDDEN = (SEGMENT_SEPARATOR, "?")
_DEVICE_FORBIDDEN = (SEGMENT_SEPARATOR, "?", "~", "@")


def _check_part(value: str, *, what: str, forbidden: tuple[str, ...], allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        raise InvalidSegmentError(f"{what} must be text, got {value!r}", segment=str(value))
    if not value and not allow_empty:
        raise InvalidSegmentError(f"{what} must not be empty", segment=value)
    for ch in forbidden:
        if ch in value:
            raise InvalidSegmentError(f"{what} {value!r} must not contain {ch!r}", segment=value)
    return value


def check_segment(segment: str) -> str:
    """Return *segment* unchanged, or raise :class:`InvalidSegmentError`."""
    return _check_part(segment, what="segment", forbidden=_SEGMENT_FORBIDDEN)


def split_path(path: str | None) -> tuple[str, ...]:
    """Split a ``a/b/c`` sub-path into segments.

    Leading and trailing slashes are ignored; an empty component in the
    middle (``a//b``) is an :class:`InvalidSegmentError`.
    """
    if not path:
        return ()
    stripped = path.strip(SEGMENT_SEPARATOR)
    if not stripped:
        return ()
    parts = tuple(stripped.split(SEGMENT_SEPARATOR))
    for part in parts:
        if not part:
            raise InvalidSegmentError(f"path {path!r} contains an empty segment", segment=part)
    return parts


class Address(BaseModel):
    """A validated request address.

    Parameters keep insertion order; the node may be sensitive to it, so
    they are never re-sorted.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    device: str
    version: str
    segments: tuple[str, ...] = ()
    params: tuple[tuple[str, Any], ...] = ()
    base: str = ""

    @field_validator("params", mode="before")
    @classmethod
    def _normalize_params(cls, value: Any) -> Any:
        if value is None:
            return ()
        return tuple(iter_params(value))

    @model_validator(mode="after")
    def _validate_parts(self) -> Address:
        _check_part(self.base, what="base", forbidden=_DEVICE_FORBIDDEN, allow_empty=True)
        _check_part(self.device, what="device", forbidden=_DEVICE_FORBIDDEN)
        _check_part(self.version, what="version", forbidden=(SEGMENT_SEPARATOR, "?", "~"))
        for segment in self.segments:
            check_segment(segment)
        # Surface encoding errors at construction rather than at send time.
        encode_params(self.params)
        return self

    @property
    def root(self) -> str:
        return f"/{self.base}~{self.device}@{self.version}"

    @property
    def query(self) -> str:
        return encode_params(self.params)

    def child(self, *segments: str) -> Address:
        """Return a new address with *segments* appended."""
        return self.model_copy(update={"segments": self.segments + tuple(check_segment(s) for s in segments)})

    def render(self) -> str:
        path = self.root
        if self.segments:
            path += SEGMENT_SEPARATOR + SEGMENT_SEPARATOR.join(quote_wire(s) for s in self.segments)
        query = self.query
        return f"{path}?{query}" if query else path

    def __str__(self) -> str:
        return self.render()


def build_address(
    device: str,
    version: str,
    segments: Iterable[str] = (),
    params: ParamsInput | None = None,
    *,
    base: str = "",
) -> str:
    """Build an address string.

    Segments are emitted verbatim except for characters the URL transport
    cannot carry, which are percent-quoted (``"a b"`` becomes ``a%20b``).
    Parameters are encoded by :func:`pyhyperbeam.codec.encode_params`.

    >>> build_address("process", "1.0", ["compute", "cache"], {"count": 42}, base="pid")
    '/pid~process@1.0/compute/cache?count+integer=42'
    """
    return Address(
        device=device,
        version=version,
        segments=tuple(segments),
        params=params,
        base=base,
    ).render()
