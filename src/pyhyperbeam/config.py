"""Client configuration for pyhyperbeam."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pyhyperbeam.exceptions import HyperBeamConfigError

DEFAULT_BASE_URL = "http://localhost:10000"
DEFAULT_TIMEOUT = 30.0


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _parse_header_list(raw: str) -> dict[str, str]:
    """Parse ``"Name: value; Other: value"`` into a dict."""
    headers: dict[str, str] = {}
    for item in raw.split(";"):
        if not item.strip():
            continue
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            raise HyperBeamConfigError(f"HYPERBEAM_HEADERS entry {item.strip()!r} is not 'Name: value'")
        headers[name.strip()] = value.strip()
    return headers


def merge_headers(*layers: Mapping[str, str] | None) -> dict[str, str]:
    """Combine header layers left to right; later layers win.

    Header names compare case-insensitively.  The spelling of the winning
    layer is kept, so ``{"action": "a"}`` followed by ``{"Action": "b"}``
    yields ``{"Action": "b"}``.
    """
    merged: dict[str, tuple[str, str]] = {}
    for layer in layers:
        if not layer:
            continue
        for name, value in layer.items():
            merged[name.lower()] = (name, str(value))
    return dict(merged.values())


@dataclasses.dataclass(frozen=True)
class HyperBeamConfig:
    """Endpoint configuration.

    Instances are immutable; use :meth:`replace` or :meth:`with_headers`
    to derive a new one.

    Parameters
    ----------
    base_url : str
        Node base URL, without a trailing slash.
    headers : Mapping[str, str]
        Default headers sent with every request.
    timeout : float
        Total per-request timeout in seconds.
    debug : bool
        Emit redacted request/response traces at DEBUG level.
    """

    base_url: str = DEFAULT_BASE_URL
    headers: Mapping[str, str] = dataclasses.field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    debug: bool = False

    def __post_init__(self) -> None:
        base_url = str(self.base_url).rstrip("/")
        if not base_url.startswith(("http://", "https://")):
            raise HyperBeamConfigError(f"base_url must be an http(s) URL, got {self.base_url!r}")
        try:
            timeout = float(self.timeout)
        except (TypeError, ValueError) as exc:
            raise HyperBeamConfigError(f"timeout must be a number, got {self.timeout!r}") from exc
        if timeout <= 0:
            raise HyperBeamConfigError(f"timeout must be positive, got {timeout}")
        object.__setattr__(self, "base_url", base_url)
        object.__setattr__(self, "timeout", timeout)
        object.__setattr__(self, "headers", MappingProxyType(merge_headers(self.headers)))

    def __hash__(self) -> int:
        # mappingproxy is unhashable; hash the header items instead.
        return hash((self.base_url, frozenset(self.headers.items()), self.timeout, self.debug))

    def replace(self, **changes: Any) -> HyperBeamConfig:
        """Return a copy with *changes* applied."""
        return dataclasses.replace(self, **changes)

    def with_headers(self, headers: Mapping[str, str]) -> HyperBeamConfig:
        """Return a copy whose default headers are extended by *headers*."""
        return self.replace(headers=merge_headers(self.headers, headers))

    @classmethod
    def from_env(cls, **overrides: Any) -> HyperBeamConfig:
        """Create configuration from environment variables.

        Reads ``HYPERBEAM_URL``, ``HYPERBEAM_TIMEOUT``, ``HYPERBEAM_DEBUG``
        and ``HYPERBEAM_HEADERS`` (``"Name: value; Other: value"``).
        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        url = env.get("HYPERBEAM_URL")
        if url is not None:
            config_kwargs["base_url"] = url

        timeout_env = env.get("HYPERBEAM_TIMEOUT")
        if timeout_env is not None and "timeout" not in overrides:
            try:
                config_kwargs["timeout"] = float(timeout_env)
            except ValueError as exc:
                raise HyperBeamConfigError(f"HYPERBEAM_TIMEOUT is not a number: {timeout_env!r}") from exc

        headers_env = env.get("HYPERBEAM_HEADERS")
        if headers_env is not None:
            config_kwargs["headers"] = _parse_header_list(headers_env)

        if "debug" not in overrides:
            config_kwargs["debug"] = _env_bool(env.get("HYPERBEAM_DEBUG"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
