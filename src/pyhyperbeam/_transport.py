"""HTTP transport: timeouts, content negotiation and error normalization."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol, TypeAlias

import aiohttp
from yarl import URL

from pyhyperbeam._redact import redact_for_log
from pyhyperbeam.config import HyperBeamConfig, merge_headers
from pyhyperbeam.exceptions import (
    HyperBeamTimeoutError,
    HyperBeamTransportError,
    MalformedResponseError,
    RequestFailedError,
)

_logger = logging.getLogger(__name__)

#: Parsed JSON for structured responses, raw text otherwise.
Representation: TypeAlias = Any

_BASE_HEADERS: dict[str, str] = {"Accept": "application/json, text/plain;q=0.9, */*;q=0.5"}
_JSON_CONTENT_TYPE = "application/json"


class Transport(Protocol):
    """Structural transport interface used by process handles.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def send(
        self,
        method: str,
        address: str,
        *,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Representation:
        ...


def is_structured(content_type: str | None) -> bool:
    """Whether a declared content type promises JSON (``application/json``, ``+json``)."""
    if not content_type:
        return False
    return "json" in content_type.split(";", 1)[0].strip().lower()


def _encode_body(body: Any) -> tuple[str | bytes | None, dict[str, str]]:
    if body is None:
        return None, {}
    if isinstance(body, (str, bytes, bytearray)):
        return bytes(body) if isinstance(body, bytearray) else body, {}
    return json.dumps(body, separators=(",", ":")), {"Content-Type": _JSON_CONTENT_TYPE}


class HttpTransport:
    """Issues exactly one HTTP request per :meth:`send`; never retries."""

    def __init__(self, config: HyperBeamConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.timeout)

    @property
    def config(self) -> HyperBeamConfig:
        return self._config

    def url_for(self, address: str) -> URL:
        # Addresses are already quoted by the builder; stop yarl from requoting '+' and friends.
        if not address.startswith("/"):
            address = "/" + address
        return URL(f"{self._config.base_url}{address}", encoded=True)

    async def send(
        self,
        method: str,
        address: str,
        *,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Representation:
        """Send a request and return its representation.

        Raises
        ------
        HyperBeamTimeoutError
            The request exceeded ``config.timeout``.
        RequestFailedError
            Non-2xx status; the body is not read.
        MalformedResponseError
            The body did not decode in its declared charset, or claimed
            JSON but did not parse.
        HyperBeamTransportError
            Any other network-level failure.
        """
        method = method.upper()
        data, body_headers = _encode_body(body)
        request_headers = merge_headers(_BASE_HEADERS, body_headers, self._config.headers, headers)
        url = self.url_for(address)

        if self._config.debug:
            _logger.debug(
                "%s %s headers=%s body=%s",
                method,
                url,
                redact_for_log(request_headers),
                redact_for_log(body),
            )
        else:
            _logger.debug("%s %s", method, url)

        try:
            async with self._http.request(
                method,
                url,
                data=data,
                headers=request_headers,
                timeout=self._timeout,
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise RequestFailedError(
                        f"HTTP {resp.status}: {resp.reason or ''} ({method} {address})",
                        status_code=resp.status,
                        status_text=resp.reason or "",
                        address=address,
                    )
                status = resp.status
                content_type = resp.headers.get("Content-Type")
                charset = resp.charset or "utf-8"
                payload = await resp.read()
        except HyperBeamTransportError:
            raise
        except TimeoutError as exc:
            raise HyperBeamTimeoutError(
                f"{method} {address} timed out after {self._config.timeout}s",
                address=address,
            ) from exc
        except aiohttp.ClientError as exc:
            raise HyperBeamTransportError(
                f"{method} {address} failed: {exc}",
                address=address,
            ) from exc

        try:
            text = payload.decode(charset)
        except (UnicodeDecodeError, LookupError) as exc:
            raise MalformedResponseError(
                f"Undecodable {charset} body from {method} {address}: {payload[:200]!r}",
                status_code=status,
                address=address,
            ) from exc

        if not is_structured(content_type):
            if self._config.debug:
                _logger.debug("%s %s -> text %s", method, address, redact_for_log(text))
            return text

        try:
            result = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(
                f"Invalid JSON from {method} {address}: {text[:200]!r}",
                status_code=status,
                address=address,
            ) from exc

        if self._config.debug:
            _logger.debug("%s %s -> json %s", method, address, redact_for_log(result))
        return result
