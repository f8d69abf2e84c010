"""High-level async client for a HyperBEAM node."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

import aiohttp

from pyhyperbeam._transport import HttpTransport, Representation
from pyhyperbeam.address import build_address
from pyhyperbeam.codec import ParamsInput
from pyhyperbeam.config import HyperBeamConfig
from pyhyperbeam.exceptions import HyperBeamError
from pyhyperbeam.poller import ErrorCallback, ProcessPoller
from pyhyperbeam.process import ProcessHandle, ProcessRef

_logger = logging.getLogger(__name__)

META_INFO_ADDRESS = build_address("meta", "1.0", ["info"])


class HyperBeamClient:
    """Async client for a HyperBEAM node.

    Usage::

        async with HyperBeamClient(HyperBeamConfig(base_url="http://localhost:10000")) as client:
            info = await client.node_info()
            state = await client.process("PROCESS_ID").live_state()
    """

    def __init__(
        self,
        config: HyperBeamConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config if config is not None else HyperBeamConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport: HttpTransport | None = None

    @property
    def config(self) -> HyperBeamConfig:
        return self._config

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> HyperBeamClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = HttpTransport(self._config, self._http_session)
        _logger.debug("Client opened for %s", self._config.base_url)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    def _require_transport(self) -> HttpTransport:
        if self._transport is None:
            raise HyperBeamError("Client not initialized. Use 'async with HyperBeamClient(...) as client:'")
        return self._transport

    # ------------------------------------------------------------------
    # Raw requests
    # ------------------------------------------------------------------

    async def get(self, path: str, *, headers: Mapping[str, str] | None = None) -> Representation:
        """GET an already-built address (e.g. ``/~meta@1.0/info``)."""
        return await self._require_transport().send("GET", path, headers=headers)

    async def post(
        self,
        path: str,
        body: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> Representation:
        """POST *body* to an already-built address."""
        return await self._require_transport().send("POST", path, body={} if body is None else body, headers=headers)

    async def call(
        self,
        device: str,
        version: str,
        segments: Iterable[str] = (),
        params: ParamsInput | None = None,
        *,
        base: str = "",
        headers: Mapping[str, str] | None = None,
    ) -> Representation:
        """Build an address from typed parts and GET it.

        The address is built before the transport is touched, so
        construction errors never reach the network.
        """
        address = build_address(device, version, segments, params, base=base)
        return await self.get(address, headers=headers)

    async def node_info(self) -> Representation:
        """Fetch node metadata (``/~meta@1.0/info``)."""
        return await self.get(META_INFO_ADDRESS)

    # ------------------------------------------------------------------
    # Processes
    # ------------------------------------------------------------------

    def process(self, process_id: str | ProcessRef) -> ProcessHandle:
        """Return a handle scoped to one process."""
        return ProcessHandle(self._require_transport(), process_id)

    def poller(self, process_id: str | ProcessRef, *, on_error: ErrorCallback | None = None) -> ProcessPoller:
        """Return a poller over a new handle for *process_id*."""
        return ProcessPoller(self.process(process_id), on_error=on_error)
