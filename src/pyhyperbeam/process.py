"""Process handle: the four canonical views of one process, plus writes."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from pyhyperbeam._transport import Representation, Transport
from pyhyperbeam.address import Address, split_path
from pyhyperbeam.config import merge_headers

_logger = logging.getLogger(__name__)

PROCESS_DEVICE = "process"
PROCESS_VERSION = "1.0"

#: Live view; reflects the most recent accepted writes.
VIEW_NOW = "now"
#: Cached view; cheaper, may lag ``now``.
VIEW_COMPUTE = "compute"
#: Ordered record of accepted writes; also the write target.
VIEW_SCHEDULE = "schedule"
#: Region of the cached view published by the process.
CACHE_SEGMENT = "cache"

ACTION_HEADER = "Action"


class ProcessRef(BaseModel):
    """Identifier of one process on a node.

    Addresses are derived, never stored: rendering the same view twice
    yields the same string.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    process_id: str

    @field_validator("process_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("process_id must be non-empty")
        return value

    @model_validator(mode="after")
    def _addressable(self) -> ProcessRef:
        # Raises InvalidSegmentError for ids containing '/', '~', '@' or '?'.
        _ = self.root
        return self

    @property
    def root(self) -> Address:
        return Address(device=PROCESS_DEVICE, version=PROCESS_VERSION, base=self.process_id)

    def address(self, view: str, *subpath: str) -> str:
        return self.root.child(view, *subpath).render()


class ProcessHandle:
    """A narrow view over a transport, scoped to one process.

    Writes are fire-and-confirm: :meth:`submit` returning means the node
    accepted the message for processing, not that it has been applied.
    Re-read :meth:`live_state` (or use ``ProcessPoller.wait_for``) to
    observe the effect.
    """

    def __init__(self, transport: Transport, ref: ProcessRef | str) -> None:
        self._transport = transport
        self._ref = ref if isinstance(ref, ProcessRef) else ProcessRef(process_id=ref)

    @property
    def ref(self) -> ProcessRef:
        return self._ref

    @property
    def process_id(self) -> str:
        return self._ref.process_id

    def __repr__(self) -> str:
        return f"ProcessHandle({self.process_id!r})"

    async def _get(self, view: str, *subpath: str) -> Representation:
        return await self._transport.send("GET", self._ref.address(view, *subpath))

    async def live_state(self) -> Representation:
        """Fetch the live view (``/now``). Most expensive to compute."""
        return await self._get(VIEW_NOW)

    async def cached_state(self) -> Representation:
        """Fetch the cached view (``/compute``). May lag :meth:`live_state`."""
        return await self._get(VIEW_COMPUTE)

    async def log(self) -> Representation:
        """Fetch the ordered record of accepted writes (``/schedule``).

        A process that has accepted nothing yet yields an empty list.
        """
        result = await self._get(VIEW_SCHEDULE)
        if result is None or (isinstance(result, str) and not result.strip()):
            return []
        return result

    async def cached_subtree(self, path: str | None = None) -> Representation:
        """Fetch ``/compute/cache`` or a named region below it."""
        return await self._get(VIEW_COMPUTE, CACHE_SEGMENT, *split_path(path))

    async def get_data(self, path: str) -> Representation:
        """Fetch an arbitrary sub-path of the cached view (``/compute/<path>``)."""
        return await self._get(VIEW_COMPUTE, *split_path(path))

    async def submit(
        self,
        action: str,
        payload: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Representation:
        """Post a message to the process schedule.

        ``action`` travels as the ``Action`` header; extra *headers* are
        merged after it, so they may override it.
        """
        if not action:
            raise ValueError("action must be non-empty")
        address = self._ref.address(VIEW_SCHEDULE)
        _logger.debug("Submitting action=%s to process %s", action, self.process_id)
        return await self._transport.send(
            "POST",
            address,
            body={} if payload is None else payload,
            headers=merge_headers({ACTION_HEADER: action}, headers),
        )
