"""Result models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProcessSnapshot(BaseModel):
    """Aggregated view of a process, as returned by ``ProcessPoller.aggregate``.

    ``cache`` is best-effort: when the cached sub-tree could not be
    fetched it is ``None`` and ``cache_error`` says why.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    process_id: str
    state: Any
    log: Any
    cache: Any = None
    cache_error: str | None = None
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def cache_available(self) -> bool:
        return self.cache_error is None
