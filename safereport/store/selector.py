"""Per-request backend selection between the durable and the ephemeral store."""
from __future__ import annotations

import asyncio
import logging

from safereport.store.base import Store

logger = logging.getLogger(__name__)

MODES = ("auto", "durable", "memory")


class StoreSelector:
    """Pick the store that serves the current request.

    In ``auto`` mode the durable store is probed before every request. A probe
    that raises or exceeds ``probe_timeout`` selects the memory store for that
    request only; the next request probes again. Transitions are logged once
    each way so an outage doesn't flood the log.
    """

    def __init__(self, durable: Store, memory: Store, *, mode: str = "auto", probe_timeout: float = 2.0):
        if mode not in MODES:
            raise ValueError(f"Unknown store backend {mode!r}; expected one of {', '.join(MODES)}")
        self.durable = durable
        self.memory = memory
        self.mode = mode
        self.probe_timeout = probe_timeout
        self._durable_up: bool | None = None

    @property
    def durable_up(self) -> bool | None:
        """Outcome of the most recent probe (None before the first one)."""
        return self._durable_up

    async def probe(self) -> bool:
        try:
            await asyncio.wait_for(self.durable.ping(), timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            self._transition(False, f"probe timed out after {self.probe_timeout}s")
            return False
        except Exception as exc:
            self._transition(False, f"{exc.__class__.__name__}: {exc}")
            return False
        self._transition(True)
        return True

    def _transition(self, up: bool, reason: str = "") -> None:
        if up == self._durable_up:
            return
        previous, self._durable_up = self._durable_up, up
        if up:
            if previous is not None:
                logger.info("Durable store reachable again; switching back from memory")
        else:
            logger.warning("Durable store unreachable (%s); serving from memory store", reason)

    async def select(self) -> Store:
        if self.mode == "memory":
            return self.memory
        if self.mode == "durable":
            return self.durable
        return self.durable if await self.probe() else self.memory
