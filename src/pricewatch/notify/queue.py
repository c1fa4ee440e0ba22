from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pricewatch.alerts.state import TriggeredAlert

@dataclass(slots=True)
class QueueStats:
    enq_ok: int = 0
    enq_drop: int = 0
    deq_ok: int = 0

class NotifyQueue:
    """
    Bounded hand-off between the alert engine and slow notifiers.
    try_put() never blocks: it drops on full and counts the drop.
    """
    def __init__(self, maxsize: int = 500):
        self._q: asyncio.Queue[TriggeredAlert] = asyncio.Queue(maxsize=maxsize)
        self.stats = QueueStats()

    def try_put(self, t: TriggeredAlert) -> bool:
        try:
            self._q.put_nowait(t)
        except asyncio.QueueFull:
            self.stats.enq_drop += 1
            return False
        self.stats.enq_ok += 1
        return True

    async def get(self) -> TriggeredAlert:
        t = await self._q.get()
        self.stats.deq_ok += 1
        return t

    def qsize(self) -> int:
        return self._q.qsize()
