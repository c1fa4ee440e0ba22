from __future__ import annotations

from typing import Callable, Optional

import structlog

from pricewatch.alerts.formatting import format_raw_alert
from pricewatch.alerts.state import TriggeredAlert

log = structlog.get_logger("notifier")

class ConsoleNotifier:
    def __init__(self, format_fn: Optional[Callable[[TriggeredAlert], str]] = None):
        self._format_fn = format_fn

    async def send(self, t: TriggeredAlert) -> None:
        if self._format_fn:
            try:
                print(self._format_fn(t), flush=True)
                return
            except Exception as e:
                log.warning("console_format_failed", err=str(e))
        print(format_raw_alert(t), flush=True)
