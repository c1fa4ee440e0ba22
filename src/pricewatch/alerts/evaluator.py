from __future__ import annotations

import uuid
from typing import Callable, Mapping, Optional

import structlog

from pricewatch.alerts.rules import Alert, Direction, validate_threshold
from pricewatch.alerts.state import AlertBook, TriggeredAlert
from pricewatch.storage.blob import ALERTS_KEY, BlobStore, load_json, save_json
from pricewatch.utils.time import now_ms
from pricewatch.utils.types import PriceSnapshot

log = structlog.get_logger("alerts")


def generate_id(now: int) -> str:
    return f"{now}-{uuid.uuid4().hex[:7]}"


def evaluate_alerts(
    active: list[Alert],
    prices: Mapping[str, PriceSnapshot],
    *,
    now: int,
    new_id: Callable[[int], str] = generate_id,
) -> tuple[list[Alert], list[TriggeredAlert]]:
    """
    Pure evaluation. Returns (still_active, newly_triggered), both in the
    order of `active`. Alerts whose instrument has no price are untouched.
    """
    still_active: list[Alert] = []
    triggered: list[TriggeredAlert] = []
    for alert in active:
        snap = prices.get(alert.instrument_id)
        if snap is None or not alert.is_triggered_by(snap.price):
            still_active.append(alert)
            continue
        triggered.append(TriggeredAlert(
            id=new_id(now),
            alert=alert,
            triggered_price=snap.price,
            triggered_at_ms=now,
        ))
    return still_active, triggered


class AlertEngine:
    """
    Owns active/triggered alerts. Reads prices only as an argument to
    evaluate(); notification dispatch is the caller's job.

    State transitions are applied synchronously (no await between reading and
    replacing the book); persistence happens afterwards.
    """

    def __init__(self, *, store: Optional[BlobStore] = None, clock: Callable[[], int] = now_ms):
        self.store = store
        self._clock = clock
        self.book = AlertBook()
        self.has_hydrated: bool = False

    # ---- views ----

    @property
    def active_alerts(self) -> list[Alert]:
        return list(self.book.active)

    @property
    def triggered_alerts(self) -> list[TriggeredAlert]:
        return list(self.book.triggered)

    @property
    def unviewed_count(self) -> int:
        return self.book.unviewed_count

    def get_alert_for(self, instrument_id: str) -> Optional[Alert]:
        for a in self.book.active:
            if a.instrument_id == instrument_id:
                return a
        return None

    # ---- mutations ----

    async def add_alert(self, instrument_id: str, direction: Direction | str, threshold: float) -> str:
        """Create an alert, replacing any active alert on the same instrument."""
        now = self._clock()
        alert = Alert(
            id=generate_id(now),
            instrument_id=instrument_id,
            direction=Direction(direction),
            threshold=validate_threshold(threshold),
            created_at_ms=now,
        )
        replaced = self.get_alert_for(instrument_id)
        self.book.active = [a for a in self.book.active if a.instrument_id != instrument_id] + [alert]
        log.info(
            "alert_added",
            instrument=instrument_id,
            direction=alert.direction.value,
            threshold=alert.threshold,
            replaced=replaced.id if replaced else None,
        )
        await self._persist()
        return alert.id

    async def remove_alert(self, alert_id: str) -> bool:
        before = len(self.book.active)
        self.book.active = [a for a in self.book.active if a.id != alert_id]
        removed = len(self.book.active) < before
        if removed:
            log.info("alert_removed", alert_id=alert_id)
            await self._persist()
        return removed

    async def update_alert(
        self,
        alert_id: str,
        *,
        direction: Direction | str | None = None,
        threshold: float | None = None,
    ) -> Optional[Alert]:
        updated: Optional[Alert] = None
        active: list[Alert] = []
        for a in self.book.active:
            if a.id == alert_id:
                a = a.with_updates(
                    direction=Direction(direction) if direction is not None else None,
                    threshold=threshold,
                )
                updated = a
            active.append(a)
        if updated is not None:
            self.book.active = active
            await self._persist()
        return updated

    async def evaluate(self, prices: Mapping[str, PriceSnapshot]) -> list[TriggeredAlert]:
        """Move every satisfied alert to the triggered list (newest first)."""
        still_active, newly = evaluate_alerts(self.book.active, prices, now=self._clock())
        if not newly:
            return []
        self.book.active = still_active
        self.book.triggered = newly + self.book.triggered
        for t in newly:
            log.info(
                "alert_triggered",
                instrument=t.alert.instrument_id,
                direction=t.alert.direction.value,
                threshold=t.alert.threshold,
                price=t.triggered_price,
            )
        await self._persist()
        return newly

    async def mark_all_as_viewed(self) -> None:
        self.book.triggered = [t.mark_viewed() for t in self.book.triggered]
        await self._persist()

    async def clear_triggered_alerts(self) -> None:
        self.book.triggered = []
        await self._persist()

    # ---- persistence ----

    async def hydrate(self) -> None:
        blob = await load_json(self.store, ALERTS_KEY)
        if isinstance(blob, dict):
            try:
                self.book = AlertBook.from_dict(blob)
            except (KeyError, TypeError, ValueError) as e:
                log.warning("alerts_hydrate_failed", err=str(e))
        self.has_hydrated = True

    async def _persist(self) -> None:
        await save_json(self.store, ALERTS_KEY, self.book.to_dict())
