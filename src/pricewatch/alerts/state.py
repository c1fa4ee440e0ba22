from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from pricewatch.alerts.rules import Alert


@dataclass(frozen=True, slots=True)
class TriggeredAlert:
    id: str
    alert: Alert                 # copy of the configuration that fired
    triggered_price: float
    triggered_at_ms: int
    viewed: bool = False

    def mark_viewed(self) -> "TriggeredAlert":
        return self if self.viewed else replace(self, viewed=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "alert": self.alert.to_dict(),
            "triggered_price": self.triggered_price,
            "triggered_at_ms": self.triggered_at_ms,
            "viewed": self.viewed,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "TriggeredAlert":
        return cls(
            id=str(d["id"]),
            alert=Alert.from_dict(d["alert"]),
            triggered_price=float(d["triggered_price"]),
            triggered_at_ms=int(d["triggered_at_ms"]),
            viewed=bool(d.get("viewed", False)),
        )


@dataclass(slots=True)
class AlertBook:
    """Active alerts (at most one per instrument) + triggered history, newest first."""
    active: list[Alert] = field(default_factory=list)
    triggered: list[TriggeredAlert] = field(default_factory=list)

    @property
    def unviewed_count(self) -> int:
        return sum(1 for t in self.triggered if not t.viewed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "active": [a.to_dict() for a in self.active],
            "triggered": [t.to_dict() for t in self.triggered],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "AlertBook":
        return cls(
            active=[Alert.from_dict(a) for a in d.get("active") or []],
            triggered=[TriggeredAlert.from_dict(t) for t in d.get("triggered") or []],
        )
