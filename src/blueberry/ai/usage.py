"""Usage and cost ledger: per-turn records and running session totals."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from blueberry.ai.pricing import ModelPrice, PricingTier, calculate_cost, get_pricing
from blueberry.log import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class UsageRecord:
    input_tokens: int
    output_tokens: int
    cached_tokens: int
    cost: Decimal
    model_name: str
    context_length: int
    max_context_length: int
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def context_utilization(self) -> float:
        if self.max_context_length <= 0:
            return 0.0
        return self.context_length / self.max_context_length

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["cost"] = float(self.cost)
        data["timestamp"] = self.timestamp.isoformat()
        data["total_tokens"] = self.total_tokens
        data["context_utilization"] = self.context_utilization
        return data


@dataclass(frozen=True, slots=True)
class SessionSummary:
    session_start: datetime
    total_requests: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: Decimal = Decimal(0)
    max_context_used: int = 0
    avg_context_utilization: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    @property
    def session_duration(self) -> timedelta:
        return _utcnow() - self.session_start

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "total_input_tokens": self.total_input_tokens,
            "total_output_tokens": self.total_output_tokens,
            "total_tokens": self.total_tokens,
            "total_cost": float(self.total_cost),
            "session_start": self.session_start.isoformat(),
            "session_duration_seconds": self.session_duration.total_seconds(),
            "avg_context_utilization": self.avg_context_utilization,
            "max_context_used": self.max_context_used,
        }


class UsageLedger:
    """Append-only usage history with an incrementally maintained summary."""

    def __init__(
        self,
        tier: PricingTier = PricingTier.STANDARD,
        prices: dict[PricingTier, dict[str, ModelPrice]] | None = None,
    ):
        self._tier = tier
        self._prices = prices
        self._history: list[UsageRecord] = []
        self._summary = SessionSummary(session_start=_utcnow())
        self._utilization_sum = 0.0

    def record(
        self,
        input_tokens: int,
        output_tokens: int,
        cached_tokens: int,
        model_name: str,
        context_length: int,
        max_context_length: int,
    ) -> UsageRecord:
        price = get_pricing(model_name, self._tier, self._prices)
        record = UsageRecord(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cached_tokens=cached_tokens,
            cost=calculate_cost(price, input_tokens, output_tokens, cached_tokens),
            model_name=model_name,
            context_length=context_length,
            max_context_length=max_context_length,
        )
        self._history.append(record)
        self._update_summary(record)
        logger.debug(
            "usage_recorded",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cached_tokens=cached_tokens,
            cost=str(record.cost),
        )
        return record

    def _update_summary(self, record: UsageRecord) -> None:
        s = self._summary
        # Unweighted mean of per-record ratios, not a token-weighted average.
        self._utilization_sum += record.context_utilization
        requests = s.total_requests + 1
        self._summary = replace(
            s,
            total_requests=requests,
            total_input_tokens=s.total_input_tokens + record.input_tokens,
            total_output_tokens=s.total_output_tokens + record.output_tokens,
            total_cost=s.total_cost + record.cost,
            max_context_used=max(s.max_context_used, record.context_length),
            avg_context_utilization=self._utilization_sum / requests,
        )

    def summary(self) -> SessionSummary:
        return self._summary

    @property
    def history(self) -> tuple[UsageRecord, ...]:
        return tuple(self._history)

    def save_report(self, path: str | Path) -> bool:
        """Write summary and usage history as JSON. Returns False if the write failed."""
        report = {
            "summary": self._summary.to_dict(),
            "usage_history": [r.to_dict() for r in self._history],
            "generated_at": _utcnow().isoformat(),
        }
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("x", encoding="utf-8") as f:
                json.dump(report, f, indent=2)
        except OSError as e:
            logger.error("session_report_write_failed", path=str(target), error=str(e))
            return False
        logger.info("session_report_saved", path=str(target), requests=self._summary.total_requests)
        return True
