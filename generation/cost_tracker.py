"""
Cost tracker — token usage and dollar cost per model call.

Writes append-only rows to generation_costs. Recording is fire-and-forget:
a storage failure is logged and never reaches the caller.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from database.models import GenerationCost
from generation.schemas import CostRecord, StageCost, UserCostSummary

log = logging.getLogger(__name__)

# USD per 1M tokens
MODEL_PRICING: Dict[str, Dict[str, float]] = {
    "gpt-4o": {"input": 5.0, "output": 15.0},
    "gpt-4o-mini": {"input": 0.15, "output": 0.6},
}
DEFAULT_PRICING_MODEL = "gpt-4o"


def calculate_cost(input_tokens: int, output_tokens: int, model: str) -> float:
    """Dollar cost of one call; unknown models are priced as gpt-4o."""
    pricing = MODEL_PRICING.get(model, MODEL_PRICING[DEFAULT_PRICING_MODEL])
    return (input_tokens / 1_000_000) * pricing["input"] + (output_tokens / 1_000_000) * pricing["output"]


class CostTracker:
    """Persists CostRecords through a SQLAlchemy session factory."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _insert(self, record: CostRecord) -> None:
        db = self.session_factory()
        try:
            db.add(GenerationCost(**record.model_dump(exclude_none=True)))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def track_generation(
        self,
        user_id: str,
        stage: str,
        input_tokens: int,
        output_tokens: int,
        model: str,
    ) -> float:
        """
        Record one model call and return its cost.

        Never raises: cost tracking must not fail a generation request.
        """
        cost = calculate_cost(input_tokens, output_tokens, model)
        record = CostRecord(
            user_id=user_id,
            stage=stage,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
            model=model,
        )
        try:
            await asyncio.to_thread(self._insert, record)
        except Exception as e:
            log.error(f"[Cost] Failed to track cost for user={user_id} stage={stage}: {e}")
        return cost

    def _records(self, user_id: str, since: datetime) -> List[CostRecord]:
        db = self.session_factory()
        try:
            rows = (
                db.query(GenerationCost)
                .filter(GenerationCost.user_id == user_id, GenerationCost.created_at >= since)
                .order_by(GenerationCost.created_at)
                .all()
            )
            return [CostRecord.model_validate(row) for row in rows]
        finally:
            db.close()

    async def get_user_costs(self, user_id: str, days: int = 30, now: Optional[datetime] = None) -> UserCostSummary:
        """
        Cost report for a user over the last `days` days.

        Totals, per-stage cost/tokens/call count, and cost per UTC day.
        A read failure is logged and yields an empty summary.
        """
        since = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        try:
            records = await asyncio.to_thread(self._records, user_id, since)
        except Exception as e:
            log.error(f"[Cost] Failed to read costs for user={user_id}: {e}")
            return UserCostSummary()
        return summarise_costs(records)


def _day(created_at: Optional[datetime]) -> str:
    if created_at is None:
        return "unknown"
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(timezone.utc)
    return created_at.date().isoformat()


def summarise_costs(records: List[CostRecord]) -> UserCostSummary:
    summary = UserCostSummary()
    for record in records:
        tokens = record.input_tokens + record.output_tokens
        summary.total_cost += record.cost_usd
        summary.total_tokens += tokens

        stage = summary.by_stage.setdefault(record.stage, StageCost())
        stage.cost += record.cost_usd
        stage.tokens += tokens
        stage.count += 1

        day = _day(record.created_at)
        summary.daily_trend[day] = summary.daily_trend.get(day, 0.0) + record.cost_usd
    return summary
