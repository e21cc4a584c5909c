"""LLM spend metering with per-job (and optional per-run) ceilings.

All mutations go through a single asyncio.Lock, so concurrent workers of
the same job can never race past the ceiling:
- reserve() admits a call only if spent + reserved + estimate fits
- record() converts a reservation into actual spend
"""

import asyncio
import logging
from collections import defaultdict
from typing import Optional

from src.models import UsageRecord

logger = logging.getLogger(__name__)


class CostGuard:
    """Lock-guarded cost accumulator.

    Usage:
        guard = CostGuard(ceiling_usd=0.05)

        if await guard.reserve(job.id, estimate):
            usage = await provider.analyze(...)
            await guard.record(job.id, usage, reserved=estimate)
    """

    def __init__(self, ceiling_usd: float, run_ceiling_usd: Optional[float] = None):
        """
        Args:
            ceiling_usd: Maximum LLM spend per job
            run_ceiling_usd: Maximum LLM spend for the whole process (None/0 = unlimited)
        """
        if ceiling_usd < 0:
            raise ValueError("ceiling_usd must be >= 0")
        self.ceiling_usd = ceiling_usd
        self.run_ceiling_usd = run_ceiling_usd or None

        self._spent: dict[str, float] = defaultdict(float)  # job_id -> recorded cost
        self._reserved: dict[str, float] = defaultdict(float)  # job_id -> in-flight estimates
        self._records: dict[str, list[UsageRecord]] = defaultdict(list)
        self._run_spent = 0.0
        self._run_reserved = 0.0
        self._lock = asyncio.Lock()

    async def reserve(self, job_id: str, estimated_cost: float) -> bool:
        """
        Reserve budget for one detector call.

        Returns:
            True if the call may proceed, False if it would exceed a ceiling
        """
        estimated_cost = max(estimated_cost, 0.0)
        async with self._lock:
            committed = self._spent[job_id] + self._reserved[job_id]
            if committed >= self.ceiling_usd or committed + estimated_cost > self.ceiling_usd:
                logger.info(
                    f"Budget denied for job {job_id}: committed ${committed:.4f} + "
                    f"estimate ${estimated_cost:.4f} > ceiling ${self.ceiling_usd:.4f}"
                )
                return False

            if self.run_ceiling_usd is not None:
                run_committed = self._run_spent + self._run_reserved
                if run_committed + estimated_cost > self.run_ceiling_usd:
                    logger.info(
                        f"Run budget denied: committed ${run_committed:.4f} + "
                        f"estimate ${estimated_cost:.4f} > ceiling ${self.run_ceiling_usd:.4f}"
                    )
                    return False

            self._reserved[job_id] += estimated_cost
            self._run_reserved += estimated_cost
            return True

    async def record(self, job_id: str, usage: Optional[UsageRecord], reserved: float = 0.0) -> None:
        """
        Record the actual cost of a call and release its reservation.

        Args:
            job_id: Job the call belongs to
            usage: Usage record of the call (None when the call never produced one)
            reserved: Amount previously reserved for this call
        """
        async with self._lock:
            released = min(max(reserved, 0.0), self._reserved[job_id])
            self._reserved[job_id] -= released
            self._run_reserved = max(self._run_reserved - released, 0.0)

            if usage is None:
                return
            self._records[job_id].append(usage)
            self._spent[job_id] += usage.cost_usd
            self._run_spent += usage.cost_usd
            over_ceiling = self._spent[job_id] > self.ceiling_usd

        if usage.cost_usd > reserved > 0:
            logger.warning(
                f"Actual cost ${usage.cost_usd:.4f} exceeded reservation ${reserved:.4f} "
                f"({usage.provider}/{usage.model})"
            )
        if over_ceiling:
            logger.warning(f"Job {job_id} spend exceeded ceiling ${self.ceiling_usd:.4f}, further LLM calls are denied")

    async def total(self, job_id: str, board_id: Optional[str] = None) -> float:
        """Recorded spend for a job, optionally limited to one board."""
        async with self._lock:
            if board_id is None:
                return self._spent.get(job_id, 0.0)
            return sum(r.cost_usd for r in self._records.get(job_id, []) if r.board_id == board_id)

    async def remaining(self, job_id: str) -> float:
        async with self._lock:
            committed = self._spent.get(job_id, 0.0) + self._reserved.get(job_id, 0.0)
            return max(self.ceiling_usd - committed, 0.0)

    async def is_exhausted(self, job_id: str) -> bool:
        return await self.remaining(job_id) <= 0.0

    async def usage_records(self, job_id: str) -> list[UsageRecord]:
        """Copy of the append-only usage log of a job."""
        async with self._lock:
            return list(self._records.get(job_id, []))

    @property
    def run_total(self) -> float:
        return self._run_spent
