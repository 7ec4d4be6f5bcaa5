"""Per-run creation budgets for locations, experiences and plans."""

import math
from dataclasses import dataclass
from typing import Dict, Optional, Union

from tourgen.config import settings

UNLIMITED = math.inf

Limit = Union[int, float]


class QuotaExceededError(Exception):
    """Raised when consuming past a finite limit."""


@dataclass
class Quota:
    """One resource budget. limit is a positive int or UNLIMITED."""

    name: str
    limit: Limit
    consumed: int = 0

    @classmethod
    def from_raw(cls, name: str, raw: Optional[int], default: int) -> "Quota":
        """None means the default, 0 means unlimited."""
        if raw is None:
            raw = default
        if raw < 0:
            raise ValueError(f"{name} limit must be >= 0, got {raw}")
        return cls(name=name, limit=UNLIMITED if raw == 0 else int(raw))

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    def limit_reached(self) -> bool:
        if self.unlimited:
            return False
        return self.consumed >= self.limit

    def remaining(self) -> Limit:
        if self.unlimited:
            return UNLIMITED
        return max(self.limit - self.consumed, 0)

    def consume(self, n: int = 1) -> None:
        if n < 0:
            raise ValueError("cannot consume a negative amount")
        if not self.unlimited and self.consumed + n > self.limit:
            raise QuotaExceededError(f"{self.name} quota of {self.limit} exceeded")
        self.consumed += n

    def bounded(self, cap: int) -> int:
        """Smaller of cap and what is left."""
        remaining = self.remaining()
        return cap if remaining == UNLIMITED else min(cap, int(remaining))

    def describe(self) -> Dict[str, Optional[int]]:
        return {"limit": None if self.unlimited else int(self.limit), "consumed": self.consumed}


@dataclass
class QuotaTracker:
    """The three budgets of a run, created fresh per run."""

    locations: Quota
    experiences: Quota
    plans: Quota

    @classmethod
    def from_limits(
        cls,
        max_locations: Optional[int] = None,
        max_experiences: Optional[int] = None,
        max_plans: Optional[int] = None,
    ) -> "QuotaTracker":
        return cls(
            locations=Quota.from_raw("locations", max_locations, settings.DEFAULT_MAX_LOCATIONS),
            experiences=Quota.from_raw("experiences", max_experiences, settings.DEFAULT_MAX_EXPERIENCES),
            plans=Quota.from_raw("plans", max_plans, settings.DEFAULT_MAX_PLANS),
        )

    def snapshot(self) -> Dict[str, Dict[str, Optional[int]]]:
        return {q.name: q.describe() for q in (self.locations, self.experiences, self.plans)}
