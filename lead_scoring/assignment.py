"""
Sales rep assignment.

Picks the least-loaded active rep. Load is recomputed from live open-lead
counts on every call, so two racing assignments may pick the same rep; the
roster still converges towards balance.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence

from database.models import SalesRep

logger = logging.getLogger(__name__)


class AssignmentStrategy(str, Enum):
    LEAST_LOADED = "least_loaded"
    OVERFLOW_LEAST_LOADED = "overflow_least_loaded"
    NO_ACTIVE_REP = "no_active_rep"
    RETAINED = "retained"  # existing lead kept its owner


@dataclass
class AssignmentResult:
    rep_id: Optional[str]
    strategy: AssignmentStrategy


def choose_rep(reps: Sequence[SalesRep], load_by_rep: Dict[str, int]) -> AssignmentResult:
    """
    Choose a rep from the active roster.

    Args:
        reps: Active reps in creation order
        load_by_rep: Open-lead count per rep id (missing means zero)

    Returns:
        AssignmentResult; when every rep is at capacity the whole roster is
        used instead (overflow), so lead creation is never blocked.
    """
    if not reps:
        return AssignmentResult(rep_id=None, strategy=AssignmentStrategy.NO_ACTIVE_REP)

    def load(rep: SalesRep) -> int:
        return load_by_rep.get(rep.id, 0)

    eligible = [rep for rep in reps if load(rep) < rep.max_open_leads]
    pool = eligible or list(reps)
    chosen = sorted(pool, key=lambda rep: (load(rep), rep.id))[0]

    strategy = AssignmentStrategy.LEAST_LOADED if eligible else AssignmentStrategy.OVERFLOW_LEAST_LOADED
    return AssignmentResult(rep_id=chosen.id, strategy=strategy)


class RepAssignor:
    """Loads the roster and live loads from the store, then applies ``choose_rep``."""

    def __init__(self, store):
        self.store = store

    async def assign(self) -> AssignmentResult:
        reps = await self.store.sales_reps.list_active()
        if not reps:
            logger.warning("No active sales rep; lead will be unassigned")
            return AssignmentResult(rep_id=None, strategy=AssignmentStrategy.NO_ACTIVE_REP)

        load_by_rep = await self.store.leads.open_lead_counts([rep.id for rep in reps])
        result = choose_rep(reps, load_by_rep)

        if result.strategy == AssignmentStrategy.OVERFLOW_LEAST_LOADED:
            logger.warning("All sales reps at capacity; assigning in overflow mode")
        logger.debug(
            "Assigned sales rep",
            extra={"rep_id": result.rep_id, "strategy": result.strategy.value},
        )
        return result
