import math
from dataclasses import dataclass
from typing import Iterable

from mct.app.models.concept import Concept, Priority, Status


@dataclass(frozen=True)
class ConceptStats:
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    pending: int = 0
    urgent: int = 0
    completion_rate: int = 0


def compute_stats(concepts: Iterable[Concept]) -> ConceptStats:
    concepts = list(concepts)
    total = len(concepts)
    completed = sum(1 for c in concepts if c.status == Status.COMPLETED)
    return ConceptStats(
        total=total,
        completed=completed,
        in_progress=sum(1 for c in concepts if c.status == Status.IN_PROGRESS),
        pending=sum(1 for c in concepts if c.status == Status.PENDING),
        urgent=sum(1 for c in concepts if c.priority == Priority.URGENT),
        # half-up, so 1 of 8 reads as 13%
        completion_rate=math.floor(completed * 100 / total + 0.5) if total else 0,
    )
