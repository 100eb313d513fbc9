"""
In-memory board state.

Holds the session's tasks in fetch order and derives the per-sector lists,
search results and stats tiles from them. Nothing here is cached: every view
is recomputed from the current task list.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from .schema import Priority, Sector, Task, TERMINAL_SECTOR

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatsSnapshot:
    total: int
    in_progress: int
    completed: int
    high_priority: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "in_progress": self.in_progress,
            "completed": self.completed,
            "high_priority": self.high_priority,
        }


def matches_search(task: Task, term: str) -> bool:
    """Case-insensitive substring match on order number, client, description and product names."""
    needle = term.strip().lower()
    if not needle:
        return True
    haystacks = [task.order_number, task.client, task.description]
    haystacks.extend(p.name for p in task.products)
    return any(needle in (h or "").lower() for h in haystacks)


class BoardState:
    """Authoritative task list for the current session."""

    def __init__(self, tasks: Optional[Iterable[Task]] = None):
        self._tasks: List[Task] = []
        if tasks:
            self.load(tasks)

    @property
    def tasks(self) -> List[Task]:
        return list(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def load(self, tasks: Iterable[Task]) -> None:
        """Replace the whole board, typically after a fetch."""
        self._tasks = list(tasks)
        logger.debug(f"Board loaded with {len(self._tasks)} tasks")

    def upsert(self, task: Task) -> None:
        """Insert a task, or replace the one with the same id in place."""
        for i, existing in enumerate(self._tasks):
            if existing.id == task.id:
                self._tasks[i] = task
                return
        self._tasks.append(task)

    def get(self, task_id) -> Optional[Task]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def mutate_sector(self, task_id, new_sector: Sector, timestamp: datetime) -> bool:
        """
        Move one task to a new sector and stamp its update time.

        Returns False, changing nothing, when the id is not on the board.
        """
        task = self.get(task_id)
        if task is None:
            logger.warning(f"Ignoring sector change for unknown task {task_id}")
            return False
        task.sector = new_sector
        task.updated_at = timestamp
        return True

    def filter(self, predicate: Callable[[Task], bool]) -> List[Task]:
        return [t for t in self._tasks if predicate(t)]

    def search(self, term: str) -> List[Task]:
        return self.filter(lambda t: matches_search(t, term))

    def by_sector(self, sector: Sector, tasks: Optional[Iterable[Task]] = None) -> List[Task]:
        """Tasks in one sector, optionally restricted to an already-filtered list."""
        source = self._tasks if tasks is None else tasks
        return [t for t in source if t.sector == sector]

    def stats_snapshot(self) -> StatsSnapshot:
        total = len(self._tasks)
        completed = sum(1 for t in self._tasks if t.sector == TERMINAL_SECTOR)
        high = sum(1 for t in self._tasks if t.priority == Priority.ALTA)
        return StatsSnapshot(
            total=total,
            in_progress=total - completed,
            completed=completed,
            high_priority=high,
        )
