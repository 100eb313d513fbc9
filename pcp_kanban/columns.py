"""
Per-column views of the board: ordering, deadline flags and the production
summary shown at the top of each sector column.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional

from .schema import Sector, Task

SORT_BY_DUE = "prazo"
SORT_BY_PRIORITY = "priority"

SOON_WINDOW = timedelta(days=7)


@dataclass
class SummaryLine:
    label: str
    quantity: int


def _order_number_value(task: Task) -> int:
    for candidate in (task.order_number, task.id):
        try:
            return int(candidate)
        except (TypeError, ValueError):
            continue
    return 0


def _compare(a: Task, b: Task, sort_by: str) -> int:
    if sort_by == SORT_BY_PRIORITY:
        cmp = a.priority.rank - b.priority.rank
    else:
        # Undated tasks go last
        if a.due_date is None and b.due_date is None:
            cmp = 0
        elif a.due_date is None:
            cmp = 1
        elif b.due_date is None:
            cmp = -1
        else:
            cmp = (a.due_date - b.due_date).days

    if cmp == 0:
        cmp = _order_number_value(a) - _order_number_value(b)
    return cmp


def sort_column(tasks: Iterable[Task], sort_by: str = SORT_BY_DUE, order: str = "asc") -> List[Task]:
    """
    Order a column by due date ("prazo") or priority, ties broken by order number.

    "desc" reverses the whole comparison, so undated tasks come first.
    """
    if sort_by not in (SORT_BY_DUE, SORT_BY_PRIORITY):
        raise ValueError(f"Unknown sort key: {sort_by}")
    if order not in ("asc", "desc"):
        raise ValueError(f"Unknown sort order: {order}")
    sign = 1 if order == "asc" else -1
    return sorted(tasks, key=cmp_to_key(lambda a, b: sign * _compare(a, b, sort_by)))


def deadline_flag(task: Task, today: Optional[date] = None) -> str:
    """"overdue" before today, "soon" within seven days, else "normal"."""
    if task.due_date is None:
        return "normal"
    today = today or date.today()
    if task.due_date < today:
        return "overdue"
    if task.due_date <= today + SOON_WINDOW:
        return "soon"
    return "normal"


def total_products(tasks: Iterable[Task]) -> int:
    return sum(p.quantity for t in tasks for p in t.products)


def production_summary(tasks: Iterable[Task], sector: Sector) -> List[SummaryLine]:
    """
    Aggregate product quantities for a sector column.

    Tapeçaria groups by coating colour, Lustração by wood colour, other
    sectors by product name only.
    """
    lines: Dict[str, SummaryLine] = {}
    for task in tasks:
        for product in task.products:
            if sector == Sector.TAPECARIA:
                colour = product.coating_color or "N/A"
                key, label = f"{product.name} - {colour}", f"{product.name} ({colour})"
            elif sector == Sector.LUSTRACAO:
                colour = product.wood_color or "N/A"
                key, label = f"{product.name} - {colour}", f"{product.name} ({colour})"
            else:
                key = label = product.name

            if key in lines:
                lines[key].quantity += product.quantity
            else:
                lines[key] = SummaryLine(label=label, quantity=product.quantity)

    return sorted(lines.values(), key=lambda line: line.quantity, reverse=True)
