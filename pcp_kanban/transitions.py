"""
Sector transition controller: turns a drag-and-drop gesture into a
confirmed, persisted sector change.

Gesture lifecycle:
  IDLE → DRAGGING → PENDING_CONFIRMATION → COMMITTING → IDLE
                                         → CANCELLED  → IDLE

The board is only mutated after the remote update succeeds. A failed commit
leaves the task exactly where it was, so the board and the remote system
never disagree because of this controller.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from .audit import AuditLogger
from .board import BoardState
from .errors import ApiError, AuthExpired
from .pedidos import OrdersApi
from .schema import PendingTransition, Sector, utc_now

logger = logging.getLogger(__name__)


class DragState(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    PENDING_CONFIRMATION = "pending_confirmation"
    COMMITTING = "committing"
    CANCELLED = "cancelled"


@dataclass
class TransitionOutcome:
    """Result of one confirmed transition, as reported to observers."""
    transition: PendingTransition
    success: bool
    error: Optional[str] = None
    status: Optional[int] = None
    auth_expired: bool = False

    def describe(self) -> str:
        if self.success:
            return (
                f"Pedido {self.transition.task.order_number} "
                f"movido para {self.transition.target_label}"
            )
        if self.auth_expired:
            return "Sessão expirada, faça login novamente"
        return f"Falha ao mover pedido {self.transition.task.order_number}: {self.error}"


class SectorTransitionController:
    """Mediates drag/drop gestures into confirmed sector changes."""

    def __init__(
        self,
        board: BoardState,
        orders: OrdersApi,
        audit: Optional[AuditLogger] = None,
        clock: Callable = utc_now,
    ):
        self.board = board
        self.orders = orders
        self.audit = audit
        self.clock = clock

        self._state = DragState.IDLE
        self._dragged_id = None
        self._pending: Optional[PendingTransition] = None
        self.subscribers: Dict[str, List[Callable]] = {}  # event -> callbacks

    @property
    def state(self) -> DragState:
        return self._state

    @property
    def pending(self) -> Optional[PendingTransition]:
        return self._pending

    @property
    def can_confirm(self) -> bool:
        return self._state is DragState.PENDING_CONFIRMATION

    # ──────────────────────────────────────────
    # Observers
    # ──────────────────────────────────────────

    def subscribe(self, event: str, callback: Callable) -> None:
        """Register a callback for "proposed", "committed", "failed" or "cancelled"."""
        self.subscribers.setdefault(event, []).append(callback)

    def _emit(self, event: str, **kwargs) -> None:
        for callback in self.subscribers.get(event, []):
            try:
                callback(**kwargs)
            except Exception:
                logger.exception(f"Error in {event} callback")

    def _audit(self, event: str, transition: PendingTransition, **extra) -> None:
        if self.audit:
            self.audit.log(
                event,
                transition.task.id,
                order_number=transition.task.order_number,
                from_sector=transition.source_sector.value,
                to_sector=transition.target_sector.value,
                **extra,
            )

    # ──────────────────────────────────────────
    # Gesture
    # ──────────────────────────────────────────

    def drag_start(self, task_id) -> bool:
        """Capture the dragged task. Refused while a move awaits confirmation or is committing."""
        if self._state not in (DragState.IDLE, DragState.DRAGGING):
            logger.debug(f"drag_start ignored in state {self._state.value}")
            return False
        if self.board.get(task_id) is None:
            logger.warning(f"drag_start on unknown task {task_id}")
            return False
        self._dragged_id = task_id
        self._state = DragState.DRAGGING
        return True

    def drag_end(self) -> None:
        """Release without a drop: back to idle, nothing changes."""
        if self._state is DragState.DRAGGING:
            self._reset()

    def drop(self, target: Union[Sector, str]) -> Optional[PendingTransition]:
        """
        Drop the dragged task on a sector column.

        Returns the proposed transition awaiting confirmation, or None when
        there is nothing to confirm (no drag, not a sector, same sector, task gone).
        """
        if self._state is not DragState.DRAGGING:
            logger.debug(f"drop ignored in state {self._state.value}")
            return None

        if isinstance(target, Sector):
            target_sector = target
        else:
            try:
                target_sector = Sector.from_str(target)
            except ValueError:
                # Released outside a sector column
                logger.debug(f"drop on unknown target {target!r}, gesture cancelled")
                self._reset()
                return None

        task = self.board.get(self._dragged_id)
        if task is None:
            logger.warning(f"Dragged task {self._dragged_id} is no longer on the board")
            self._reset()
            return None

        if task.sector == target_sector:
            # Same column: not an error, just nothing to do
            self._reset()
            return None

        self._pending = PendingTransition(
            task=task,
            source_sector=task.sector,
            target_sector=target_sector,
        )
        self._state = DragState.PENDING_CONFIRMATION
        self._audit("proposed", self._pending)
        self._emit("proposed", transition=self._pending)
        return self._pending

    def cancel(self) -> bool:
        """Discard the pending move. No network call, no board change."""
        if self._state is not DragState.PENDING_CONFIRMATION:
            return False
        pending = self._pending
        self._state = DragState.CANCELLED
        self._audit("cancelled", pending)
        self._reset()
        self._emit("cancelled", transition=pending)
        return True

    async def confirm(self) -> Optional[TransitionOutcome]:
        """
        Persist the pending move, then apply it to the board.

        Returns None when nothing is pending or a commit is already running,
        so a double submission never reaches the network twice.
        """
        if self._state is not DragState.PENDING_CONFIRMATION or self._pending is None:
            logger.debug(f"confirm ignored in state {self._state.value}")
            return None

        pending = self._pending
        self._state = DragState.COMMITTING
        self._audit("confirmed", pending)

        try:
            await self.orders.update_sector(pending.task.id, pending.target_sector)
        except AuthExpired as e:
            outcome = TransitionOutcome(pending, success=False, error=str(e), auth_expired=True)
        except ApiError as e:
            outcome = TransitionOutcome(pending, success=False, error=e.message, status=e.status)
        else:
            if not self.board.mutate_sector(pending.task.id, pending.target_sector, self.clock()):
                logger.warning(
                    f"Task {pending.task.id} left the board while committing; "
                    "remote sector updated, local board unchanged"
                )
            outcome = TransitionOutcome(pending, success=True)
        finally:
            self._reset()

        if outcome.success:
            logger.info(outcome.describe())
            self._audit("committed", pending)
            self._emit("committed", outcome=outcome)
        else:
            logger.warning(outcome.describe())
            self._audit("failed", pending, error=outcome.error, status=outcome.status,
                        auth_expired=outcome.auth_expired or None)
            self._emit("failed", outcome=outcome)
        return outcome

    def _reset(self) -> None:
        self._dragged_id = None
        self._pending = None
        self._state = DragState.IDLE
