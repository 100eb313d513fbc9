"""
Tests for the sector transition controller.

Covers:
    - gesture lifecycle: drag → drop → confirm / cancel
    - no-op drops on the current sector
    - commit atomicity: board changes only after the remote update succeeds
    - double-submission guard while committing
    - failure reporting (auth expiry vs generic API failure)
    - observers and the audit trail
    - end-to-end through the real API client
"""
import asyncio
import json
from datetime import datetime, timezone

import pytest

from conftest import BASE_URL, FakeBackend
from pcp_kanban.api_client import ApiClient, ApiResponse
from pcp_kanban.audit import AuditLogger
from pcp_kanban.board import BoardState
from pcp_kanban.credentials import Credential
from pcp_kanban.errors import ApiError, AuthExpired
from pcp_kanban.pedidos import OrdersApi
from pcp_kanban.schema import Sector, Task
from pcp_kanban.transitions import DragState, SectorTransitionController


NOW = datetime(2025, 8, 1, 9, 30, tzinfo=timezone.utc)
BEFORE = datetime(2025, 7, 20, 10, 0, tzinfo=timezone.utc)


class FakeOrders:
    """Records update_sector calls; optionally fails or blocks."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []
        self.gate = None  # asyncio.Event to hold the commit open

    async def update_sector(self, task_id, sector):
        self.calls.append((task_id, sector))
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error


@pytest.fixture
def board():
    return BoardState([
        Task(id=1, order_number="PED-001", sector=Sector.USINAGEM, updated_at=BEFORE),
        Task(id=2, order_number="PED-002", sector=Sector.EXPEDICAO, updated_at=BEFORE),
    ])


def make_controller(board, orders, **kwargs):
    return SectorTransitionController(board, orders, clock=lambda: NOW, **kwargs)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Gesture lifecycle
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_starts_idle(board):
    controller = make_controller(board, FakeOrders())
    assert controller.state is DragState.IDLE
    assert controller.pending is None


def test_drag_end_without_drop_returns_to_idle(board):
    controller = make_controller(board, FakeOrders())
    assert controller.drag_start(1)
    assert controller.state is DragState.DRAGGING

    controller.drag_end()
    assert controller.state is DragState.IDLE


def test_drag_start_unknown_task_refused(board):
    controller = make_controller(board, FakeOrders())
    assert not controller.drag_start(99)
    assert controller.state is DragState.IDLE


def test_drop_on_same_sector_is_noop(board):
    orders = FakeOrders()
    controller = make_controller(board, orders)
    before = board.get(1).to_dict()

    controller.drag_start(1)
    assert controller.drop(Sector.USINAGEM) is None

    assert controller.state is DragState.IDLE
    assert orders.calls == []
    assert board.get(1).to_dict() == before
    # Nothing left to confirm
    assert asyncio.run(controller.confirm()) is None
    assert orders.calls == []


def test_drop_proposes_without_mutating(board):
    controller = make_controller(board, FakeOrders())
    controller.drag_start(1)

    pending = controller.drop("montagem")

    assert controller.state is DragState.PENDING_CONFIRMATION
    assert pending.task.id == 1
    assert pending.source_label == "Usinagem"
    assert pending.target_label == "Montagem"
    assert board.get(1).sector == Sector.USINAGEM


def test_drop_without_drag_ignored(board):
    controller = make_controller(board, FakeOrders())
    assert controller.drop(Sector.MONTAGEM) is None
    assert controller.state is DragState.IDLE


def test_drop_outside_sector_columns_cancels_gesture(board, tmp_path):
    orders = FakeOrders()
    audit = AuditLogger(tmp_path / "audit.jsonl")
    controller = make_controller(board, orders, audit=audit)
    controller.drag_start(1)

    assert controller.drop("pintura") is None

    assert controller.state is DragState.IDLE
    assert controller.pending is None
    assert orders.calls == []
    assert board.get(1).sector == Sector.USINAGEM
    assert not (tmp_path / "audit.jsonl").exists()
    # A new gesture can start right away
    assert controller.drag_start(1)


def test_drop_after_task_left_board(board):
    controller = make_controller(board, FakeOrders())
    controller.drag_start(1)
    board.load([])

    assert controller.drop(Sector.MONTAGEM) is None
    assert controller.state is DragState.IDLE


def test_no_second_drag_while_pending(board):
    controller = make_controller(board, FakeOrders())
    controller.drag_start(1)
    controller.drop(Sector.MONTAGEM)

    assert not controller.drag_start(2)
    controller.drag_end()  # late dragend from the browser must not drop the pending move
    assert controller.state is DragState.PENDING_CONFIRMATION
    assert controller.pending.task.id == 1


def test_cancel_discards_pending(board):
    orders = FakeOrders()
    controller = make_controller(board, orders)
    cancelled = []
    controller.subscribe("cancelled", lambda transition: cancelled.append(transition))

    controller.drag_start(1)
    controller.drop(Sector.MONTAGEM)
    assert controller.cancel()

    assert controller.state is DragState.IDLE
    assert controller.pending is None
    assert orders.calls == []
    assert board.get(1).sector == Sector.USINAGEM
    assert len(cancelled) == 1


def test_cancel_when_nothing_pending(board):
    controller = make_controller(board, FakeOrders())
    assert not controller.cancel()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Commit
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_confirm_success_mutates_after_remote_update(board):
    orders = FakeOrders()
    controller = make_controller(board, orders)
    committed = []
    controller.subscribe("committed", lambda outcome: committed.append(outcome))

    controller.drag_start(1)
    controller.drop(Sector.MONTAGEM)
    outcome = asyncio.run(controller.confirm())

    assert outcome.success
    assert orders.calls == [(1, Sector.MONTAGEM)]
    assert board.get(1).sector == Sector.MONTAGEM
    assert board.get(1).updated_at == NOW
    assert controller.state is DragState.IDLE
    assert controller.pending is None
    assert committed == [outcome]
    assert outcome.describe() == "Pedido PED-001 movido para Montagem"


def test_confirm_failure_leaves_task_untouched(board):
    orders = FakeOrders(error=ApiError("Pedido bloqueado", status=409))
    controller = make_controller(board, orders)
    failed = []
    controller.subscribe("failed", lambda outcome: failed.append(outcome))

    controller.drag_start(1)
    controller.drop(Sector.EXPEDICAO)
    outcome = asyncio.run(controller.confirm())

    assert not outcome.success
    assert not outcome.auth_expired
    assert outcome.status == 409
    assert outcome.error == "Pedido bloqueado"
    assert board.get(1).sector == Sector.USINAGEM
    assert board.get(1).updated_at == BEFORE
    assert controller.state is DragState.IDLE
    assert failed == [outcome]


def test_confirm_auth_expired_is_distinguished(board):
    orders = FakeOrders(error=AuthExpired("Session expired"))
    controller = make_controller(board, orders)

    controller.drag_start(1)
    controller.drop(Sector.MONTAGEM)
    outcome = asyncio.run(controller.confirm())

    assert not outcome.success
    assert outcome.auth_expired
    assert outcome.status is None
    assert board.get(1).sector == Sector.USINAGEM


def test_double_confirm_while_committing(board):
    orders = FakeOrders()
    controller = make_controller(board, orders)

    async def scenario():
        orders.gate = asyncio.Event()
        controller.drag_start(1)
        controller.drop(Sector.MONTAGEM)
        first = asyncio.create_task(controller.confirm())
        await asyncio.sleep(0)
        assert controller.state is DragState.COMMITTING
        assert not controller.can_confirm
        second = await controller.confirm()
        orders.gate.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert first.success
    assert second is None
    assert len(orders.calls) == 1


def test_commit_for_task_reloaded_away(board):
    orders = FakeOrders()
    controller = make_controller(board, orders)

    async def scenario():
        orders.gate = asyncio.Event()
        controller.drag_start(1)
        controller.drop(Sector.MONTAGEM)
        pending = asyncio.create_task(controller.confirm())
        await asyncio.sleep(0)
        board.load([Task(id=2, order_number="PED-002", sector=Sector.EXPEDICAO)])
        orders.gate.set()
        return await pending

    outcome = asyncio.run(scenario())

    assert outcome.success
    assert board.get(1) is None
    assert controller.state is DragState.IDLE


def test_failing_observer_does_not_break_commit(board):
    controller = make_controller(board, FakeOrders())

    def broken(**kwargs):
        raise RuntimeError("boom")

    controller.subscribe("committed", broken)
    controller.drag_start(1)
    controller.drop(Sector.MONTAGEM)
    outcome = asyncio.run(controller.confirm())

    assert outcome.success
    assert board.get(1).sector == Sector.MONTAGEM


def test_audit_trail(board, tmp_path):
    audit = AuditLogger(tmp_path / "audit.jsonl")
    orders = FakeOrders()
    controller = make_controller(board, orders, audit=audit)

    controller.drag_start(1)
    controller.drop(Sector.MONTAGEM)
    controller.cancel()

    controller.drag_start(1)
    controller.drop(Sector.MONTAGEM)
    asyncio.run(controller.confirm())

    orders.error = ApiError("Erro interno", status=500)
    controller.drag_start(1)
    controller.drop(Sector.LUSTRACAO)
    asyncio.run(controller.confirm())

    entries = [json.loads(l) for l in (tmp_path / "audit.jsonl").read_text().splitlines()]
    assert [e["event"] for e in entries] == [
        "proposed", "cancelled",
        "proposed", "confirmed", "committed",
        "proposed", "confirmed", "failed",
    ]
    assert entries[4]["from_sector"] == "usinagem"
    assert entries[4]["to_sector"] == "montagem"
    assert entries[-1]["status"] == 500
    assert entries[-1]["error"] == "Erro interno"
    assert all(e["task_id"] == 1 for e in entries)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Through the real client
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_commit_through_client_with_refresh(board, store):
    backend = FakeBackend()
    backend.route("PUT", "/pedidos-venda/atualizarSetor", ApiResponse(200))
    store.set(Credential("stale", "refresh-1"))
    orders = OrdersApi(ApiClient(BASE_URL, store, transport=backend))
    controller = make_controller(board, orders)

    controller.drag_start(1)
    controller.drop(Sector.MARCENARIA)
    outcome = asyncio.run(controller.confirm())

    assert outcome.success
    assert board.get(1).sector == Sector.MARCENARIA
    puts = [c for c in backend.calls if c.method == "PUT"]
    assert len(puts) == 2
    assert puts[-1].json == {"idPedido": 1, "idNovoSetor": Sector.MARCENARIA.remote_id}


def test_commit_through_client_session_expired(board, store):
    backend = FakeBackend(refresh_ok=False)
    store.set(Credential("stale", "refresh-1"))
    orders = OrdersApi(ApiClient(BASE_URL, store, transport=backend))
    controller = make_controller(board, orders)

    controller.drag_start(1)
    controller.drop(Sector.MARCENARIA)
    outcome = asyncio.run(controller.confirm())

    assert outcome.auth_expired
    assert board.get(1).sector == Sector.USINAGEM
    assert store.get() is None
