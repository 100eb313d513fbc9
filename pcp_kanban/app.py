"""
Wires the board client together from a BoardConfig.
"""
import logging
from datetime import date, timedelta
from typing import Optional

from .api_client import ApiClient
from .audit import AuditLogger
from .auth import AuthSession
from .board import BoardState
from .config import BoardConfig
from .credentials import CredentialStore
from .pedidos import OrdersApi
from .transitions import SectorTransitionController

logger = logging.getLogger(__name__)


class BoardApp:
    """One session's worth of board components, sharing a single credential store."""

    def __init__(self, cfg: BoardConfig, transport=None):
        self.cfg = cfg
        self.credentials = CredentialStore(cfg.credentials_db, expiry_leeway=cfg.expiry_leeway)
        self.client = ApiClient(
            cfg.base_url,
            self.credentials,
            transport=transport,
            timeout=cfg.timeout,
            refresh_timeout=cfg.refresh_timeout,
        )
        self.auth = AuthSession(self.client, self.credentials)
        self.orders = OrdersApi(self.client)
        self.board = BoardState()
        self.controller = SectorTransitionController(
            self.board,
            self.orders,
            audit=AuditLogger(cfg.audit_log),
        )

    def default_period(self, today: Optional[date] = None):
        today = today or date.today()
        return today - timedelta(days=self.cfg.fetch_window_days), today

    async def reload(self, start: Optional[date] = None, end: Optional[date] = None) -> int:
        """Refetch the board for a period. Returns the number of tasks loaded."""
        default_start, default_end = self.default_period()
        tasks = await self.orders.list_by_period(start or default_start, end or default_end)
        self.board.load(tasks)
        return len(tasks)

    def find_task(self, ref: str):
        """Look a task up by remote id or by order number."""
        for task in self.board.tasks:
            if str(task.id) == ref or task.order_number == ref:
                return task
        return None

    def close(self) -> None:
        self.client.close()
