"""
Remote order ("pedido de venda") endpoints.

    GET /pedidos-venda?dataInicial=YYYY-MM-DD&dataFinal=YYYY-MM-DD → [order record]
    PUT /pedidos-venda/atualizarSetor   {idPedido, idNovoSetor}
    PUT /pedidos-venda/atualizarDados   {id, priority, dataEntrega, itens}

Order records are mapped to Task objects here; the remote sector id goes
through the sector table and unknown ids land in Usinagem.
"""
import logging
from datetime import date
from typing import Any, Dict, List

from .api_client import ApiClient
from .schema import (
    DEFAULT_SECTOR,
    Priority,
    Product,
    Sector,
    Task,
    parse_date,
    parse_datetime,
)

logger = logging.getLogger(__name__)

ORDERS_PATH = "/pedidos-venda"
UPDATE_SECTOR_PATH = "/pedidos-venda/atualizarSetor"
UPDATE_DETAILS_PATH = "/pedidos-venda/atualizarDados"


def product_from_record(item: Dict[str, Any]) -> Product:
    """Map one remote order item to a Product."""
    try:
        quantity = int(item.get("quantidade") or 0)
    except (TypeError, ValueError):
        quantity = 0
    if quantity <= 0:
        logger.debug(f"Item {item.get('id')} has no usable quantity, counting it as 1")
        quantity = 1
    return Product(
        id=item.get("id"),
        name=item.get("descricao") or item.get("codigo") or "",
        quantity=quantity,
        wood_color=item.get("corMadeira") or "",
        coating_color=item.get("corRevestimento") or "",
        details=item.get("descricaoDetalhada") or "",
        measurement_details=item.get("detalhesMedidas") or "",
    )


def task_from_record(record: Dict[str, Any]) -> Task:
    """Map one remote order record to a Task."""
    setor = record.get("setor") or {}
    cliente = record.get("cliente") or {}
    remote_id = setor.get("id")
    sector = Sector.from_remote_id(remote_id)
    if sector is DEFAULT_SECTOR and str(remote_id) != str(DEFAULT_SECTOR.remote_id):
        logger.info(
            f"Order {record.get('id')}: unknown sector id {remote_id!r}, "
            f"placing it in {sector.label}"
        )
    created_at = parse_datetime(record.get("dataEmissao"))
    return Task(
        id=record["id"],
        order_number=str(record.get("numero") if record.get("numero") is not None else record["id"]),
        client=cliente.get("nome") or "",
        description=record.get("observacao") or record.get("descricao") or "",
        products=[product_from_record(item) for item in record.get("itens") or []],
        sector=sector,
        priority=Priority.from_str(record.get("prioridade") or record.get("priority")),
        due_date=parse_date(record.get("dataEntrega") or record.get("dataPrevista")),
        created_at=created_at,
        updated_at=created_at,
    )


class OrdersApi:
    """Typed wrappers for the order endpoints."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def list_by_period(self, start: date, end: date) -> List[Task]:
        """Fetch orders issued between start and end (inclusive)."""
        response = await self.client.request(
            "GET",
            ORDERS_PATH,
            params={"dataInicial": start.isoformat(), "dataFinal": end.isoformat()},
        )
        records = response.data if isinstance(response.data, list) else []
        tasks = [task_from_record(r) for r in records]
        logger.info(f"Fetched {len(tasks)} orders for {start} .. {end}")
        return tasks

    async def update_sector(self, task_id: int, sector: Sector) -> None:
        await self.client.request(
            "PUT",
            UPDATE_SECTOR_PATH,
            json={"idPedido": task_id, "idNovoSetor": sector.remote_id},
        )

    async def update_details(self, task: Task) -> None:
        """Patch priority, delivery date and the items already known remotely."""
        payload = {
            "id": task.id,
            "priority": task.priority.value,
            "dataEntrega": task.due_date.isoformat() if task.due_date else None,
            "itens": [
                {
                    "id": p.id,
                    "descricao": p.name,
                    "quantidade": p.quantity,
                    "corMadeira": p.wood_color or None,
                    "corRevestimento": p.coating_color or None,
                    "descricaoDetalhada": p.details or None,
                    "detalhesMedidas": p.measurement_details or None,
                }
                for p in task.products
                if p.id is not None
            ],
        }
        await self.client.request("PUT", UPDATE_DETAILS_PATH, json=payload)
