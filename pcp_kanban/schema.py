"""
Production board schema.

Order lifecycle (one sector at a time, in pipeline order):
  Usinagem → Marcenaria → Montagem → Tapeçaria → Lustração → Expedição

Sectors are identified both by a short key and by the numeric id used by the
remote API. SECTOR_TABLE is the single source of truth for both.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any


class Sector(Enum):
    """Production sectors, in pipeline order."""
    USINAGEM = "usinagem"        # Cutting and preparation
    MARCENARIA = "marcenaria"    # Carpentry
    MONTAGEM = "montagem"        # Assembly
    TAPECARIA = "tapecaria"      # Upholstery
    LUSTRACAO = "lustracao"      # Finishing
    EXPEDICAO = "expedicao"      # Packing and shipping (terminal)

    @classmethod
    def from_str(cls, value: str) -> "Sector":
        key = (value or "").strip().lower().replace("ç", "c")
        for sector in cls:
            if sector.value == key:
                return sector
        raise ValueError(f"Unknown sector: {value!r}")

    @classmethod
    def from_remote_id(cls, remote_id: Any) -> "Sector":
        """Map a remote sector id to a Sector. Unknown or absent ids fall back to USINAGEM."""
        try:
            return _BY_REMOTE_ID[int(remote_id)].sector
        except (KeyError, TypeError, ValueError):
            return DEFAULT_SECTOR

    @property
    def remote_id(self) -> int:
        return _BY_SECTOR[self].remote_id

    @property
    def label(self) -> str:
        return _BY_SECTOR[self].label

    @property
    def description(self) -> str:
        return _BY_SECTOR[self].description

    @property
    def is_terminal(self) -> bool:
        return self is TERMINAL_SECTOR


class Priority(Enum):
    """Order priority."""
    ALTA = "alta"
    MEDIA = "media"
    BAIXA = "baixa"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "Priority":
        key = str(value or "").strip().lower().replace("é", "e")
        try:
            return cls(key)
        except ValueError:
            return cls.MEDIA

    @property
    def rank(self) -> int:
        """Sort rank: alta first."""
        return {Priority.ALTA: 0, Priority.MEDIA: 1, Priority.BAIXA: 2}[self]


@dataclass(frozen=True)
class SectorInfo:
    sector: Sector
    remote_id: int
    label: str
    description: str


SECTOR_TABLE: List[SectorInfo] = [
    SectorInfo(Sector.USINAGEM, 1, "Usinagem", "Corte e preparação"),
    SectorInfo(Sector.MARCENARIA, 2, "Marcenaria", "Estrutura e montagem"),
    SectorInfo(Sector.MONTAGEM, 3, "Montagem", "Junção das peças"),
    SectorInfo(Sector.TAPECARIA, 4, "Tapeçaria", "Estofados e tecidos"),
    SectorInfo(Sector.LUSTRACAO, 5, "Lustração", "Acabamento e pintura"),
    SectorInfo(Sector.EXPEDICAO, 6, "Expedição", "Embalagem e envio"),
]

_BY_SECTOR: Dict[Sector, SectorInfo] = {info.sector: info for info in SECTOR_TABLE}
_BY_REMOTE_ID: Dict[int, SectorInfo] = {info.remote_id: info for info in SECTOR_TABLE}

DEFAULT_SECTOR = Sector.USINAGEM
TERMINAL_SECTOR = Sector.EXPEDICAO


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_datetime(value)
    if parsed:
        return parsed.date()
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


@dataclass
class Product:
    """One line item of an order."""
    name: str
    quantity: int = 1
    id: Optional[int] = None        # Set when the item is known to the remote system
    wood_color: str = ""
    coating_color: str = ""
    details: str = ""
    measurement_details: str = ""

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"Product quantity must be positive, got {self.quantity}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "wood_color": self.wood_color,
            "coating_color": self.coating_color,
            "details": self.details,
            "measurement_details": self.measurement_details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            quantity=int(data.get("quantity", 1)),
            wood_color=data.get("wood_color", ""),
            coating_color=data.get("coating_color", ""),
            details=data.get("details", ""),
            measurement_details=data.get("measurement_details", ""),
        )


@dataclass
class Task:
    """Board representation of one production order."""

    # Identifiers
    id: int                          # Assigned by the remote system; join key for mutations
    order_number: str

    # Content
    client: str = ""
    description: str = ""
    products: List[Product] = field(default_factory=list)

    # Workflow
    sector: Sector = DEFAULT_SECTOR
    priority: Priority = Priority.MEDIA

    # Scheduling
    due_date: Optional[date] = None
    estimated_hours: int = 0

    # Metadata
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "client": self.client,
            "description": self.description,
            "products": [p.to_dict() for p in self.products],
            "sector": self.sector.value,
            "priority": self.priority.value,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "estimated_hours": self.estimated_hours,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            order_number=str(data.get("order_number", "")),
            client=data.get("client", ""),
            description=data.get("description", ""),
            products=[Product.from_dict(p) for p in data.get("products", [])],
            sector=Sector.from_str(data.get("sector") or DEFAULT_SECTOR.value),
            priority=Priority.from_str(data.get("priority")),
            due_date=parse_date(data.get("due_date")),
            estimated_hours=int(data.get("estimated_hours") or 0),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


@dataclass
class PendingTransition:
    """An unconfirmed drag: lives between drop and confirm/cancel."""
    task: Task
    source_sector: Sector
    target_sector: Sector

    @property
    def source_label(self) -> str:
        return self.source_sector.label

    @property
    def target_label(self) -> str:
        return self.target_sector.label

    def describe(self) -> str:
        return (
            f"Pedido {self.task.order_number}: "
            f"{self.source_label} → {self.target_label}"
        )
