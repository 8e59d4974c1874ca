"""DTOs del protocolo cliente-servidor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from shared.errors import ValidationError


class PaymentMethod(str, Enum):
    """Medios de pago aceptados por el ledger."""

    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    OTHER = "other"

    @classmethod
    def parse(cls, value: PaymentMethod | str) -> PaymentMethod:
        """Acepta el miembro o su valor en texto."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValidationError(f"Medio de pago invalido: {value!r}") from exc


class SaleStatus(str, Enum):
    """Estados de una venta persistida."""

    COMPLETED = "completed"
    ANNULLED = "annulled"


@dataclass(frozen=True, slots=True)
class Actor:
    """Referencia opaca al usuario que atribuye la venta."""

    user_id: int
    display_name: str = ""


@dataclass(frozen=True, slots=True)
class CatalogItem:
    """Copia puntual de un producto vendible."""

    item_id: int
    name: str
    sku: str
    unit_price: Decimal
    available_stock: int
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class CatalogQuery:
    """Solicitud de busqueda en el catalogo."""

    term: str = ""
    active_only: bool = True
    size: int = 20


@dataclass(frozen=True, slots=True)
class SaleLineRequest:
    """Linea enviada al ledger tal cual estaba en el carrito."""

    item_id: int
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True, slots=True)
class PendingSale:
    """Snapshot del carrito enviado al confirmar el pago."""

    lines: tuple[SaleLineRequest, ...]
    payment_method: PaymentMethod
    seller_id: int | None = None

    @property
    def total(self) -> Decimal:
        """Total esperado segun los precios del snapshot."""
        return sum(
            (line.unit_price * line.quantity for line in self.lines),
            Decimal("0.00"),
        )


@dataclass(frozen=True, slots=True)
class SaleLine:
    """Linea vendida con precio capturado al momento de la venta."""

    item_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    name: str = ""
    sku: str = ""


@dataclass(frozen=True, slots=True)
class Sale:
    """Venta registrada por el ledger."""

    sale_id: int
    status: SaleStatus
    lines: tuple[SaleLine, ...]
    total_amount: Decimal
    payment_method: PaymentMethod
    created_at: datetime
    seller_id: int | None = None

    @property
    def is_annulled(self) -> bool:
        return self.status is SaleStatus.ANNULLED


@dataclass(frozen=True, slots=True)
class SalesQuery:
    """Filtros del historial de ventas."""

    status: SaleStatus | None = None
    payment_method: PaymentMethod | None = None
    page: int = 1
    size: int = 10
    start_date: date | None = None
    end_date: date | None = None
    search: str = ""
    seller_id: int | None = None


@dataclass(frozen=True, slots=True)
class SalePage:
    """Pagina de ventas con metadata de paginacion."""

    items: tuple[Sale, ...]
    total: int
    page: int
    size: int
    pages: int


@dataclass(frozen=True, slots=True)
class TicketDocument:
    """Documento de ticket listo para guardar o imprimir."""

    sale_id: int
    content: bytes
    filename: str
    media_type: str = "application/pdf"
