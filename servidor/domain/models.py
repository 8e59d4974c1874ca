"""Modelos de dominio del ledger de ventas."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from shared.protocol import CatalogItem, PaymentMethod, Sale, SaleLine, SaleStatus


@dataclass(slots=True)
class Producto:
    """Representa un producto en inventario."""

    item_id: int
    sku: str
    nombre: str
    precio: Decimal
    cantidad: int
    activo: bool = True

    def to_catalog_item(self) -> CatalogItem:
        """Copia de solo lectura para el cliente."""
        return CatalogItem(
            item_id=self.item_id,
            name=self.nombre,
            sku=self.sku,
            unit_price=self.precio,
            available_stock=self.cantidad,
            is_active=self.activo,
        )


@dataclass(slots=True)
class Venta:
    """Venta persistida; solo cambia su estado al anularse."""

    sale_id: int
    lines: tuple[SaleLine, ...]
    total_amount: Decimal
    payment_method: PaymentMethod
    created_at: datetime
    seller_id: int | None = None
    status: SaleStatus = SaleStatus.COMPLETED
    annulled_at: datetime | None = field(default=None)

    def to_sale(self) -> Sale:
        return Sale(
            sale_id=self.sale_id,
            status=self.status,
            lines=self.lines,
            total_amount=self.total_amount,
            payment_method=self.payment_method,
            created_at=self.created_at,
            seller_id=self.seller_id,
        )
