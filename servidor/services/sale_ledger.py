"""Ledger de ventas en memoria: mantiene el stock y las ventas."""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from servidor.domain.models import Producto, Venta
from servidor.services.ticket_builder import build_ticket_filename, build_ticket_text
from shared.errors import LedgerRejectedError, ValidationError
from shared.money import ZERO, line_subtotal, quantize, to_amount
from shared.protocol import (
    CatalogItem,
    CatalogQuery,
    PaymentMethod,
    PendingSale,
    Sale,
    SaleLine,
    SalePage,
    SalesQuery,
    SaleStatus,
    TicketDocument,
)

LOGGER = logging.getLogger(__name__)


class SaleLedgerService:
    """Valida, descuenta y restaura stock de forma atomica.

    Ventas, anulaciones y ajustes manuales de inventario pasan por el mismo
    lock, asi que no pueden competir entre si sobre un mismo producto.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._products: dict[int, Producto] = {}
        self._sales: dict[int, Venta] = {}
        self._next_sale_id = 1

    def add_product(
        self,
        item_id: int,
        sku: str,
        nombre: str,
        precio: Decimal | int | str,
        cantidad: int,
        activo: bool = True,
    ) -> CatalogItem:
        """Registra un producto (seed de demo y tests)."""
        if cantidad < 0:
            raise ValidationError("El stock inicial no puede ser negativo.")

        with self._lock:
            if item_id in self._products:
                raise ValidationError(f"Producto duplicado: {item_id}")
            if any(product.sku == sku for product in self._products.values()):
                raise ValidationError(f"SKU duplicado: {sku}")
            product = Producto(
                item_id=item_id,
                sku=sku,
                nombre=nombre,
                precio=to_amount(precio),
                cantidad=cantidad,
                activo=activo,
            )
            self._products[item_id] = product
            return product.to_catalog_item()

    def set_active(self, item_id: int, activo: bool) -> None:
        with self._lock:
            self._get_product(item_id).activo = activo

    def search_products(self, query: CatalogQuery) -> list[CatalogItem]:
        """Busca por nombre o SKU, sin distinguir mayusculas."""
        term = query.term.strip().casefold()
        with self._lock:
            matches = [
                product.to_catalog_item()
                for product in self._products.values()
                if (not query.active_only or product.activo)
                and (
                    not term
                    or term in product.nombre.casefold()
                    or term in product.sku.casefold()
                )
            ]
        return matches[: max(query.size, 0)]

    def adjust_stock(self, item_id: int, delta: int, reason: str = "") -> CatalogItem:
        """Ajuste manual de inventario (entradas/salidas fuera del POS)."""
        with self._lock:
            product = self._get_product(item_id)
            new_stock = product.cantidad + delta
            if new_stock < 0:
                raise LedgerRejectedError(
                    f"Stock insuficiente para {product.nombre}: "
                    f"disponible={product.cantidad}, ajuste={delta}"
                )
            product.cantidad = new_stock
            LOGGER.info(
                "Ajuste de stock: item=%s delta=%s stock=%s motivo=%s",
                item_id,
                delta,
                new_stock,
                reason or "-",
            )
            return product.to_catalog_item()

    def create_sale(self, pending: PendingSale) -> Sale:
        """Registra la venta completa o la rechaza sin efectos parciales."""
        if not pending.lines:
            raise LedgerRejectedError("La venta no tiene productos.")
        try:
            payment_method = PaymentMethod.parse(pending.payment_method)
        except ValidationError as exc:
            raise LedgerRejectedError(str(exc)) from exc

        requested: dict[int, int] = {}
        for line in pending.lines:
            if line.quantity < 1:
                raise LedgerRejectedError(
                    f"Cantidad invalida para el producto {line.item_id}: {line.quantity}"
                )
            requested[line.item_id] = requested.get(line.item_id, 0) + line.quantity

        with self._lock:
            for item_id, quantity in requested.items():
                product = self._products.get(item_id)
                if product is None or not product.activo:
                    raise LedgerRejectedError(f"Producto no disponible: {item_id}")
                if product.cantidad < quantity:
                    raise LedgerRejectedError(
                        f"Stock insuficiente para {product.nombre}: "
                        f"disponible={product.cantidad}, solicitado={quantity}"
                    )

            sale_lines: list[SaleLine] = []
            for line in pending.lines:
                product = self._products[line.item_id]
                product.cantidad -= line.quantity
                sale_lines.append(
                    SaleLine(
                        item_id=line.item_id,
                        quantity=line.quantity,
                        unit_price=quantize(line.unit_price),
                        subtotal=line_subtotal(line.unit_price, line.quantity),
                        name=product.nombre,
                        sku=product.sku,
                    )
                )

            venta = Venta(
                sale_id=self._next_sale_id,
                lines=tuple(sale_lines),
                total_amount=quantize(
                    sum((sale_line.subtotal for sale_line in sale_lines), ZERO)
                ),
                payment_method=payment_method,
                created_at=self._clock(),
                seller_id=pending.seller_id,
            )
            self._sales[venta.sale_id] = venta
            self._next_sale_id += 1

        LOGGER.info(
            "Venta registrada: id=%s total=%s lineas=%d",
            venta.sale_id,
            venta.total_amount,
            len(venta.lines),
        )
        return venta.to_sale()

    def annul_sale(self, sale_id: int) -> Sale:
        """Anula una venta completada y devuelve su stock."""
        with self._lock:
            venta = self._get_sale(sale_id)
            if venta.status is SaleStatus.ANNULLED:
                raise LedgerRejectedError(f"La venta {sale_id} ya esta anulada.")

            for sale_line in venta.lines:
                product = self._products.get(sale_line.item_id)
                if product is None:
                    LOGGER.warning(
                        "Producto %s de la venta %s ya no existe; stock no restaurado.",
                        sale_line.item_id,
                        sale_id,
                    )
                    continue
                product.cantidad += sale_line.quantity

            venta.status = SaleStatus.ANNULLED
            venta.annulled_at = self._clock()

        LOGGER.info("Venta anulada: id=%s", sale_id)
        return venta.to_sale()

    def get_sale(self, sale_id: int) -> Sale:
        with self._lock:
            return self._get_sale(sale_id).to_sale()

    def list_sales(self, query: SalesQuery) -> SalePage:
        """Lista ventas mas recientes primero, con filtros opcionales."""
        size = max(query.size, 1)
        page = max(query.page, 1)
        with self._lock:
            sales = [
                venta.to_sale()
                for venta in sorted(
                    self._sales.values(),
                    key=lambda venta: venta.sale_id,
                    reverse=True,
                )
                if _matches_query(venta, query)
            ]

        start = (page - 1) * size
        return SalePage(
            items=tuple(sales[start : start + size]),
            total=len(sales),
            page=page,
            size=size,
            pages=math.ceil(len(sales) / size) if sales else 0,
        )

    def render_ticket(self, sale_id: int) -> TicketDocument:
        """Genera el ticket; tambien disponible para ventas anuladas."""
        sale = self.get_sale(sale_id)
        return TicketDocument(
            sale_id=sale_id,
            content=build_ticket_text(sale).encode("utf-8"),
            filename=build_ticket_filename(sale_id),
            media_type="text/plain",
        )

    def _get_product(self, item_id: int) -> Producto:
        product = self._products.get(item_id)
        if product is None:
            raise LedgerRejectedError(f"Producto no encontrado: {item_id}")
        return product

    def _get_sale(self, sale_id: int) -> Venta:
        venta = self._sales.get(sale_id)
        if venta is None:
            raise LedgerRejectedError(f"Venta no encontrada: {sale_id}")
        return venta


def build_demo_ledger() -> SaleLedgerService:
    """Ledger con un catalogo chico para el modo offline."""
    ledger = SaleLedgerService()
    ledger.add_product(1, "PUN-VEL-ERG-N", "Puños Velo Ergo", "12990", 8)
    ledger.add_product(2, "LUC-CAT-VOL-X", "Luz delantera Volt 800", "45990", 3)
    ledger.add_product(3, "CAM-KEN-29X-X", "Camara 29 Kenda", "6990", 25)
    ledger.add_product(4, "CAS-GIR-FIX-R", "Casco Giro Fixture", "54990", 0)
    ledger.add_product(5, "CAD-SHI-HG5-X", "Cadena Shimano HG53", "18990", 6)
    ledger.add_product(6, "PED-WEL-PLA-X", "Pedales plataforma", "15990", 4, activo=False)
    return ledger


def _matches_query(venta: Venta, query: SalesQuery) -> bool:
    """Aplica los filtros del historial; las fechas son inclusivas."""
    if query.status is not None and venta.status is not query.status:
        return False
    if query.payment_method is not None and venta.payment_method is not query.payment_method:
        return False
    if query.seller_id is not None and venta.seller_id != query.seller_id:
        return False

    sale_date = venta.created_at.date()
    if query.start_date is not None and sale_date < query.start_date:
        return False
    if query.end_date is not None and sale_date > query.end_date:
        return False

    term = query.search.strip().casefold()
    if not term:
        return True
    # "#12" busca solo por numero de venta.
    if term.startswith("#"):
        return term.lstrip("#") == str(venta.sale_id)
    return term == str(venta.sale_id) or any(
        term in line.name.casefold() or term in line.sku.casefold()
        for line in venta.lines
    )
