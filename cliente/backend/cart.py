"""Carrito de venta en memoria."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from decimal import Decimal

from shared.errors import ItemUnavailableError, OutOfStockError, StockExceededError
from shared.money import ZERO, line_subtotal, quantize
from shared.protocol import CatalogItem, SaleLineRequest

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CartLine:
    """Linea del carrito: snapshot del producto mas la cantidad pedida."""

    item_id: int
    name: str
    sku: str
    unit_price: Decimal
    available_stock: int
    quantity: int = 1

    @property
    def subtotal(self) -> Decimal:
        return line_subtotal(self.unit_price, self.quantity)

    def to_request(self) -> SaleLineRequest:
        return SaleLineRequest(
            item_id=self.item_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
        )


class Cart:
    """Orden provisional de una sesion de caja.

    Las operaciones publicas son los unicos puntos de mutacion. Cada una se
    aplica completa o falla sin cambiar cantidades ni lineas. Invariante por
    linea: ``1 <= quantity <= available_stock`` segun el ultimo stock
    observado.
    """

    def __init__(self) -> None:
        self._lines: dict[int, CartLine] = {}

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._lines

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def lines(self) -> list[CartLine]:
        """Copias de las lineas en orden de ingreso."""
        return [replace(line) for line in self._lines.values()]

    def get(self, item_id: int) -> CartLine | None:
        line = self._lines.get(item_id)
        return replace(line) if line is not None else None

    def snapshot(self) -> tuple[tuple[int, int, Decimal], ...]:
        """Contenido comparable: (item_id, cantidad, precio) por linea."""
        return tuple(
            (line.item_id, line.quantity, line.unit_price) for line in self._lines.values()
        )

    def item_count(self) -> int:
        """Unidades totales en el carrito."""
        return sum(line.quantity for line in self._lines.values())

    def add_item(self, item: CatalogItem) -> CartLine:
        """Agrega una unidad del producto, uniendo con la linea existente."""
        if not item.is_active:
            raise ItemUnavailableError(item.item_id, f"Producto no disponible: {item.name}")
        if item.available_stock <= 0:
            raise OutOfStockError(item.item_id, f"Producto sin stock: {item.name}")

        line = self._lines.get(item.item_id)
        if line is None:
            line = CartLine(
                item_id=item.item_id,
                name=item.name,
                sku=item.sku,
                unit_price=item.unit_price,
                available_stock=item.available_stock,
            )
            self._lines[item.item_id] = line
            LOGGER.info("Producto agregado al carrito: item=%s", item.item_id)
            return replace(line)

        # El item recibido es la lectura de stock mas reciente.
        available_stock = item.available_stock
        if line.quantity + 1 > available_stock:
            # Se guarda la lectura nueva sin dejar la linea bajo su cantidad.
            line.available_stock = max(available_stock, line.quantity)
            raise StockExceededError(
                item.item_id,
                f"No hay mas stock disponible de {item.name} (maximo {available_stock}).",
            )

        line.available_stock = available_stock
        line.quantity += 1
        LOGGER.info(
            "Cantidad incrementada: item=%s cantidad=%s",
            item.item_id,
            line.quantity,
        )
        return replace(line)

    def remove_item(self, item_id: int) -> None:
        """Quita la linea completa; no falla si no existe."""
        if self._lines.pop(item_id, None) is not None:
            LOGGER.info("Producto quitado del carrito: item=%s", item_id)

    def change_quantity(self, item_id: int, delta: int) -> CartLine | None:
        """Suma ``delta`` a la cantidad; nunca baja de 1."""
        line = self._lines.get(item_id)
        if line is None:
            return None

        new_quantity = line.quantity + delta
        if new_quantity <= 0:
            return replace(line)
        if new_quantity > line.available_stock:
            raise StockExceededError(
                item_id,
                f"Stock maximo alcanzado para {line.name} ({line.available_stock}).",
            )

        line.quantity = new_quantity
        return replace(line)

    def clear(self) -> None:
        self._lines.clear()

    def total(self) -> Decimal:
        """Suma de precio por cantidad, recalculada en cada lectura."""
        return quantize(
            sum(
                (line.unit_price * line.quantity for line in self._lines.values()),
                ZERO,
            )
        )

    def to_requests(self) -> tuple[SaleLineRequest, ...]:
        return tuple(line.to_request() for line in self._lines.values())

    def refresh_stock(self, items: Iterable[CatalogItem]) -> list[int]:
        """Actualiza el stock cacheado con una lectura nueva del catalogo.

        Las lineas que quedan sobre el stock se ajustan al maximo; las que se
        quedaron sin stock o inactivas se quitan. Retorna los ids ajustados.
        """
        adjusted: list[int] = []
        for item in items:
            line = self._lines.get(item.item_id)
            if line is None:
                continue

            if not item.is_active or item.available_stock <= 0:
                del self._lines[item.item_id]
                adjusted.append(item.item_id)
                continue

            line.available_stock = item.available_stock
            if line.quantity > item.available_stock:
                line.quantity = item.available_stock
                adjusted.append(item.item_id)

        if adjusted:
            LOGGER.warning("Lineas ajustadas por cambio de stock: %s", adjusted)
        return adjusted
