"""Controlador principal del cliente."""

from __future__ import annotations

import logging
from collections.abc import Callable
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING

from parametros import LEDGER_TIMEOUT_SECONDS
from shared.errors import CheckoutStateError, ValidationError
from shared.protocol import Actor, CatalogItem, PaymentMethod, Sale, SalePage

from .cart import Cart, CartLine
from .catalog_cache import CatalogCache
from .checkout import CheckoutState, CheckoutStateMachine
from .gateway import ServerGateway
from .sales_history import SalesHistory
from .validators import parse_item_id

if TYPE_CHECKING:
    from PyQt6.QtWidgets import QApplication

LOGGER = logging.getLogger(__name__)


class PosController:
    """Coordina acciones de UI con el carrito, el checkout y el historial."""

    def __init__(
        self,
        gateway: ServerGateway,
        actor: Actor | None = None,
        catalog: CatalogCache | None = None,
        ledger_timeout: float = LEDGER_TIMEOUT_SECONDS,
    ) -> None:
        self._gateway = gateway
        self._catalog = catalog or CatalogCache(gateway)
        self._cart = Cart()
        self._checkout = CheckoutStateMachine(
            cart=self._cart,
            gateway=gateway,
            catalog=self._catalog,
            actor=actor,
            timeout=ledger_timeout,
        )
        self._history = SalesHistory(gateway=gateway, catalog=self._catalog)
        self._stock_warnings: list[int] = []

    @property
    def state(self) -> CheckoutState:
        return self._checkout.state

    @property
    def payment_method(self) -> PaymentMethod:
        return self._checkout.payment_method

    @property
    def last_sale(self) -> Sale | None:
        return self._checkout.last_sale

    @property
    def catalog_items(self) -> list[CatalogItem]:
        return self._catalog.items

    @property
    def stock_warnings(self) -> list[int]:
        """Items del carrito ajustados en el ultimo refresco de catalogo."""
        return list(self._stock_warnings)

    def cart_lines(self) -> list[CartLine]:
        return self._cart.lines()

    def cart_total(self) -> Decimal:
        return self._cart.total()

    def on_search(self, term: str) -> list[CatalogItem]:
        """Busca productos activos y sincroniza el stock del carrito."""
        items = self._catalog.search(term, active_only=True)
        self._stock_warnings = self._cart.refresh_stock(items)
        self._checkout.sync_with_cart()
        return items

    def on_add_item(self, item_id: int | str) -> CartLine:
        """Agrega una unidad de un producto del catalogo visible."""
        self._ensure_cart_editable()
        self._checkout.sync_with_cart()
        item = self._catalog.get(parse_item_id(item_id))
        if item is None:
            raise ValidationError("El producto no esta en el catalogo cargado.")

        # La vista de venta exitosa se cierra solo si el producto entra.
        was_succeeded = self._checkout.state is CheckoutState.SUCCEEDED
        line = self._cart.add_item(item)
        if was_succeeded:
            self._checkout.start_new_sale()
        return line

    def on_remove_item(self, item_id: int) -> None:
        self._ensure_cart_editable()
        self._cart.remove_item(item_id)
        self._checkout.sync_with_cart()

    def on_change_quantity(self, item_id: int, delta: int) -> CartLine | None:
        self._ensure_cart_editable()
        return self._cart.change_quantity(item_id, delta)

    def on_clear_cart(self) -> None:
        """Vacia el carrito."""
        self._ensure_cart_editable()
        self._cart.clear()
        self._checkout.sync_with_cart()
        LOGGER.info("Carrito vaciado.")

    def on_checkout(self) -> None:
        """Registra la accion para abrir el dialogo de pago."""
        LOGGER.info("Accion ejecutada: completar venta")
        self._checkout.initiate_checkout()

    def on_select_payment_method(self, method: PaymentMethod | str) -> PaymentMethod:
        return self._checkout.select_payment_method(method)

    def on_cancel_payment(self) -> None:
        self._checkout.cancel_payment()

    def on_confirm_payment(self) -> Sale | None:
        """Confirma el pago y envia la venta al ledger."""
        sale = self._checkout.confirm_payment()
        if sale is not None:
            self._stock_warnings = []
        return sale

    def on_download_ticket(
        self,
        sale_id: int | None = None,
        output_dir: Path | None = None,
    ) -> Path:
        """Guarda el ticket de la venta indicada o de la ultima venta."""
        target_id = sale_id if sale_id is not None else self._checkout.last_sale_id
        if target_id is None:
            raise ValidationError("No hay una venta para descargar ticket.")
        return self._history.save_ticket(target_id, output_dir)

    def on_new_sale(self) -> None:
        """Cierra la vista de venta exitosa y vuelve al inicio."""
        LOGGER.info("Accion ejecutada: nueva venta")
        self._checkout.start_new_sale()

    def on_list_sales(
        self,
        status: str | None = None,
        payment_method: str | None = None,
        page: int = 1,
        start_date: str | None = None,
        end_date: str | None = None,
        search: str = "",
        seller_id: int | None = None,
    ) -> SalePage:
        return self._history.list_sales(
            status=status,
            payment_method=payment_method,
            page=page,
            start_date=start_date,
            end_date=end_date,
            search=search,
            seller_id=seller_id,
        )

    def on_annul_sale(self, sale_id: int, confirmed: bool) -> Sale:
        """Anula una venta del historial previa confirmacion."""
        return self._history.annul_sale(sale_id, confirmed=confirmed)

    def on_exit(
        self,
        app: QApplication | Callable[[], None] | None,
    ) -> None:
        """Cierra la aplicacion."""
        LOGGER.info("Accion ejecutada: salir")
        self._checkout.close()

        if callable(app):
            app()
            return

        if app is not None:
            app.quit()

    def _ensure_cart_editable(self) -> None:
        if self._checkout.state is CheckoutState.SUBMITTING:
            raise CheckoutStateError("No se puede modificar el carrito mientras se envia la venta.")
