"""Historial de ventas: consulta, anulacion y tickets."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

from parametros import SALES_PAGE_SIZE, TICKETS_DIR
from shared.errors import (
    AnnulmentFailedError,
    LedgerRejectedError,
    ServiceError,
    TicketUnavailableError,
    ValidationError,
)
from shared.protocol import PaymentMethod, Sale, SalePage, SalesQuery, SaleStatus, TicketDocument

from .catalog_cache import CatalogCache
from .gateway import ServerGateway
from .validators import validate_output_dir

LOGGER = logging.getLogger(__name__)


class SalesHistory:
    """Operaciones sobre ventas ya persistidas por el ledger."""

    def __init__(
        self,
        gateway: ServerGateway,
        catalog: CatalogCache | None = None,
        tickets_dir: Path = TICKETS_DIR,
    ) -> None:
        self._gateway = gateway
        self._catalog = catalog
        self._tickets_dir = tickets_dir

    def list_sales(
        self,
        status: SaleStatus | str | None = None,
        payment_method: PaymentMethod | str | None = None,
        page: int = 1,
        size: int = SALES_PAGE_SIZE,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        search: str = "",
        seller_id: int | None = None,
    ) -> SalePage:
        """Lista ventas con filtros opcionales.

        Las fechas aceptan ``date`` o texto ``YYYY-MM-DD`` y son inclusivas.
        ``search`` busca por numero de venta o por nombre o SKU de producto.
        """
        if page < 1 or size < 1:
            raise ValidationError("La pagina y su tamano deben ser mayores a 0.")
        try:
            parsed_status = SaleStatus(status) if status else None
        except ValueError as exc:
            raise ValidationError(f"Estado de venta invalido: {status!r}") from exc

        parsed_start = parse_filter_date(start_date, "inicial")
        parsed_end = parse_filter_date(end_date, "final")
        if parsed_start is not None and parsed_end is not None and parsed_start > parsed_end:
            raise ValidationError("La fecha inicial no puede ser posterior a la final.")

        query = SalesQuery(
            status=parsed_status,
            payment_method=PaymentMethod.parse(payment_method) if payment_method else None,
            page=page,
            size=size,
            start_date=parsed_start,
            end_date=parsed_end,
            search=(search or "").strip(),
            seller_id=seller_id,
        )
        return self._gateway.list_sales(query)

    def get_sale(self, sale_id: int) -> Sale:
        return self._gateway.get_sale(sale_id)

    def annul_sale(self, sale_id: int, confirmed: bool = False) -> Sale:
        """Solicita la anulacion; el ledger restaura el stock.

        Nunca se modifica stock local: solo se invalida el catalogo para que
        la proxima lectura muestre el stock devuelto.
        """
        if not confirmed:
            raise ValidationError("La anulacion requiere confirmacion explicita.")

        LOGGER.info("Solicitando anulacion de venta: id=%s", sale_id)
        try:
            sale = self._gateway.annul_sale(sale_id)
        except LedgerRejectedError as exc:
            LOGGER.warning("Anulacion rechazada: id=%s motivo=%s", sale_id, exc.detail)
            raise AnnulmentFailedError(sale_id, exc.detail or "Error al anular la venta.") from exc
        except ServiceError as exc:
            LOGGER.warning("Anulacion fallida: id=%s error=%s", sale_id, exc)
            raise AnnulmentFailedError(sale_id, "Error al anular la venta.") from exc

        if self._catalog is not None:
            self._catalog.invalidate()
        LOGGER.info("Venta anulada: id=%s", sale.sale_id)
        return sale

    def fetch_ticket(self, sale_id: int) -> TicketDocument:
        """Obtiene el ticket; puede repetirse cuantas veces sea necesario."""
        try:
            return self._gateway.fetch_ticket(sale_id)
        except ServiceError as exc:
            LOGGER.warning("Error al generar ticket: id=%s error=%s", sale_id, exc)
            raise TicketUnavailableError("Error al generar ticket.") from exc

    def save_ticket(self, sale_id: int, output_dir: Path | None = None) -> Path:
        """Descarga el ticket y lo guarda como archivo."""
        target_dir = output_dir or self._tickets_dir
        validate_output_dir(target_dir)
        ticket = self.fetch_ticket(sale_id)

        # El nombre viene del servidor; solo se usa la parte final.
        output_path = target_dir / Path(ticket.filename).name
        try:
            output_path.write_bytes(ticket.content)
        except OSError as exc:
            raise TicketUnavailableError(f"No se pudo guardar el ticket: {output_path}") from exc

        LOGGER.info("Ticket descargado: %s", output_path)
        return output_path


def parse_filter_date(value: date | str | None, label: str) -> date | None:
    """Normaliza una fecha de filtro; vacio significa sin filtro."""
    if value is None or isinstance(value, date):
        return value
    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Fecha {label} invalida: {value!r} (usa YYYY-MM-DD).") from exc
