"""Utilidades para construir tickets de venta en texto plano."""

from __future__ import annotations

from parametros import DEFAULT_TICKET_FILENAME_STEM
from shared.money import format_amount
from shared.protocol import PaymentMethod, Sale, SaleStatus

TICKET_WIDTH = 40

PAYMENT_METHOD_LABELS: dict[PaymentMethod, str] = {
    PaymentMethod.CASH: "Efectivo",
    PaymentMethod.CARD: "Tarjeta",
    PaymentMethod.TRANSFER: "Transferencia",
    PaymentMethod.OTHER: "Otros",
}


def build_ticket_filename(sale_id: int, extension: str = "txt") -> str:
    """Nombre de archivo del ticket, igual al que descarga la web."""
    return f"{DEFAULT_TICKET_FILENAME_STEM}_{sale_id}.{extension.lstrip('.')}"


def build_ticket_line(label: str, value: str, width: int = TICKET_WIDTH) -> str:
    """Alinea etiqueta a la izquierda y valor a la derecha."""
    label_clean = label.strip()
    space = width - len(value)
    if len(label_clean) >= space:
        label_clean = label_clean[: max(space - 1, 0)]
    return f"{label_clean}{value.rjust(width - len(label_clean))}"


def build_ticket_text(sale: Sale, store_name: str = "Lazy POS") -> str:
    """Construye el texto del ticket de una venta."""
    separator = "-" * TICKET_WIDTH
    lines = [
        store_name.center(TICKET_WIDTH).rstrip(),
        separator,
        f"Venta #{sale.sale_id}",
        f"Fecha: {sale.created_at:%Y-%m-%d %H:%M}",
        f"Pago: {PAYMENT_METHOD_LABELS[sale.payment_method]}",
    ]
    if sale.status is SaleStatus.ANNULLED:
        lines.append("*** VENTA ANULADA ***")
    lines.append(separator)

    for sale_line in sale.lines:
        name = sale_line.name or f"Producto {sale_line.item_id}"
        lines.append(name[:TICKET_WIDTH])
        lines.append(
            build_ticket_line(
                f"  {sale_line.quantity} x {format_amount(sale_line.unit_price)}",
                format_amount(sale_line.subtotal),
            )
        )

    lines.append(separator)
    lines.append(build_ticket_line("TOTAL", format_amount(sale.total_amount)))
    return "\n".join(lines) + "\n"
