"""Helpers de montos: parseo, redondeo a centavos y formato."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from shared.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_amount(value: Decimal | int | float | str) -> Decimal:
    """Convierte un valor a Decimal con dos decimales; rechaza negativos."""
    try:
        # float pasa por str para no arrastrar error binario.
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"Monto invalido: {value!r}") from exc

    if not amount.is_finite():
        raise ValidationError(f"Monto invalido: {value!r}")
    if amount < 0:
        raise ValidationError(f"El monto no puede ser negativo: {value!r}")

    return quantize(amount)


def quantize(amount: Decimal) -> Decimal:
    """Redondea a centavos."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def line_subtotal(unit_price: Decimal, quantity: int) -> Decimal:
    """Subtotal de una linea: precio unitario por cantidad."""
    return quantize(unit_price * quantity)


def format_amount(amount: Decimal) -> str:
    """Formatea un monto con separador de miles y dos decimales."""
    return f"${quantize(amount):,.2f}"
