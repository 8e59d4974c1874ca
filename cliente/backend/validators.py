"""Validaciones para entradas del cliente."""

from __future__ import annotations

from pathlib import Path

from shared.errors import ValidationError


def validate_output_dir(path: Path) -> None:
    """Valida que la ruta de salida sea utilizable para guardar tickets."""
    if path.exists() and not path.is_dir():
        raise ValidationError(f"La ruta no es un directorio: {path}")

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ValidationError(f"No se pudo crear/acceder al directorio: {path}") from exc


def parse_item_id(raw_value: object) -> int:
    """Convierte el id de producto recibido desde la UI."""
    try:
        item_id = int(str(raw_value).strip())
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Id de producto invalido: {raw_value!r}") from exc

    if item_id <= 0:
        raise ValidationError(f"Id de producto invalido: {raw_value!r}")
    return item_id
