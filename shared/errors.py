"""Excepciones compartidas del proyecto."""

from __future__ import annotations


class ValidationError(Exception):
    """Error de validacion de datos de entrada."""


class ServiceError(Exception):
    """Error en la ejecucion de servicios."""


class CartError(ValidationError):
    """Error local asociado a una linea del carrito."""

    def __init__(self, item_id: int, message: str) -> None:
        super().__init__(message)
        self.item_id = item_id


class OutOfStockError(CartError):
    """El producto no tiene stock disponible."""


class StockExceededError(CartError):
    """La cantidad pedida supera el stock disponible en cache."""


class ItemUnavailableError(CartError):
    """El producto no esta activo para la venta."""


class EmptyCartError(ValidationError):
    """Se intento avanzar el checkout con el carrito vacio."""


class CheckoutStateError(ValidationError):
    """Accion no permitida en el estado actual del checkout."""


class LedgerRejectedError(ServiceError):
    """El ledger rechazo la operacion por una regla de negocio."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class GatewayTimeoutError(ServiceError):
    """El servidor no respondio dentro del tiempo configurado."""


class CatalogUnavailableError(ServiceError):
    """No fue posible consultar el catalogo."""


class SubmissionRejectedError(ServiceError):
    """La venta no fue registrada; el carrito se conserva."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class SubmissionTimeoutError(SubmissionRejectedError):
    """El ledger no confirmo la venta a tiempo."""


class AnnulmentFailedError(ServiceError):
    """El ledger no anulo la venta; sigue completada."""

    def __init__(self, sale_id: int, reason: str) -> None:
        super().__init__(reason)
        self.sale_id = sale_id
        self.reason = reason


class TicketUnavailableError(ServiceError):
    """No fue posible obtener el ticket de una venta."""
