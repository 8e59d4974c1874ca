"""Gateway de comunicacion cliente-servidor."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

import requests

from parametros import API_PREFIX, HTTP_TIMEOUT_SECONDS
from servidor.services.sale_ledger import SaleLedgerService
from servidor.services.ticket_builder import build_ticket_filename
from shared.errors import (
    GatewayTimeoutError,
    LedgerRejectedError,
    ServiceError,
    ValidationError,
)
from shared.money import to_amount
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

INVALID_RESPONSE_ERROR = "Respuesta invalida del servidor."


class ServerGateway(Protocol):
    """Interfaz de acceso del cliente al ledger de ventas."""

    def search_catalog(self, query: CatalogQuery) -> list[CatalogItem]:
        """Busca productos vendibles."""

    def create_sale(self, pending: PendingSale) -> Sale:
        """Registra una venta completa o la rechaza entera."""

    def annul_sale(self, sale_id: int) -> Sale:
        """Anula una venta y solicita la devolucion de stock."""

    def get_sale(self, sale_id: int) -> Sale:
        """Obtiene una venta por id."""

    def list_sales(self, query: SalesQuery) -> SalePage:
        """Lista ventas del historial."""

    def fetch_ticket(self, sale_id: int) -> TicketDocument:
        """Obtiene el ticket de una venta."""


class LocalServerGateway:
    """Implementacion local del gateway usando el ledger en memoria."""

    def __init__(self, ledger: SaleLedgerService | None = None) -> None:
        self._ledger = ledger or SaleLedgerService()

    @property
    def ledger(self) -> SaleLedgerService:
        return self._ledger

    def search_catalog(self, query: CatalogQuery) -> list[CatalogItem]:
        """Busca productos delegando en el ledger."""
        return self._call(
            "No fue posible consultar el catalogo.",
            self._ledger.search_products,
            query,
        )

    def create_sale(self, pending: PendingSale) -> Sale:
        """Registra la venta delegando en el ledger."""
        return self._call(
            "No fue posible registrar la venta.",
            self._ledger.create_sale,
            pending,
        )

    def annul_sale(self, sale_id: int) -> Sale:
        return self._call(
            "No fue posible anular la venta.",
            self._ledger.annul_sale,
            sale_id,
        )

    def get_sale(self, sale_id: int) -> Sale:
        return self._call(
            "No fue posible obtener la venta.",
            self._ledger.get_sale,
            sale_id,
        )

    def list_sales(self, query: SalesQuery) -> SalePage:
        return self._call(
            "No fue posible listar las ventas.",
            self._ledger.list_sales,
            query,
        )

    def fetch_ticket(self, sale_id: int) -> TicketDocument:
        return self._call(
            "No fue posible generar el ticket.",
            self._ledger.render_ticket,
            sale_id,
        )

    @staticmethod
    def _call(error_message: str, operation: Any, *args: Any) -> Any:
        """Ejecuta la operacion y envuelve fallos inesperados en ServiceError."""
        try:
            return operation(*args)
        except ServiceError:
            raise
        except Exception as exc:
            LOGGER.exception("Fallo inesperado en ledger local: %s", error_message)
            raise ServiceError(error_message) from exc


class HttpServerGateway:
    """Gateway contra la API REST del ledger."""

    _FILENAME_PATTERN = re.compile(r'filename="?([^";]+)"?')

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/") + API_PREFIX
        self._timeout = timeout
        self._session = session or requests.Session()
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def search_catalog(self, query: CatalogQuery) -> list[CatalogItem]:
        params = {"search": query.term, "size": str(query.size)}
        if query.active_only:
            params["is_active"] = "true"
        payload = self._request_object("GET", "/products/", params=params)
        return [parse_catalog_item(raw) for raw in _as_list(payload.get("items", []))]

    def create_sale(self, pending: PendingSale) -> Sale:
        body = {
            "payment_method": pending.payment_method.value,
            "items": [
                {
                    "product_id": line.item_id,
                    "quantity": line.quantity,
                    "unit_price": str(line.unit_price),
                }
                for line in pending.lines
            ],
        }
        if pending.seller_id is not None:
            body["seller_id"] = pending.seller_id
        return parse_sale(self._request_object("POST", "/sales/", json=body))

    def annul_sale(self, sale_id: int) -> Sale:
        return parse_sale(self._request_object("POST", f"/sales/{sale_id}/annul"))

    def get_sale(self, sale_id: int) -> Sale:
        return parse_sale(self._request_object("GET", f"/sales/{sale_id}"))

    def list_sales(self, query: SalesQuery) -> SalePage:
        params = build_sales_params(query)
        payload = self._request_object("GET", "/sales/", params=params)
        items = tuple(parse_sale(raw) for raw in _as_list(payload.get("items", [])))
        try:
            metadata = payload.get("metadata") or {}
            return SalePage(
                items=items,
                total=int(metadata.get("total", len(items))),
                page=int(metadata.get("page", query.page)),
                size=int(metadata.get("size", query.size)),
                pages=int(metadata.get("pages", 1 if items else 0)),
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise ServiceError(INVALID_RESPONSE_ERROR) from exc

    def fetch_ticket(self, sale_id: int) -> TicketDocument:
        response = self._request("GET", f"/sales/{sale_id}/ticket")
        disposition = response.headers.get("Content-Disposition", "")
        match = self._FILENAME_PATTERN.search(disposition)
        return TicketDocument(
            sale_id=sale_id,
            content=response.content,
            filename=match.group(1) if match else build_ticket_filename(sale_id, "pdf"),
            media_type=response.headers.get("Content-Type", "application/pdf"),
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Ejecuta la llamada HTTP y traduce errores al protocolo."""
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.Timeout as exc:
            LOGGER.warning("Timeout en %s %s", method, url)
            raise GatewayTimeoutError("El servidor no respondio a tiempo.") from exc
        except requests.RequestException as exc:
            LOGGER.warning("Fallo de conexion en %s %s: %s", method, url, exc)
            raise ServiceError("No fue posible conectar con el servidor.") from exc

        if 400 <= response.status_code < 500:
            detail = extract_error_detail(response)
            LOGGER.info("Rechazo %s en %s %s: %s", response.status_code, method, url, detail)
            raise LedgerRejectedError(detail or f"Solicitud rechazada ({response.status_code}).")
        if response.status_code >= 500:
            LOGGER.error("Error %s del servidor en %s %s", response.status_code, method, url)
            raise ServiceError(f"Error del servidor ({response.status_code}).")
        return response

    def _request_object(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Como ``_request``, pero exige un objeto JSON en la respuesta."""
        response = self._request(method, path, **kwargs)
        try:
            payload = response.json()
        except ValueError as exc:
            LOGGER.warning(
                "Respuesta no JSON en %s %s (Content-Type=%s)",
                method,
                path,
                response.headers.get("Content-Type", "-"),
            )
            raise ServiceError(INVALID_RESPONSE_ERROR) from exc

        if not isinstance(payload, dict):
            LOGGER.warning("Respuesta inesperada en %s %s: %s", method, path, type(payload).__name__)
            raise ServiceError(INVALID_RESPONSE_ERROR)
        return payload


def build_sales_params(query: SalesQuery) -> dict[str, str]:
    """Parametros de ``GET /sales/``; los filtros vacios no se envian."""
    params = {"page": str(query.page), "size": str(query.size)}
    if query.start_date is not None:
        params["start_date"] = query.start_date.isoformat()
    if query.end_date is not None:
        params["end_date"] = query.end_date.isoformat()
    if query.status is not None:
        params["status"] = query.status.value
    if query.payment_method is not None:
        params["payment_method"] = query.payment_method.value
    if query.search.strip():
        params["search"] = query.search.strip()
    if query.seller_id is not None:
        params["seller_id"] = str(query.seller_id)
    return params


def extract_error_detail(response: requests.Response) -> str:
    """Obtiene el campo ``detail`` de una respuesta de error, si existe."""
    try:
        payload = response.json()
    except ValueError:
        return ""

    detail = payload.get("detail") if isinstance(payload, dict) else None
    if isinstance(detail, str):
        return detail.strip()
    if isinstance(detail, list):
        messages = [str(entry.get("msg", "")).strip() for entry in detail if isinstance(entry, dict)]
        return "; ".join(message for message in messages if message)
    return ""


def parse_catalog_item(raw: dict[str, Any]) -> CatalogItem:
    """Convierte un producto de la API en CatalogItem."""
    try:
        return CatalogItem(
            item_id=int(raw["id"]),
            name=str(raw.get("name", "")),
            sku=str(raw.get("sku", "")),
            unit_price=to_amount(raw.get("price", 0)),
            available_stock=max(int(raw.get("stock", 0)), 0),
            is_active=bool(raw.get("is_active", True)),
        )
    except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as exc:
        raise ServiceError("Respuesta de catalogo invalida.") from exc


def parse_sale(raw: dict[str, Any]) -> Sale:
    """Convierte una venta de la API en Sale."""
    try:
        lines = tuple(_parse_sale_line(line) for line in _as_list(raw.get("items", [])))
        user = raw.get("user") or {}
        seller_id = raw.get("user_id", user.get("id"))
        return Sale(
            sale_id=int(raw["id"]),
            status=SaleStatus(raw.get("status", SaleStatus.COMPLETED.value)),
            lines=lines,
            total_amount=to_amount(raw.get("total_amount", 0)),
            payment_method=PaymentMethod(raw.get("payment_method", PaymentMethod.CASH.value)),
            created_at=_parse_datetime(raw.get("created_at")),
            seller_id=int(seller_id) if seller_id is not None else None,
        )
    except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as exc:
        raise ServiceError("Respuesta de venta invalida.") from exc


def _as_list(value: Any) -> list[Any]:
    if not isinstance(value, list):
        raise ServiceError(INVALID_RESPONSE_ERROR)
    return value


def _parse_sale_line(raw: dict[str, Any]) -> SaleLine:
    product = raw.get("product") or {}
    quantity = int(raw["quantity"])
    unit_price = to_amount(raw.get("unit_price", 0))
    subtotal = raw.get("subtotal")
    return SaleLine(
        item_id=int(raw["product_id"]),
        quantity=quantity,
        unit_price=unit_price,
        subtotal=to_amount(subtotal) if subtotal is not None else unit_price * Decimal(quantity),
        name=str(product.get("name", "")),
        sku=str(product.get("sku", "")),
    )


def _parse_datetime(value: str | None) -> datetime:
    if not value:
        return datetime.now()
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
