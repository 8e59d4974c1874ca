"""Tests de los gateways local y HTTP."""

from __future__ import annotations

import json
import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, Mock

import requests

from cliente.backend.gateway import (
    INVALID_RESPONSE_ERROR,
    HttpServerGateway,
    LocalServerGateway,
    extract_error_detail,
    parse_catalog_item,
    parse_sale,
)
from shared.errors import GatewayTimeoutError, LedgerRejectedError, ServiceError
from shared.protocol import (
    CatalogQuery,
    PaymentMethod,
    PendingSale,
    SaleLineRequest,
    SalesQuery,
    SaleStatus,
)


class LocalServerGatewayTests(unittest.TestCase):
    """Valida el envoltorio de errores del gateway local."""

    def test_unexpected_error_is_wrapped_in_service_error(self) -> None:
        ledger = Mock()
        ledger.create_sale.side_effect = RuntimeError("bug")
        gateway = LocalServerGateway(ledger=ledger)

        with self.assertLogs("cliente.backend.gateway", level="ERROR"):
            with self.assertRaises(ServiceError) as ctx:
                gateway.create_sale(Mock())

        self.assertEqual(str(ctx.exception), "No fue posible registrar la venta.")

    def test_ledger_rejection_passes_through(self) -> None:
        ledger = Mock()
        ledger.annul_sale.side_effect = LedgerRejectedError("ya anulada")
        gateway = LocalServerGateway(ledger=ledger)

        with self.assertRaises(LedgerRejectedError):
            gateway.annul_sale(1)


class HttpServerGatewayTests(unittest.TestCase):
    """Valida el mapeo de la API REST a objetos y errores del protocolo."""

    def setUp(self) -> None:
        self.session = MagicMock()
        self.gateway = HttpServerGateway(
            base_url="http://pos.local/",
            token="abc",
            timeout=3,
            session=self.session,
        )

    def test_search_catalog_sends_filters_and_parses_items(self) -> None:
        self.session.request.return_value = self._response(
            200,
            {
                "items": [
                    {"id": 42, "name": "Camara", "sku": "CAM", "price": "10.00", "stock": 4},
                ],
                "metadata": {"total": 1},
            },
        )

        items = self.gateway.search_catalog(CatalogQuery(term="cam", size=20))

        self.session.request.assert_called_once_with(
            "GET",
            "http://pos.local/api/v1/products/",
            timeout=3,
            params={"search": "cam", "size": "20", "is_active": "true"},
        )
        self.assertEqual(items[0].item_id, 42)
        self.assertEqual(items[0].unit_price, Decimal("10.00"))
        self.session.headers.__setitem__.assert_called_once_with("Authorization", "Bearer abc")

    def test_create_sale_posts_cart_snapshot(self) -> None:
        self.session.request.return_value = self._response(201, self._sale_payload())
        pending = PendingSale(
            lines=(SaleLineRequest(item_id=42, quantity=2, unit_price=Decimal("10.00")),),
            payment_method=PaymentMethod.TRANSFER,
            seller_id=7,
        )

        sale = self.gateway.create_sale(pending)

        _, kwargs = self.session.request.call_args
        self.assertEqual(
            kwargs["json"],
            {
                "payment_method": "transfer",
                "items": [{"product_id": 42, "quantity": 2, "unit_price": "10.00"}],
                "seller_id": 7,
            },
        )
        self.assertEqual(sale.sale_id, 77)
        self.assertEqual(sale.total_amount, Decimal("20.00"))

    def test_client_error_detail_becomes_ledger_rejection(self) -> None:
        self.session.request.return_value = self._response(
            400,
            {"detail": "Stock insuficiente para Camara"},
        )

        with self.assertRaises(LedgerRejectedError) as ctx:
            self.gateway.annul_sale(77)

        self.assertEqual(ctx.exception.detail, "Stock insuficiente para Camara")

    def test_client_error_without_detail_uses_status_code(self) -> None:
        self.session.request.return_value = self._response(404, None)

        with self.assertRaises(LedgerRejectedError) as ctx:
            self.gateway.get_sale(5)

        self.assertEqual(ctx.exception.detail, "Solicitud rechazada (404).")

    def test_server_error_is_service_error(self) -> None:
        self.session.request.return_value = self._response(503, {"detail": "mantenimiento"})

        with self.assertRaises(ServiceError) as ctx:
            self.gateway.get_sale(5)

        self.assertNotIsInstance(ctx.exception, LedgerRejectedError)

    def test_timeout_becomes_gateway_timeout(self) -> None:
        self.session.request.side_effect = requests.Timeout("lento")

        with self.assertRaises(GatewayTimeoutError):
            self.gateway.create_sale(
                PendingSale(lines=(), payment_method=PaymentMethod.CASH)
            )

    def test_connection_error_becomes_service_error(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("sin red")

        with self.assertRaises(ServiceError) as ctx:
            self.gateway.search_catalog(CatalogQuery())

        self.assertNotIsInstance(ctx.exception, GatewayTimeoutError)

    def test_list_sales_reads_metadata(self) -> None:
        self.session.request.return_value = self._response(
            200,
            {
                "items": [self._sale_payload(status="annulled")],
                "metadata": {"total": 11, "page": 2, "size": 10, "pages": 2},
            },
        )

        page = self.gateway.list_sales(SalesQuery(status=SaleStatus.ANNULLED, page=2))

        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["params"], {"page": "2", "size": "10", "status": "annulled"})
        self.assertEqual((page.total, page.page, page.pages), (11, 2, 2))
        self.assertTrue(page.items[0].is_annulled)

    def test_list_sales_sends_date_search_and_seller_filters(self) -> None:
        self.session.request.return_value = self._response(200, {"items": []})

        page = self.gateway.list_sales(
            SalesQuery(
                start_date=date(2026, 3, 1),
                end_date=date(2026, 3, 31),
                search=" camara ",
                seller_id=7,
            )
        )

        _, kwargs = self.session.request.call_args
        self.assertEqual(
            kwargs["params"],
            {
                "page": "1",
                "size": "10",
                "start_date": "2026-03-01",
                "end_date": "2026-03-31",
                "search": "camara",
                "seller_id": "7",
            },
        )
        self.assertEqual((page.total, page.pages), (0, 0))

    def test_json_list_body_is_invalid_response(self) -> None:
        self.session.request.return_value = self._response(200, [])

        with self.assertLogs("cliente.backend.gateway", level="WARNING"):
            with self.assertRaises(ServiceError) as ctx:
                self.gateway.get_sale(77)

        self.assertEqual(str(ctx.exception), INVALID_RESPONSE_ERROR)
        self.assertNotIsInstance(ctx.exception, LedgerRejectedError)

    def test_html_body_is_invalid_response(self) -> None:
        """Un proxy que responde HTML con 200 no rompe el cliente."""
        response = self._response(200, None, content=b"<html><body>Login</body></html>")
        response.headers["Content-Type"] = "text/html"
        self.session.request.return_value = response

        with self.assertLogs("cliente.backend.gateway", level="WARNING"):
            with self.assertRaises(ServiceError) as ctx:
                self.gateway.search_catalog(CatalogQuery(term="cam"))

        self.assertEqual(str(ctx.exception), INVALID_RESPONSE_ERROR)

    def test_malformed_collections_are_invalid_response(self) -> None:
        for payload in (
            {"items": "camara"},
            {"items": [], "metadata": ["total", 3]},
            {"items": [], "metadata": {"total": "muchas"}},
        ):
            with self.subTest(payload=payload):
                self.session.request.return_value = self._response(200, payload)

                with self.assertRaises(ServiceError):
                    self.gateway.list_sales(SalesQuery())

        self.session.request.return_value = self._response(200, {"items": [["id", 1]]})
        with self.assertRaises(ServiceError):
            self.gateway.search_catalog(CatalogQuery())

    def test_fetch_ticket_uses_content_disposition_filename(self) -> None:
        response = self._response(200, None, content=b"%PDF-1.4")
        response.headers["Content-Type"] = "application/pdf"
        response.headers["Content-Disposition"] = 'attachment; filename="venta_77.pdf"'
        self.session.request.return_value = response

        ticket = self.gateway.fetch_ticket(77)

        self.assertEqual(ticket.filename, "venta_77.pdf")
        self.assertEqual(ticket.content, b"%PDF-1.4")

    def test_fetch_ticket_defaults_filename(self) -> None:
        self.session.request.return_value = self._response(200, None, content=b"%PDF")

        ticket = self.gateway.fetch_ticket(77)

        self.assertEqual(ticket.filename, "Ticket_77.pdf")

    @staticmethod
    def _response(status_code: int, payload: object, content: bytes | None = None) -> requests.Response:
        response = requests.Response()
        response.status_code = status_code
        response.encoding = "utf-8"
        if content is not None:
            response._content = content
        elif payload is not None:
            response._content = json.dumps(payload).encode("utf-8")
            response.headers["Content-Type"] = "application/json"
        else:
            response._content = b""
        return response

    @staticmethod
    def _sale_payload(status: str = "completed") -> dict[str, object]:
        return {
            "id": 77,
            "status": status,
            "total_amount": "20.00",
            "payment_method": "transfer",
            "created_at": "2026-03-01T12:30:00Z",
            "user_id": 7,
            "items": [
                {
                    "product_id": 42,
                    "quantity": 2,
                    "unit_price": "10.00",
                    "subtotal": "20.00",
                    "product": {"name": "Camara", "sku": "CAM"},
                }
            ],
        }


class PayloadParsingTests(unittest.TestCase):
    """Valida el parseo de payloads de la API."""

    def test_parse_sale_reads_lines_and_seller(self) -> None:
        sale = parse_sale(
            {
                "id": "3",
                "status": "completed",
                "total_amount": 15,
                "payment_method": "card",
                "created_at": "2026-03-01T12:30:00",
                "user": {"id": 9},
                "items": [{"product_id": 1, "quantity": 3, "unit_price": "5"}],
            }
        )

        self.assertEqual(sale.sale_id, 3)
        self.assertEqual(sale.seller_id, 9)
        self.assertEqual(sale.lines[0].subtotal, Decimal("15.00"))
        self.assertEqual(sale.total_amount, Decimal("15.00"))

    def test_parse_sale_rejects_malformed_payload(self) -> None:
        with self.assertRaises(ServiceError):
            parse_sale({"status": "completed"})
        with self.assertRaises(ServiceError):
            parse_sale({"id": 1, "payment_method": "cheque"})

    def test_parse_sale_rejects_wrong_nested_types(self) -> None:
        with self.assertRaises(ServiceError):
            parse_sale({"id": 1, "user": "ana"})
        with self.assertRaises(ServiceError):
            parse_sale({"id": 1, "items": [["product_id", 42]]})
        with self.assertRaises(ServiceError):
            parse_sale({"id": 1, "items": {"product_id": 42}})

    def test_parse_catalog_item_clamps_negative_stock(self) -> None:
        item = parse_catalog_item({"id": 1, "price": 990, "stock": -2, "is_active": False})

        self.assertEqual(item.available_stock, 0)
        self.assertFalse(item.is_active)

    def test_parse_catalog_item_rejects_invalid_price(self) -> None:
        with self.assertRaises(ServiceError):
            parse_catalog_item({"id": 1, "price": "gratis"})

    def test_extract_error_detail_joins_validation_messages(self) -> None:
        response = requests.Response()
        response.status_code = 422
        response.encoding = "utf-8"
        response._content = json.dumps(
            {"detail": [{"msg": "campo requerido"}, {"msg": "cantidad invalida"}]}
        ).encode("utf-8")

        self.assertEqual(extract_error_detail(response), "campo requerido; cantidad invalida")


if __name__ == "__main__":
    unittest.main()
