"""Tests de la maquina de estados del checkout."""

from __future__ import annotations

import threading
import time
import unittest
from decimal import Decimal
from unittest.mock import Mock

from cliente.backend.cart import Cart
from cliente.backend.catalog_cache import CatalogCache
from cliente.backend.checkout import (
    GENERIC_SUBMISSION_ERROR,
    IN_FLIGHT_SUBMISSION_ERROR,
    CheckoutState,
    CheckoutStateMachine,
)
from cliente.backend.gateway import LocalServerGateway
from servidor.services.sale_ledger import SaleLedgerService
from shared.errors import (
    CheckoutStateError,
    EmptyCartError,
    GatewayTimeoutError,
    ServiceError,
    SubmissionRejectedError,
    SubmissionTimeoutError,
    ValidationError,
)
from shared.protocol import Actor, PaymentMethod, SalesQuery


class CheckoutStateMachineTests(unittest.TestCase):
    """Valida transiciones, rechazos y envio unico de la venta."""

    def setUp(self) -> None:
        self.ledger = SaleLedgerService()
        self.ledger.add_product(42, "SKU-042", "Camara 29", "10.00", 5)
        self.gateway = LocalServerGateway(ledger=self.ledger)
        self.catalog = CatalogCache(gateway=self.gateway)
        self.catalog.search()
        self.cart = Cart()
        self.machine = CheckoutStateMachine(
            cart=self.cart,
            gateway=self.gateway,
            catalog=self.catalog,
            timeout=2.0,
        )
        self.addCleanup(self.machine.close)

    def test_state_is_derived_from_cart(self) -> None:
        self.assertIs(self.machine.state, CheckoutState.IDLE)

        self.cart.add_item(self.catalog.get(42))

        self.assertIs(self.machine.state, CheckoutState.REVIEWING)

    def test_successful_checkout_registers_sale_and_clears_cart(self) -> None:
        """Dos unidades a 10.00 generan una venta de 20.00 y vacian el carrito."""
        self._add(42, times=2)
        self.assertEqual(self.cart.total(), Decimal("20.00"))

        self.machine.initiate_checkout()
        self.machine.select_payment_method("card")
        sale = self.machine.confirm_payment()

        self.assertIs(self.machine.state, CheckoutState.SUCCEEDED)
        self.assertEqual(sale.total_amount, Decimal("20.00"))
        self.assertEqual(sale.payment_method, PaymentMethod.CARD)
        self.assertEqual(self.machine.last_sale_id, sale.sale_id)
        self.assertTrue(self.cart.is_empty)
        self.assertEqual(self.catalog.get(42).available_stock, 3)
        self.assertFalse(self.catalog.is_stale)

    def test_initiate_checkout_with_empty_cart_fails(self) -> None:
        with self.assertRaises(EmptyCartError):
            self.machine.initiate_checkout()

        self.assertIs(self.machine.state, CheckoutState.IDLE)

    def test_initiate_checkout_resets_payment_method_to_cash(self) -> None:
        self._add(42)
        self.machine.initiate_checkout()
        self.machine.select_payment_method(PaymentMethod.TRANSFER)
        self.machine.cancel_payment()

        self.machine.initiate_checkout()

        self.assertIs(self.machine.payment_method, PaymentMethod.CASH)

    def test_select_payment_method_requires_awaiting_payment(self) -> None:
        self._add(42)

        with self.assertRaises(CheckoutStateError):
            self.machine.select_payment_method("cash")

    def test_select_invalid_payment_method_keeps_previous(self) -> None:
        self._add(42)
        self.machine.initiate_checkout()

        with self.assertRaises(ValidationError):
            self.machine.select_payment_method("cheque")

        self.assertIs(self.machine.payment_method, PaymentMethod.CASH)

    def test_cancel_payment_returns_to_reviewing_without_ledger_call(self) -> None:
        self._add(42)
        self.machine.initiate_checkout()

        self.machine.cancel_payment()

        self.assertIs(self.machine.state, CheckoutState.REVIEWING)
        self.assertEqual(self.ledger.list_sales(SalesQuery()).total, 0)

    def test_emptying_cart_during_payment_returns_to_idle(self) -> None:
        self._add(42)
        self.machine.initiate_checkout()

        self.cart.clear()

        self.assertIs(self.machine.state, CheckoutState.IDLE)

    def test_confirm_with_emptied_cart_raises_empty_cart(self) -> None:
        self._add(42)
        self.machine.initiate_checkout()
        self.cart.clear()

        with self.assertRaises(EmptyCartError):
            self.machine.confirm_payment()

        self.assertEqual(self.ledger.list_sales(SalesQuery()).total, 0)

    def test_confirm_outside_awaiting_payment_fails(self) -> None:
        self._add(42)

        with self.assertRaises(CheckoutStateError):
            self.machine.confirm_payment()

    def test_stock_race_rejection_keeps_cart_intact(self) -> None:
        """Si otra caja agota el stock, se vuelve al pago con el carrito igual."""
        self._add(42)
        self.machine.initiate_checkout()
        before = self.cart.snapshot()
        self.ledger.adjust_stock(42, -5, "venta en otra caja")

        with self.assertRaises(SubmissionRejectedError) as ctx:
            self.machine.confirm_payment()

        self.assertIs(self.machine.state, CheckoutState.AWAITING_PAYMENT)
        self.assertEqual(self.cart.snapshot(), before)
        self.assertIn("Stock insuficiente", ctx.exception.reason)
        self.assertIs(self.machine.last_rejection, ctx.exception)
        self.assertIsNone(self.machine.last_sale)
        self.assertEqual(self.ledger.list_sales(SalesQuery()).total, 0)

    def test_rejection_allows_retry(self) -> None:
        self._add(42)
        self.machine.initiate_checkout()
        self.ledger.adjust_stock(42, -5)
        with self.assertRaises(SubmissionRejectedError):
            self.machine.confirm_payment()

        self.ledger.adjust_stock(42, 1)
        sale = self.machine.confirm_payment()

        self.assertIs(self.machine.state, CheckoutState.SUCCEEDED)
        self.assertEqual(sale.total_amount, Decimal("10.00"))
        self.assertIsNone(self.machine.last_rejection)

    def test_nested_confirm_is_ignored_while_submitting(self) -> None:
        """Un segundo confirm durante el envio no llega al ledger."""
        gateway = Mock(wraps=self.gateway)
        nested_results: list[object] = []

        def create_sale(pending):
            nested_results.append(machine.confirm_payment())
            nested_results.append(machine.state)
            return self.gateway.create_sale(pending)

        gateway.create_sale.side_effect = create_sale
        cart = Cart()
        cart.add_item(self.catalog.get(42))
        machine = CheckoutStateMachine(cart=cart, gateway=gateway, timeout=2.0)
        self.addCleanup(machine.close)
        machine.initiate_checkout()

        sale = machine.confirm_payment()

        self.assertEqual(gateway.create_sale.call_count, 1)
        self.assertEqual(nested_results, [None, CheckoutState.SUBMITTING])
        self.assertEqual(sale.sale_id, 1)
        self.assertEqual(self.ledger.list_sales(SalesQuery()).total, 1)

    def test_slow_ledger_times_out_and_keeps_cart(self) -> None:
        release = threading.Event()
        gateway = Mock()

        def create_sale(_pending):
            release.wait(5)
            raise ServiceError("respuesta tardia")

        gateway.create_sale.side_effect = create_sale
        cart = Cart()
        cart.add_item(self.catalog.get(42))
        machine = CheckoutStateMachine(cart=cart, gateway=gateway, timeout=0.05)
        self.addCleanup(machine.close)
        self.addCleanup(release.set)
        machine.initiate_checkout()

        with self.assertRaises(SubmissionTimeoutError):
            machine.confirm_payment()

        self.assertIs(machine.state, CheckoutState.AWAITING_PAYMENT)
        self.assertEqual(len(cart), 1)

    def test_gateway_timeout_maps_to_submission_timeout(self) -> None:
        gateway = Mock()
        gateway.create_sale.side_effect = GatewayTimeoutError("timeout")
        machine = self._machine_with(gateway)

        with self.assertRaises(SubmissionTimeoutError):
            machine.confirm_payment()

        self.assertIs(machine.state, CheckoutState.AWAITING_PAYMENT)

    def test_transport_error_maps_to_generic_rejection(self) -> None:
        gateway = Mock()
        gateway.create_sale.side_effect = ServiceError("conexion rechazada")
        machine = self._machine_with(gateway)

        with self.assertRaises(SubmissionRejectedError) as ctx:
            machine.confirm_payment()

        self.assertEqual(ctx.exception.reason, GENERIC_SUBMISSION_ERROR)

    def test_unexpected_error_returns_to_awaiting_payment(self) -> None:
        gateway = Mock()
        gateway.create_sale.side_effect = RuntimeError("bug")
        machine = self._machine_with(gateway)

        with self.assertLogs("cliente.backend.checkout", level="ERROR"):
            with self.assertRaises(RuntimeError):
                machine.confirm_payment()

        self.assertIs(machine.state, CheckoutState.AWAITING_PAYMENT)

    def test_actor_is_sent_as_seller(self) -> None:
        self._add(42)
        machine = CheckoutStateMachine(
            cart=self.cart,
            gateway=self.gateway,
            actor=Actor(user_id=7, display_name="Caja 1"),
        )
        self.addCleanup(machine.close)
        machine.initiate_checkout()

        sale = machine.confirm_payment()

        self.assertEqual(sale.seller_id, 7)

    def test_start_new_sale_clears_last_sale(self) -> None:
        self._add(42)
        self.machine.initiate_checkout()
        self.machine.confirm_payment()

        self.machine.start_new_sale()

        self.assertIs(self.machine.state, CheckoutState.IDLE)
        self.assertIsNone(self.machine.last_sale)

    def test_retry_while_expired_submission_runs_does_not_queue(self) -> None:
        """Mientras el envio expirado siga vivo no se encola otra venta."""
        entered = threading.Event()
        release = threading.Event()
        gateway = Mock(wraps=self.gateway)

        def create_sale(_pending):
            entered.set()
            release.wait(5)
            raise ServiceError("respuesta tardia")

        gateway.create_sale.side_effect = create_sale
        machine = self._machine_with(gateway, timeout=0.2)
        self.addCleanup(release.set)

        with self.assertRaises(SubmissionTimeoutError):
            machine.confirm_payment()
        self.assertTrue(entered.wait(5))
        self.assertTrue(machine.submission_in_flight)

        with self.assertRaises(SubmissionTimeoutError) as ctx:
            machine.confirm_payment()

        self.assertEqual(ctx.exception.reason, IN_FLIGHT_SUBMISSION_ERROR)
        self.assertEqual(gateway.create_sale.call_count, 1)
        self.assertIs(machine.state, CheckoutState.AWAITING_PAYMENT)

        release.set()
        self._wait_until_settled(machine)
        gateway.create_sale.side_effect = self.gateway.create_sale
        sale = machine.confirm_payment()

        self.assertEqual(gateway.create_sale.call_count, 2)
        self.assertEqual(sale.sale_id, 1)
        self.assertEqual(self.ledger.list_sales(SalesQuery()).total, 1)

    def test_late_success_is_adopted_instead_of_duplicated(self) -> None:
        """Si el envio expirado registro la venta, el reintento la reutiliza."""
        release = threading.Event()
        gateway = Mock(wraps=self.gateway)

        def create_sale(pending):
            release.wait(5)
            return self.gateway.create_sale(pending)

        gateway.create_sale.side_effect = create_sale
        machine = self._machine_with(gateway, timeout=0.2)
        self.addCleanup(release.set)

        with self.assertRaises(SubmissionTimeoutError):
            machine.confirm_payment()
        release.set()
        self._wait_until_settled(machine)

        with self.assertLogs("cliente.backend.checkout", level="WARNING"):
            sale = machine.confirm_payment()

        self.assertEqual(sale.sale_id, 1)
        self.assertEqual(gateway.create_sale.call_count, 1)
        self.assertIs(machine.state, CheckoutState.SUCCEEDED)
        self.assertEqual(self.ledger.list_sales(SalesQuery()).total, 1)

    def test_late_success_with_other_cart_is_not_adopted(self) -> None:
        release = threading.Event()
        gateway = Mock(wraps=self.gateway)

        def create_sale(pending):
            release.wait(5)
            return self.gateway.create_sale(pending)

        gateway.create_sale.side_effect = create_sale
        machine = self._machine_with(gateway, timeout=0.2)
        self.addCleanup(release.set)

        with self.assertRaises(SubmissionTimeoutError):
            machine.confirm_payment()
        release.set()
        self._wait_until_settled(machine)
        machine.select_payment_method("card")
        gateway.create_sale.side_effect = self.gateway.create_sale

        sale = machine.confirm_payment()

        self.assertEqual(sale.sale_id, 2)
        self.assertEqual(gateway.create_sale.call_count, 2)

    def test_refresh_failure_after_sale_still_succeeds(self) -> None:
        """Un fallo al refrescar el catalogo no deja la venta en SUBMITTING."""
        catalog = Mock()
        catalog.refresh.side_effect = ValueError("respuesta corrupta")
        self._add(42)
        machine = CheckoutStateMachine(
            cart=self.cart,
            gateway=self.gateway,
            catalog=catalog,
            timeout=2.0,
        )
        self.addCleanup(machine.close)
        machine.initiate_checkout()

        with self.assertLogs("cliente.backend.checkout", level="ERROR"):
            sale = machine.confirm_payment()

        self.assertIs(machine.state, CheckoutState.SUCCEEDED)
        self.assertEqual(machine.last_sale_id, sale.sale_id)
        self.assertTrue(self.cart.is_empty)
        catalog.invalidate.assert_called_once_with()
        machine.start_new_sale()
        self.assertIs(machine.state, CheckoutState.IDLE)

    def test_state_read_does_not_reset_payment(self) -> None:
        """Leer el estado no cambia la fase; la sincronizacion es explicita."""
        self._add(42)
        self.machine.initiate_checkout()
        self.cart.clear()

        self.assertIs(self.machine.state, CheckoutState.IDLE)
        self._add(42)
        self.assertIs(self.machine.state, CheckoutState.AWAITING_PAYMENT)

        self.cart.clear()
        self.machine.sync_with_cart()
        self._add(42)

        self.assertIs(self.machine.state, CheckoutState.REVIEWING)

    def _machine_with(self, gateway: Mock, timeout: float = 2.0) -> CheckoutStateMachine:
        cart = Cart()
        cart.add_item(self.catalog.get(42))
        machine = CheckoutStateMachine(cart=cart, gateway=gateway, timeout=timeout)
        self.addCleanup(machine.close)
        machine.initiate_checkout()
        return machine

    @staticmethod
    def _wait_until_settled(machine: CheckoutStateMachine) -> None:
        deadline = time.monotonic() + 5
        while machine.submission_in_flight and time.monotonic() < deadline:
            time.sleep(0.01)

    def _add(self, item_id: int, times: int = 1) -> None:
        for _ in range(times):
            self.cart.add_item(self.catalog.get(item_id))


if __name__ == "__main__":
    unittest.main()
