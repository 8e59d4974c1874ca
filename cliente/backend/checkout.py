"""Maquina de estados del checkout de caja."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from enum import Enum

from parametros import LEDGER_TIMEOUT_SECONDS
from shared.errors import (
    CatalogUnavailableError,
    CheckoutStateError,
    EmptyCartError,
    GatewayTimeoutError,
    LedgerRejectedError,
    ServiceError,
    SubmissionRejectedError,
    SubmissionTimeoutError,
)
from shared.protocol import Actor, PaymentMethod, PendingSale, Sale

from .cart import Cart
from .catalog_cache import CatalogCache
from .gateway import ServerGateway

LOGGER = logging.getLogger(__name__)

GENERIC_SUBMISSION_ERROR = "Error al procesar la venta."
TIMEOUT_SUBMISSION_ERROR = (
    "El servidor no confirmo la venta a tiempo. El carrito se conserva para reintentar."
)
IN_FLIGHT_SUBMISSION_ERROR = (
    "El envio anterior aun no termina. Espera unos segundos antes de reintentar."
)


class CheckoutState(str, Enum):
    """Estados visibles del checkout."""

    IDLE = "idle"
    REVIEWING = "reviewing"
    AWAITING_PAYMENT = "awaiting_payment"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"


class CheckoutStateMachine:
    """Lleva un carrito armado hasta una venta registrada en el ledger.

    IDLE y REVIEWING se derivan del carrito. Un rechazo del ledger no es un
    estado de reposo: la maquina vuelve a AWAITING_PAYMENT con el carrito
    intacto y deja el motivo en ``last_rejection``.
    """

    def __init__(
        self,
        cart: Cart,
        gateway: ServerGateway,
        catalog: CatalogCache | None = None,
        actor: Actor | None = None,
        timeout: float = LEDGER_TIMEOUT_SECONDS,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._cart = cart
        self._gateway = gateway
        self._catalog = catalog
        self._actor = actor
        self._timeout = timeout
        # Un solo worker: una sesion nunca tiene dos envios en vuelo.
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="ledger-submit",
        )
        self._submit_guard = threading.Lock()
        self._phase: CheckoutState | None = None
        self._payment_method = PaymentMethod.CASH
        self._last_sale: Sale | None = None
        self._last_rejection: SubmissionRejectedError | None = None
        # Envio expirado que el worker todavia puede completar.
        self._expired: Future | None = None
        self._expired_pending: PendingSale | None = None

    @property
    def state(self) -> CheckoutState:
        if self._phase is None or self._payment_abandoned():
            return CheckoutState.IDLE if self._cart.is_empty else CheckoutState.REVIEWING
        return self._phase

    @property
    def submission_in_flight(self) -> bool:
        """True mientras un envio expirado sigue corriendo en el worker."""
        return self._expired is not None and not self._expired.done()

    @property
    def payment_method(self) -> PaymentMethod:
        return self._payment_method

    @property
    def last_sale(self) -> Sale | None:
        return self._last_sale

    @property
    def last_sale_id(self) -> int | None:
        return self._last_sale.sale_id if self._last_sale is not None else None

    @property
    def last_rejection(self) -> SubmissionRejectedError | None:
        return self._last_rejection

    @property
    def actor(self) -> Actor | None:
        return self._actor

    def sync_with_cart(self) -> None:
        """Vaciar el carrito durante el pago vuelve al inicio."""
        if self._payment_abandoned():
            self._phase = None
            LOGGER.info("Carrito vaciado durante el pago; checkout reiniciado.")

    def initiate_checkout(self) -> None:
        """REVIEWING -> AWAITING_PAYMENT."""
        self.sync_with_cart()
        state = self.state
        if state is CheckoutState.AWAITING_PAYMENT:
            return
        if self._cart.is_empty:
            raise EmptyCartError("El carrito esta vacio.")
        if state is not CheckoutState.REVIEWING:
            raise CheckoutStateError(f"No se puede iniciar el pago en estado {state.value}.")

        self._phase = CheckoutState.AWAITING_PAYMENT
        self._payment_method = PaymentMethod.CASH
        self._last_rejection = None
        LOGGER.info(
            "Checkout iniciado: lineas=%d total=%s",
            len(self._cart),
            self._cart.total(),
        )

    def select_payment_method(self, method: PaymentMethod | str) -> PaymentMethod:
        """Cambia el medio de pago sin salir de AWAITING_PAYMENT."""
        self._require_state(CheckoutState.AWAITING_PAYMENT)
        self._payment_method = PaymentMethod.parse(method)
        LOGGER.debug("Medio de pago seleccionado: %s", self._payment_method.value)
        return self._payment_method

    def cancel_payment(self) -> None:
        """Abandona el pago; no hay efecto en el ledger."""
        self.sync_with_cart()
        state = self.state
        if state is CheckoutState.SUBMITTING:
            raise CheckoutStateError("La venta ya se esta enviando.")
        if state is CheckoutState.AWAITING_PAYMENT:
            self._phase = None
            LOGGER.info("Pago cancelado; se vuelve a revision del carrito.")

    def build_pending_sale(self) -> PendingSale:
        return PendingSale(
            lines=self._cart.to_requests(),
            payment_method=self._payment_method,
            seller_id=self._actor.user_id if self._actor is not None else None,
        )

    def confirm_payment(self) -> Sale | None:
        """AWAITING_PAYMENT -> SUBMITTING -> SUCCEEDED o rechazo.

        Retorna ``None`` si ya hay un envio en curso; el disparo repetido se
        ignora y el ledger recibe una sola solicitud.
        """
        if not self._submit_guard.acquire(blocking=False):
            LOGGER.warning("Confirmacion ignorada: la venta ya se esta enviando.")
            return None

        try:
            if self._payment_abandoned():
                self.sync_with_cart()
                raise EmptyCartError("El carrito esta vacio.")
            self._require_state(CheckoutState.AWAITING_PAYMENT)

            pending = self.build_pending_sale()
            self._phase = CheckoutState.SUBMITTING
            self._last_rejection = None
            LOGGER.info(
                "Enviando venta: lineas=%d total=%s pago=%s",
                len(pending.lines),
                pending.total,
                pending.payment_method.value,
            )

            try:
                sale = self._submit(pending)
            except SubmissionRejectedError as exc:
                self._phase = CheckoutState.AWAITING_PAYMENT
                self._last_rejection = exc
                LOGGER.warning("Venta rechazada, carrito conservado: %s", exc.reason)
                raise
            except Exception:
                self._phase = CheckoutState.AWAITING_PAYMENT
                LOGGER.exception("Fallo inesperado al enviar la venta.")
                raise

            self._complete(sale)
            return sale
        finally:
            self._submit_guard.release()

    def start_new_sale(self) -> None:
        """Sale de la vista de venta completada."""
        if self.state is CheckoutState.SUBMITTING:
            raise CheckoutStateError("La venta ya se esta enviando.")
        self._phase = None
        self._last_sale = None
        self._last_rejection = None
        self._payment_method = PaymentMethod.CASH

    def close(self) -> None:
        """Libera el worker de envio sin esperar envios colgados."""
        self._executor.shutdown(wait=False)

    def _submit(self, pending: PendingSale) -> Sale:
        late_sale = self._take_expired_result(pending)
        if late_sale is not None:
            return late_sale

        future = self._executor.submit(self._gateway.create_sale, pending)
        try:
            return future.result(timeout=self._timeout)
        except FuturesTimeoutError as exc:
            LOGGER.warning("El ledger no respondio en %.1fs.", self._timeout)
            if future.cancel():
                LOGGER.info("Envio cancelado antes de llegar al ledger.")
            else:
                self._expired = future
                self._expired_pending = pending
                future.add_done_callback(self._log_late_completion)
            raise SubmissionTimeoutError(TIMEOUT_SUBMISSION_ERROR) from exc
        except GatewayTimeoutError as exc:
            raise SubmissionTimeoutError(TIMEOUT_SUBMISSION_ERROR) from exc
        except LedgerRejectedError as exc:
            raise SubmissionRejectedError(exc.detail or GENERIC_SUBMISSION_ERROR) from exc
        except ServiceError as exc:
            raise SubmissionRejectedError(GENERIC_SUBMISSION_ERROR) from exc

    def _take_expired_result(self, pending: PendingSale) -> Sale | None:
        """Resuelve un envio expirado antes de mandar uno nuevo.

        Mientras el worker siga ocupado no se encola otra venta. Si el envio
        expirado termino registrando la misma venta, se adopta en lugar de
        duplicarla.
        """
        expired = self._expired
        if expired is None:
            return None
        if not expired.done():
            LOGGER.warning("Confirmacion rechazada: el envio expirado sigue en curso.")
            raise SubmissionTimeoutError(IN_FLIGHT_SUBMISSION_ERROR)

        expired_pending = self._expired_pending
        self._expired = None
        self._expired_pending = None
        if expired.cancelled() or expired.exception() is not None:
            return None

        sale = expired.result()
        if expired_pending == pending:
            LOGGER.warning("Se adopta la venta %s registrada tras el timeout.", sale.sale_id)
            return sale
        LOGGER.warning(
            "La venta %s se registro tras el timeout con otro carrito; revisar historial.",
            sale.sale_id,
        )
        return None

    def _complete(self, sale: Sale) -> None:
        self._cart.clear()
        self._last_sale = sale
        self._phase = CheckoutState.SUCCEEDED
        LOGGER.info("Venta completada: id=%s total=%s", sale.sale_id, sale.total_amount)
        if self._catalog is None:
            return

        self._catalog.invalidate()
        try:
            self._catalog.refresh()
        except CatalogUnavailableError:
            LOGGER.warning("Venta %s registrada; el catalogo se refrescara luego.", sale.sale_id)
        except Exception:
            LOGGER.exception("Venta %s registrada; fallo inesperado al refrescar catalogo.", sale.sale_id)

    def _payment_abandoned(self) -> bool:
        return self._phase is CheckoutState.AWAITING_PAYMENT and self._cart.is_empty

    def _require_state(self, expected: CheckoutState) -> None:
        state = self.state
        if state is not expected:
            raise CheckoutStateError(
                f"Accion no permitida en estado {state.value} (se esperaba {expected.value})."
            )

    @staticmethod
    def _log_late_completion(future: Future) -> None:
        """Deja rastro si el ledger responde despues del timeout."""
        if future.cancelled():
            return
        error = future.exception()
        if error is None:
            LOGGER.warning(
                "El ledger registro la venta %s despues del timeout; revisar historial.",
                future.result().sale_id,
            )
        else:
            LOGGER.info("Envio expirado termino con error: %s", error)
