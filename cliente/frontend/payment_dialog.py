"""Dialogo para seleccionar medio de pago y confirmar la venta."""

from __future__ import annotations

from typing import TYPE_CHECKING

from PyQt6.QtCore import Qt
from PyQt6.QtWidgets import (
    QButtonGroup,
    QDialog,
    QGridLayout,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QRadioButton,
    QVBoxLayout,
    QWidget,
)

from cliente.frontend.dialogs import show_error
from servidor.services.ticket_builder import PAYMENT_METHOD_LABELS
from shared.errors import ServiceError, ValidationError
from shared.money import format_amount
from shared.protocol import PaymentMethod

if TYPE_CHECKING:
    from cliente.backend.controller import PosController


class PaymentDialog(QDialog):
    """Dialogo modal de pago; se cierra solo cuando la venta queda registrada."""

    def __init__(
        self,
        controller: PosController,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._controller = controller
        self._method_group = QButtonGroup(self)
        self._confirm_button: QPushButton
        self._status_label: QLabel

        self.setWindowTitle("Finalizar compra")
        self.setModal(True)
        self.setMinimumSize(440, 320)

        self._build_ui()
        self._apply_styles()

    def _build_ui(self) -> None:
        """Construye widgets del dialogo."""
        root_layout = QVBoxLayout(self)
        root_layout.setContentsMargins(24, 24, 24, 24)
        root_layout.setSpacing(14)

        title_label = QLabel("Selecciona medio de pago", self)
        title_label.setObjectName("titleLabel")

        methods_layout = QGridLayout()
        for index, method in enumerate(PaymentMethod):
            radio = QRadioButton(PAYMENT_METHOD_LABELS[method], self)
            radio.setChecked(method is self._controller.payment_method)
            self._method_group.addButton(radio, index)
            methods_layout.addWidget(radio, index // 2, index % 2)
        self._method_group.idClicked.connect(self._on_method_clicked)

        total_label = QLabel(
            f"Monto total: {format_amount(self._controller.cart_total())}",
            self,
        )
        total_label.setObjectName("totalLabel")
        total_label.setAlignment(Qt.AlignmentFlag.AlignRight)

        self._status_label = QLabel("", self)
        self._status_label.setObjectName("statusLabel")
        self._status_label.setWordWrap(True)

        buttons_layout = QHBoxLayout()
        buttons_layout.addStretch(1)
        cancel_button = QPushButton("Cancelar", self)
        cancel_button.setObjectName("cancelButton")
        self._confirm_button = QPushButton("Confirmar y pagar", self)
        cancel_button.clicked.connect(self.reject)
        self._confirm_button.clicked.connect(self._on_confirm_clicked)
        buttons_layout.addWidget(cancel_button)
        buttons_layout.addWidget(self._confirm_button)

        root_layout.addWidget(title_label)
        root_layout.addLayout(methods_layout)
        root_layout.addWidget(total_label)
        root_layout.addWidget(self._status_label)
        root_layout.addLayout(buttons_layout)

    def _apply_styles(self) -> None:
        """Aplica estilos visuales consistentes con la app."""
        self.setStyleSheet(
            """
            QDialog {
                background-color: #ffffff;
            }
            QLabel#titleLabel {
                color: #20232a;
                font-size: 18px;
                font-weight: 700;
            }
            QLabel#totalLabel {
                color: #111827;
                font-size: 22px;
                font-weight: 700;
            }
            QLabel#statusLabel {
                color: #b91c1c;
            }
            QPushButton {
                background-color: #C80202;
                border: none;
                border-radius: 10px;
                color: #ffffff;
                font-weight: 600;
                min-height: 40px;
                min-width: 120px;
            }
            QPushButton:disabled {
                background-color: #d5a3a3;
            }
            QPushButton#cancelButton {
                background-color: #e5e7eb;
                color: #1f2937;
            }
            """
        )

    def _on_method_clicked(self, index: int) -> None:
        method = list(PaymentMethod)[index]
        try:
            self._controller.on_select_payment_method(method)
        except ValidationError as exc:
            show_error(self, "Medio de pago", str(exc))

    def _on_confirm_clicked(self) -> None:
        """Envia la venta; ante rechazo el dialogo queda abierto para reintentar."""
        self._confirm_button.setEnabled(False)
        self._status_label.setText("Procesando...")
        try:
            sale = self._controller.on_confirm_payment()
        except (ValidationError, ServiceError) as exc:
            self._status_label.setText(str(exc))
            self._confirm_button.setEnabled(True)
            return

        if sale is not None:
            self.accept()

    def reject(self) -> None:
        """Cerrar sin confirmar vuelve a la revision del carrito."""
        try:
            self._controller.on_cancel_payment()
        except ValidationError as exc:
            show_error(self, "Pago en curso", str(exc))
            return
        super().reject()
