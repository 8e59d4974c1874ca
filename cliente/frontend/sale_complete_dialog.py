"""Dialogo de venta completada."""

from __future__ import annotations

from typing import TYPE_CHECKING

from PyQt6.QtCore import Qt
from PyQt6.QtWidgets import QDialog, QLabel, QPushButton, QVBoxLayout, QWidget

from cliente.frontend.dialogs import show_error, show_info
from shared.errors import ServiceError, ValidationError
from shared.money import format_amount

if TYPE_CHECKING:
    from cliente.backend.controller import PosController


class SaleCompleteDialog(QDialog):
    """Ofrece descargar el ticket (repetible) o comenzar una venta nueva."""

    def __init__(
        self,
        controller: PosController,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._controller = controller

        self.setWindowTitle("Venta exitosa")
        self.setModal(True)
        self.setMinimumSize(380, 260)
        self._build_ui()

    def _build_ui(self) -> None:
        root_layout = QVBoxLayout(self)
        root_layout.setContentsMargins(28, 28, 28, 28)
        root_layout.setSpacing(12)

        sale = self._controller.last_sale
        summary = (
            f"Venta #{sale.sale_id} por {format_amount(sale.total_amount)}"
            if sale is not None
            else "Venta registrada"
        )

        title_label = QLabel("¡Venta exitosa!", self)
        title_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        title_label.setStyleSheet("font-size: 22px; font-weight: 700;")
        summary_label = QLabel(summary, self)
        summary_label.setAlignment(Qt.AlignmentFlag.AlignCenter)

        ticket_button = QPushButton("Imprimir ticket", self)
        new_sale_button = QPushButton("Nueva venta", self)
        ticket_button.clicked.connect(self._on_ticket_clicked)
        new_sale_button.clicked.connect(self._on_new_sale_clicked)

        root_layout.addWidget(title_label)
        root_layout.addWidget(summary_label)
        root_layout.addStretch(1)
        root_layout.addWidget(ticket_button)
        root_layout.addWidget(new_sale_button)

    def _on_ticket_clicked(self) -> None:
        try:
            path = self._controller.on_download_ticket()
        except (ValidationError, ServiceError) as exc:
            show_error(self, "Ticket", str(exc))
            return
        show_info(self, "Ticket descargado", f"Ticket guardado en: {path}")

    def _on_new_sale_clicked(self) -> None:
        self._controller.on_new_sale()
        self.accept()
