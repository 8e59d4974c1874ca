"""Dialogo de historial de ventas con anulacion y tickets."""

from __future__ import annotations

from typing import TYPE_CHECKING

from PyQt6.QtWidgets import (
    QAbstractItemView,
    QComboBox,
    QDialog,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from cliente.frontend.dialogs import ask_confirmation, show_error, show_info
from servidor.services.ticket_builder import PAYMENT_METHOD_LABELS
from shared.errors import ServiceError, ValidationError
from shared.money import format_amount
from shared.protocol import Sale, SaleStatus

if TYPE_CHECKING:
    from cliente.backend.controller import PosController

STATUS_LABELS: dict[SaleStatus, str] = {
    SaleStatus.COMPLETED: "Completada",
    SaleStatus.ANNULLED: "Anulada",
}


class SalesHistoryDialog(QDialog):
    """Lista paginada de ventas."""

    _HEADERS = ("#", "Fecha", "Pago", "Total", "Estado")

    def __init__(
        self,
        controller: PosController,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._controller = controller
        self._sales: list[Sale] = []
        self._page = 1
        self._pages = 0

        self._table: QTableWidget
        self._status_filter: QComboBox
        self._search_input: QLineEdit
        self._start_input: QLineEdit
        self._end_input: QLineEdit
        self._page_label: QLabel

        self.setWindowTitle("Historial de ventas")
        self.resize(900, 480)
        self._build_ui()
        self._load_page()

    def _build_ui(self) -> None:
        root_layout = QVBoxLayout(self)

        filter_layout = QHBoxLayout()
        self._status_filter = QComboBox(self)
        self._status_filter.addItem("Todas", None)
        for status, label in STATUS_LABELS.items():
            self._status_filter.addItem(label, status.value)
        self._status_filter.currentIndexChanged.connect(self._on_filter_changed)
        filter_layout.addWidget(QLabel("Estado:", self))
        filter_layout.addWidget(self._status_filter)

        self._search_input = QLineEdit(self)
        self._search_input.setPlaceholderText("N de venta, producto o SKU")
        self._start_input = QLineEdit(self)
        self._start_input.setPlaceholderText("Desde AAAA-MM-DD")
        self._end_input = QLineEdit(self)
        self._end_input.setPlaceholderText("Hasta AAAA-MM-DD")
        for line_edit in (self._search_input, self._start_input, self._end_input):
            line_edit.returnPressed.connect(self._on_filter_changed)
        filter_button = QPushButton("Filtrar", self)
        filter_button.clicked.connect(self._on_filter_changed)

        filter_layout.addWidget(QLabel("Buscar:", self))
        filter_layout.addWidget(self._search_input, 1)
        filter_layout.addWidget(self._start_input)
        filter_layout.addWidget(self._end_input)
        filter_layout.addWidget(filter_button)

        self._table = QTableWidget(0, len(self._HEADERS), self)
        self._table.setHorizontalHeaderLabels(self._HEADERS)
        self._table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self._table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self._table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self._table.horizontalHeader().setStretchLastSection(True)

        actions_layout = QHBoxLayout()
        previous_button = QPushButton("Anterior", self)
        next_button = QPushButton("Siguiente", self)
        self._page_label = QLabel("", self)
        ticket_button = QPushButton("Ticket", self)
        annul_button = QPushButton("Anular venta", self)
        close_button = QPushButton("Cerrar", self)

        previous_button.clicked.connect(lambda: self._change_page(-1))
        next_button.clicked.connect(lambda: self._change_page(1))
        ticket_button.clicked.connect(self._on_ticket_clicked)
        annul_button.clicked.connect(self._on_annul_clicked)
        close_button.clicked.connect(self.accept)

        actions_layout.addWidget(previous_button)
        actions_layout.addWidget(self._page_label)
        actions_layout.addWidget(next_button)
        actions_layout.addStretch(1)
        actions_layout.addWidget(ticket_button)
        actions_layout.addWidget(annul_button)
        actions_layout.addWidget(close_button)

        root_layout.addLayout(filter_layout)
        root_layout.addWidget(self._table)
        root_layout.addLayout(actions_layout)

    def _load_page(self) -> None:
        """Carga la pagina actual con el filtro seleccionado."""
        try:
            sale_page = self._controller.on_list_sales(
                status=self._status_filter.currentData(),
                page=self._page,
                start_date=self._start_input.text(),
                end_date=self._end_input.text(),
                search=self._search_input.text(),
            )
        except (ValidationError, ServiceError) as exc:
            show_error(self, "Historial de ventas", str(exc))
            return

        self._sales = list(sale_page.items)
        self._pages = sale_page.pages
        self._page_label.setText(f"Pagina {sale_page.page} de {max(sale_page.pages, 1)}")
        self._table.setRowCount(len(self._sales))
        for row, sale in enumerate(self._sales):
            values = (
                f"#{sale.sale_id}",
                f"{sale.created_at:%Y-%m-%d %H:%M}",
                PAYMENT_METHOD_LABELS[sale.payment_method],
                format_amount(sale.total_amount),
                STATUS_LABELS[sale.status],
            )
            for column, value in enumerate(values):
                self._table.setItem(row, column, QTableWidgetItem(value))

    def _selected_sale(self) -> Sale | None:
        row = self._table.currentRow()
        if 0 <= row < len(self._sales):
            return self._sales[row]
        show_error(self, "Historial de ventas", "Selecciona una venta.")
        return None

    def _on_filter_changed(self, *_args: object) -> None:
        self._page = 1
        self._load_page()

    def _change_page(self, delta: int) -> None:
        new_page = self._page + delta
        if new_page < 1 or new_page > max(self._pages, 1):
            return
        self._page = new_page
        self._load_page()

    def _on_ticket_clicked(self) -> None:
        sale = self._selected_sale()
        if sale is None:
            return
        try:
            path = self._controller.on_download_ticket(sale.sale_id)
        except (ValidationError, ServiceError) as exc:
            show_error(self, "Ticket", str(exc))
            return
        show_info(self, "Ticket descargado", f"Ticket guardado en: {path}")

    def _on_annul_clicked(self) -> None:
        """Anula la venta seleccionada previa confirmacion."""
        sale = self._selected_sale()
        if sale is None:
            return
        if sale.status is SaleStatus.ANNULLED:
            show_error(self, "Anular venta", "La venta ya esta anulada.")
            return

        confirmed = ask_confirmation(
            self,
            "Anular venta",
            "¿Estas seguro de que deseas anular esta venta? "
            "El stock sera devuelto al inventario automaticamente.",
        )
        if not confirmed:
            return

        try:
            self._controller.on_annul_sale(sale.sale_id, confirmed=True)
        except (ValidationError, ServiceError) as exc:
            show_error(self, "Error al anular la venta", str(exc))
            return

        show_info(self, "Anular venta", "Venta anulada correctamente.")
        self._load_page()
