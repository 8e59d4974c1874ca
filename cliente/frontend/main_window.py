"""Ventana principal de Lazy POS."""

from __future__ import annotations

from PyQt6.QtCore import Qt, QTimer
from PyQt6.QtGui import QBrush, QColor, QGuiApplication
from PyQt6.QtWidgets import (
    QAbstractItemView,
    QApplication,
    QFrame,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from cliente.backend.checkout import CheckoutState
from cliente.backend.controller import PosController
from cliente.frontend.dialogs import show_error
from cliente.frontend.payment_dialog import PaymentDialog
from cliente.frontend.sale_complete_dialog import SaleCompleteDialog
from cliente.frontend.sales_history_dialog import SalesHistoryDialog
from shared.errors import CatalogUnavailableError, ValidationError
from shared.money import format_amount


class MainWindow(QMainWindow):
    """Pantalla de caja: catalogo a la izquierda, carrito a la derecha."""

    _CATALOG_HEADERS = ("SKU", "Producto", "Precio", "Stock")
    _CART_HEADERS = ("Producto", "Cant.", "Subtotal")
    _SEARCH_DEBOUNCE_MS = 250

    def __init__(self, controller: PosController) -> None:
        super().__init__()
        self._controller = controller

        self._search_input: QLineEdit
        self._catalog_table: QTableWidget
        self._cart_table: QTableWidget
        self._total_label: QLabel
        self._status_label: QLabel
        self._checkout_button: QPushButton
        self._search_timer = QTimer(self)

        self.setWindowTitle("Lazy POS")
        screen = QGuiApplication.primaryScreen()
        geo = screen.availableGeometry()
        self.resize(int(geo.width() * 0.75), int(geo.height() * 0.85))
        self._build_ui()
        self._apply_styles()
        self._connect_signals()
        self._run_search()

    def _build_ui(self) -> None:
        """Construye la pagina de caja."""
        page = QWidget(self)
        root_layout = QHBoxLayout(page)
        root_layout.setContentsMargins(24, 24, 24, 24)
        root_layout.setSpacing(18)

        catalog_layout = QVBoxLayout()
        self._search_input = QLineEdit(page)
        self._search_input.setPlaceholderText("Buscar producto por nombre o SKU...")
        self._catalog_table = self._build_table(self._CATALOG_HEADERS, page)
        self._status_label = QLabel("", page)
        self._status_label.setObjectName("statusLabel")
        catalog_layout.addWidget(self._search_input)
        catalog_layout.addWidget(self._catalog_table)
        catalog_layout.addWidget(self._status_label)

        cart_card = QFrame(page)
        cart_card.setObjectName("cartCard")
        cart_card.setMinimumWidth(400)
        cart_layout = QVBoxLayout(cart_card)
        cart_title = QLabel("Carrito", cart_card)
        cart_title.setObjectName("titleLabel")
        self._cart_table = self._build_table(self._CART_HEADERS, cart_card)

        quantity_layout = QHBoxLayout()
        self._minus_button = self._build_button("-")
        self._plus_button = self._build_button("+")
        self._remove_button = self._build_button("Quitar")
        self._clear_button = self._build_button("Vaciar")
        for button in (
            self._minus_button,
            self._plus_button,
            self._remove_button,
            self._clear_button,
        ):
            button.setObjectName("secondaryButton")
            quantity_layout.addWidget(button)

        self._total_label = QLabel("", cart_card)
        self._total_label.setObjectName("totalLabel")
        self._total_label.setAlignment(Qt.AlignmentFlag.AlignRight)
        self._checkout_button = self._build_button("Completar venta")
        self._history_button = self._build_button("Historial de ventas")
        self._history_button.setObjectName("secondaryButton")
        self._exit_button = self._build_button("Salir")
        self._exit_button.setObjectName("secondaryButton")

        cart_layout.addWidget(cart_title)
        cart_layout.addWidget(self._cart_table)
        cart_layout.addLayout(quantity_layout)
        cart_layout.addWidget(self._total_label)
        cart_layout.addWidget(self._checkout_button)
        cart_layout.addWidget(self._history_button)
        cart_layout.addWidget(self._exit_button)

        root_layout.addLayout(catalog_layout, 3)
        root_layout.addWidget(cart_card, 2)
        self.setCentralWidget(page)
        self._refresh_cart()

    def _apply_styles(self) -> None:
        """Aplica estilos QSS de la interfaz."""
        self.setStyleSheet(
            """
            QMainWindow {
                background-color: #eef1f4;
            }
            QFrame#cartCard {
                background-color: #ffffff;
                border-radius: 18px;
            }
            QLabel#titleLabel {
                color: #111827;
                font-size: 18px;
                font-weight: 700;
            }
            QLabel#totalLabel {
                color: #111827;
                font-size: 26px;
                font-weight: 700;
            }
            QLabel#statusLabel {
                color: #b45309;
            }
            QLineEdit {
                background-color: #ffffff;
                border: 1px solid #d1d5db;
                border-radius: 10px;
                font-size: 15px;
                padding: 10px;
            }
            QPushButton {
                background-color: #C80202;
                border: none;
                border-radius: 10px;
                color: #ffffff;
                font-size: 14px;
                font-weight: 600;
                min-height: 40px;
                padding: 6px 12px;
            }
            QPushButton:hover {
                background-color: #A30202;
            }
            QPushButton:disabled {
                background-color: #d5a3a3;
                color: #f5e8e8;
            }
            QPushButton#secondaryButton {
                background-color: #e5e7eb;
                color: #1f2937;
            }
            QPushButton#secondaryButton:hover {
                background-color: #d1d5db;
            }
            """
        )

    def _connect_signals(self) -> None:
        """Conecta botones de UI con acciones del controller."""
        self._search_timer.setSingleShot(True)
        self._search_timer.setInterval(self._SEARCH_DEBOUNCE_MS)
        self._search_timer.timeout.connect(self._run_search)
        self._search_input.textChanged.connect(lambda _text: self._search_timer.start())
        self._catalog_table.cellDoubleClicked.connect(self._on_catalog_double_clicked)
        self._minus_button.clicked.connect(lambda: self._on_change_quantity(-1))
        self._plus_button.clicked.connect(lambda: self._on_change_quantity(1))
        self._remove_button.clicked.connect(self._on_remove_clicked)
        self._clear_button.clicked.connect(self._on_clear_clicked)
        self._checkout_button.clicked.connect(self._on_checkout_clicked)
        self._history_button.clicked.connect(self._on_history_clicked)
        self._exit_button.clicked.connect(self._on_exit_clicked)

    def _run_search(self) -> None:
        """Consulta el catalogo; si falla se conserva la tabla actual."""
        try:
            self._controller.on_search(self._search_input.text())
        except CatalogUnavailableError as exc:
            self._status_label.setText(str(exc))
            return

        warnings = self._controller.stock_warnings
        self._status_label.setText(
            "Se ajustaron productos del carrito por cambios de stock." if warnings else ""
        )
        self._refresh_catalog()
        self._refresh_cart()

    def _refresh_catalog(self) -> None:
        items = self._controller.catalog_items
        self._catalog_table.setRowCount(len(items))
        for row, item in enumerate(items):
            values = (item.sku, item.name, format_amount(item.unit_price), str(item.available_stock))
            for column, value in enumerate(values):
                cell = QTableWidgetItem(value)
                cell.setData(Qt.ItemDataRole.UserRole, item.item_id)
                if item.available_stock <= 0:
                    cell.setForeground(QBrush(QColor("#9ca3af")))
                self._catalog_table.setItem(row, column, cell)

    def _refresh_cart(self) -> None:
        lines = self._controller.cart_lines()
        self._cart_table.setRowCount(len(lines))
        for row, line in enumerate(lines):
            values = (line.name, str(line.quantity), format_amount(line.subtotal))
            for column, value in enumerate(values):
                cell = QTableWidgetItem(value)
                cell.setData(Qt.ItemDataRole.UserRole, line.item_id)
                self._cart_table.setItem(row, column, cell)

        self._total_label.setText(f"Total: {format_amount(self._controller.cart_total())}")
        self._checkout_button.setEnabled(self._controller.state is CheckoutState.REVIEWING)

    def _selected_cart_item_id(self) -> int | None:
        cell = self._cart_table.item(self._cart_table.currentRow(), 0)
        return cell.data(Qt.ItemDataRole.UserRole) if cell is not None else None

    def _on_catalog_double_clicked(self, row: int, _column: int) -> None:
        cell = self._catalog_table.item(row, 0)
        if cell is None:
            return
        try:
            self._controller.on_add_item(cell.data(Qt.ItemDataRole.UserRole))
        except ValidationError as exc:
            show_error(self, "Carrito", str(exc))
        self._refresh_cart()

    def _on_change_quantity(self, delta: int) -> None:
        item_id = self._selected_cart_item_id()
        if item_id is None:
            return
        row = self._cart_table.currentRow()
        try:
            self._controller.on_change_quantity(item_id, delta)
        except ValidationError as exc:
            show_error(self, "Carrito", str(exc))
        self._refresh_cart()
        self._cart_table.selectRow(row)

    def _on_remove_clicked(self) -> None:
        item_id = self._selected_cart_item_id()
        if item_id is None:
            return
        try:
            self._controller.on_remove_item(item_id)
        except ValidationError as exc:
            show_error(self, "Carrito", str(exc))
        self._refresh_cart()

    def _on_clear_clicked(self) -> None:
        try:
            self._controller.on_clear_cart()
        except ValidationError as exc:
            show_error(self, "Carrito", str(exc))
        self._refresh_cart()

    def _on_checkout_clicked(self) -> None:
        """Abre el pago y, si la venta se registra, la vista de venta exitosa."""
        try:
            self._controller.on_checkout()
        except ValidationError as exc:
            show_error(self, "Completar venta", str(exc))
            return

        payment_dialog = PaymentDialog(controller=self._controller, parent=self)
        if payment_dialog.exec() == PaymentDialog.DialogCode.Accepted:
            SaleCompleteDialog(controller=self._controller, parent=self).exec()
            if self._controller.state is CheckoutState.SUCCEEDED:
                self._controller.on_new_sale()
        self._refresh_catalog()
        self._refresh_cart()

    def _on_history_clicked(self) -> None:
        SalesHistoryDialog(controller=self._controller, parent=self).exec()
        # Una anulacion devuelve stock: se vuelve a consultar el catalogo.
        self._run_search()

    def _on_exit_clicked(self) -> None:
        """Solicita al controller el cierre de la app."""
        self._controller.on_exit(QApplication.instance())

    @staticmethod
    def _build_table(headers: tuple[str, ...], parent: QWidget) -> QTableWidget:
        table = QTableWidget(0, len(headers), parent)
        table.setHorizontalHeaderLabels(headers)
        table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        table.horizontalHeader().setStretchLastSection(True)
        table.verticalHeader().setVisible(False)
        return table

    @staticmethod
    def _build_button(text: str) -> QPushButton:
        """Construye un boton estandar."""
        button = QPushButton(text)
        button.setCursor(Qt.CursorShape.PointingHandCursor)
        return button
