"""Inicializacion de la aplicacion de cliente."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from PyQt6.QtGui import QIcon
from PyQt6.QtWidgets import QApplication

from cliente.backend.controller import PosController
from cliente.backend.gateway import HttpServerGateway, LocalServerGateway, ServerGateway
from cliente.frontend.main_window import MainWindow
from parametros import API_BASE_URL, API_TOKEN, POS_USER_ID
from servidor.services.sale_ledger import build_demo_ledger
from shared.protocol import Actor

LOGGER = logging.getLogger(__name__)


def build_gateway() -> ServerGateway:
    """Usa la API remota si hay URL configurada; si no, el ledger local."""
    if API_BASE_URL:
        LOGGER.info("Usando API remota: %s", API_BASE_URL)
        return HttpServerGateway(base_url=API_BASE_URL, token=API_TOKEN)

    LOGGER.warning("LAZY_POS_API_URL no definido; usando ledger local de demo.")
    return LocalServerGateway(ledger=build_demo_ledger())


def build_actor() -> Actor | None:
    """Actor que firma las ventas, si el host lo entrega."""
    if not POS_USER_ID:
        return None
    try:
        return Actor(user_id=int(POS_USER_ID))
    except ValueError:
        LOGGER.warning("LAZY_POS_USER_ID invalido: %r; ventas sin vendedor.", POS_USER_ID)
        return None


def main() -> int:
    """Ejecuta la aplicacion grafica."""
    app = QApplication(sys.argv)
    icon_path = Path(__file__).resolve().parent / "utilities" / "icono.ico"
    if icon_path.exists():
        app.setWindowIcon(QIcon(str(icon_path)))
    else:
        LOGGER.warning("No se encontro icono de aplicacion en: %s", icon_path)

    controller = PosController(gateway=build_gateway(), actor=build_actor())
    window = MainWindow(controller=controller)
    if not app.windowIcon().isNull():
        window.setWindowIcon(app.windowIcon())
    window.showMaximized()

    LOGGER.info("Aplicacion iniciada.")
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
