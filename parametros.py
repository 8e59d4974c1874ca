"""Parametros globales del proyecto."""

from __future__ import annotations

import logging
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = BASE_DIR / "data"
OUTPUT_DIR = DATA_DIR / "output"
TICKETS_DIR = OUTPUT_DIR / "tickets"

# Sin URL se usa el ledger local en memoria (modo demo/offline).
API_BASE_URL = os.environ.get("LAZY_POS_API_URL", "").strip()
API_TOKEN = os.environ.get("LAZY_POS_API_TOKEN", "").strip() or None
API_PREFIX = "/api/v1"

HTTP_TIMEOUT_SECONDS = float(os.environ.get("LAZY_POS_HTTP_TIMEOUT", "10"))
LEDGER_TIMEOUT_SECONDS = float(os.environ.get("LAZY_POS_LEDGER_TIMEOUT", "15"))

# Usuario que firma las ventas; la sesion/token los maneja el host.
POS_USER_ID = os.environ.get("LAZY_POS_USER_ID", "").strip()

CATALOG_PAGE_SIZE = 20
SALES_PAGE_SIZE = 10
DEFAULT_TICKET_FILENAME_STEM = "Ticket"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
