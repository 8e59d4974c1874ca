"""Cache de catalogo para la pantalla de venta."""

from __future__ import annotations

import logging

from parametros import CATALOG_PAGE_SIZE
from shared.errors import CatalogUnavailableError, ServiceError
from shared.protocol import CatalogItem, CatalogQuery

from .gateway import ServerGateway

LOGGER = logging.getLogger(__name__)


class CatalogCache:
    """Snapshot de solo lectura de los productos vendibles.

    Cada busqueda exitosa reemplaza el resultado completo. Si la consulta
    falla se conserva el ultimo resultado bueno para no vaciar la pantalla.
    """

    def __init__(self, gateway: ServerGateway, page_size: int = CATALOG_PAGE_SIZE) -> None:
        self._gateway = gateway
        self._page_size = page_size
        self._items: list[CatalogItem] = []
        self._index: dict[int, CatalogItem] = {}
        self._last_term = ""
        self._last_active_only = True
        self._stale = True

    @property
    def items(self) -> list[CatalogItem]:
        """Ultimo resultado exitoso."""
        return list(self._items)

    @property
    def last_term(self) -> str:
        return self._last_term

    @property
    def is_stale(self) -> bool:
        return self._stale

    def search(self, term: str = "", active_only: bool = True) -> list[CatalogItem]:
        """Consulta el catalogo y reemplaza el snapshot."""
        query = CatalogQuery(term=term.strip(), active_only=active_only, size=self._page_size)
        try:
            found = self._gateway.search_catalog(query)
        except ServiceError as exc:
            LOGGER.warning(
                "Catalogo no disponible (termino=%r); se mantiene el resultado anterior: %s",
                query.term,
                exc,
            )
            raise CatalogUnavailableError(
                "Catalogo no disponible. Se muestran los ultimos resultados."
            ) from exc

        if active_only:
            found = [item for item in found if item.is_active]

        self._items = list(found)
        self._index = {item.item_id: item for item in self._items}
        self._last_term = query.term
        self._last_active_only = active_only
        self._stale = False
        LOGGER.debug("Catalogo actualizado: termino=%r, items=%d", query.term, len(found))
        return self.items

    def refresh(self) -> list[CatalogItem]:
        """Repite la ultima busqueda."""
        return self.search(self._last_term, active_only=self._last_active_only)

    def invalidate(self) -> None:
        """Marca el snapshot como desactualizado (ej. tras una venta)."""
        self._stale = True

    def get(self, item_id: int) -> CatalogItem | None:
        return self._index.get(item_id)
