"""
Catalog Lookup

Read-only view of stores and menu items used to price a cart. The
order workflow only needs the current price, availability and owning
store of each item, so that is all a lookup returns.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from food_delivery.models import MenuItem, Store


@dataclass(frozen=True)
class StoreEntry:
    """Catalog view of a store."""
    store_id: uuid.UUID
    name: str
    is_active: bool


@dataclass(frozen=True)
class CatalogEntry:
    """Catalog view of a menu item at lookup time."""
    menu_item_id: uuid.UUID
    store_id: uuid.UUID
    name: str
    price: Decimal
    is_available: bool


class BaseCatalog(ABC):
    """Interface every catalog lookup implements."""

    @abstractmethod
    async def get_store(self, store_id: uuid.UUID) -> Optional[StoreEntry]:
        """Return the store, or None if it does not exist."""

    @abstractmethod
    async def get_menu_items(
        self,
        menu_item_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, CatalogEntry]:
        """Return the entries that exist, keyed by id. Missing ids are absent."""


class SqlCatalog(BaseCatalog):
    """Catalog lookup reading the ``stores`` and ``menu_items`` tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_store(self, store_id: uuid.UUID) -> Optional[StoreEntry]:
        store = await self.session.get(Store, store_id)
        if store is None:
            return None
        return StoreEntry(store_id=store.id, name=store.name, is_active=store.is_active)

    async def get_menu_items(
        self,
        menu_item_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, CatalogEntry]:
        ids = set(menu_item_ids)
        if not ids:
            return {}

        result = await self.session.execute(
            select(MenuItem).where(MenuItem.id.in_(ids))
        )
        return {
            item.id: CatalogEntry(
                menu_item_id=item.id,
                store_id=item.store_id,
                name=item.name,
                price=Decimal(item.price),
                is_available=item.is_available,
            )
            for item in result.scalars()
        }
