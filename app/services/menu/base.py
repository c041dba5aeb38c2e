"""
Menu Item Lookup Abstract Base Class

Read-only boundary to the menu subsystem. The order engine consumes item
price, availability and inventory type through this interface; it never
mutates menu items here.
"""

from abc import ABC, abstractmethod
from typing import Iterable

from app.models import MenuItem


class BaseMenuItemLookup(ABC):
    """Read access to menu items, tombstoned items excluded."""

    @abstractmethod
    async def find_item_by_id(self, item_id: int) -> MenuItem:
        """
        Resolve one menu item.

        Raises:
            NotFoundError: If the item does not exist or is deleted
        """
        pass

    @abstractmethod
    async def find_items_by_ids(self, item_ids: Iterable[int]) -> dict[int, MenuItem]:
        """
        Resolve several menu items in one read.

        Returns:
            dict mapping every requested id to its item

        Raises:
            NotFoundError: Naming the first missing id (ascending)
        """
        pass
