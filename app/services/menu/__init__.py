"""
Menu Item Lookup

Usage:
    from app.services.menu import get_menu_item_lookup

    lookup = get_menu_item_lookup(session)
    item = await lookup.find_item_by_id(12)
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.menu.base import BaseMenuItemLookup
from app.services.menu.lookup import MenuItemLookup


def get_menu_item_lookup(session: AsyncSession) -> BaseMenuItemLookup:
    """Build the menu item lookup bound to a session."""
    return MenuItemLookup(session)


__all__ = [
    "get_menu_item_lookup",
    "BaseMenuItemLookup",
    "MenuItemLookup",
]
