"""
SQLAlchemy-backed menu item lookup.
"""

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models import MenuItem
from app.services.menu.base import BaseMenuItemLookup

logger = logging.getLogger(__name__)


class MenuItemLookup(BaseMenuItemLookup):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_item_by_id(self, item_id: int) -> MenuItem:
        items = await self.find_items_by_ids([item_id])
        return items[item_id]

    async def find_items_by_ids(self, item_ids: Iterable[int]) -> dict[int, MenuItem]:
        wanted = sorted(set(item_ids))
        if not wanted:
            return {}

        # populate_existing: never answer from a stale identity map
        result = await self.session.execute(
            select(MenuItem)
            .where(MenuItem.id.in_(wanted), MenuItem.deleted.is_(False))
            .execution_options(populate_existing=True)
        )
        found = {item.id: item for item in result.scalars().all()}

        missing = [item_id for item_id in wanted if item_id not in found]
        if missing:
            logger.info(f"Menu item lookup missed ids: {missing}")
            raise NotFoundError.menu_item(missing[0])

        return found
