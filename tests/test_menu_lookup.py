import pytest

from app.core.exceptions import NotFoundError
from app.services.menu import get_menu_item_lookup


async def test_find_item_by_id(session, make_item):
    burger = await make_item(name="Burger", stock=4)
    lookup = get_menu_item_lookup(session)

    item = await lookup.find_item_by_id(burger)

    assert item.id == burger
    assert item.name == "Burger"
    assert item.stock_quantity == 4


async def test_find_item_by_id_missing_or_deleted(session, make_item):
    deleted = await make_item(name="Old Special", deleted=True)
    lookup = get_menu_item_lookup(session)

    with pytest.raises(NotFoundError) as exc_info:
        await lookup.find_item_by_id(4242)
    assert exc_info.value.error_code == "MENU_ITEM_NOT_FOUND"
    assert exc_info.value.status_code == 404

    with pytest.raises(NotFoundError):
        await lookup.find_item_by_id(deleted)


async def test_find_items_by_ids_reports_first_missing(session, make_item):
    burger = await make_item(name="Burger")
    lookup = get_menu_item_lookup(session)

    items = await lookup.find_items_by_ids([burger, burger])
    assert list(items) == [burger]

    with pytest.raises(NotFoundError) as exc_info:
        await lookup.find_items_by_ids([9002, burger, 9001])
    assert exc_info.value.message == "Menu Item ID 9001 not found"
