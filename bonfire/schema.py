import logging
from typing import List, NamedTuple, Optional

from .database import Store
from .models import Category, NeededItem

logger = logging.getLogger(__name__)

SIGNUPS = "Signups"
NEEDED_ITEMS = "NeededItems"

HEADERS = {
    SIGNUPS: ["Name", "Email", "Item", "Category", "Quantity", "Timestamp"],
    NEEDED_ITEMS: ["Item", "Category", "Taken", "TakenBy", "QuantityNeeded", "QuantityBrought"],
}


class AddColumn(NamedTuple):
    table: str
    column: str
    default: str
    # column the new one goes in front of; None appends
    before: Optional[str] = None


# Additive only; a step runs when its column is missing, so reruns are no-ops
MIGRATIONS: List[AddColumn] = [
    AddColumn(SIGNUPS, "Quantity", "1", before="Timestamp"),
    AddColumn(NEEDED_ITEMS, "QuantityNeeded", "1"),
    AddColumn(NEEDED_ITEMS, "QuantityBrought", "0"),
]


def _seed(item: str, category: Category, quantity_needed: int = 1) -> NeededItem:
    return NeededItem(item=item, category=category, quantity_needed=quantity_needed)


DEFAULT_NEEDED_ITEMS: List[NeededItem] = [
    _seed("BBQ Grill", Category.SUPPLIES),
    _seed("Charcoal", Category.SUPPLIES),
    _seed("Lighter Fluid", Category.SUPPLIES),
    _seed("Paper Plates", Category.SUPPLIES, 50),
    _seed("Napkins", Category.SUPPLIES, 100),
    _seed("Plastic Cups", Category.SUPPLIES, 50),
    _seed("Cooler with Ice", Category.SUPPLIES, 2),
    _seed("Beach Chairs", Category.SUPPLIES, 10),
    _seed("Umbrella/Tent", Category.SUPPLIES, 3),
    _seed("Trash Bags", Category.SUPPLIES, 3),
    _seed("Wet Wipes", Category.SUPPLIES, 5),
    _seed("Sunscreen", Category.SUPPLIES, 3),
    _seed("Burgers", Category.FOOD),
    _seed("Hot Dogs", Category.FOOD),
    _seed("Buns", Category.FOOD),
    _seed("Condiments", Category.FOOD),
    _seed("Fruit Salad", Category.FOOD),
    _seed("Chips", Category.FOOD),
    _seed("Sodas", Category.DRINKS),
    _seed("Water Bottles", Category.DRINKS),
    _seed("Beer", Category.DRINKS),
    _seed("Sports Equipment", Category.OTHER),
    _seed("Bluetooth Speaker", Category.OTHER),
    _seed("Firewood", Category.SUPPLIES, 5),
]


async def migrate(store: Store, table: str, headers: List[str]) -> int:
    """Apply pending column steps to ``table``. Returns the number applied."""
    applied = 0
    current = list(headers)
    for step in MIGRATIONS:
        if step.table != table or step.column in current:
            continue
        if step.before and step.before in current:
            position = current.index(step.before)
        else:
            position = len(current)
        logger.info(f"Adding {step.column} column to existing {table} sheet...")
        await store.add_column(table, step.column, position, step.default)
        current.insert(position, step.column)
        applied += 1
    return applied


async def ensure_schema(store: Store) -> None:
    """Create missing tables (seeding NeededItems) and migrate existing ones."""
    signup_headers = await store.get_headers(SIGNUPS)
    if not any(signup_headers or []):
        logger.info(f"Creating {SIGNUPS} sheet")
        await store.create_table(SIGNUPS, HEADERS[SIGNUPS])
    else:
        await migrate(store, SIGNUPS, signup_headers)

    item_headers = await store.get_headers(NEEDED_ITEMS)
    if not any(item_headers or []):
        logger.info(f"Creating {NEEDED_ITEMS} sheet with {len(DEFAULT_NEEDED_ITEMS)} default items")
        await store.create_table(NEEDED_ITEMS, HEADERS[NEEDED_ITEMS])
        await store.append_rows(NEEDED_ITEMS, [item.to_row() for item in DEFAULT_NEEDED_ITEMS])
    else:
        await migrate(store, NEEDED_ITEMS, item_headers)
