import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .database import Row, Store
from .errors import InvalidRequestError
from .models import Category, NeededItem, SignupEntry, SignupItem
from .schema import NEEDED_ITEMS, SIGNUPS, ensure_schema

logger = logging.getLogger(__name__)


def merge_contributor(taken_by: str, name: str) -> str:
    # Substring containment, not token match: "Al" is treated as present in "Albert".
    if not name or name in taken_by:
        return taken_by
    return f"{taken_by}, {name}" if taken_by else name


def apply_contribution(item: NeededItem, quantity: int, name: str) -> NeededItem:
    brought = item.quantity_brought + quantity
    return item.model_copy(update={
        "quantity_brought": brought,
        "taken": item.taken or brought >= item.quantity_needed,
        "taken_by": merge_contributor(item.taken_by, name),
    })


def _find_row(rows: List[Row], item_name: str) -> Optional[Row]:
    key = item_name.strip().lower()
    for row in rows:
        if (row.values.get("Item") or "").strip().lower() == key:
            return row
    return None


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class BonfireService:
    def __init__(self, store: Store):
        self.store = store
        self._initialized = False
        self._init_lock = asyncio.Lock()
        # item key -> [lock, number of callers holding or waiting on it]
        self._item_locks: Dict[str, list] = {}

    # --- setup ---
    async def initialize(self) -> None:
        # serialized so two first requests cannot both seed NeededItems
        async with self._init_lock:
            await ensure_schema(self.store)
            self._initialized = True

    async def ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    @asynccontextmanager
    async def _item_lock(self, item_name: str):
        key = item_name.strip().lower()
        entry = self._item_locks.setdefault(key, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if not entry[1]:
                del self._item_locks[key]

    # --- signups ---
    async def get_signups(self) -> List[SignupEntry]:
        rows = await self.store.get_rows(SIGNUPS)
        return [SignupEntry.from_row(row.values) for row in rows]

    async def add_signup(self, entry: SignupEntry) -> None:
        await self.store.append_rows(SIGNUPS, [entry.to_row()])

    async def record_signup(self, name: Optional[str], email: Optional[str],
                            items: List[SignupItem]) -> List[NeededItem]:
        """Store one signup per item, then reconcile each against the needed list."""
        name = (name or "").strip()
        email = (email or "").strip()
        items = [i for i in items if i.item and i.item.strip()]
        if not name or not email or not items:
            raise InvalidRequestError("Name, email, and at least one item are required")

        timestamp = utc_timestamp()
        entries = [
            SignupEntry(
                name=name,
                email=email,
                item=i.item.strip(),
                item_category=i.category or Category.OTHER,
                quantity=max(i.quantity or 1, 1),
                timestamp=timestamp,
            )
            for i in items
        ]
        await self.store.append_rows(SIGNUPS, [e.to_row() for e in entries])
        logger.info(f"Signup: {name} bringing {', '.join(f'{e.quantity}x {e.item}' for e in entries)}")

        reconciled = []
        for entry, requested in zip(entries, items):
            reconciled.append(await self.reconcile(
                entry.item, entry.item_category, entry.quantity, name,
                quantity_needed=requested.quantity_needed,
            ))
        return reconciled

    # --- needed items ---
    async def get_needed_items(self) -> List[NeededItem]:
        rows = await self.store.get_rows(NEEDED_ITEMS)
        return [NeededItem.from_row(row.values) for row in rows]

    async def find_needed_item(self, item_name: str) -> Optional[NeededItem]:
        row = _find_row(await self.store.get_rows(NEEDED_ITEMS), item_name)
        return NeededItem.from_row(row.values) if row else None

    async def add_needed_item(self, item: str, category: Category, quantity_needed: int = 1) -> NeededItem:
        item = item.strip()
        async with self._item_lock(item):
            if _find_row(await self.store.get_rows(NEEDED_ITEMS), item):
                raise InvalidRequestError(f"{item} is already on the list")
            new_item = NeededItem(item=item, category=category, quantity_needed=max(quantity_needed, 1))
            await self.store.append_rows(NEEDED_ITEMS, [new_item.to_row()])
            return new_item

    async def update_item_quantity_needed(self, item_name: str, quantity_needed: int) -> Optional[NeededItem]:
        async with self._item_lock(item_name):
            row = _find_row(await self.store.get_rows(NEEDED_ITEMS), item_name)
            if row is None:
                logger.warning(f"Quantity update for unknown item {item_name!r} ignored")
                return None
            quantity_needed = max(quantity_needed, 1)
            item = NeededItem.from_row(row.values)
            item = item.model_copy(update={
                "quantity_needed": quantity_needed,
                "taken": item.taken or item.quantity_brought >= quantity_needed,
            })
            await self.store.update_row(NEEDED_ITEMS, row.id, item.to_row())
            return item

    async def remove_needed_item(self, item_name: str) -> bool:
        async with self._item_lock(item_name):
            row = _find_row(await self.store.get_rows(NEEDED_ITEMS), item_name)
            if row is None:
                logger.warning(f"Delete for unknown item {item_name!r} ignored")
                return False
            await self.store.delete_row(NEEDED_ITEMS, row.id)
            return True

    async def mark_item_taken(self, item_name: str, taken_by: str) -> Optional[NeededItem]:
        async with self._item_lock(item_name):
            row = _find_row(await self.store.get_rows(NEEDED_ITEMS), item_name)
            if row is None:
                return None
            item = NeededItem.from_row(row.values).model_copy(update={"taken": True, "taken_by": taken_by})
            await self.store.update_row(NEEDED_ITEMS, row.id, item.to_row())
            return item

    # --- reconciliation ---
    async def update_item_quantity(self, item_name: str, quantity: int, taken_by: str) -> Optional[NeededItem]:
        row = _find_row(await self.store.get_rows(NEEDED_ITEMS), item_name)
        if row is None:
            return None
        item = apply_contribution(NeededItem.from_row(row.values), quantity, taken_by)
        await self.store.update_row(NEEDED_ITEMS, row.id, item.to_row())
        return item

    async def reconcile(self, item_name: str, category: Category, quantity: int, taken_by: str,
                        quantity_needed: Optional[int] = None) -> NeededItem:
        async with self._item_lock(item_name):
            updated = await self.update_item_quantity(item_name, quantity, taken_by)
            if updated is not None:
                return updated

            fresh = NeededItem(
                item=item_name.strip(),
                category=category,
                quantity_needed=max(quantity_needed or quantity, 1),
            )
            created = apply_contribution(fresh, quantity, taken_by)
            logger.info(f"{item_name} was not on the list; added it for {taken_by}")
            await self.store.append_rows(NEEDED_ITEMS, [created.to_row()])
            return created
