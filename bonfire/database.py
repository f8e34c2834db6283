import itertools
import logging
from typing import Any, Dict, List, NamedTuple, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from .config import Settings
from .errors import StorageError

logger = logging.getLogger(__name__)


# Row ids are only valid until the next write to the table
class Row(NamedTuple):
    id: Any
    values: Dict[str, str]


class Store:
    name = "abstract"

    async def get_headers(self, table: str) -> Optional[List[str]]:
        raise NotImplementedError

    async def create_table(self, table: str, headers: List[str]) -> None:
        raise NotImplementedError

    async def add_column(self, table: str, column: str, position: int, default: str) -> None:
        raise NotImplementedError

    async def get_rows(self, table: str) -> List[Row]:
        raise NotImplementedError

    async def append_rows(self, table: str, records: List[Dict[str, str]]) -> None:
        raise NotImplementedError

    async def update_row(self, table: str, row_id: Any, record: Dict[str, str]) -> None:
        raise NotImplementedError

    async def delete_row(self, table: str, row_id: Any) -> None:
        raise NotImplementedError


# --- IN-MEMORY ---
class MemoryStore(Store):
    """Process-local tables. Used when no spreadsheet is configured and in tests."""

    name = "memory"

    def __init__(self):
        self.tables: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def _table(self, table: str) -> Dict[str, Any]:
        if table not in self.tables:
            raise StorageError(f"Table {table!r} does not exist")
        return self.tables[table]

    async def get_headers(self, table):
        if table not in self.tables:
            return None
        return list(self.tables[table]["headers"])

    async def create_table(self, table, headers):
        self.tables[table] = {"headers": list(headers), "rows": {}}

    async def add_column(self, table, column, position, default):
        data = self._table(table)
        data["headers"].insert(position, column)
        for values in data["rows"].values():
            values[column] = default

    async def get_rows(self, table):
        data = self._table(table)
        return [
            Row(row_id, {h: values.get(h, "") for h in data["headers"]})
            for row_id, values in data["rows"].items()
        ]

    async def append_rows(self, table, records):
        data = self._table(table)
        for record in records:
            data["rows"][next(self._ids)] = {h: str(record.get(h, "")) for h in data["headers"]}

    async def update_row(self, table, row_id, record):
        data = self._table(table)
        if row_id not in data["rows"]:
            raise StorageError(f"Row {row_id} not found in {table}")
        data["rows"][row_id].update({h: str(record[h]) for h in data["headers"] if h in record})

    async def delete_row(self, table, row_id):
        data = self._table(table)
        if data["rows"].pop(row_id, None) is None:
            raise StorageError(f"Row {row_id} not found in {table}")


# --- MONGODB ---
class MongoStore(Store):
    """One collection per table; header rows live in the ``_tables`` collection."""

    name = "mongo"

    def __init__(self, db):
        self.db = db
        self.meta = db["_tables"]

    @classmethod
    def from_url(cls, url: str, db_name: str) -> "MongoStore":
        # 5 second timeout so a dead database fails the request instead of hanging it
        client = AsyncIOMotorClient(url, serverSelectionTimeoutMS=5000)
        return cls(client[db_name])

    async def get_headers(self, table):
        try:
            doc = await self.meta.find_one({"_id": table})
        except PyMongoError as e:
            raise StorageError(f"MongoDB read failed: {e}") from e
        return list(doc["headers"]) if doc else None

    async def create_table(self, table, headers):
        try:
            await self.meta.update_one({"_id": table}, {"$set": {"headers": list(headers)}}, upsert=True)
        except PyMongoError as e:
            raise StorageError(f"MongoDB write failed: {e}") from e

    async def add_column(self, table, column, position, default):
        headers = await self.get_headers(table)
        if headers is None:
            raise StorageError(f"Table {table!r} does not exist")
        headers.insert(position, column)
        try:
            await self.meta.update_one({"_id": table}, {"$set": {"headers": headers}})
            await self.db[table].update_many({}, {"$set": {f"values.{column}": default}})
        except PyMongoError as e:
            raise StorageError(f"MongoDB write failed: {e}") from e

    async def get_rows(self, table):
        headers = await self.get_headers(table) or []
        rows = []
        try:
            async for doc in self.db[table].find({}).sort("_id", 1):
                values = doc.get("values", {})
                rows.append(Row(doc["_id"], {h: values.get(h, "") for h in headers}))
        except PyMongoError as e:
            raise StorageError(f"MongoDB read failed: {e}") from e
        return rows

    async def append_rows(self, table, records):
        if not records:
            return
        headers = await self.get_headers(table) or []
        docs = [{"values": {h: str(r.get(h, "")) for h in headers}} for r in records]
        try:
            await self.db[table].insert_many(docs)
        except PyMongoError as e:
            raise StorageError(f"MongoDB write failed: {e}") from e

    async def update_row(self, table, row_id, record):
        update = {f"values.{k}": str(v) for k, v in record.items()}
        try:
            res = await self.db[table].update_one({"_id": row_id}, {"$set": update})
        except PyMongoError as e:
            raise StorageError(f"MongoDB write failed: {e}") from e
        if res.matched_count == 0:
            raise StorageError(f"Row {row_id} not found in {table}")

    async def delete_row(self, table, row_id):
        try:
            res = await self.db[table].delete_one({"_id": row_id})
        except PyMongoError as e:
            raise StorageError(f"MongoDB write failed: {e}") from e
        if res.deleted_count == 0:
            raise StorageError(f"Row {row_id} not found in {table}")


def build_store(settings: Settings) -> Store:
    if settings.storage_backend == "sheets":
        from .sheets import SheetsStore
        if not settings.sheets_configured:
            logger.error("STORAGE_BACKEND=sheets but Google credentials are incomplete")
        return SheetsStore(settings.sheet_id, settings.service_account_email, settings.private_key)
    if settings.storage_backend == "mongo":
        return MongoStore.from_url(settings.mongo_url, settings.mongo_db_name)
    logger.info("Running in In-Memory mode; signups are lost on restart.")
    return MemoryStore()
