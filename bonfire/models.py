from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Category(str, Enum):
    FOOD = "food"
    DRINKS = "drinks"
    SUPPLIES = "supplies"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Category":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.OTHER


class CamelModel(BaseModel):
    """JSON bodies use camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _to_int(value: Optional[str], default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


# --- RECORDS ---
class SignupEntry(CamelModel):
    name: str
    email: str
    item: str
    item_category: Category = Category.OTHER
    quantity: int = 1
    timestamp: str = ""

    @classmethod
    def from_row(cls, values: Dict[str, str]) -> "SignupEntry":
        return cls(
            name=values.get("Name") or "",
            email=values.get("Email") or "",
            item=values.get("Item") or "",
            item_category=Category.parse(values.get("Category")),
            quantity=_to_int(values.get("Quantity"), 1),
            timestamp=values.get("Timestamp") or "",
        )

    def to_row(self) -> Dict[str, str]:
        return {
            "Name": self.name,
            "Email": self.email,
            "Item": self.item,
            "Category": self.item_category.value,
            "Quantity": str(self.quantity),
            "Timestamp": self.timestamp,
        }


class NeededItem(CamelModel):
    item: str
    category: Category = Category.OTHER
    taken: bool = False
    taken_by: str = ""
    quantity_needed: int = 1
    quantity_brought: int = 0

    @classmethod
    def from_row(cls, values: Dict[str, str]) -> "NeededItem":
        return cls(
            item=values.get("Item") or "",
            category=Category.parse(values.get("Category")),
            taken=str(values.get("Taken") or "").strip().upper() == "TRUE",
            taken_by=values.get("TakenBy") or "",
            quantity_needed=_to_int(values.get("QuantityNeeded"), 1),
            quantity_brought=_to_int(values.get("QuantityBrought"), 0),
        )

    def to_row(self) -> Dict[str, str]:
        return {
            "Item": self.item,
            "Category": self.category.value,
            "Taken": "TRUE" if self.taken else "FALSE",
            "TakenBy": self.taken_by,
            "QuantityNeeded": str(self.quantity_needed),
            "QuantityBrought": str(self.quantity_brought),
        }


# --- REQUEST BODIES ---
# Fields are optional so that missing values reach the handlers' presence
# checks and come back as a 400 with a readable message.
class SignupItem(CamelModel):
    item: Optional[str] = None
    category: Optional[Category] = None
    quantity: Optional[int] = None
    quantity_needed: Optional[int] = None


class SignupRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    item: Optional[str] = None
    item_category: Optional[Category] = None
    quantity: Optional[int] = None
    items: Optional[List[SignupItem]] = None

    def requested_items(self) -> List[SignupItem]:
        """Multi-item shape if present, else the legacy single item. Blank rows are dropped."""
        if self.items:
            candidates = self.items
        else:
            candidates = [SignupItem(item=self.item, category=self.item_category, quantity=self.quantity)]
        return [c for c in candidates if c.item and c.item.strip()]


class NeededItemCreate(CamelModel):
    item: Optional[str] = None
    category: Optional[Category] = None
    quantity_needed: Optional[int] = None


class NeededItemUpdate(CamelModel):
    item: Optional[str] = None
    quantity_needed: Optional[int] = None


class NeededItemDelete(CamelModel):
    item: Optional[str] = None


# --- RESPONSES ---
class SuccessResponse(CamelModel):
    success: bool = True


class NeededItemsResponse(CamelModel):
    needed_items: List[NeededItem]


class SignupsResponse(CamelModel):
    signups: List[SignupEntry]
