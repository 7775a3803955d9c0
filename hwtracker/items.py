"""Domain types shared by the scraper, persistence layer and relay."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Union


class Category(str, Enum):
    """Product category recognised by the tracker."""

    GPU = "GPU"
    CPU = "CPU"


@dataclass(frozen=True)
class Item:
    """A normalized product listing observed at one store."""

    name: str
    price: float
    url: str
    store: str
    category: Category

    @property
    def identity(self):
        return (self.name, self.store)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        """Build an Item from a plain mapping, raising ValueError on bad input."""
        name = str(data.get("name") or "").strip()
        store = str(data.get("store") or "").strip()
        if not name or not store:
            raise ValueError(f"Item requires name and store: {data!r}")
        price = float(data.get("price"))
        if price <= 0:
            raise ValueError(f"Item price must be positive: {price}")
        return cls(
            name=name,
            price=price,
            url=str(data.get("url") or ""),
            store=store,
            category=Category(str(data.get("category"))),
        )


@dataclass
class ScrapingResult:
    """Products and error messages gathered by one orchestration run."""

    products: List[Item] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "products": [p.to_dict() for p in self.products],
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class HttpFetchStore:
    """Store whose search results are served as plain HTML."""

    kind: ClassVar[str] = "http"

    name: str
    base_url: str
    search_path: str
    search_param: str


@dataclass(frozen=True)
class BrowserDrivenStore:
    """Store whose search requires typing into a rendered page."""

    kind: ClassVar[str] = "browser"

    name: str
    base_url: str
    search_input_selector: str = "#searchFieldInputField"
    search_path: str = ""
    search_param: str = ""


StoreConfig = Union[HttpFetchStore, BrowserDrivenStore]
