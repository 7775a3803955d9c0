"""Repository layer for store/item upserts and product queries."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from hwtracker.items import Category, Item
from hwtracker.models import Item as ItemRow
from hwtracker.models import Scrape, ScrapeItem, Store, utcnow_naive


def _row_to_item(row) -> Item:
    return Item(
        name=row.name,
        price=float(row.price),
        url=row.url,
        store=row.store,
        category=Category(row.category),
    )


class ProductRepository:
    """Upsert primitives and read queries over one SQLAlchemy session.

    Nothing here commits; transaction boundaries belong to the caller.
    """

    def __init__(self, session: Session):
        self.session = session

    def create_scrape(self, timestamp: Optional[datetime] = None) -> int:
        scrape = Scrape(timestamp=timestamp or utcnow_naive())
        self.session.add(scrape)
        self.session.flush([scrape])
        return scrape.id

    def get_or_create_store(self, name: str) -> int:
        """Return the id of the store with this exact name, inserting it if needed."""
        store_id = self.session.query(Store.id).filter(Store.name == name).scalar()
        if store_id is not None:
            return store_id
        store = Store(name=name)
        self.session.add(store)
        self.session.flush([store])
        return store.id

    def get_or_create_item(self, item: Item, store_id: int) -> int:
        """Upsert on (name, store_id, category).

        An existing row gets its price and url overwritten; no history is kept.
        """
        existing = (
            self.session.query(ItemRow)
            .filter(
                ItemRow.name == item.name,
                ItemRow.store_id == store_id,
                ItemRow.item_type == item.category.value,
            )
            .first()
        )
        if existing is not None:
            existing.price = item.price
            existing.url = item.url
            self.session.flush([existing])
            return existing.id

        row = ItemRow(
            price=item.price,
            name=item.name,
            url=item.url,
            store_id=store_id,
            item_type=item.category.value,
        )
        self.session.add(row)
        self.session.flush([row])
        return row.id

    def link_item_to_scrape(self, scrape_id: int, item_id: int) -> bool:
        """Insert the (scrape, item) pair if absent. Returns True when a row was added."""
        if self.session.get(ScrapeItem, (scrape_id, item_id)) is not None:
            return False
        link = ScrapeItem(scrape_id=scrape_id, item_id=item_id)
        self.session.add(link)
        self.session.flush([link])
        return True

    def save_item(self, item: Item, scrape_id: int) -> int:
        store_id = self.get_or_create_store(item.store)
        item_id = self.get_or_create_item(item, store_id)
        self.link_item_to_scrape(scrape_id, item_id)
        return item_id

    def _base_item_query(self):
        return (
            self.session.query(
                ItemRow.name,
                ItemRow.price,
                ItemRow.url,
                Store.name.label("store"),
                ItemRow.item_type.label("category"),
            )
            .join(Store, ItemRow.store_id == Store.id)
        )

    def get_latest_products(self, limit: int = 50) -> List[Item]:
        rows = self._base_item_query().order_by(ItemRow.id.desc()).limit(limit).all()
        return [_row_to_item(row) for row in rows]

    def get_products_by_category(self, category: Category, limit: int = 50) -> List[Item]:
        rows = (
            self._base_item_query()
            .filter(ItemRow.item_type == Category(category).value)
            .order_by(ItemRow.id.desc())
            .limit(limit)
            .all()
        )
        return [_row_to_item(row) for row in rows]

    def get_products_by_store(self, store: str, limit: int = 50) -> List[Item]:
        rows = (
            self._base_item_query()
            .filter(Store.name == store)
            .order_by(ItemRow.id.desc())
            .limit(limit)
            .all()
        )
        return [_row_to_item(row) for row in rows]

    def get_scrape_items(self, scrape_id: int) -> List[Item]:
        """Reconstruct the items linked to one scrape (current price values)."""
        rows = (
            self._base_item_query()
            .join(ScrapeItem, ScrapeItem.item_id == ItemRow.id)
            .filter(ScrapeItem.scrape_id == scrape_id)
            .order_by(ItemRow.id.asc())
            .all()
        )
        return [_row_to_item(row) for row in rows]

    def get_product_stats(self) -> Dict[str, Any]:
        total = self.session.query(func.count(ItemRow.id)).scalar() or 0
        by_type = dict(
            self.session.query(ItemRow.item_type, func.count(ItemRow.id))
            .group_by(ItemRow.item_type)
            .all()
        )
        stores = [
            name
            for (name,) in self.session.query(Store.name).distinct().order_by(Store.name.asc()).all()
        ]
        return {
            "total": int(total),
            "gpu": int(by_type.get(Category.GPU.value, 0)),
            "cpu": int(by_type.get(Category.CPU.value, 0)),
            "stores": stores,
        }
