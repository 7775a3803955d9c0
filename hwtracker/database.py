"""Owned database handle used by the pipeline, CLI and API."""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hwtracker.errors import PersistenceError
from hwtracker.items import Category, Item
from hwtracker.models import get_engine, get_session_factory, init_db
from hwtracker.repositories import ProductRepository


class Database:
    """Engine and session factory opened once per process."""

    def __init__(self, engine):
        self.engine = engine
        self._session_factory = get_session_factory(engine)

    @classmethod
    def open(cls, config: Dict[str, Any], backend: Optional[str] = None) -> "Database":
        engine = get_engine(config, backend)
        init_db(engine)
        logger.info(f"Database opened ({engine.url.render_as_string(hide_password=True)})")
        return cls(engine)

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Database closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    def save_products(self, products: Sequence[Item]) -> int:
        """Persist one scrape and return its id.

        The scrape row is committed first; all store/item/link writes then go
        in a single transaction that is rolled back as a whole on failure.
        """
        with self.session() as session:
            repository = ProductRepository(session)
            try:
                scrape_id = repository.create_scrape()
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise PersistenceError(f"Could not create scrape record: {e}") from e

            try:
                for product in products:
                    repository.save_item(product, scrape_id)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Saving scrape {scrape_id} failed, batch rolled back: {e}")
                raise PersistenceError(f"Could not save products for scrape {scrape_id}: {e}") from e

        logger.info(f"Saved {len(products)} products to database (scrape_id: {scrape_id})")
        return scrape_id

    def get_latest_products(self, limit: int = 50) -> List[Item]:
        with self.session() as session:
            return ProductRepository(session).get_latest_products(limit)

    def get_products_by_category(self, category: Category, limit: int = 50) -> List[Item]:
        with self.session() as session:
            return ProductRepository(session).get_products_by_category(category, limit)

    def get_products_by_store(self, store: str, limit: int = 50) -> List[Item]:
        with self.session() as session:
            return ProductRepository(session).get_products_by_store(store, limit)

    def get_scrape_items(self, scrape_id: int) -> List[Item]:
        with self.session() as session:
            return ProductRepository(session).get_scrape_items(scrape_id)

    def get_product_stats(self) -> Dict[str, Any]:
        with self.session() as session:
            return ProductRepository(session).get_product_stats()
