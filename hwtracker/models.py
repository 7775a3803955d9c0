"""Database models for the hardware price tracker."""

from datetime import datetime, timezone
import os
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

Base = declarative_base()


def utcnow_naive() -> datetime:
    """Return UTC datetime without tzinfo for DB compatibility."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key support for SQLite (no-op for other backends)."""
    pool = getattr(connection_record, "pool", None)
    engine = getattr(pool, "engine", None) if pool else None
    if engine is not None and engine.dialect.name == "sqlite":
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class Scrape(Base):
    """One orchestration run. Append-only."""

    __tablename__ = "scrape"

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow_naive)

    items = relationship("ScrapeItem", back_populates="scrape")

    def __repr__(self):
        return f"<Scrape(id={self.id}, timestamp={self.timestamp})>"


class Store(Base):
    """Retailer a listing was observed at."""

    __tablename__ = "store"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, unique=True)

    items = relationship("Item", back_populates="store")

    def __repr__(self):
        return f"<Store(name='{self.name}')>"


class Item(Base):
    """Latest known state of a listing, unique per (name, store, category)."""

    __tablename__ = "item"
    __table_args__ = (
        UniqueConstraint("name", "store_id", "item_type", name="uq_item_identity"),
        CheckConstraint("item_type IN ('CPU', 'GPU')", name="ck_item_type"),
    )

    id = Column(Integer, primary_key=True)
    price = Column(Float, nullable=False)
    name = Column(String(500), nullable=False)
    url = Column(Text, nullable=False)
    store_id = Column(Integer, ForeignKey("store.id"), nullable=False, index=True)
    item_type = Column(String(3), nullable=False)

    store = relationship("Store", back_populates="items")
    scrapes = relationship("ScrapeItem", back_populates="item")

    def __repr__(self):
        return f"<Item(name='{self.name}', price={self.price}, type={self.item_type})>"


class ScrapeItem(Base):
    """Which items were observed in which scrape."""

    __tablename__ = "scrape_item"

    scrape_id = Column(Integer, ForeignKey("scrape.id"), primary_key=True)
    item_id = Column(Integer, ForeignKey("item.id"), primary_key=True)

    scrape = relationship("Scrape", back_populates="items")
    item = relationship("Item", back_populates="scrapes")

    def __repr__(self):
        return f"<ScrapeItem(scrape_id={self.scrape_id}, item_id={self.item_id})>"


def get_engine(config: dict, backend: Optional[str] = None):
    """Create database engine based on configuration."""
    backend = backend or config.get("storage", {}).get("default_backend", "sqlite")

    if backend == "sqlite":
        db_path = config.get("storage", {}).get("sqlite", {}).get("database_path", "data/db.sqlite")
        return create_engine(f"sqlite:///{db_path}")
    elif backend == "postgresql":
        pg_config = config.get("storage", {}).get("postgresql", {})
        db_url = str(pg_config.get("url") or os.getenv("DB_URL") or "").strip()
        if db_url:
            return create_engine(db_url)
        host = pg_config.get("host", "localhost")
        port = pg_config.get("port", "5432")
        database = pg_config.get("database", "hw_tracker")
        user = pg_config.get("user", "tracker")
        password = pg_config.get("password", "")

        return create_engine(
            f"postgresql://{user}:{password}@{host}:{port}/{database}"
        )
    else:
        raise ValueError(f"Unsupported database backend: {backend}")


def init_db(engine):
    """Initialize database tables."""
    Base.metadata.create_all(engine)


def get_session_factory(engine):
    """Get session factory for database operations."""
    return sessionmaker(bind=engine)
