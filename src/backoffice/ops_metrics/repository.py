from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

from sqlalchemy import DateTime, bindparam, create_engine, text
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import SQLAlchemyError

from .dataset import Document, as_doc, coerce_datetime

logger = logging.getLogger(__name__)

USERS = "users"
ORDERS = "orders"
APPLICATIONS = "stringing_applications"
RENTALS = "rental_orders"
PACKAGE_ORDERS = "packageOrders"
SERVICE_PASSES = "service_passes"
REVIEWS = "reviews"
POINT_TRANSACTIONS = "point_transactions"
COMMUNITY_POSTS = "community_posts"
COMMUNITY_COMMENTS = "community_comments"
COMMUNITY_REPORTS = "community_reports"
PRODUCTS = "products"
USED_RACKETS = "used_rackets"
NOTIFICATIONS_OUTBOX = "notifications_outbox"
SETTLEMENTS = "settlements"

COLLECTIONS = (
    USERS,
    ORDERS,
    APPLICATIONS,
    RENTALS,
    PACKAGE_ORDERS,
    SERVICE_PASSES,
    REVIEWS,
    POINT_TRANSACTIONS,
    COMMUNITY_POSTS,
    COMMUNITY_COMMENTS,
    COMMUNITY_REPORTS,
    PRODUCTS,
    USED_RACKETS,
    NOTIFICATIONS_OUTBOX,
    SETTLEMENTS,
)


class StoreUnavailableError(RuntimeError):
    """A record store could not be read. Fatal for the whole snapshot."""

    def __init__(self, collection: str, cause: Exception) -> None:
        super().__init__(f"failed to read {collection!r}: {cause}")
        self.collection = collection


class RecordStore:
    """
    Read-only access to the transactional record stores.

    ``fetch`` returns raw documents exactly as stored; projection and coercion
    happen in the aggregators. ``since`` narrows the read to documents created
    at or after that instant. It is a narrowing hint: a store may return extra
    documents around the boundary (text-typed columns compare lexically), so
    callers re-check ``createdAt`` themselves.
    """

    def fetch(self, collection: str, since: Optional[datetime] = None) -> Sequence[Document]:
        raise NotImplementedError


class InMemoryRecordStore(RecordStore):
    """Documents held in process, keyed by collection name. Used for previews and tests."""

    def __init__(self, collections: Optional[Mapping[str, Iterable[Mapping[str, Any]]]] = None) -> None:
        self.collections: Dict[str, Sequence[Document]] = {
            name: tuple(as_doc(doc) for doc in docs) for name, docs in (collections or {}).items()
        }

    def fetch(self, collection: str, since: Optional[datetime] = None) -> Sequence[Document]:
        docs = self.collections.get(collection, ())
        if since is None:
            return tuple(dict(doc) for doc in docs)
        selected = []
        for doc in docs:
            created_at = coerce_datetime(doc.get("createdAt"))
            if created_at is not None and created_at >= since:
                selected.append(dict(doc))
        return tuple(selected)


class SQLRecordStore(RecordStore):
    """
    Documents persisted one row per record.

    Expected tables (one per collection, snake_case names by default):
      - <table>(id, created_at, document)
    ``document`` holds the JSON body; ``created_at`` mirrors its ``createdAt``
    and is only used to scope windowed reads.
    """

    def __init__(self, engine: Engine, table_names: Optional[Mapping[str, str]] = None):
        self.engine = engine
        self.table_names = {name: _default_table_name(name) for name in COLLECTIONS}
        self.table_names.update(table_names or {})

    def fetch(self, collection: str, since: Optional[datetime] = None) -> Sequence[Document]:
        table = self.table_names.get(collection)
        if table is None:
            raise KeyError(f"unknown collection: {collection}")
        sql = f'SELECT id, created_at, document FROM "{table}"'
        params: Dict[str, Any] = {}
        if since is not None:
            sql += " WHERE created_at >= :since"
            params["since"] = since
        statement = text(sql)
        if since is not None:
            statement = statement.bindparams(bindparam("since", type_=DateTime(timezone=True)))
        try:
            with self.engine.connect() as connection:
                rows = connection.execute(statement, params).fetchall()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(collection, exc) from exc
        return tuple(self._row_to_document(collection, row) for row in rows)

    @staticmethod
    def _row_to_document(collection: str, row: Row) -> Document:
        body = row.document
        if isinstance(body, (str, bytes)):
            try:
                body = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                logger.warning("Unreadable document %s/%s: %s", collection, row.id, exc)
                body = {}
        document = as_doc(body)
        document.setdefault("_id", str(row.id))
        if "createdAt" not in document and row.created_at is not None:
            document["createdAt"] = row.created_at
        return document


def _default_table_name(collection: str) -> str:
    # packageOrders -> package_orders
    return "".join(f"_{ch.lower()}" if ch.isupper() else ch for ch in collection)


@dataclass(frozen=True)
class RepositoryConfig:
    database_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        return cls(database_url=os.getenv("OPS_METRICS_DATABASE_URL"))


def build_repository_from_env(config: Optional[RepositoryConfig] = None) -> Optional[RecordStore]:
    cfg = config or RepositoryConfig.from_env()
    if cfg.database_url:
        engine = create_engine(cfg.database_url)
        return SQLRecordStore(engine)
    return None
