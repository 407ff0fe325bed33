"""
Generic record store over the named collections the flows read and write.

Records travel as plain dicts. Two implementations share the interface:

* SqlRecordStore - the canonical store, backed by the SQLAlchemy models.
* KeyValueRecordStore - offline mode; each collection is one JSON-encoded
  array under a fixed key in a key-value string store (Redis, or an
  in-process dict when Redis is not configured).
"""
import json
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Type

import redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from status_tracker.models import Project, ProjectAnalysis, StatusUpdate

logger = logging.getLogger(__name__)

PROJECTS = "projects"
PROJECT_ANALYSIS = "projectAnalysis"
STATUS_UPDATES = "statusUpdates"

Record = Dict[str, Any]


class RecordStoreError(Exception):
    """Raised when the backing store rejects an operation."""


class UnknownCollectionError(RecordStoreError):
    pass


class RecordStore:
    def list(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Record]:
        """Return matching records. ``order_by`` is a field name, prefixed with ``-`` for descending."""
        raise NotImplementedError

    def get(self, collection: str, record_id: str) -> Optional[Record]:
        raise NotImplementedError

    def create(self, collection: str, record: Record) -> Record:
        raise NotImplementedError

    def update(self, collection: str, record_id: str, fields: Record) -> Record:
        raise NotImplementedError

    def close(self) -> None:
        pass


def _parse_order(order_by: Optional[str]):
    if not order_by:
        return None, False
    if order_by.startswith("-"):
        return order_by[1:], True
    return order_by, False


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

COLLECTION_MODELS: Dict[str, Type] = {
    PROJECTS: Project,
    PROJECT_ANALYSIS: ProjectAnalysis,
    STATUS_UPDATES: StatusUpdate,
}


def _row_to_record(row) -> Record:
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}


class SqlRecordStore(RecordStore):
    """Opens one session per operation from the injected factory."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def _model(self, collection: str):
        model = COLLECTION_MODELS.get(collection)
        if model is None:
            raise UnknownCollectionError(f"Unknown collection: {collection}")
        return model

    def list(self, collection, filter=None, order_by=None, limit=None):
        model = self._model(collection)
        field, descending = _parse_order(order_by)
        db = self._session_factory()
        try:
            query = db.query(model)
            for key, value in (filter or {}).items():
                query = query.filter(getattr(model, key) == value)
            if field:
                column = getattr(model, field)
                query = query.order_by(column.desc() if descending else column.asc())
            if limit is not None:
                query = query.limit(limit)
            return [_row_to_record(row) for row in query.all()]
        except SQLAlchemyError as exc:
            raise RecordStoreError(f"List {collection} failed: {exc}") from exc
        finally:
            db.close()

    def get(self, collection, record_id):
        model = self._model(collection)
        db = self._session_factory()
        try:
            row = db.query(model).filter(model.id == record_id).first()
            return _row_to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise RecordStoreError(f"Get {collection}/{record_id} failed: {exc}") from exc
        finally:
            db.close()

    def create(self, collection, record):
        model = self._model(collection)
        db = self._session_factory()
        try:
            row = model(**record)
            db.add(row)
            db.commit()
            db.refresh(row)
            return _row_to_record(row)
        except SQLAlchemyError as exc:
            db.rollback()
            raise RecordStoreError(f"Create in {collection} failed: {exc}") from exc
        finally:
            db.close()

    def update(self, collection, record_id, fields):
        model = self._model(collection)
        db = self._session_factory()
        try:
            row = db.query(model).filter(model.id == record_id).first()
            if row is None:
                raise RecordStoreError(f"{collection}/{record_id} does not exist")
            for key, value in fields.items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            return _row_to_record(row)
        except SQLAlchemyError as exc:
            db.rollback()
            raise RecordStoreError(f"Update {collection}/{record_id} failed: {exc}") from exc
        finally:
            db.close()


# ---------------------------------------------------------------------------
# Key-value (offline mode)
# ---------------------------------------------------------------------------

KEY_PREFIX = "status_tracker:"
DATETIME_FIELDS = {"created_at", "last_update"}


class MemoryKeyValue:
    """Dict-backed stand-in for the handful of Redis string commands we use."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> bool:
        self._data[key] = value
        return True

    def close(self) -> None:
        self._data.clear()


def _encode(records: List[Record]) -> str:
    return json.dumps(records, default=lambda v: v.isoformat() if isinstance(v, datetime) else str(v))


def _decode(raw: Optional[str]) -> List[Record]:
    if not raw:
        return []
    records = json.loads(raw)
    for record in records:
        for field in DATETIME_FIELDS:
            value = record.get(field)
            if isinstance(value, str):
                record[field] = datetime.fromisoformat(value)
    return records


class KeyValueRecordStore(RecordStore):
    """Each collection is read and rewritten whole on every operation."""

    def __init__(self, client=None) -> None:
        self.client = client if client is not None else MemoryKeyValue()
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, redis_url: Optional[str]) -> "KeyValueRecordStore":
        if not redis_url:
            logger.warning("REDIS_URL not set, offline record store keeps data in memory")
            return cls()
        return cls(redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=5, socket_timeout=5))

    def _key(self, collection: str) -> str:
        if collection not in COLLECTION_MODELS:
            raise UnknownCollectionError(f"Unknown collection: {collection}")
        return f"{KEY_PREFIX}{collection}"

    def _read(self, collection: str) -> List[Record]:
        try:
            return _decode(self.client.get(self._key(collection)))
        except (redis.RedisError, ValueError) as exc:
            raise RecordStoreError(f"Read {collection} failed: {exc}") from exc

    def _write(self, collection: str, records: List[Record]) -> None:
        try:
            self.client.set(self._key(collection), _encode(records))
        except redis.RedisError as exc:
            raise RecordStoreError(f"Write {collection} failed: {exc}") from exc

    def list(self, collection, filter=None, order_by=None, limit=None):
        records = [
            record for record in self._read(collection)
            if all(record.get(key) == value for key, value in (filter or {}).items())
        ]
        field, descending = _parse_order(order_by)
        if field:
            # None sorts first ascending, last descending
            records.sort(
                key=lambda r: (r.get(field) is not None, r.get(field) if r.get(field) is not None else 0),
                reverse=descending,
            )
        if limit is not None:
            records = records[:limit]
        return records

    def get(self, collection, record_id):
        for record in self._read(collection):
            if record.get("id") == record_id:
                return record
        return None

    def create(self, collection, record):
        if "id" not in record:
            raise RecordStoreError(f"Create in {collection} needs an id")
        with self._lock:
            records = self._read(collection)
            if any(existing.get("id") == record["id"] for existing in records):
                raise RecordStoreError(f"{collection}/{record['id']} already exists")
            stored = dict(record)
            stored.setdefault("created_at", datetime.utcnow())
            records.append(stored)
            self._write(collection, records)
        return dict(stored)

    def update(self, collection, record_id, fields):
        with self._lock:
            records = self._read(collection)
            for record in records:
                if record.get("id") == record_id:
                    record.update(fields)
                    self._write(collection, records)
                    return dict(record)
        raise RecordStoreError(f"{collection}/{record_id} does not exist")

    def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close:
            close()
