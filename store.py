import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import SessionLocal
from errors import DocumentNotFound, StoreWriteFailure
from models import QRCode, ScanEvent, new_document_id

logger = logging.getLogger(__name__)

# Largest number of mutations a single batch_write may carry
MAX_BATCH_SIZE = 500

COLLECTIONS = {
    "qrcodes": QRCode,
    "scans": ScanEvent,
}

_OPERATORS = {
    "==": lambda column, value: column == value,
    "!=": lambda column, value: column != value,
    "<": lambda column, value: column < value,
    "<=": lambda column, value: column <= value,
    ">": lambda column, value: column > value,
    ">=": lambda column, value: column >= value,
}

Filter = Tuple[str, str, Any]


@dataclass
class WriteOp:
    kind: str  # "put" or "delete"
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def put(cls, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteOp":
        return cls("put", collection, doc_id, dict(data))

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> "WriteOp":
        return cls("delete", collection, doc_id)


def _model(collection: str):
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection: {collection}")


def _column(model, name: str):
    column = getattr(model, name, None)
    if column is None or name not in model.__table__.columns:
        raise ValueError(f"Unknown field '{name}' on {model.__tablename__}")
    return column


def _as_utc(value):
    # SQLite hands back naive datetimes; everything is stored as UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_document(row) -> Dict[str, Any]:
    return {column.name: _as_utc(getattr(row, column.name)) for column in row.__table__.columns}


class DocumentStore:
    """Document-style access to the qrcodes/scans tables.

    Components only rely on get/query/count/add/batch_write/atomic_increment
    and server_timestamp, so any session factory (Postgres in production,
    in-memory SQLite in tests) can back it.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        db: Session = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def server_timestamp(self) -> datetime:
        return datetime.now(timezone.utc)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        model = _model(collection)
        with self._session() as db:
            row = db.get(model, doc_id)
            return _to_document(row) if row is not None else None

    def _filtered(self, db: Session, model, filters: Iterable[Filter]):
        q = db.query(model)
        for field_name, op, value in filters:
            if op not in _OPERATORS:
                raise ValueError(f"Unsupported operator: {op}")
            q = q.filter(_OPERATORS[op](_column(model, field_name), value))
        return q

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        model = _model(collection)
        with self._session() as db:
            q = self._filtered(db, model, filters)
            if limit is not None:
                q = q.limit(limit)
            return [_to_document(row) for row in q.all()]

    def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        model = _model(collection)
        with self._session() as db:
            return self._filtered(db, model, filters).count()

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        model = _model(collection)
        values = dict(data)
        doc_id = values.setdefault("id", new_document_id())
        with self._session() as db:
            try:
                db.add(model(**values))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreWriteFailure(f"Failed to add document to {collection}") from e
        return doc_id

    def atomic_increment(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        delta: int = 1,
        **also_set: Any,
    ) -> None:
        """Increment a counter in a single UPDATE statement, never read-modify-write.

        Raises DocumentNotFound when no row matches doc_id.
        """
        model = _model(collection)
        counter = _column(model, field_name)
        values = {counter: counter + delta}
        for name, value in also_set.items():
            values[_column(model, name)] = value

        with self._session() as db:
            try:
                updated = (
                    db.query(model)
                    .filter(model.id == doc_id)
                    .update(values, synchronize_session=False)
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreWriteFailure(f"Failed to increment {collection}/{doc_id}.{field_name}") from e

        if not updated:
            raise DocumentNotFound(f"{collection}/{doc_id} does not exist")

    def batch_write(self, ops: Sequence[WriteOp]) -> None:
        """Apply up to MAX_BATCH_SIZE put/delete operations in one transaction."""
        ops = list(ops)
        if len(ops) > MAX_BATCH_SIZE:
            raise ValueError(f"Batch of {len(ops)} exceeds the limit of {MAX_BATCH_SIZE}")
        if not ops:
            return

        with self._session() as db:
            try:
                for op in ops:
                    model = _model(op.collection)
                    if op.kind == "delete":
                        db.query(model).filter(model.id == op.doc_id).delete(synchronize_session=False)
                    elif op.kind == "put":
                        db.merge(model(id=op.doc_id, **op.data))
                    else:
                        raise ValueError(f"Unsupported write op: {op.kind}")
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreWriteFailure(f"Batch of {len(ops)} writes failed") from e

        logger.debug("Committed batch of %d writes", len(ops))


def get_store() -> DocumentStore:
    """FastAPI dependency returning the store bound to the configured database."""
    return DocumentStore(SessionLocal)
