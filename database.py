"""
Database access

MongoDB connection plus a thin collection-scoped adapter used by the
repositories. The adapter holds no business rules: it stores what it is
given, stamps timestamps and translates driver errors into the application
exception hierarchy.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import OperationFailure, PyMongoError

import config
from exceptions import Cancelled, PermissionDenied, StoreUnavailable, NotFound

logger = logging.getLogger(__name__)

# Server error codes, see https://www.mongodb.com/docs/manual/reference/error-codes/
UNAUTHORIZED_CODES = {13, 18}
INTERRUPTED_CODES = {11601}

client = None
db = None


def connect(url: str, name: str):
    """Open a client for `url` and return it with the named database."""
    mongo = MongoClient(
        url,
        serverSelectionTimeoutMS=config.MONGO_SERVER_SELECTION_TIMEOUT_MS,
        tz_aware=True,
    )
    return mongo, mongo[name]


if config.DATABASE_URL and config.DATABASE_NAME:
    client, db = connect(config.DATABASE_URL, config.DATABASE_NAME)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _object_id(record_id: str) -> Optional[ObjectId]:
    if isinstance(record_id, ObjectId):
        return record_id
    if not isinstance(record_id, str) or not ObjectId.is_valid(record_id):
        return None
    return ObjectId(record_id)


def _to_record(document: Dict[str, Any]) -> Dict[str, Any]:
    record = dict(document)
    record["id"] = str(record.pop("_id"))
    return record


def _sort_spec(order_by: str):
    if order_by.startswith("-"):
        return [(order_by[1:], DESCENDING)]
    return [(order_by, ASCENDING)]


class DocumentStore:
    """Collection-scoped create/get/list/update/delete over a pymongo database."""

    def __init__(self, database=None, clock: Callable[[], datetime] = utc_now):
        self.database = database
        self.clock = clock

    def _database(self):
        if self.database is None:
            raise StoreUnavailable(
                "Database not configured. Set DATABASE_URL and DATABASE_NAME.",
                code="DATABASE_NOT_CONFIGURED",
            )
        return self.database

    def _collection(self, name: str):
        return self._database()[name]

    @contextmanager
    def _call(self, action: str, collection: str):
        try:
            yield
        except OperationFailure as e:
            if e.code in INTERRUPTED_CODES:
                logger.debug(f"{action} on '{collection}' was interrupted")
                raise Cancelled("Request was cancelled") from e
            if e.code in UNAUTHORIZED_CODES:
                logger.error(f"{action} on '{collection}' rejected by the database: {e}")
                raise PermissionDenied(
                    "Permission denied. Please check the database access rules.",
                    detail={"collection": collection},
                ) from e
            logger.error(f"{action} on '{collection}' failed: {e}")
            raise StoreUnavailable(
                "The database could not complete the request.",
                detail={"collection": collection},
            ) from e
        except PyMongoError as e:
            logger.error(f"{action} on '{collection}' failed: {e}")
            raise StoreUnavailable(
                "Network error. Please check your connection.",
                detail={"collection": collection},
            ) from e

    def create(self, collection: str, fields: Dict[str, Any]) -> str:
        now = self.clock()
        document = {k: v for k, v in fields.items() if k not in ("id", "_id")}
        document["created_at"] = now
        document["updated_at"] = now
        with self._call("create", collection):
            result = self._collection(collection).insert_one(document)
        return str(result.inserted_id)

    def get_by_id(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        oid = _object_id(record_id)
        if oid is None:
            return None
        with self._call("get", collection):
            document = self._collection(collection).find_one({"_id": oid})
        return _to_record(document) if document else None

    def list(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        with self._call("list", collection):
            cursor = self._collection(collection).find(dict(filters or {}))
            if order_by:
                cursor = cursor.sort(_sort_spec(order_by))
            documents = list(cursor)
        return [_to_record(d) for d in documents]

    def update(self, collection: str, record_id: str, partial: Dict[str, Any]) -> None:
        changes = {k: v for k, v in partial.items() if k not in ("id", "_id", "created_at")}
        changes["updated_at"] = self.clock()
        oid = _object_id(record_id)
        if oid is not None:
            with self._call("update", collection):
                result = self._collection(collection).update_one({"_id": oid}, {"$set": changes})
            if result.matched_count:
                return
        raise NotFound(
            f"No record with id '{record_id}'",
            detail={"collection": collection, "id": str(record_id)},
        )

    def delete(self, collection: str, record_id: str) -> None:
        oid = _object_id(record_id)
        if oid is None:
            return
        with self._call("delete", collection):
            self._collection(collection).delete_one({"_id": oid})

    def collection_names(self) -> List[str]:
        with self._call("list_collection_names", "*"):
            return self._database().list_collection_names()


def get_store() -> DocumentStore:
    return DocumentStore(db)
