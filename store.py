"""
Entity store boundary.

Every query is a plain equality filter (``{"project_id": pid}``); anything more
(sorting, combining predicates) happens client-side after the fetch.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Protocol

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

from errors import NotFound, PersistenceError

logger = logging.getLogger(__name__)


class EntityStore(Protocol):
    def get(self, collection: str, entity_id: str) -> Optional[Dict[str, Any]]: ...

    def query(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]: ...

    def create(self, collection: str, data: Dict[str, Any]) -> str: ...

    def update(self, collection: str, entity_id: str, data: Dict[str, Any]) -> None: ...

    def delete(self, collection: str, entity_id: str) -> None: ...


@contextmanager
def _store_call(operation: str, collection: str):
    try:
        yield
    except PyMongoError as e:
        logger.error("Store %s on %s failed: %s", operation, collection, e)
        raise PersistenceError(f"Failed to {operation} {collection}", cause=e) from e


def _to_entity(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc["id"] = str(doc.pop("_id"))
    return doc


def _object_id(collection: str, entity_id: str) -> ObjectId:
    try:
        return ObjectId(entity_id)
    except (InvalidId, TypeError):
        raise NotFound(collection, entity_id)


class MongoEntityStore:
    def __init__(self, db):
        self.db = db

    def get(self, collection: str, entity_id: str) -> Optional[Dict[str, Any]]:
        try:
            oid = ObjectId(entity_id)
        except (InvalidId, TypeError):
            return None
        with _store_call("read", collection):
            doc = self.db[collection].find_one({"_id": oid})
        return _to_entity(doc) if doc else None

    def query(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with _store_call("query", collection):
            docs = list(self.db[collection].find(filters or {}))
        return [_to_entity(d) for d in docs]

    def create(self, collection: str, data: Dict[str, Any]) -> str:
        doc = {k: v for k, v in data.items() if k != "id"}
        with _store_call("create", collection):
            res = self.db[collection].insert_one(doc)
        return str(res.inserted_id)

    def update(self, collection: str, entity_id: str, data: Dict[str, Any]) -> None:
        oid = _object_id(collection, entity_id)
        data = {k: v for k, v in data.items() if k != "id"}
        with _store_call("update", collection):
            res = self.db[collection].update_one({"_id": oid}, {"$set": data})
        if res.matched_count == 0:
            raise NotFound(collection, entity_id)

    def delete(self, collection: str, entity_id: str) -> None:
        oid = _object_id(collection, entity_id)
        with _store_call("delete", collection):
            res = self.db[collection].delete_one({"_id": oid})
        if res.deleted_count == 0:
            raise NotFound(collection, entity_id)
