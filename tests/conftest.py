"""
Test configuration and fixtures.

The document store is replaced by an in-memory implementation of the same
EntityStore protocol; the Mongo adapter itself is covered in test_store.py.
"""
import copy
import os
import random
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from faker import Faker

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only")
os.environ.pop("DATABASE_URL", None)

import repository
from errors import NotFound, PersistenceError
from schemas import Project, Session, User

fake = Faker()
Faker.seed(1234)


def _matches(doc: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for key, expected in filters.items():
        value = doc.get(key)
        # Mongo equality on an array field means "contains"
        if isinstance(value, list) and not isinstance(expected, list):
            if expected not in value:
                return False
        elif value != expected:
            return False
    return True


class MemoryStore:
    """Dict-backed EntityStore. Documents are copied in and out like a real store."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.writes: List[tuple] = []

    def _coll(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.setdefault(name, {})

    def get(self, collection: str, entity_id: str) -> Optional[Dict[str, Any]]:
        doc = self._coll(collection).get(entity_id)
        return {**copy.deepcopy(doc), "id": entity_id} if doc is not None else None

    def query(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return [
            {**copy.deepcopy(doc), "id": doc_id}
            for doc_id, doc in self._coll(collection).items()
            if _matches(doc, filters or {})
        ]

    def create(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = str(ObjectId())
        self._coll(collection)[doc_id] = copy.deepcopy({k: v for k, v in data.items() if k != "id"})
        self.writes.append(("create", collection, doc_id))
        return doc_id

    def update(self, collection: str, entity_id: str, data: Dict[str, Any]) -> None:
        coll = self._coll(collection)
        if entity_id not in coll:
            raise NotFound(collection, entity_id)
        coll[entity_id].update(copy.deepcopy(data))
        self.writes.append(("update", collection, entity_id))

    def delete(self, collection: str, entity_id: str) -> None:
        if self._coll(collection).pop(entity_id, None) is None:
            raise NotFound(collection, entity_id)
        self.writes.append(("delete", collection, entity_id))


class FlakyStore(MemoryStore):
    """MemoryStore whose creates fail for chosen collections or chosen users."""

    def __init__(self, fail_collections=(), fail_user_ids=()):
        super().__init__()
        self.fail_collections = set(fail_collections)
        self.fail_user_ids = set(fail_user_ids)

    def create(self, collection: str, data: Dict[str, Any]) -> str:
        if collection in self.fail_collections or data.get("user_id") in self.fail_user_ids:
            raise PersistenceError(f"Failed to create {collection}", cause=ConnectionError("store unreachable"))
        return super().create(collection, data)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


def make_user(store, role: str = "student", **fields) -> User:
    name = fake.name()
    user = User(
        email=f"user{fake.unique.random_int(1, 999999)}@school.edu",
        display_name=name,
        role=role,
        **fields,
    )
    return repository.create_user(store, user)


@pytest.fixture
def teacher(store) -> User:
    return make_user(store, "teacher")


@pytest.fixture
def admin(store) -> User:
    return make_user(store, "admin")


@pytest.fixture
def students(store) -> List[User]:
    return [make_user(store) for _ in range(5)]


@pytest.fixture
def teacher_session(teacher) -> Session:
    return Session(user_id=teacher.id, email=teacher.email, role="teacher")


@pytest.fixture
def student_session(students) -> Session:
    return Session(user_id=students[0].id, email=students[0].email, role="student")


@pytest.fixture
def project(store, teacher) -> Project:
    return repository.create_project(store, Project(name="Smart Irrigation", teacher_id=teacher.id, status="active"))
