"""
Unit Tests for the Mongo entity store
Tests for: id mapping, not-found handling, error wrapping
"""
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from errors import NotFound, PersistenceError
from store import MongoEntityStore


@pytest.fixture
def db():
    collections = {}

    def collection(name):
        return collections.setdefault(name, MagicMock(name=name))

    mock_db = MagicMock()
    mock_db.__getitem__.side_effect = collection
    return mock_db


class TestMongoEntityStore:
    """Test the pymongo adapter"""

    def test_get_maps_object_id(self, db):
        """Test _id comes back as a string id"""
        oid = ObjectId()
        db["team"].find_one.return_value = {"_id": oid, "name": "Rovers"}

        doc = MongoEntityStore(db).get("team", str(oid))

        assert doc == {"id": str(oid), "name": "Rovers"}
        db["team"].find_one.assert_called_once_with({"_id": oid})

    def test_get_invalid_id_is_none(self, db):
        """Test malformed ids read as missing"""
        assert MongoEntityStore(db).get("team", "not-an-object-id") is None
        db["team"].find_one.assert_not_called()

    def test_query_passes_equality_filters(self, db):
        """Test filters go straight to find"""
        oid = ObjectId()
        db["task"].find.return_value = [{"_id": oid, "sprint_id": "s1"}]

        docs = MongoEntityStore(db).query("task", {"sprint_id": "s1"})

        assert docs == [{"id": str(oid), "sprint_id": "s1"}]
        db["task"].find.assert_called_once_with({"sprint_id": "s1"})

    def test_create_drops_id_and_returns_new_id(self, db):
        """Test create strips any id field and returns the inserted id"""
        oid = ObjectId()
        db["notification"].insert_one.return_value = MagicMock(inserted_id=oid)

        new_id = MongoEntityStore(db).create("notification", {"id": "", "user_id": "u1"})

        assert new_id == str(oid)
        db["notification"].insert_one.assert_called_once_with({"user_id": "u1"})

    def test_update_unmatched_is_not_found(self, db):
        """Test updating a missing document raises NotFound"""
        db["team"].update_one.return_value = MagicMock(matched_count=0)

        with pytest.raises(NotFound):
            MongoEntityStore(db).update("team", str(ObjectId()), {"leader_id": ""})

    def test_delete_invalid_id_is_not_found(self, db):
        """Test deleting a malformed id raises NotFound"""
        with pytest.raises(NotFound):
            MongoEntityStore(db).delete("task", "bad")

    def test_driver_errors_become_persistence_errors(self, db):
        """Test pymongo failures are wrapped with their cause"""
        cause = ServerSelectionTimeoutError("no servers")
        db["project"].find.side_effect = cause

        with pytest.raises(PersistenceError) as exc_info:
            MongoEntityStore(db).query("project")

        assert exc_info.value.cause is cause
        assert exc_info.value.code == "PERSISTENCE_ERROR"
        assert "ServerSelectionTimeoutError" in exc_info.value.details["cause"]
