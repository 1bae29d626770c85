from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from mct.app.models.concept import ConceptCreate, ConceptUpdate, Status
from mct.app.services.change_feed import ChangeFeed
from mct.app.services.concepts import ConceptNotFound, ConceptTable


@pytest.fixture
def mock_db():
    db = MagicMock()
    db.collection.return_value = MagicMock()
    return db


@pytest.fixture
def feed():
    feed = ChangeFeed()
    feed.publish = MagicMock(return_value=1)
    return feed


def _stored(**overrides):
    doc = {
        "_key": "c1",
        "_id": "Concepts/c1",
        "_rev": "_abc",
        "owner": "user-1",
        "title": "Draft outline",
        "description": None,
        "category": "Work",
        "priority": "medium",
        "status": "pending",
        "due_date": None,
        "created_at": "2026-10-01T09:00:00+00:00",
        "updated_at": "2026-10-01T09:00:00+00:00",
    }
    doc.update(overrides)
    return doc


@pytest.mark.asyncio
async def test_list_for_owner_uses_owner_bind_var(mock_db, feed):
    mock_db.aql.execute.return_value = iter([_stored(), _stored(_key="c2", title="Older")])
    table = ConceptTable(mock_db, feed)

    concepts = await table.list_for_owner("user-1")

    assert [c.id for c in concepts] == ["c1", "c2"]
    args, kwargs = mock_db.aql.execute.call_args
    assert "SORT c.created_at DESC" in args[0]
    assert kwargs["bind_vars"] == {"owner": "user-1"}


@pytest.mark.asyncio
async def test_create_forces_pending_and_publishes_insert(mock_db, feed):
    table = ConceptTable(mock_db, feed)
    payload = ConceptCreate(title="  Draft outline ", category="work", priority="medium")

    concept = await table.create("user-1", payload)

    inserted = mock_db.collection.return_value.insert.call_args[0][0]
    assert inserted["owner"] == "user-1"
    assert inserted["status"] == "pending"
    assert inserted["title"] == "Draft outline"
    assert inserted["category"] == "Work"
    assert inserted["created_at"] == inserted["updated_at"]
    assert concept.id == inserted["_key"]

    owner, notification = feed.publish.call_args[0]
    assert owner == "user-1"
    assert notification.event == "INSERT"
    assert notification.record.id == concept.id


@pytest.mark.asyncio
async def test_update_stamps_updated_at_and_publishes(mock_db, feed):
    mock_db.collection.return_value.get.return_value = _stored()
    table = ConceptTable(mock_db, feed)

    concept = await table.update("user-1", "c1", ConceptUpdate(status=Status.COMPLETED))

    sent = mock_db.collection.return_value.update.call_args[0][0]
    assert sent["_key"] == "c1"
    assert sent["status"] == "completed"
    assert sent["updated_at"] != "2026-10-01T09:00:00+00:00"
    assert set(sent) == {"_key", "status", "updated_at"}
    assert concept.status == Status.COMPLETED
    assert concept.title == "Draft outline"
    assert feed.publish.call_args[0][1].event == "UPDATE"


@pytest.mark.asyncio
async def test_delete_publishes_without_record(mock_db, feed):
    mock_db.collection.return_value.get.return_value = _stored()
    table = ConceptTable(mock_db, feed)

    await table.delete("user-1", "c1")

    mock_db.collection.return_value.delete.assert_called_once_with("c1")
    notification = feed.publish.call_args[0][1]
    assert notification.event == "DELETE"
    assert notification.record_id == "c1"
    assert notification.record is None


@pytest.mark.asyncio
async def test_other_owners_concepts_are_not_found(mock_db, feed):
    mock_db.collection.return_value.get.return_value = _stored(owner="user-2")
    table = ConceptTable(mock_db, feed)

    with pytest.raises(ConceptNotFound):
        await table.update("user-1", "c1", ConceptUpdate(status=Status.CANCELLED))
    with pytest.raises(ConceptNotFound):
        await table.delete("user-1", "c1")

    mock_db.collection.return_value.update.assert_not_called()
    mock_db.collection.return_value.delete.assert_not_called()
    feed.publish.assert_not_called()


@pytest.mark.asyncio
async def test_missing_concept_is_not_found(mock_db, feed):
    mock_db.collection.return_value.get.return_value = None
    table = ConceptTable(mock_db, feed)

    with pytest.raises(ConceptNotFound, match="missing"):
        await table.get("user-1", "missing")


@pytest.mark.asyncio
async def test_invalid_merged_concept_is_never_written(mock_db, feed):
    mock_db.collection.return_value.get.return_value = _stored(priority="someday")
    table = ConceptTable(mock_db, feed)

    with pytest.raises(ValidationError):
        await table.update("user-1", "c1", ConceptUpdate(status=Status.COMPLETED))

    mock_db.collection.return_value.update.assert_not_called()
    feed.publish.assert_not_called()


def test_update_payload_rejects_explicit_nulls():
    with pytest.raises(ValidationError, match="Title cannot be null"):
        ConceptUpdate(title=None)
    with pytest.raises(ValidationError, match="Status cannot be null"):
        ConceptUpdate.model_validate({"status": None})
    assert ConceptUpdate.model_validate({"description": None, "due_date": None}).changes() == {
        "description": None,
        "due_date": None,
    }
