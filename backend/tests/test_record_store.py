import pytest
from unittest.mock import MagicMock

from arango.exceptions import ArangoClientError

from backend.app.core.errors import PersistenceError
from backend.app.services.record_store import ArangoRecordStore

FIELDS = {
    "Name": "MyTool",
    "URL": "https://example.com",
    "Types": ["Text to Image"],
    "Description": "A great tool",
    "State": "Public",
    "API Services": "Fully",
    "isPaid": ["Freemium"],
}


def _store():
    database = MagicMock()
    return ArangoRecordStore(database=database, collection="Tools"), database

@pytest.mark.asyncio
async def test_create_inserts_fields_and_returns_key():
    store, database = _store()
    database.collection.return_value.insert.return_value = {"_key": "123", "_id": "Tools/123"}

    record_id = await store.create(FIELDS)

    assert record_id == "123"
    database.collection.assert_called_with("Tools")
    database.collection.return_value.insert.assert_called_once_with(FIELDS)

@pytest.mark.asyncio
async def test_create_failure_raises_persistence_error():
    store, database = _store()
    database.collection.return_value.insert.side_effect = ArangoClientError("connection refused")

    with pytest.raises(PersistenceError) as exc:
        await store.create(FIELDS)
    assert exc.value.operation == "create"
    assert "connection refused" in exc.value.detail

@pytest.mark.asyncio
async def test_delete_removes_document():
    store, database = _store()

    await store.delete("123")

    database.collection.return_value.delete.assert_called_once_with("123")

@pytest.mark.asyncio
async def test_list_tools_filters_by_type():
    """
    Verifies that list_tools:
    1. Binds the collection and the type filter.
    2. Maps documents to ToolRecords in cursor order.
    """
    store, database = _store()
    mock_cursor = MagicMock()
    mock_cursor.__iter__.return_value = [
        dict(FIELDS, _key="a", URL="https://a.example"),
        dict(FIELDS, _key="b", URL="https://b.example"),
    ]
    database.aql.execute.return_value = mock_cursor

    tools = await store.list_tools("Text to Image")

    assert [t.id for t in tools] == ["a", "b"]
    assert tools[0].api_services == "Fully"
    assert tools[0].is_paid == ["Freemium"]
    bind_vars = database.aql.execute.call_args[1]["bind_vars"]
    assert bind_vars == {"@collection": "Tools", "tool_type": "Text to Image"}

@pytest.mark.asyncio
async def test_list_tools_without_filter():
    store, database = _store()
    database.aql.execute.return_value = iter([])

    assert await store.list_tools() == []
    assert database.aql.execute.call_args[1]["bind_vars"]["tool_type"] is None

@pytest.mark.asyncio
async def test_get_tool_missing_returns_none():
    store, database = _store()
    database.collection.return_value.get.return_value = None

    assert await store.get_tool("nope") is None

@pytest.mark.asyncio
async def test_get_tool_maps_document():
    store, database = _store()
    database.collection.return_value.get.return_value = dict(FIELDS, _key="123")

    tool = await store.get_tool("123")

    assert tool.id == "123"
    assert tool.name == "MyTool"
    assert tool.types == ["Text to Image"]
