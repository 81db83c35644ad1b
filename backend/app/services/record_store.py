import asyncio
from typing import Any, Callable, List, Mapping, Optional, Protocol

from arango.exceptions import ArangoError, DocumentGetError

from backend.app.core.config import settings
from backend.app.core.errors import PersistenceError
from backend.app.core.logger_config import setup_logger
from backend.app.db.arango import db as arango_db
from backend.app.models.tool import ToolRecord

logger = setup_logger(__name__)

class RecordStore(Protocol):
    async def create(self, fields: Mapping[str, Any]) -> str: ...
    async def delete(self, record_id: str) -> None: ...
    async def list_tools(self, tool_type: Optional[str] = None) -> List[ToolRecord]: ...
    async def get_tool(self, record_id: str) -> Optional[ToolRecord]: ...

class ArangoRecordStore:
    """
    Tools table on an ArangoDB document collection. Field names follow the
    table schema (Name, URL, Types, Description, State, API Services, isPaid).
    The driver is blocking, so calls run in a worker thread.
    """

    def __init__(self, database=None, collection: str = settings.TOOLS_COLLECTION):
        self._database = database
        self.collection_name = collection

    @property
    def db(self):
        if self._database is None:
            self._database = arango_db.get_db()
        return self._database

    async def _run(self, operation: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except ArangoError as e:
            logger.error("Error during tool %s: %s", operation, e)
            raise PersistenceError(operation, str(e)) from e

    async def create(self, fields: Mapping[str, Any]) -> str:
        def _insert():
            meta = self.db.collection(self.collection_name).insert(dict(fields))
            return meta["_key"]

        record_id = await self._run("create", _insert)
        logger.info("Saved tool '%s' as %s", fields.get("Name"), record_id)
        return record_id

    async def delete(self, record_id: str) -> None:
        await self._run("delete", lambda: self.db.collection(self.collection_name).delete(record_id))
        logger.info("Deleted tool %s", record_id)

    async def list_tools(self, tool_type: Optional[str] = None) -> List[ToolRecord]:
        aql = """
        FOR t IN @@collection
            FILTER @tool_type == null OR @tool_type IN t.Types
            SORT t.URL ASC
            RETURN t
        """
        bind_vars = {"@collection": self.collection_name, "tool_type": tool_type}
        docs = await self._run("list", lambda: list(self.db.aql.execute(aql, bind_vars=bind_vars)))
        return [ToolRecord.from_document(doc) for doc in docs]

    async def get_tool(self, record_id: str) -> Optional[ToolRecord]:
        def _get():
            try:
                return self.db.collection(self.collection_name).get(record_id)
            except DocumentGetError as e:
                logger.error("Error fetching tool %s: %s", record_id, e)
                return None

        doc = await self._run("get", _get)
        return ToolRecord.from_document(doc) if doc else None
