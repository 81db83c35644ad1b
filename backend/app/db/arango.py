from arango import ArangoClient
from arango.exceptions import ArangoError

from backend.app.core.config import settings
from backend.app.core.logger_config import setup_logger

logger = setup_logger(__name__)

class ArangoDB:
    def __init__(self):
        self.client = ArangoClient(hosts=settings.ARANGO_HOST)
        self.sys_db = self.client.db('_system', username=settings.ARANGO_USERNAME, password=settings.ARANGO_PASSWORD)
        self.db = None

    def initialize(self):
        try:
            if not self.sys_db.has_database(settings.ARANGO_DB_NAME):
                self.sys_db.create_database(settings.ARANGO_DB_NAME)

            self.db = self.client.db(settings.ARANGO_DB_NAME, username=settings.ARANGO_USERNAME, password=settings.ARANGO_PASSWORD)

            # Tools table
            if not self.db.has_collection(settings.TOOLS_COLLECTION):
                self.db.create_collection(settings.TOOLS_COLLECTION)

            # URL-sorted listing and per-type filtering
            tools = self.db.collection(settings.TOOLS_COLLECTION)
            tools.add_persistent_index(fields=["URL"])
            tools.add_persistent_index(fields=["Types[*]"])

            logger.info("Connected to ArangoDB: %s", settings.ARANGO_DB_NAME)
            return self.db
        except ArangoError as e:
            logger.error("Failed to connect to ArangoDB: %s", e)
            raise

    def get_db(self):
        if not self.db:
            self.initialize()
        return self.db

db = ArangoDB()
