import logging
import sys

from arango import ArangoClient
from mct.app.core.config import settings

logger = logging.getLogger(__name__)

CONCEPTS = "Concepts"
USERS = "Users"
AUTH_SESSIONS = "AuthSessions"


class ArangoDB:
    """
    Process-wide ArangoDB handle.

    The client is built lazily on first use and released by `close()`, which the
    service calls on shutdown. Components receive the database from `get_db()`
    instead of reaching into module state.
    """

    def __init__(self):
        self.client = None
        self.db = None

    def initialize(self):
        try:
            self.client = ArangoClient(hosts=settings.ARANGO_HOST)
            sys_db = self.client.db('_system', username=settings.ARANGO_USERNAME, password=settings.ARANGO_PASSWORD)
            if not sys_db.has_database(settings.ARANGO_DB_NAME):
                sys_db.create_database(settings.ARANGO_DB_NAME)

            self.db = self.client.db(settings.ARANGO_DB_NAME, username=settings.ARANGO_USERNAME, password=settings.ARANGO_PASSWORD)

            for col in [CONCEPTS, USERS, AUTH_SESSIONS]:
                if not self.db.has_collection(col):
                    self.db.create_collection(col)

            # Listing is always "one owner, newest first"
            self.db.collection(CONCEPTS).add_persistent_index(fields=["owner", "created_at"])
            self.db.collection(USERS).add_persistent_index(fields=["email"], unique=True)
            self.db.collection(AUTH_SESSIONS).add_persistent_index(fields=["user_id"])

            logger.info("Connected to ArangoDB: %s", settings.ARANGO_DB_NAME)
            return self.db
        except Exception:
            logger.exception("Failed to connect to ArangoDB at %s", settings.ARANGO_HOST)
            sys.exit(1)

    def get_db(self):
        if not self.db:
            self.initialize()
        return self.db

    def close(self):
        if self.client is not None:
            self.client.close()
            logger.info("Closed ArangoDB client")
        self.client = None
        self.db = None


db = ArangoDB()
