import datetime
import logging
import uuid
from typing import List

from mct.app.db.arango import CONCEPTS
from mct.app.models.concept import (
    ChangeNotification,
    Concept,
    ConceptCreate,
    ConceptUpdate,
    Status,
)
from mct.app.services.change_feed import ChangeFeed

logger = logging.getLogger(__name__)


class ConceptNotFound(LookupError):
    """The concept does not exist, or belongs to someone else."""

    def __init__(self, concept_id: str):
        super().__init__(f"Concept '{concept_id}' not found")
        self.concept_id = concept_id


class ConceptTable:
    """
    Owner-scoped CRUD over the Concepts collection.
    Every successful write is announced on the change feed.
    """

    LIST_AQL = """
    FOR c IN Concepts
        FILTER c.owner == @owner
        SORT c.created_at DESC
        RETURN c
    """

    def __init__(self, database, feed: ChangeFeed):
        self.db = database
        self.feed = feed

    @property
    def collection(self):
        return self.db.collection(CONCEPTS)

    def _owned_document(self, owner: str, concept_id: str) -> dict:
        doc = self.collection.get(concept_id)
        if not doc or doc.get("owner") != owner:
            raise ConceptNotFound(concept_id)
        return doc

    async def list_for_owner(self, owner: str) -> List[Concept]:
        cursor = self.db.aql.execute(self.LIST_AQL, bind_vars={"owner": owner})
        return [Concept(**doc) for doc in cursor]

    async def get(self, owner: str, concept_id: str) -> Concept:
        return Concept(**self._owned_document(owner, concept_id))

    async def create(self, owner: str, payload: ConceptCreate) -> Concept:
        now = datetime.datetime.now(datetime.UTC).isoformat()
        doc = {
            "_key": str(uuid.uuid4()),
            **payload.model_dump(mode="json"),
            "owner": owner,
            "status": Status.PENDING.value,
            "created_at": now,
            "updated_at": now,
        }
        self.collection.insert(doc)
        concept = Concept(**doc)
        logger.info("Created concept %s for %s", concept.id, owner)

        self.feed.publish(owner, ChangeNotification(event="INSERT", record_id=concept.id, record=concept))
        return concept

    async def update(self, owner: str, concept_id: str, payload: ConceptUpdate) -> Concept:
        doc = self._owned_document(owner, concept_id)
        changes = payload.changes()
        changes["updated_at"] = datetime.datetime.now(datetime.UTC).isoformat()

        # Validate the merged document first so a bad patch never reaches storage.
        concept = Concept(**{**doc, **changes})
        self.collection.update({"_key": concept_id, **changes})
        logger.info("Updated concept %s (%s)", concept_id, ", ".join(sorted(changes)))

        self.feed.publish(owner, ChangeNotification(event="UPDATE", record_id=concept.id, record=concept))
        return concept

    async def delete(self, owner: str, concept_id: str) -> None:
        self._owned_document(owner, concept_id)
        self.collection.delete(concept_id)
        logger.info("Deleted concept %s", concept_id)

        self.feed.publish(owner, ChangeNotification(event="DELETE", record_id=concept_id))
