import asyncio
import copy
import datetime
import uuid
from collections import defaultdict

import pytest
from fastapi.testclient import TestClient

from mct.app.api import deps
from mct.app.core.config import settings
from mct.app.main import app
from mct.app.models.concept import Concept
from mct.app.services.change_feed import ChangeFeed
from mct.app.services.concepts import ConceptTable
from mct.app.services.identity import IdentityService, PasswordHasher
from mct.dashboard.gateway import GatewayError

API_KEY = "test-anon-key"
JWT_SECRET = "test-secret-key-0123456789-abcdefghij"


class FakeCollection:
    """Just enough of python-arango's StandardCollection for the services."""

    def __init__(self):
        self.docs = {}

    def get(self, key):
        doc = self.docs.get(key)
        return copy.deepcopy(doc) if doc is not None else None

    def has(self, key):
        return key in self.docs

    def insert(self, doc):
        key = doc.get("_key") or uuid.uuid4().hex
        self.docs[key] = {**copy.deepcopy(doc), "_key": key}
        return {"_key": key}

    def update(self, doc):
        self.docs[doc["_key"]].update(copy.deepcopy(doc))
        return {"_key": doc["_key"]}

    def delete(self, key):
        del self.docs[key]
        return True

    def find(self, filters, skip=None, limit=None):
        found = [
            copy.deepcopy(doc) for doc in self.docs.values()
            if all(doc.get(k) == v for k, v in filters.items())
        ]
        return iter(found[:limit] if limit else found)


class FakeAQL:
    """Answers the concept listing query: one owner, newest first."""

    def __init__(self, database):
        self.database = database

    def execute(self, query, bind_vars=None):
        owner = (bind_vars or {})["owner"]
        docs = [
            copy.deepcopy(doc) for doc in self.database.collection("Concepts").docs.values()
            if doc["owner"] == owner
        ]
        return iter(sorted(docs, key=lambda d: d["created_at"], reverse=True))


class FakeDatabase:
    def __init__(self):
        self.collections = defaultdict(FakeCollection)
        self.aql = FakeAQL(self)

    def collection(self, name):
        return self.collections[name]


def make_concept(**overrides) -> Concept:
    now = datetime.datetime.now(datetime.UTC)
    data = {
        "id": uuid.uuid4().hex,
        "owner": "user-1",
        "title": "Draft outline",
        "description": None,
        "category": "Work",
        "priority": "medium",
        "status": "pending",
        "due_date": None,
        "created_at": now,
        "updated_at": now,
    }
    data.update(overrides)
    return Concept(**data)


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def identity(fake_db):
    return IdentityService(fake_db, JWT_SECRET, hasher=PasswordHasher(iterations=1_000))


@pytest.fixture
def concept_table(fake_db):
    return ConceptTable(fake_db, ChangeFeed())


@pytest.fixture
def client(monkeypatch, identity, concept_table):
    monkeypatch.setattr(settings, "PUBLIC_API_KEY", API_KEY)
    app.dependency_overrides[deps.get_identity_service] = lambda: identity
    app.dependency_overrides[deps.get_concept_table] = lambda: concept_table
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    response = client.post(
        "/api/v1/auth/sign-up",
        json={"email": "ada@example.com", "password": "hunter22", "full_name": "Ada Lovelace"},
        headers={"apikey": API_KEY},
    )
    assert response.status_code == 201
    token = response.json()["access_token"]
    return {"apikey": API_KEY, "Authorization": f"Bearer {token}"}


class FakeGateway:
    """In-memory stand-in for dashboard.gateway.GatewayClient."""

    def __init__(self, concepts=()):
        self.snapshot = list(concepts)
        self.list_calls = 0
        self.fail_list = False
        self.fail_writes = False
        self.feed_error = None
        self.feed = asyncio.Queue()
        self.updates = []
        self.created = []
        self.deleted = []
        self.chat_calls = []
        self.chat_chunks = ["Hello", " there"]
        self.chat_error = None
        self.user = None

    async def get_user(self):
        return self.user

    async def sign_out(self):
        self.user = None

    async def list_concepts(self):
        self.list_calls += 1
        if self.fail_list:
            raise GatewayError("gateway down", 503)
        return list(self.snapshot)

    async def create_concept(self, payload):
        if self.fail_writes:
            raise GatewayError("insert failed", 500)
        concept = make_concept(**payload.model_dump())
        self.created.append(concept)
        self.snapshot.insert(0, concept)
        return concept

    async def update_concept(self, concept_id, update):
        if self.fail_writes:
            raise GatewayError("update failed", 500)
        self.updates.append((concept_id, update.changes()))
        for index, concept in enumerate(self.snapshot):
            if concept.id == concept_id:
                self.snapshot[index] = concept.model_copy(update=update.model_dump(exclude_unset=True))
                return self.snapshot[index]
        raise GatewayError("Concept not found", 404)

    async def delete_concept(self, concept_id):
        if self.fail_writes:
            raise GatewayError("delete failed", 500)
        self.deleted.append(concept_id)
        self.snapshot = [c for c in self.snapshot if c.id != concept_id]

    async def subscribe_changes(self):
        if self.feed_error is not None:
            raise self.feed_error
        while True:
            notification = await self.feed.get()
            if notification is None:
                return
            yield notification

    async def stream_chat(self, message, concepts=(), user_id=None):
        self.chat_calls.append({"message": message, "concepts": list(concepts), "user_id": user_id})
        for chunk in self.chat_chunks:
            yield chunk
        if self.chat_error is not None:
            raise self.chat_error


@pytest.fixture
def gateway():
    return FakeGateway()
