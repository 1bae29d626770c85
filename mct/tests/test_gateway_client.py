import json

import httpx
import pytest

from conftest import make_concept
from mct.app.models.concept import ChangeNotification, ConceptCreate, ConceptSummary, ConceptUpdate, Status
from mct.dashboard import session
from mct.dashboard.config import DashboardSettings
from mct.dashboard.gateway import GatewayClient, GatewayError, iter_sse
from mct.dashboard.store import ConceptStore

USER = {"id": "user-1", "email": "ada@example.com", "full_name": "Ada Lovelace", "created_at": "2026-10-01T09:00:00Z"}
AUTH_SESSION = {
    "access_token": "token-123",
    "token_type": "bearer",
    "expires_at": "2026-10-08T09:00:00Z",
    "user": USER,
}


def make_client(handler) -> GatewayClient:
    return GatewayClient("http://gateway.test", "anon-key", transport=httpx.MockTransport(handler))


async def _lines(*lines):
    for line in lines:
        yield line


@pytest.mark.asyncio
async def test_iter_sse_skips_pings_and_joins_data():
    frames = [
        frame async for frame in iter_sse(_lines(
            ": ping",
            "",
            "event: change",
            "data: {\"a\":",
            "data: 1}",
            "",
            "data: plain",
        ))
    ]
    assert frames == [("change", "{\"a\":\n1}"), ("message", "plain")]


@pytest.mark.asyncio
async def test_sign_in_stores_token_and_sends_it():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        if request.url.path == "/api/v1/auth/sign-in":
            return httpx.Response(200, json=AUTH_SESSION)
        return httpx.Response(200, json=[make_concept(owner="user-1").model_dump(mode="json")])

    client = make_client(handler)
    auth = await client.sign_in("ada@example.com", "hunter22")
    concepts = await client.list_concepts()
    await client.aclose()

    assert auth.user.id == "user-1"
    assert client.access_token == "token-123"
    assert len(concepts) == 1
    assert seen[0].headers["apikey"] == "anon-key"
    assert "authorization" not in seen[0].headers
    assert seen[1].headers["authorization"] == "Bearer token-123"
    assert json.loads(seen[0].content) == {"email": "ada@example.com", "password": "hunter22"}


@pytest.mark.asyncio
async def test_error_body_becomes_gateway_error():
    client = make_client(lambda request: httpx.Response(401, json={"error": "Invalid login credentials"}))
    with pytest.raises(GatewayError) as excinfo:
        await client.sign_in("ada@example.com", "wrong")
    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Invalid login credentials"
    assert client.access_token is None


@pytest.mark.asyncio
async def test_transport_failure_has_no_status():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(GatewayError) as excinfo:
        await client.list_concepts()
    assert excinfo.value.status_code is None


@pytest.mark.asyncio
async def test_get_user_without_valid_session_is_none():
    client = make_client(lambda request: httpx.Response(401, json={"error": "Session has ended"}))
    assert await client.get_user() is None

    client.access_token = "stale"
    assert await client.get_user() is None


@pytest.mark.asyncio
async def test_get_user_propagates_other_failures():
    client = make_client(lambda request: httpx.Response(503, json={"error": "down"}))
    client.access_token = "token-123"
    with pytest.raises(GatewayError):
        await client.get_user()


@pytest.mark.asyncio
async def test_writes_send_json_payloads():
    concept = make_concept(owner="user-1", title="Ship it", status="in_progress")
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        if request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(200, json=concept.model_dump(mode="json"))

    client = make_client(handler)
    client.access_token = "token-123"
    await client.create_concept(ConceptCreate(title="Ship it", category="Business", priority="urgent"))
    updated = await client.update_concept(concept.id, ConceptUpdate(status=Status.IN_PROGRESS))
    await client.delete_concept(concept.id)

    assert json.loads(seen[0].content)["category"] == "Business"
    assert json.loads(seen[1].content) == {"status": "in_progress"}
    assert seen[1].url.path == f"/api/v1/concepts/{concept.id}"
    assert seen[2].method == "DELETE"
    assert updated.status == Status.IN_PROGRESS


@pytest.mark.asyncio
async def test_subscribe_changes_parses_feed():
    concept = make_concept(owner="user-1")
    insert = ChangeNotification(event="INSERT", record_id=concept.id, record=concept)
    body = (
        ": ping\n\n"
        f"event: change\ndata: {insert.model_dump_json()}\n\n"
        "event: other\ndata: {}\n\n"
        "event: change\ndata: {\"event\": \"NOPE\"}\n\n"
        f"event: change\ndata: {json.dumps({'event': 'DELETE', 'record_id': concept.id})}\n\n"
    )
    client = make_client(lambda request: httpx.Response(200, text=body, headers={"content-type": "text/event-stream"}))

    received = [notification async for notification in client.subscribe_changes()]

    assert [n.event for n in received] == ["INSERT", "DELETE"]
    assert received[0].record.title == "Draft outline"


@pytest.mark.asyncio
async def test_subscribe_changes_rejected():
    client = make_client(lambda request: httpx.Response(401, json={"error": "Authorization header required"}))
    with pytest.raises(GatewayError, match="Authorization header required"):
        async for _ in client.subscribe_changes():
            pass


@pytest.mark.asyncio
async def test_stream_chat_yields_text_and_sends_context():
    seen = []

    def handler(request: httpx.Request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, text="Focus on the urgent one.")

    client = make_client(handler)
    summaries = [ConceptSummary(title="Ship it", status="pending", priority="urgent", category="Business")]
    text = "".join([chunk async for chunk in client.stream_chat("What next?", summaries, "user-1")])

    assert text == "Focus on the urgent one."
    assert seen[0]["message"] == "What next?"
    assert seen[0]["userId"] == "user-1"
    assert seen[0]["concepts"][0]["title"] == "Ship it"


@pytest.mark.asyncio
async def test_stream_chat_failure():
    client = make_client(lambda request: httpx.Response(500, json={"error": "Failed to process message"}))
    with pytest.raises(GatewayError) as excinfo:
        async for _ in client.stream_chat("hi"):
            pass
    assert excinfo.value.status_code == 500
    assert excinfo.value.message == "Failed to process message"


@pytest.mark.asyncio
async def test_session_client_is_a_singleton():
    settings = DashboardSettings(GATEWAY_URL="http://gateway.test", GATEWAY_API_KEY="anon", _env_file=None)
    first = session.get_gateway_client(settings)
    assert session.get_gateway_client() is first

    await session.close_gateway_client()
    assert session.get_gateway_client(settings) is not first
    await session.close_gateway_client()


@pytest.mark.asyncio
async def test_non_json_success_body_is_a_gateway_error():
    client = make_client(lambda request: httpx.Response(200, text="<html>proxy login</html>"))
    client.access_token = "token-123"
    with pytest.raises(GatewayError) as excinfo:
        await client.list_concepts()
    assert excinfo.value.status_code == 200


@pytest.mark.asyncio
async def test_store_survives_non_json_snapshot():
    client = make_client(lambda request: httpx.Response(200, text="<html>proxy login</html>"))
    cached = [make_concept(title="Cached")]
    store = ConceptStore(client, initial=cached)

    assert await store.reconcile() is False
    assert store.concepts == cached
    await client.aclose()
