"""HTTP tests for the lifecycle routes, backed by the in-memory database."""
import pytest
from httpx import ASGITransport, AsyncClient

from itsm import main
from itsm.infrastructure.database import get_session

from tests.conftest import AGENT_ID, CUSTOMER_ID, QUEUE_ID, REQUESTER_ID, STANDARD_SLA_ID


@pytest.fixture
async def client(engine, session_maker, monkeypatch):
    async def override_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    main.app.dependency_overrides[get_session] = override_session
    monkeypatch.setattr(main, "get_engine", lambda: engine)

    async with AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test") as c:
        yield c

    main.app.dependency_overrides.clear()


async def create_ticket(client, **overrides):
    payload = {
        "title": "Cannot log in to VPN",
        "description": "Token rejected since the password reset",
        "customer_id": CUSTOMER_ID,
        "created_by": REQUESTER_ID,
        "sla_id": STANDARD_SLA_ID,
    }
    payload.update(overrides)
    response = await client.post("/tickets", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["id"]


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"] == "connected"


async def test_response_time_header(client):
    response = await client.get("/")
    assert response.headers["X-Response-Time"].endswith("s")


async def test_create_and_get_ticket(client):
    ticket_id = await create_ticket(client)

    response = await client.get(f"/tickets/{ticket_id}")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "New"
    assert body["priority"] == "P3_Medium"
    assert body["ticket_number"].startswith("TCKT-")
    assert body["customer_name"] == "Acme Corp"
    assert body["created_by_name"] == "Bob Requester"
    assert body["sla_resolution_due"] is not None


async def test_blank_title_is_unprocessable(client):
    response = await client.post("/tickets", json={"title": "   "})
    assert response.status_code == 422


async def test_unknown_ticket_is_404(client):
    response = await client.get("/tickets/987654")
    assert response.status_code == 404
    assert response.json()["error_type"] == "ResourceNotFoundException"


async def test_unknown_reference_is_409(client):
    response = await client.post("/tickets", json={"title": "Orphan", "customer_id": 999})
    assert response.status_code == 409
    assert response.json()["error_type"] == "StaleReferenceException"


async def test_assign_and_history(client):
    ticket_id = await create_ticket(client)

    response = await client.post(
        f"/tickets/{ticket_id}/assign",
        json={"user_id": AGENT_ID, "queue_id": QUEUE_ID, "acting_user_id": AGENT_ID},
    )
    assert response.status_code == 204

    history = (await client.get(f"/tickets/{ticket_id}/history")).json()
    assert [h["change_type"] for h in history] == ["CREATED", "ASSIGNED"]
    assert history[-1]["new_value"] == "Alice Agent"
    assert history[-1]["actor_type"] == "user"

    summary = (await client.get(f"/tickets/{ticket_id}")).json()
    assert summary["status"] == "Open"
    assert summary["queue_name"] == "Service Desk"


async def test_change_status(client):
    ticket_id = await create_ticket(client)
    response = await client.post(
        f"/tickets/{ticket_id}/status", json={"status": "In Progress", "acting_user_id": AGENT_ID}
    )
    assert response.status_code == 204
    assert (await client.get(f"/tickets/{ticket_id}")).json()["status"] == "In Progress"


async def test_unknown_status_is_unprocessable(client):
    ticket_id = await create_ticket(client)
    response = await client.post(f"/tickets/{ticket_id}/status", json={"status": "Pending"})
    assert response.status_code == 422


async def test_detach_sla(client):
    ticket_id = await create_ticket(client)
    response = await client.post(f"/tickets/{ticket_id}/sla", json={"sla_id": None})
    assert response.status_code == 200
    assert response.json()["sla_response_due"] is None
    assert response.json()["sla_resolution_due"] is None


async def test_comments(client):
    ticket_id = await create_ticket(client)
    await client.post(f"/tickets/{ticket_id}/comments", json={"author_id": AGENT_ID, "text": "On it"})
    await client.post(
        f"/tickets/{ticket_id}/comments",
        json={"author_id": AGENT_ID, "text": "Escalate to network team", "internal": True},
    )

    everything = (await client.get(f"/tickets/{ticket_id}/comments")).json()
    public = (await client.get(f"/tickets/{ticket_id}/comments", params={"include_internal": False})).json()

    assert len(everything) == 2
    assert [c["comment_text"] for c in public] == ["On it"]


async def test_attachments(client):
    ticket_id = await create_ticket(client)
    response = await client.post(
        f"/tickets/{ticket_id}/attachments",
        json={"file_name": "vpn.log", "content_type": "text/plain", "file_size": 512},
    )
    assert response.status_code == 201

    [attachment] = (await client.get(f"/tickets/{ticket_id}/attachments")).json()
    assert attachment["file_name"] == "vpn.log"


async def test_list_tickets_filters(client):
    first = await create_ticket(client, title="Printer offline")
    await create_ticket(client, title="Monitor flickers", priority="P1_Critical")

    response = await client.get("/tickets", params={"priority": "P1_Critical"})
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["tickets"][0]["title"] == "Monitor flickers"

    all_tickets = (await client.get("/tickets")).json()
    assert {t["ticket_id"] for t in all_tickets["tickets"]} >= {first}


async def test_sweep_endpoint(client):
    await create_ticket(client)
    response = await client.post("/escalations/sweep")
    assert response.status_code == 200
    assert response.json()["escalated"] == 0
