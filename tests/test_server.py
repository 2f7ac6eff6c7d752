"""HTTP surface tests with FastAPI TestClient."""

import pytest
from fastapi.testclient import TestClient

from classes.channel import QueueChannel
from classes.entities import QueueMessage
from server import APP_KEY_PREFIX, QUEUE_RECEIVER_ID, app, get_session_factory


@pytest.fixture
def client(session_factory):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


def _queued(factory, receiver_id):
    session = factory()
    try:
        return session.query(QueueMessage).filter(QueueMessage.receiver_id == receiver_id).all()
    finally:
        session.close()


class TestServer:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_inbound_message_is_queued_for_the_worker(self, client, session_factory):
        response = client.post("/messages", json={"chat_id": "chat-a", "text": "no sirve la tv", "media_ids": ["m1"]})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "queued"

        [row] = _queued(session_factory, QUEUE_RECEIVER_ID)
        assert row.id == body["id"]
        assert row.sender_id == f"{APP_KEY_PREFIX}chat-a"
        assert row.type == "inbound_message"
        assert row.payload["media_ids"] == ["m1"]

    def test_requests_reject_inbound_messages(self, client):
        response = client.post("/requests", json={"type": "inbound_message", "chat_id": "chat-a"})

        assert response.status_code == 400

    def test_operational_request_carries_chat_id(self, client, session_factory):
        client.post("/requests", json={"type": "get_session", "chat_id": "chat-a"})

        [row] = _queued(session_factory, QUEUE_RECEIVER_ID)
        assert row.type == "get_session"
        assert row.payload == {"chat_id": "chat-a"}

    def test_outbox_is_drained_once(self, client, session_factory):
        QueueChannel(session_factory).send_text("chat-a", "hola")

        first = client.get("/outbox").json()
        second = client.get("/outbox").json()

        assert len(first) == 1
        assert first[0]["chat_id"] == "chat-a"
        assert first[0]["text"] == "hola"
        assert second == []

    def test_events_for_one_chat(self, client, session_factory):
        session = session_factory()
        session.add(QueueMessage(sender_id=QUEUE_RECEIVER_ID, receiver_id=f"{APP_KEY_PREFIX}chat-a", type="ticket_created", payload={"folio": "MAN-001"}))
        session.add(QueueMessage(sender_id=QUEUE_RECEIVER_ID, receiver_id=f"{APP_KEY_PREFIX}chat-b", type="ticket_created", payload={"folio": "IT-001"}))
        session.commit()
        session.close()

        events = client.get("/events", params={"chat_id": "chat-a"}).json()

        assert [e["payload"]["folio"] for e in events] == ["MAN-001"]
        assert len(_queued(session_factory, f"{APP_KEY_PREFIX}chat-b")) == 1
