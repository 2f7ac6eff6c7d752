"""Tests for the queue worker and the backend request handling."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from classes import messages
from classes.backend import Backend
from classes.channel import CHANNEL_RECEIVER_ID
from classes.entities import QueueMessage
from classes.session_store import SessionStore
from worker_main import AppHost, AsyncGuard, ChatApp, job_chat_key

WORKER_ID = "vicebot-worker"


def _queue(factory, sender_id, msg_type, payload, created_at=None):
    session = factory()
    try:
        row = QueueMessage(
            sender_id=sender_id,
            receiver_id=WORKER_ID,
            type=msg_type,
            payload=payload,
            created_at=created_at or datetime.now(timezone.utc),
        )
        session.add(row)
        session.commit()
        return row.id
    finally:
        session.close()


def _rows_for(factory, receiver_id):
    session = factory()
    try:
        rows = (
            session.query(QueueMessage)
            .filter(QueueMessage.receiver_id == receiver_id)
            .order_by(QueueMessage.created_at.asc())
            .all()
        )
        return [{"type": r.type, "payload": r.payload, "sender_id": r.sender_id} for r in rows]
    finally:
        session.close()


@pytest.fixture
def backend(session_factory, catalog, history, dispatch_cache, menu_cache):
    return Backend(
        session_factory,
        catalog=catalog,
        sessions=SessionStore(),
        history=history,
        dispatch_cache=dispatch_cache,
        menu_cache=menu_cache,
    )


@pytest.fixture
def host(session_factory, backend):
    return AppHost(session_factory, receiver_id=WORKER_ID, apps=[ChatApp(backend)])


class TestBackend:
    """_process_request_data with local heuristics only."""

    def test_inbound_message_then_session(self, backend):
        response = backend._process_request_data({
            "type": "inbound_message",
            "sender_id": "chat-a",
            "payload": {"chatId": "chat-a", "body": "el aire no funciona"},
        })

        assert response["status"] == "success"
        assert response["data"]["mode"] == "ask_place"

        session = backend._process_request_data({"type": "get_session", "payload": {"chat_id": "chat-a"}})

        assert session["data"]["session"]["draft"]["description"] == "El aire no funciona"

    def test_reset_session(self, backend):
        backend._process_request_data({"type": "inbound_message", "payload": {"chat_id": "chat-a", "text": "el aire no funciona"}})

        backend._process_request_data({"type": "reset_session", "payload": {"chat_id": "chat-a"}})

        assert backend.sessions.peek("chat-a").is_bare()

    def test_unknown_session_and_ticket(self, backend):
        assert backend._process_request_data({"type": "get_session", "payload": {"chat_id": "nobody"}})["data"] == {"session": None}
        assert backend._process_request_data({"type": "get_ticket", "payload": {"folio": "MAN-404"}})["data"] == {"ticket": None, "events": []}

    def test_unknown_request_type(self, backend):
        response = backend._process_request_data({"type": "order_pizza", "payload": {}})

        assert response["status"] == "error"
        assert "order_pizza" in response["message"]

    def test_missing_field_raises(self, backend):
        with pytest.raises(ValueError):
            backend._process_request_data({"type": "reset_session", "payload": {}})


class TestAppHost:

    def test_conversation_through_the_queue(self, host, session_factory, backend):
        job = {"sender_id": "vicebot::chat-a", "receiver_id": WORKER_ID, "type": "inbound_message"}

        host.process_queue_job(dict(job, id="j1", payload={"chat_id": "chat-a", "text": "la tv no prende en la 1205"}))
        host.process_queue_job(dict(job, id="j2", payload={"chat_id": "chat-a", "text": "si"}))

        events = _rows_for(session_factory, "vicebot::chat-a")
        assert [e["type"] for e in events] == ["inbound_message_response", "ticket_created", "inbound_message_response"]
        assert events[1]["payload"]["folio"] == "IT-001"
        assert events[1]["payload"]["correlation_id"] == "j2"
        assert events[2]["payload"]["data"]["mode"] == "neutral"

        outbox = _rows_for(session_factory, CHANNEL_RECEIVER_ID)
        assert {r["payload"]["chat_id"] for r in outbox} == {"chat-a", "grp-it"}

    def test_unknown_prefix_gets_error_response(self, host, session_factory):
        host.process_queue_job({"id": "j1", "sender_id": "other::x", "receiver_id": WORKER_ID, "type": "get_session", "payload": {}})

        [response] = _rows_for(session_factory, "other::x")
        assert response["type"] == "get_session_response"
        assert response["payload"]["status"] == "error"

    def test_handler_error_gets_error_response(self, host, session_factory):
        host.process_queue_job({"id": "j1", "sender_id": "vicebot::chat-a", "receiver_id": WORKER_ID, "type": "reset_session", "payload": {}})

        [response] = _rows_for(session_factory, "vicebot::chat-a")
        assert response["payload"] == {"status": "error", "message": "Missing 'chat_id' in payload"}


class TestAsyncGuard:

    def test_chat_key(self):
        assert job_chat_key("vicebot::a", {"chat_id": "b"}) == "b"
        assert job_chat_key("vicebot::a", None) == "vicebot::a"

    def test_one_job_per_chat_in_arrival_order(self, host, session_factory):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        first = _queue(session_factory, "vicebot::a", "inbound_message", {"chat_id": "a", "text": "1"}, start)
        _queue(session_factory, "vicebot::a", "inbound_message", {"chat_id": "a", "text": "2"}, start + timedelta(seconds=1))
        other = _queue(session_factory, "vicebot::b", "inbound_message", {"chat_id": "b", "text": "1"}, start + timedelta(seconds=2))
        guard = AsyncGuard(host, WORKER_ID, max_concurrent=4, session_factory=session_factory)

        jobs = guard.claim_jobs(4)

        assert [j["id"] for j in jobs] == [first, other]
        assert [r["payload"]["text"] for r in _rows_for(session_factory, WORKER_ID)] == ["2"]

    def test_busy_chat_is_skipped(self, host, session_factory):
        _queue(session_factory, "vicebot::a", "inbound_message", {"chat_id": "a", "text": "2"})
        guard = AsyncGuard(host, WORKER_ID, session_factory=session_factory)
        guard._in_flight["running-job"] = "a"

        assert guard.claim_jobs(3) == []
        assert len(_rows_for(session_factory, WORKER_ID)) == 1

    @pytest.mark.asyncio
    async def test_run_once_processes_a_job(self, host, session_factory):
        _queue(session_factory, "vicebot::chat-a", "inbound_message", {"chat_id": "chat-a", "text": "hola"})
        guard = AsyncGuard(host, WORKER_ID, session_factory=session_factory)

        assert await guard.run_once() == 1
        for _ in range(200):
            if not guard._in_flight:
                break
            await asyncio.sleep(0.01)

        assert guard._in_flight == {}
        [response] = _rows_for(session_factory, "vicebot::chat-a")
        assert response["payload"]["status"] == "success"
        [sent] = _rows_for(session_factory, CHANNEL_RECEIVER_ID)
        assert sent["payload"] == {"chat_id": "chat-a", "text": messages.HELP_TEXT}
