"""Pytest configuration and fixtures."""

import os

# No LLM clients during tests; every oracle is injected explicitly.
os.environ.setdefault("ORACLE_ENABLED", "0")

from typing import List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from classes.cache_service import DispatchCache, TtlCache
from classes.channel import Channel, InboundMessage
from classes.dispatch_gate import DispatchGate
from classes.draft_models import Session
from classes.draft_state_machine import DraftStateMachine
from classes.entities import Base
from classes.feedback_router import FeedbackRouter
from classes.history_cache import HistoryCache
from classes.intake_engine import IntakeEngine
from classes.place_catalog import PlaceCatalog
from classes.session_store import SessionStore
from classes.status_engine import StatusLifecycleEngine
from classes.ticket_repository import SqlTicketRepository


class RecordingChannel(Channel):
    """Keeps every outbound text instead of queueing it."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.quoted: dict = {}

    def send_text(self, chat_id: str, text: str) -> None:
        self.sent.append((chat_id, text))

    def get_quoted_body(self, message: InboundMessage) -> Optional[str]:
        return message.quoted_body or self.quoted.get(message.quoted_message_id)

    def texts_to(self, chat_id: str) -> List[str]:
        return [text for cid, text in self.sent if cid == chat_id]


class Conversation:
    """One requester chat driven straight through the state machine."""

    def __init__(self, machine: DraftStateMachine, chat_id: str = "5215500000001@c.us"):
        self.machine = machine
        self.session = Session(chat_id=chat_id)

    def say(self, text: str, media_ids=None):
        return self.machine.handle(self.session, text, media_ids)

    @property
    def mode(self):
        return self.session.mode


@pytest.fixture
def session_factory():
    """SQLite in-memory engine shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def repository(session_factory) -> SqlTicketRepository:
    return SqlTicketRepository(session_factory)


@pytest.fixture
def dispatch_cache() -> DispatchCache:
    return DispatchCache(TtlCache(3600, name="test_dispatch").init())


@pytest.fixture
def menu_cache() -> TtlCache:
    return TtlCache(900, name="test_menus").init()


@pytest.fixture
def history() -> HistoryCache:
    return HistoryCache(ttl_seconds=3600, max_tokens=4000)


@pytest.fixture
def catalog() -> PlaceCatalog:
    return PlaceCatalog()


@pytest.fixture
def gate(repository, channel, dispatch_cache, catalog) -> DispatchGate:
    return DispatchGate(repository, channel, dispatch_cache, catalog)


@pytest.fixture
def machine(catalog, gate, history) -> DraftStateMachine:
    return DraftStateMachine(catalog, gate, oracle=None, history=history)


@pytest.fixture
def chat(machine) -> Conversation:
    return Conversation(machine)


@pytest.fixture
def conversation():
    """Factory for a chat on a custom machine."""
    return Conversation


@pytest.fixture
def feedback(repository, channel, dispatch_cache, menu_cache, history) -> FeedbackRouter:
    return FeedbackRouter(
        repository,
        channel,
        StatusLifecycleEngine(),
        dispatch_cache,
        menu_cache,
        oracle=None,
        history_cache=history,
    )


@pytest.fixture
def engine(machine, feedback, repository, channel, history) -> IntakeEngine:
    return IntakeEngine(SessionStore(), machine, feedback, repository, channel, history=history)


@pytest.fixture
def dispatchable_draft():
    """Factory for complete drafts."""
    from classes.draft_models import Draft

    def create(**kwargs):
        defaults = {
            "description": "El aire no funciona",
            "original_text": "el aire no funciona",
            "place": "Habitación 1205",
            "area_code": "man",
        }
        return Draft(**{**defaults, **kwargs})

    return create
