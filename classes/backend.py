# classes/backend.py

import os
import json
import traceback
import logging
import contextvars

from dotenv import load_dotenv

from classes.base_utils import BaseUtils
from classes.cache_service import GLOBAL_DISPATCH_CACHE, GLOBAL_MENU_CACHE
from classes.channel import InboundMessage, QueueChannel
from classes.classification_oracle import ClassificationOracle
from classes.dispatch_gate import DispatchGate
from classes.draft_state_machine import DraftStateMachine
from classes.errors import TicketNotFoundError
from classes.feedback_router import FeedbackRouter
from classes.GCConnection_hlpr import GCConnection
from classes.history_cache import GLOBAL_HISTORY_CACHE
from classes.intake_engine import IntakeEngine
from classes.place_catalog import PlaceCatalog
from classes.session_store import SessionStore
from classes.status_engine import StatusLifecycleEngine
from classes.ticket_repository import SqlTicketRepository

load_dotenv()
ORACLE_ENABLED = os.getenv("ORACLE_ENABLED", "1") not in ("0", "false", "False")

logger = logging.getLogger("vicebot_backend")

_job_ctx_var = contextvars.ContextVar("job_ctx", default=None)

GLOBAL_SESSION_STORE = SessionStore()


class Backend(BaseUtils):
    """
    Wires the intake pipeline once per process. Sessions, caches and the
    place catalog are process-wide; every queue job goes through
    _process_request_data.
    """

    def __init__(
        self,
        session_factory=None,
        *,
        oracle=None,
        channel=None,
        catalog=None,
        sessions=None,
        history=None,
        dispatch_cache=None,
        menu_cache=None,
        status_engine=None,
    ):
        self.SessionFactory = session_factory or GCConnection().build_db_session_factory()

        if oracle is None and ORACLE_ENABLED:
            try:
                oracle = ClassificationOracle()
            except Exception as e:
                logger.info(f"Warning: Could not initialize the classification oracle: {e}. Using local heuristics only.")
                oracle = None

        self.oracle = oracle
        self.sessions = sessions or GLOBAL_SESSION_STORE
        self.history = history or GLOBAL_HISTORY_CACHE
        self.dispatch_cache = dispatch_cache or GLOBAL_DISPATCH_CACHE
        self.menu_cache = menu_cache or GLOBAL_MENU_CACHE
        self.catalog = catalog or PlaceCatalog()
        self.channel = channel or QueueChannel(self.SessionFactory)
        self.repository = SqlTicketRepository(self.SessionFactory)

        self.gate = DispatchGate(self.repository, self.channel, self.dispatch_cache, self.catalog)
        self.machine = DraftStateMachine(self.catalog, self.gate, oracle=self.oracle, history=self.history)
        self.feedback = FeedbackRouter(
            self.repository,
            self.channel,
            status_engine or StatusLifecycleEngine(),
            self.dispatch_cache,
            self.menu_cache,
            oracle=self.oracle,
            history_cache=self.history,
        )
        self.engine = IntakeEngine(
            self.sessions,
            self.machine,
            self.feedback,
            self.repository,
            self.channel,
            history=self.history,
        )

    # Optional: call this from a handler to push an event back to the sender.
    #   self.emit("ticket_created", {"folio": "MAN-001"})
    def emit(self, msg_type: str, payload: dict) -> None:
        ctx = _job_ctx_var.get()
        if ctx is None:
            logger.debug(f"emit({msg_type}) outside of a queue job; skipped")
            return
        ctx.emit(msg_type, payload)

    def sweep(self) -> None:
        removed = self.history.sweep_expired()
        removed += self.dispatch_cache.sweep_expired()
        removed += self.menu_cache.sweep_expired()
        if removed:
            logger.debug(f"Cache sweep: removed {removed} expired entries")

    def _process_request_data(self, request_data: dict) -> dict:
        """
        Core request handling logic.
        Takes a parsed JSON dict and returns the response_data dict.
        """
        try:
            request_type = request_data.get("type")
            payload = request_data.get("payload") or {}
            sender_id = str(request_data.get("sender_id"))

            try:
                preview = json.dumps(request_data, indent=2, ensure_ascii=False)
            except (TypeError, ValueError):
                preview = str(request_data)

            logger.debug(f"process_request request {preview}")

            response_data = {
                "status": "success",
                "message": "",
                "sender_id": sender_id,
            }

            if request_type == "inbound_message":
                response_data["data"] = self.handle_inbound_message(payload)

            elif request_type == "get_session":
                response_data["data"] = self.handle_get_session(payload)

            elif request_type == "reset_session":
                self.sessions.reset(self._required(payload, "chat_id"))
                response_data["message"] = "Session reset."

            elif request_type == "get_ticket":
                response_data["data"] = self.handle_get_ticket(payload)

            elif request_type == "list_open_for_group":
                response_data["data"] = {
                    "tickets": self.repository.list_open_for_group(self._required(payload, "group_id"))
                }

            else:
                response_data["status"] = "error"
                response_data["message"] = f"Unknown request type: {request_type}"

            try:
                preview = json.dumps(response_data, indent=2, ensure_ascii=False, default=str)
            except (TypeError, ValueError):
                preview = str(response_data)

            logger.debug(f"response {preview}")

            return response_data

        except Exception as e:
            logger.info(f"Error while processing request data: {e}")
            traceback.print_exc()
            raise

    # -----------------------
    # Handlers
    # -----------------------

    @staticmethod
    def _required(payload: dict, key: str) -> str:
        value = (payload or {}).get(key)
        if not value:
            raise ValueError(f"Missing '{key}' in payload")
        return str(value)

    def handle_inbound_message(self, payload: dict) -> dict:
        msg = InboundMessage.from_payload(payload)
        result = self.engine.handle_message(msg)
        for ticket in result.get("tickets", []):
            self.emit("ticket_created", dict(ticket, chat_id=msg.chat_id))
        return result

    def handle_get_session(self, payload: dict) -> dict:
        session = self.sessions.peek(self._required(payload, "chat_id"))
        return {"session": session.to_dict() if session else None}

    def handle_get_ticket(self, payload: dict) -> dict:
        folio = self._required(payload, "folio")
        try:
            ticket = self.repository.get_ticket_by_folio(folio)
        except TicketNotFoundError:
            return {"ticket": None, "events": []}
        return {"ticket": ticket, "events": self.repository.list_events(ticket["id"])}
