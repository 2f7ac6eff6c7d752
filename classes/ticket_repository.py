# classes/ticket_repository.py
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classes.draft_models import Draft
from classes.entities import FolioSequence, Ticket, TicketEvent
from classes.errors import DispatchError, TicketNotFoundError
from classes.settings import area_group_id, folio_prefix

logger = logging.getLogger("vicebot_backend")

OPEN_STATUSES = ("open", "in_progress", "awaiting_confirmation")


class TicketRepository(ABC):
    """The one persistence interface the intake core talks to."""

    @abstractmethod
    def create_ticket(self, draft: Draft, *, requester_chat_id: str | None = None) -> Dict[str, str]:
        """Persist a dispatchable draft. Returns {"id", "folio"}."""

    @abstractmethod
    def get_ticket_by_folio(self, folio: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def get_ticket(self, ticket_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def update_status(self, ticket_id: str, status: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def append_event(self, ticket_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def list_open_for_group(self, group_id: str) -> List[Dict[str, Any]]:
        ...


class SqlTicketRepository(TicketRepository):
    def __init__(self, session_factory: Callable[[], Session]):
        self.SessionFactory = session_factory

    # -----------------------
    # Writes
    # -----------------------

    def _next_folio_unlocked(self, session: Session, prefix: str) -> str:
        seq = (
            session.query(FolioSequence)
            .filter(FolioSequence.prefix == prefix)
            .with_for_update()
            .one_or_none()
        )
        if seq is None:
            seq = FolioSequence(prefix=prefix, last_value=0)
            session.add(seq)
        seq.last_value = int(seq.last_value or 0) + 1
        return f"{prefix}-{seq.last_value:03d}"

    def create_ticket(self, draft: Draft, *, requester_chat_id: str | None = None) -> Dict[str, str]:
        session = self.SessionFactory()
        try:
            folio = self._next_folio_unlocked(session, folio_prefix(draft.area_code))
            ticket = Ticket(
                folio=folio,
                status="open",
                description=draft.full_description(),
                original_text=draft.original_text or None,
                place=draft.place,
                place_freeform=draft.place_freeform,
                area_code=draft.area_code,
                group_id=area_group_id(draft.area_code),
                requester_chat_id=requester_chat_id,
                attachments=list(draft.pending_media),
            )
            session.add(ticket)
            session.flush()
            session.add(TicketEvent(
                ticket_id=ticket.id,
                type="created",
                payload={"draft": draft.to_dict()},
            ))
            session.commit()
            logger.info(f"Ticket {folio} created for group {ticket.group_id}")
            return {"id": ticket.id, "folio": folio}
        except SQLAlchemyError as e:
            session.rollback()
            raise DispatchError(f"Could not persist ticket: {e}") from e
        finally:
            session.close()

    def update_status(self, ticket_id: str, status: str) -> Dict[str, Any]:
        session = self.SessionFactory()
        try:
            ticket = session.get(Ticket, ticket_id)
            if ticket is None:
                raise TicketNotFoundError(ticket_id)
            ticket.status = status
            ticket.updated_at = datetime.now(timezone.utc)
            session.commit()
            return ticket.to_dict()
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    def append_event(self, ticket_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
        session = self.SessionFactory()
        try:
            if session.get(Ticket, ticket_id) is None:
                raise TicketNotFoundError(ticket_id)
            row = TicketEvent(
                ticket_id=ticket_id,
                type=str(event.get("type") or "note"),
                payload=dict(event.get("payload") or {}),
                source_message_id=event.get("source_message_id"),
            )
            session.add(row)
            session.commit()
            return row.to_dict()
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    # -----------------------
    # Reads
    # -----------------------

    def get_ticket_by_folio(self, folio: str) -> Dict[str, Any]:
        session = self.SessionFactory()
        try:
            ticket = (
                session.query(Ticket)
                .filter(Ticket.folio == (folio or "").strip().upper())
                .one_or_none()
            )
            if ticket is None:
                raise TicketNotFoundError(folio)
            return ticket.to_dict()
        finally:
            session.close()

    def get_ticket(self, ticket_id: str) -> Dict[str, Any]:
        session = self.SessionFactory()
        try:
            ticket = session.get(Ticket, ticket_id)
            if ticket is None:
                raise TicketNotFoundError(ticket_id)
            return ticket.to_dict()
        finally:
            session.close()

    def list_events(self, ticket_id: str) -> List[Dict[str, Any]]:
        session = self.SessionFactory()
        try:
            rows = (
                session.query(TicketEvent)
                .filter(TicketEvent.ticket_id == ticket_id)
                .order_by(TicketEvent.created_at.asc())
                .all()
            )
            return [r.to_dict() for r in rows]
        finally:
            session.close()

    def list_open_for_group(self, group_id: str) -> List[Dict[str, Any]]:
        session = self.SessionFactory()
        try:
            rows = (
                session.query(Ticket)
                .filter(Ticket.group_id == group_id)
                .filter(Ticket.status.in_(OPEN_STATUSES))
                .order_by(Ticket.created_at.desc())
                .all()
            )
            return [r.to_dict() for r in rows]
        finally:
            session.close()
