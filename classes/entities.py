# classes/entities.py
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

from typing import TypeAlias
UUID: TypeAlias = str
Base = declarative_base()

# JSONB on Postgres, plain JSON elsewhere (the test suite runs on SQLite).
JsonColumn = JSON().with_variant(JSONB(), "postgresql")

TICKET_STATUSES = ("open", "in_progress", "awaiting_confirmation", "done", "canceled")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )


class QueueMessage(Base):
    __tablename__ = "queue_messages"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    sender_id = Column(String, nullable=False)      # chat id or "vicebot"
    receiver_id = Column(String, nullable=False)    # worker id or "channel"
    type = Column(String, nullable=False)
    payload = Column(JsonColumn, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_queue_messages_receiver_created", "receiver_id", "created_at"),
    )


class Ticket(Base, TimestampMixin):
    __tablename__ = "ticket"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    folio: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="open")

    description: Mapped[str] = mapped_column(Text, nullable=False)
    original_text: Mapped[str | None] = mapped_column(Text)
    place: Mapped[str] = mapped_column(String(255), nullable=False)
    place_freeform: Mapped[bool] = mapped_column(default=False, nullable=False)
    area_code: Mapped[str] = mapped_column(String(8), nullable=False)
    group_id: Mapped[str | None] = mapped_column(String(128))
    requester_chat_id: Mapped[str | None] = mapped_column(String(128))

    attachments: Mapped[list] = mapped_column(JsonColumn, nullable=False, default=list)

    events: Mapped[list["TicketEvent"]] = relationship(
        back_populates="ticket",
        order_by="TicketEvent.created_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_ticket_group_status", "group_id", "status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "folio": self.folio,
            "status": self.status,
            "description": self.description,
            "place": self.place,
            "area_code": self.area_code,
            "group_id": self.group_id,
            "requester_chat_id": self.requester_chat_id,
            "attachments": list(self.attachments or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class TicketEvent(Base):
    """Append-only. Rows are never updated or deleted by the application."""
    __tablename__ = "ticket_event"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    ticket_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("ticket.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JsonColumn, nullable=False, default=dict)
    source_message_id: Mapped[str | None] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    ticket: Mapped[Ticket] = relationship(back_populates="events")

    __table_args__ = (
        Index("ix_ticket_event_ticket_id", "ticket_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "type": self.type,
            "payload": dict(self.payload or {}),
            "source_message_id": self.source_message_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class FolioSequence(Base):
    __tablename__ = "folio_sequence"

    prefix: Mapped[str] = mapped_column(String(16), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
