# classes/channel.py
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from classes.entities import QueueMessage

logger = logging.getLogger("vicebot_backend")

CHANNEL_RECEIVER_ID = "channel"
BOT_SENDER_ID = "vicebot"


@dataclass
class InboundMessage:
    chat_id: str
    text: str = ""
    has_media: bool = False
    quoted_message_id: Optional[str] = None
    quoted_body: Optional[str] = None
    is_group: bool = False
    message_id: Optional[str] = None
    sender_id: Optional[str] = None
    media_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "InboundMessage":
        """Accepts the adapter's camelCase keys as well as snake_case."""
        def pick(*keys, default=None):
            for k in keys:
                if k in payload and payload[k] is not None:
                    return payload[k]
            return default

        chat_id = pick("chat_id", "chatId")
        if not chat_id:
            raise ValueError("Inbound message without chat_id")
        media_ids = list(pick("media_ids", "mediaIds", default=[]) or [])
        return cls(
            chat_id=str(chat_id),
            text=str(pick("text", "body", default="") or ""),
            has_media=bool(pick("has_media", "hasMedia", default=False)) or bool(media_ids),
            quoted_message_id=pick("quoted_message_id", "quotedMessageId"),
            quoted_body=pick("quoted_body", "quotedBody"),
            is_group=bool(pick("is_group", "isGroup", default=False)),
            message_id=pick("message_id", "messageId", "id"),
            sender_id=pick("sender_id", "senderId", "author"),
            media_ids=[str(m) for m in media_ids],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chat_id": self.chat_id,
            "text": self.text,
            "has_media": self.has_media,
            "quoted_message_id": self.quoted_message_id,
            "quoted_body": self.quoted_body,
            "is_group": self.is_group,
            "message_id": self.message_id,
            "sender_id": self.sender_id,
            "media_ids": list(self.media_ids),
        }


class Channel(ABC):
    @abstractmethod
    def send_text(self, chat_id: str, text: str) -> None:
        ...

    def get_quoted_body(self, message: InboundMessage) -> Optional[str]:
        return message.quoted_body


class QueueChannel(Channel):
    """
    Outbound texts become `send_text` rows in queue_messages; the channel
    adapter drains them through GET /outbox.
    """

    def __init__(self, session_factory: Callable[[], Session], receiver_id: str = CHANNEL_RECEIVER_ID):
        self.SessionFactory = session_factory
        self.receiver_id = receiver_id

    def send_text(self, chat_id: str, text: str) -> None:
        session = self.SessionFactory()
        try:
            session.add(
                QueueMessage(
                    sender_id=BOT_SENDER_ID,
                    receiver_id=self.receiver_id,
                    type="send_text",
                    payload={"chat_id": chat_id, "text": text},
                )
            )
            session.commit()
        finally:
            session.close()
        logger.debug(f"send_text -> {chat_id}: {text[:120]}")
