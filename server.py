import os
import logging
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from classes.channel import CHANNEL_RECEIVER_ID
from classes.entities import QueueMessage
from classes.GCConnection_hlpr import GCConnection

load_dotenv()

logger = logging.getLogger("vicebot_server")

QUEUE_RECEIVER_ID = os.getenv("QUEUE_RECEIVER_ID", "vicebot-worker")
APP_KEY_PREFIX = "vicebot::"

app = FastAPI()

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for dev
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_session_factory = None


def get_session_factory():
    global _session_factory
    if _session_factory is None:
        _session_factory = GCConnection().build_db_session_factory(create_schema=True)
    return _session_factory


class ChannelMessage(BaseModel):
    chat_id: str
    text: str = ""
    is_group: bool = False
    message_id: Optional[str] = None
    sender_id: Optional[str] = None
    quoted_message_id: Optional[str] = None
    quoted_body: Optional[str] = None
    media_ids: List[str] = Field(default_factory=list)


class Request(BaseModel):
    type: str
    chat_id: str
    payload: Optional[Dict[str, Any]] = None


def _enqueue(factory, chat_id: str, msg_type: str, payload: Dict[str, Any]) -> str:
    session = factory()
    try:
        row = QueueMessage(
            sender_id=f"{APP_KEY_PREFIX}{chat_id}",
            receiver_id=QUEUE_RECEIVER_ID,
            type=msg_type,
            payload=payload,
        )
        session.add(row)
        session.commit()
        return row.id
    finally:
        session.close()


def _drain(factory, receiver_id: str, limit: int, msg_type: Optional[str] = None) -> List[Dict[str, Any]]:
    session = factory()
    try:
        query = session.query(QueueMessage).filter(QueueMessage.receiver_id == receiver_id)
        if msg_type:
            query = query.filter(QueueMessage.type == msg_type)
        rows = (
            query.order_by(QueueMessage.created_at.asc())
            .with_for_update(skip_locked=True)
            .limit(limit)
            .all()
        )
        items = [{"id": r.id, "type": r.type, "payload": r.payload} for r in rows]
        for r in rows:
            session.delete(r)
        session.commit()
        return items
    finally:
        session.close()


@app.post("/messages")
async def post_message(msg: ChannelMessage, factory=Depends(get_session_factory)):
    """Inbound message from the channel adapter."""
    try:
        job_id = _enqueue(factory, msg.chat_id, "inbound_message", msg.model_dump())
        logger.debug(f"Queued inbound message {job_id} for {msg.chat_id}")
        return {"status": "queued", "id": job_id}
    except Exception as e:
        logger.info(f"Could not queue inbound message: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/requests")
async def post_request(req: Request, factory=Depends(get_session_factory)):
    """Operational requests: get_session, reset_session, get_ticket, list_open_for_group."""
    if req.type == "inbound_message":
        raise HTTPException(status_code=400, detail="Use POST /messages for inbound messages")
    try:
        payload = dict(req.payload or {})
        payload.setdefault("chat_id", req.chat_id)
        job_id = _enqueue(factory, req.chat_id, req.type, payload)
        return {"status": "queued", "id": job_id}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/outbox")
async def get_outbox(limit: int = 50, factory=Depends(get_session_factory)):
    """Texts the channel adapter must deliver; each row is returned once."""
    try:
        items = _drain(factory, CHANNEL_RECEIVER_ID, limit, msg_type="send_text")
        return [dict(item["payload"], id=item["id"]) for item in items]
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/events")
async def get_events(chat_id: str, limit: int = 50, factory=Depends(get_session_factory)):
    """Worker responses and emitted events addressed to one chat."""
    try:
        return _drain(factory, f"{APP_KEY_PREFIX}{chat_id}", limit)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
