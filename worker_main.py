# worker_main.py
"""
Queue worker of the Vicebot intake pipeline.

The HTTP surface writes QueueMessage rows addressed to QUEUE_RECEIVER_ID.
sender_id carries the reply address, "<app key><delim><chat id>", e.g.
"vicebot::5215512345678@c.us". Every claimed row gets exactly one
"<type>_response" row back at that address; handlers may emit extra events
(ticket_created) before it.

A chat never has two jobs running. Rows of a busy chat wait in the table,
so each chat is served in arrival order while different chats run in
parallel up to CONCURRENT_INSTANCES.
"""

import os
import asyncio
import logging
import traceback
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

from classes.entities import QueueMessage
from classes.backend import Backend, _job_ctx_var
from classes.GCConnection_hlpr import GCConnection


logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n",
)
logger = logging.getLogger("vicebot_worker")

QUEUE_RECEIVER_ID = os.getenv("QUEUE_RECEIVER_ID")
CONCURRENT_INSTANCES = int(os.getenv("CONCURRENT_INSTANCES", "4"))
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "1.0"))


@dataclass
class JobContext:
    host: "AppHost"
    job: Dict[str, Any]
    reply_to: str
    chat_id: str

    def emit(self, msg_type: str, payload: Optional[Dict[str, Any]] = None) -> None:
        body = dict(payload or {})
        body.setdefault("correlation_id", self.job.get("id"))
        body.setdefault("chat_id", self.chat_id)
        self.host.post(self.reply_to, msg_type, body)


class AppHost:
    """Hands each job to the app registered for its sender prefix and posts the reply."""

    def __init__(self, session_factory, receiver_id: str, apps: List[Any]):
        self.SessionFactory = session_factory
        self.receiver_id = str(receiver_id)
        self.routes: Dict[str, Any] = {f"{app.key}{app.key_delim}": app for app in apps}

    def sweep(self) -> None:
        for app in self.routes.values():
            app.sweep()

    def post(self, to: str, msg_type: str, payload: Dict[str, Any]) -> None:
        session = self.SessionFactory()
        try:
            session.add(QueueMessage(sender_id=self.receiver_id, receiver_id=str(to), type=msg_type, payload=payload))
            session.commit()
        finally:
            session.close()

    def route(self, sender_id: str) -> Tuple[Any, str]:
        # longest prefix wins
        for prefix in sorted(self.routes, key=len, reverse=True):
            if sender_id.startswith(prefix):
                return self.routes[prefix], sender_id[len(prefix):]
        raise LookupError(f"No app registered for sender_id='{sender_id}'. Known prefixes: {sorted(self.routes)}")

    def process_queue_job(self, job: Dict[str, Any]) -> None:
        sender_id = str(job.get("sender_id") or "")
        msg_type = job.get("type") or "unknown"

        try:
            app, chat_id = self.route(sender_id)
            reply = app.handle(job, JobContext(self, job, sender_id, chat_id))
        except Exception as e:
            logger.info("Job %s (%s) failed: %s", job.get("id"), msg_type, e)
            traceback.print_exc()
            reply = {"status": "error", "message": str(e)}

        self.post(sender_id, f"{msg_type}_response", reply)


class ChatApp:
    """Every request type of Backend._process_request_data, for senders "vicebot::<chat id>"."""

    key = "vicebot"
    key_delim = "::"

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    def sweep(self) -> None:
        self.backend.sweep()

    def handle(self, job: Dict[str, Any], ctx: JobContext) -> Dict[str, Any]:
        token = _job_ctx_var.set(ctx)
        try:
            return self.backend._process_request_data(dict(job, sender_id=ctx.chat_id))
        finally:
            _job_ctx_var.reset(token)


def job_chat_key(sender_id: str, payload: Optional[Dict[str, Any]]) -> str:
    """Ordering key of a job: the chat it talks about, else its sender."""
    payload = payload or {}
    chat_id = payload.get("chat_id") or payload.get("chatId")
    return str(chat_id) if chat_id else str(sender_id)


class AsyncGuard:
    def __init__(
        self,
        host: AppHost,
        receiver_id: str,
        poll_interval: float = 1.0,
        max_concurrent: int = 4,
        session_factory=None,
    ):
        self.host = host
        self.receiver_id = str(receiver_id)
        self.poll_interval = poll_interval
        self.max_concurrent = max_concurrent
        self._in_flight: Dict[str, str] = {}  # job id -> chat key
        self.SessionFactory = session_factory or GCConnection().build_db_session_factory()

    async def _run_job(self, job: Dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self.host.process_queue_job, job)
        finally:
            self._in_flight.pop(job["id"], None)

    def claim_jobs(self, available_slots: int) -> List[Dict[str, Any]]:
        """
        Oldest rows first, one per chat, none for a chat already running.
        Claimed rows are deleted in the same transaction; the rest stay.
        """
        busy = set(self._in_flight.values())
        claimed: List[Dict[str, Any]] = []

        session = self.SessionFactory()
        try:
            rows = (
                session.query(QueueMessage)
                .filter(QueueMessage.receiver_id == self.receiver_id)
                .order_by(QueueMessage.created_at.asc())
                .with_for_update(skip_locked=True)
                .limit(available_slots * 4)
                .all()
            )
            for row in rows:
                key = job_chat_key(row.sender_id, row.payload)
                if key in busy:
                    continue
                busy.add(key)
                claimed.append({
                    "id": row.id,
                    "sender_id": row.sender_id,
                    "receiver_id": row.receiver_id,
                    "type": row.type,
                    "payload": row.payload,
                    "chat_key": key,
                })
                session.delete(row)
                if len(claimed) == available_slots:
                    break
            session.commit()
        finally:
            session.close()
        return claimed

    async def run_once(self) -> int:
        self.host.sweep()

        free = self.max_concurrent - len(self._in_flight)
        if free <= 0:
            return 0

        jobs = self.claim_jobs(free)
        for job in jobs:
            self._in_flight[job["id"]] = job["chat_key"]
            asyncio.create_task(self._run_job(job))
        return len(jobs)

    async def run(self) -> None:
        logger.info("AsyncGuard polling receiver_id=%s (max_concurrent=%d)", self.receiver_id, self.max_concurrent)
        while True:
            await self.run_once()
            await asyncio.sleep(self.poll_interval)


def main() -> None:
    if not QUEUE_RECEIVER_ID:
        raise RuntimeError("QUEUE_RECEIVER_ID env var is required")

    session_factory = GCConnection().build_db_session_factory(create_schema=True)
    host = AppHost(session_factory, receiver_id=QUEUE_RECEIVER_ID, apps=[ChatApp(Backend(session_factory))])
    guard = AsyncGuard(
        host,
        QUEUE_RECEIVER_ID,
        poll_interval=POLL_INTERVAL_SECONDS,
        max_concurrent=CONCURRENT_INSTANCES,
        session_factory=session_factory,
    )
    asyncio.run(guard.run())


if __name__ == "__main__":
    main()
