"""
Hot lead notifications for the sales assistant.

Scoring enqueues notifications without waiting on delivery; a background
worker drains the queue into one or more sinks (database record, webhook).
Delivery failures are logged and counted, never retried inline.
"""

import asyncio
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx

from database.repositories import NotificationRepository
from database.session import Database

logger = logging.getLogger(__name__)


@dataclass
class HotLeadNotification:
    """Payload sent to sales when a session turns HOT."""

    session_id: str
    visitor_id: str
    score: int
    tier: str
    trigger_event: str
    suggested_action: str
    customer_id: Optional[str] = None
    recent_events: List[Dict[str, Any]] = field(default_factory=list)
    recent_messages: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @property
    def subject(self) -> str:
        return f"HOT LEAD: session {self.session_id[:8]} scored {self.score}"


@runtime_checkable
class NotificationSink(Protocol):
    """Out-of-band delivery target for notifications."""

    name: str

    async def send(self, notification: HotLeadNotification) -> None:
        ...


class DatabaseNotificationSink:
    """Records each notification as a row for the sales dashboard and mailer."""

    name = "database"

    def __init__(self, database: Database, recipient: Optional[str] = None):
        self.database = database
        self.recipient = recipient

    async def send(self, notification: HotLeadNotification) -> None:
        async with self.database.session() as db:
            await NotificationRepository(db).create(
                session_id=notification.session_id,
                channel="email",
                notification_type="hot_lead",
                recipient=self.recipient,
                subject=notification.subject,
                payload_json=notification.to_dict(),
                status="pending",
            )


class WebhookNotificationSink:
    """Posts notifications to a CRM or chat-ops webhook."""

    name = "webhook"

    def __init__(self, webhook_url: str, api_key: Optional[str] = None, timeout: float = 10.0):
        self.webhook_url = webhook_url
        self.api_key = api_key
        self.timeout = timeout

    async def send(self, notification: HotLeadNotification) -> None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key

        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.webhook_url,
                json={"type": "hot_lead", **notification.to_dict()},
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()


class NotificationDispatcher:
    """
    Outbound notification queue.

    ``enqueue`` never blocks; ``run`` (started via ``start``) or ``drain``
    deliver queued notifications to every sink.
    """

    def __init__(self, sinks: Optional[List[NotificationSink]] = None, max_queue: int = 1000):
        self.sinks = list(sinks or [])
        self._queue: "asyncio.Queue[HotLeadNotification]" = asyncio.Queue(maxsize=max_queue)
        self._worker: Optional[asyncio.Task] = None
        self.enqueued = 0
        self.delivered = 0
        self.failed = 0
        self.dropped = 0

    def enqueue(self, notification: HotLeadNotification) -> bool:
        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.error(f"Notification queue full, dropped hot lead for session {notification.session_id}")
            return False
        self.enqueued += 1
        return True

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self):
        if not self.is_running:
            self._worker = asyncio.create_task(self.run())
            logger.info(f"Notification dispatcher started with sinks: {[s.name for s in self.sinks]}")

    async def stop(self):
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        await self.drain()

    async def run(self):
        while True:
            notification = await self._queue.get()
            try:
                await self._deliver(notification)
            finally:
                self._queue.task_done()

    async def drain(self) -> int:
        """Deliver everything currently queued. Returns how many were processed."""
        processed = 0
        while not self._queue.empty():
            notification = self._queue.get_nowait()
            try:
                await self._deliver(notification)
            finally:
                self._queue.task_done()
            processed += 1
        return processed

    async def _deliver(self, notification: HotLeadNotification):
        for sink in self.sinks:
            try:
                await sink.send(notification)
                self.delivered += 1
                logger.info(f"Hot lead for session {notification.session_id} delivered via {sink.name}")
            except Exception as e:
                self.failed += 1
                logger.error(f"Notification sink {sink.name} failed for session {notification.session_id}: {e}")

    def stats(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "sinks": [s.name for s in self.sinks],
            "pending": self.pending,
            "enqueued": self.enqueued,
            "delivered": self.delivered,
            "failed": self.failed,
            "dropped": self.dropped,
        }
