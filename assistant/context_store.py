"""
Session and context store for the sales assistant.

Keeps a bounded in-memory working set of visitor sessions in front of the
database. Derived context (last product, last location, recent intents) is
rebuilt from recent messages whenever a session is loaded, so it survives
process restarts without being stored twice.
"""

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from database.models import ChatMessage, ChatSession
from database.repositories import MessageRepository, SessionRepository
from database.session import PERSISTENCE_ERRORS, Database
from nlu.intent_classifier import ConversationContext

logger = logging.getLogger(__name__)

TEMP_SESSION_PREFIX = "temp_"


class MessageRole(str, Enum):
    VISITOR = "visitor"
    ASSISTANT = "assistant"


@dataclass
class Session:
    """A visitor's conversation as seen by the assistant."""

    id: str
    visitor_id: str
    customer_id: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    last_activity: datetime = field(default_factory=datetime.utcnow)
    context: Dict[str, Any] = field(default_factory=dict)
    lead_score: int = 0
    lead_tier: str = "COLD"
    is_active: bool = True
    converted_to: Optional[str] = None
    recent_intents: List[str] = field(default_factory=list)
    last_product_id: Optional[str] = None
    last_location: Optional[str] = None
    message_count: int = 0
    is_temporary: bool = False

    @property
    def preferences(self) -> Dict[str, Any]:
        return self.context.get("preferences", {})

    def conversation_context(self) -> ConversationContext:
        return ConversationContext(
            last_product_id=self.last_product_id,
            last_location=self.last_location,
            recent_intents=list(self.recent_intents),
            preferences=dict(self.preferences),
        )

    def record_visitor_turn(self, intent: Optional[str], entities: Optional[Dict[str, Any]], limit: int):
        if intent:
            self.recent_intents.insert(0, intent)
            del self.recent_intents[limit:]
        if entities:
            if entities.get("product_id"):
                self.last_product_id = entities["product_id"]
            if entities.get("location"):
                self.last_location = entities["location"]

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.id,
            "visitor_id": self.visitor_id,
            "customer_id": self.customer_id,
            "lead_score": self.lead_score,
            "lead_tier": self.lead_tier,
            "message_count": self.message_count,
            "has_history": self.message_count > 0,
            "recent_intents": self.recent_intents[:5],
            "is_returning": self.message_count > 5,
            "last_product_id": self.last_product_id,
            "last_location": self.last_location,
            "is_temporary": self.is_temporary,
        }


class ContextStore:
    """
    Per-visitor session store with a bounded working-set cache.

    Sessions are reused while active and inside the inactivity window.
    When the database is unreachable a temporary, unpersisted session is
    returned instead (``Session.is_temporary``).
    """

    def __init__(
        self,
        database: Database,
        inactivity_window: timedelta = timedelta(days=7),
        history_limit: int = 10,
        max_cached: int = 10000,
        lock_stripes: int = 64,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.database = database
        self.inactivity_window = inactivity_window
        self.history_limit = history_limit
        self.max_cached = max_cached
        self.clock = clock

        self._cache: "OrderedDict[str, Session]" = OrderedDict()
        self._session_index: Dict[str, str] = {}  # session id -> visitor id
        self._cache_lock = threading.Lock()
        self._stripes = [asyncio.Lock() for _ in range(lock_stripes)]
        self._hits = 0
        self._misses = 0
        self._temporary_created = 0

    # ── Sessions ──────────────────────────────────────

    async def get_or_create(self, visitor_id: str, customer_id: Optional[str] = None) -> Session:
        """Return the visitor's reusable session, loading or creating it as needed."""
        async with self._lock_for(visitor_id):
            cached = self._cache_get(visitor_id)
            if cached is not None:
                if self._is_reusable(cached):
                    self._hits += 1
                    if customer_id and cached.customer_id != customer_id:
                        await self._link_customer(cached, customer_id)
                    return cached
                self._cache_remove(visitor_id)

            self._misses += 1
            try:
                session = await self._load_or_create(visitor_id, customer_id)
            except PERSISTENCE_ERRORS as e:
                logger.warning(f"Session store unavailable for visitor {visitor_id}, using temporary session: {e}")
                return self._temporary_session(visitor_id, customer_id)

            self._cache_put(session)
            return session

    async def _load_or_create(self, visitor_id: str, customer_id: Optional[str]) -> Session:
        now = self.clock()
        async with self.database.session() as db:
            sessions = SessionRepository(db)
            row = await sessions.find_active_for_visitor(visitor_id, since=now - self.inactivity_window)

            if row is None:
                row = await sessions.create(
                    visitor_id=visitor_id,
                    customer_id=customer_id,
                    started_at=now,
                    last_message_at=now,
                    context_json={},
                    lead_score=0,
                    lead_tier="COLD",
                    is_active=True,
                )
                logger.info(f"Created session {row.id} for visitor {visitor_id}")
                return self._from_row(row, [], 0)

            if customer_id and row.customer_id != customer_id:
                row.customer_id = customer_id

            messages = MessageRepository(db)
            recent = await messages.recent(row.id, limit=self.history_limit)
            count = await messages.count(row.id)
            return self._from_row(row, recent, count)

    def _from_row(self, row: ChatSession, recent: List[ChatMessage], message_count: int) -> Session:
        session = Session(
            id=row.id,
            visitor_id=row.visitor_id,
            customer_id=row.customer_id,
            started_at=row.started_at,
            last_activity=row.last_message_at or row.started_at,
            context=dict(row.context_json or {}),
            lead_score=row.lead_score or 0,
            lead_tier=row.lead_tier or "COLD",
            is_active=bool(row.is_active),
            converted_to=row.converted_to,
            message_count=message_count,
        )

        # Most recent first; first value found wins
        for msg in recent:
            if msg.role != MessageRole.VISITOR.value:
                continue
            if msg.intent:
                session.recent_intents.append(msg.intent)
            entities = msg.entities_json or {}
            if session.last_product_id is None and entities.get("product_id"):
                session.last_product_id = entities["product_id"]
            if session.last_location is None and entities.get("location"):
                session.last_location = entities["location"]
        return session

    def _temporary_session(self, visitor_id: str, customer_id: Optional[str]) -> Session:
        self._temporary_created += 1
        now = self.clock()
        return Session(
            id=f"{TEMP_SESSION_PREFIX}{visitor_id}_{int(time.time() * 1000)}",
            visitor_id=visitor_id,
            customer_id=customer_id,
            started_at=now,
            last_activity=now,
            is_temporary=True,
        )

    async def _link_customer(self, session: Session, customer_id: str):
        session.customer_id = customer_id
        try:
            async with self.database.session() as db:
                await SessionRepository(db).set_customer(session.id, customer_id)
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Failed to link customer {customer_id} to session {session.id}: {e}")

    def _is_reusable(self, session: Session) -> bool:
        return session.is_active and self.clock() - session.last_activity <= self.inactivity_window

    # ── Messages ──────────────────────────────────────

    async def add_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        intent: Optional[str] = None,
        confidence: Optional[float] = None,
        entities: Optional[Dict[str, Any]] = None,
        response_time_ms: Optional[int] = None,
        used_fallback: bool = False,
    ) -> bool:
        """
        Append a message to a session.

        Returns:
            True if the message was persisted. Writes for temporary sessions
            and writes that fail are dropped.
        """
        now = self.clock()
        cached = self._cached_by_id(session_id)
        if cached is not None:
            cached.last_activity = now
            cached.message_count += 1
            if role == MessageRole.VISITOR:
                cached.record_visitor_turn(intent, entities, self.history_limit)

        if session_id.startswith(TEMP_SESSION_PREFIX):
            return False

        try:
            async with self.database.session() as db:
                await MessageRepository(db).add(
                    session_id=session_id,
                    role=role.value,
                    content=content,
                    intent=intent,
                    confidence=confidence,
                    entities=entities,
                    response_time_ms=response_time_ms,
                    used_fallback=used_fallback,
                )
                await SessionRepository(db).touch(session_id, at=now)
            return True
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Dropped {role.value} message for session {session_id}: {e}")
            return False

    # ── Context ───────────────────────────────────────

    async def update_context(self, session_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow-merge a patch into the session's context map."""
        cached = self._cached_by_id(session_id)
        if cached is not None:
            cached.context = {**cached.context, **patch}
            merged = cached.context
        else:
            merged = dict(patch)

        if session_id.startswith(TEMP_SESSION_PREFIX):
            return merged

        try:
            async with self.database.session() as db:
                sessions = SessionRepository(db)
                row = await sessions.get_by_id(session_id)
                if row is None:
                    logger.warning(f"update_context: session {session_id} not found")
                    return merged
                merged = {**(row.context_json or {}), **patch}
                await sessions.update_context(session_id, merged)
            if cached is not None:
                cached.context = dict(merged)
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Dropped context update for session {session_id}: {e}")
        return merged

    async def remember(self, session_id: str, key: str, value: Any):
        """Store a visitor preference on the session."""
        preferences = dict(await self._preferences(session_id))
        preferences[key] = value
        await self.update_context(session_id, {"preferences": preferences})

    async def recall(self, session_id: str, key: str, default: Any = None) -> Any:
        return (await self._preferences(session_id)).get(key, default)

    async def _preferences(self, session_id: str) -> Dict[str, Any]:
        cached = self._cached_by_id(session_id)
        if cached is not None or session_id.startswith(TEMP_SESSION_PREFIX):
            return cached.preferences if cached is not None else {}
        try:
            async with self.database.session() as db:
                row = await SessionRepository(db).get_by_id(session_id)
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Could not read preferences for session {session_id}: {e}")
            return {}
        if row is None:
            return {}
        return (row.context_json or {}).get("preferences", {})

    async def close(self, session_id: str, outcome: Optional[str] = None) -> bool:
        """Deactivate a session, optionally recording what it converted to."""
        cached = self._cached_by_id(session_id)
        if cached is not None:
            cached.is_active = False
            cached.converted_to = outcome
            self._cache_remove(cached.visitor_id)

        if session_id.startswith(TEMP_SESSION_PREFIX):
            return False

        try:
            async with self.database.session() as db:
                closed = await SessionRepository(db).close(session_id, converted_to=outcome)
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Failed to close session {session_id}: {e}")
            return False
        if closed:
            logger.info(f"Session {session_id} closed (outcome={outcome})")
        return closed

    # ── Working set ───────────────────────────────────

    def _lock_for(self, visitor_id: str) -> asyncio.Lock:
        return self._stripes[hash(visitor_id) % len(self._stripes)]

    def _cache_get(self, visitor_id: str) -> Optional[Session]:
        with self._cache_lock:
            session = self._cache.get(visitor_id)
            if session is not None:
                self._cache.move_to_end(visitor_id)
            return session

    def _cache_put(self, session: Session):
        with self._cache_lock:
            self._cache[session.visitor_id] = session
            self._cache.move_to_end(session.visitor_id)
            self._session_index[session.id] = session.visitor_id
            while len(self._cache) > self.max_cached:
                _, evicted = self._cache.popitem(last=False)
                self._session_index.pop(evicted.id, None)

    def _cache_remove(self, visitor_id: str):
        with self._cache_lock:
            session = self._cache.pop(visitor_id, None)
            if session is not None:
                self._session_index.pop(session.id, None)

    def _cached_by_id(self, session_id: str) -> Optional[Session]:
        with self._cache_lock:
            visitor_id = self._session_index.get(session_id)
            return self._cache.get(visitor_id) if visitor_id else None

    def evict_expired(self) -> int:
        """Drop cache entries idle longer than the inactivity window."""
        now = self.clock()
        with self._cache_lock:
            expired = [
                visitor_id for visitor_id, s in self._cache.items()
                if now - s.last_activity > self.inactivity_window
            ]
            for visitor_id in expired:
                session = self._cache.pop(visitor_id)
                self._session_index.pop(session.id, None)
        if expired:
            logger.info(f"Evicted {len(expired)} expired sessions from cache")
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        with self._cache_lock:
            cached = len(self._cache)
        return {
            "cached_sessions": cached,
            "max_cached": self.max_cached,
            "cache_hits": self._hits,
            "cache_misses": self._misses,
            "temporary_sessions": self._temporary_created,
            "inactivity_window_days": self.inactivity_window.days,
        }
