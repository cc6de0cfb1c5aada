"""
Repository classes for the sales assistant data access layer.

Each repository encapsulates the queries for a specific model.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import (
    ChatSession, ChatMessage, ScoringEvent, Notification,
    Category, Product, ComplianceStandard,
)

logger = logging.getLogger(__name__)


class SessionRepository:
    """Data access for chat sessions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> ChatSession:
        chat_session = ChatSession(**kwargs)
        self.session.add(chat_session)
        await self.session.flush()
        return chat_session

    async def get_by_id(self, session_id: str) -> Optional[ChatSession]:
        result = await self.session.execute(
            select(ChatSession).where(ChatSession.id == session_id)
        )
        return result.scalar_one_or_none()

    async def find_active_for_visitor(
        self, visitor_id: str, since: datetime
    ) -> Optional[ChatSession]:
        result = await self.session.execute(
            select(ChatSession)
            .where(
                ChatSession.visitor_id == visitor_id,
                ChatSession.is_active.is_(True),
                ChatSession.last_message_at >= since,
            )
            .order_by(ChatSession.last_message_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def touch(self, session_id: str, at: Optional[datetime] = None):
        await self.session.execute(
            update(ChatSession)
            .where(ChatSession.id == session_id)
            .values(last_message_at=at or datetime.utcnow())
        )

    async def set_customer(self, session_id: str, customer_id: str):
        await self.session.execute(
            update(ChatSession)
            .where(ChatSession.id == session_id)
            .values(customer_id=customer_id)
        )

    async def update_context(self, session_id: str, context: Dict[str, Any]):
        await self.session.execute(
            update(ChatSession)
            .where(ChatSession.id == session_id)
            .values(context_json=context)
        )

    async def add_points(self, session_id: str, points: int) -> int:
        """Atomically add points and return the new running score."""
        await self.session.execute(
            update(ChatSession)
            .where(ChatSession.id == session_id)
            .values(lead_score=ChatSession.lead_score + points)
        )
        result = await self.session.execute(
            select(ChatSession.lead_score).where(ChatSession.id == session_id)
        )
        return int(result.scalar_one())

    async def set_tier(self, session_id: str, tier: str):
        await self.session.execute(
            update(ChatSession)
            .where(ChatSession.id == session_id)
            .values(lead_tier=tier)
        )

    async def close(self, session_id: str, converted_to: Optional[str] = None) -> bool:
        values: Dict[str, Any] = {"is_active": False}
        if converted_to:
            values["converted_to"] = converted_to
            values["converted_at"] = datetime.utcnow()
        result = await self.session.execute(
            update(ChatSession).where(ChatSession.id == session_id).values(**values)
        )
        return result.rowcount > 0

    async def list_hot(self, limit: int = 10) -> List[ChatSession]:
        result = await self.session.execute(
            select(ChatSession)
            .where(ChatSession.lead_tier == "HOT", ChatSession.is_active.is_(True))
            .order_by(ChatSession.lead_score.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def tier_distribution(self, since: datetime) -> Dict[str, int]:
        result = await self.session.execute(
            select(ChatSession.lead_tier, func.count(ChatSession.id))
            .where(ChatSession.started_at >= since)
            .group_by(ChatSession.lead_tier)
        )
        return {tier: count for tier, count in result.all()}

    async def count(self, since: Optional[datetime] = None, converted_only: bool = False) -> int:
        q = select(func.count(ChatSession.id))
        if since:
            q = q.where(ChatSession.started_at >= since)
        if converted_only:
            q = q.where(ChatSession.converted_to.is_not(None))
        result = await self.session.execute(q)
        return result.scalar_one()


class MessageRepository:
    """Data access for chat messages."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(
        self,
        session_id: str,
        role: str,
        content: str,
        intent: Optional[str] = None,
        confidence: Optional[float] = None,
        entities: Optional[Dict] = None,
        response_time_ms: Optional[int] = None,
        used_fallback: bool = False,
    ) -> ChatMessage:
        msg = ChatMessage(
            session_id=session_id,
            role=role,
            content=content,
            intent=intent,
            confidence=confidence,
            entities_json=entities,
            response_time_ms=response_time_ms,
            used_fallback=used_fallback,
        )
        self.session.add(msg)
        await self.session.flush()
        return msg

    async def recent(
        self, session_id: str, limit: int = 10, role: Optional[str] = None
    ) -> List[ChatMessage]:
        """Most recent messages first."""
        q = select(ChatMessage).where(ChatMessage.session_id == session_id)
        if role:
            q = q.where(ChatMessage.role == role)
        q = q.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def count(self, session_id: str) -> int:
        result = await self.session.execute(
            select(func.count(ChatMessage.id)).where(ChatMessage.session_id == session_id)
        )
        return result.scalar_one()


class ScoringEventRepository:
    """Data access for the scoring audit trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(
        self,
        session_id: str,
        event_type: str,
        points: int,
        metadata: Optional[Dict] = None,
    ) -> ScoringEvent:
        event = ScoringEvent(
            session_id=session_id,
            event_type=event_type,
            points=points,
            metadata_json=metadata or {},
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def recent(self, session_id: str, limit: int = 10) -> List[ScoringEvent]:
        result = await self.session.execute(
            select(ScoringEvent)
            .where(ScoringEvent.session_id == session_id)
            .order_by(ScoringEvent.created_at.desc(), ScoringEvent.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def total_points(self, session_id: str) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(ScoringEvent.points), 0))
            .where(ScoringEvent.session_id == session_id)
        )
        return int(result.scalar_one())

    async def frequency(self, since: datetime) -> List[Tuple[str, int, int]]:
        """(event_type, count, total_points) ordered by count descending."""
        result = await self.session.execute(
            select(
                ScoringEvent.event_type,
                func.count(ScoringEvent.id),
                func.coalesce(func.sum(ScoringEvent.points), 0),
            )
            .where(ScoringEvent.created_at >= since)
            .group_by(ScoringEvent.event_type)
            .order_by(func.count(ScoringEvent.id).desc())
        )
        return [(row[0], int(row[1]), int(row[2])) for row in result.all()]


class NotificationRepository:
    """Data access for outbound notifications."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Notification:
        notif = Notification(**kwargs)
        self.session.add(notif)
        await self.session.flush()
        return notif

    async def list_for_session(self, session_id: str) -> List[Notification]:
        result = await self.session.execute(
            select(Notification)
            .where(Notification.session_id == session_id)
            .order_by(Notification.created_at.desc())
        )
        return list(result.scalars().all())


class CatalogRepository:
    """Read access to products and categories."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def active_products(self) -> List[Product]:
        result = await self.session.execute(
            select(Product)
            .options(selectinload(Product.category))
            .where(Product.is_active.is_(True))
        )
        return list(result.scalars().all())

    async def active_categories(self) -> List[Category]:
        result = await self.session.execute(
            select(Category)
            .where(Category.is_active.is_(True))
            .order_by(Category.sort_order.asc(), Category.name.asc())
        )
        return list(result.scalars().all())

    async def count_products(self) -> int:
        result = await self.session.execute(select(func.count(Product.id)))
        return result.scalar_one()

    async def add_category(self, **kwargs) -> Category:
        category = Category(**kwargs)
        self.session.add(category)
        await self.session.flush()
        return category

    async def add_product(self, **kwargs) -> Product:
        product = Product(**kwargs)
        self.session.add(product)
        await self.session.flush()
        return product


class ComplianceStandardRepository:
    """Read access to compliance standards."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_active(self) -> List[ComplianceStandard]:
        result = await self.session.execute(
            select(ComplianceStandard)
            .where(ComplianceStandard.is_active.is_(True))
            .order_by(ComplianceStandard.code.asc())
        )
        return list(result.scalars().all())

    async def add(self, **kwargs) -> ComplianceStandard:
        standard = ComplianceStandard(**kwargs)
        self.session.add(standard)
        await self.session.flush()
        return standard
