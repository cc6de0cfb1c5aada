"""
SQLAlchemy ORM models for the sales assistant.

Persistent entities: chat sessions, messages, scoring events, notifications,
and the product / category / compliance-standard catalogs.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text, ForeignKey,
    JSON, Index,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    visitor_id = Column(String(64), nullable=False, index=True)
    customer_id = Column(String(36), nullable=True, index=True)
    started_at = Column(DateTime, default=datetime.utcnow)
    last_message_at = Column(DateTime, default=datetime.utcnow)
    context_json = Column(JSON, default=dict)
    lead_score = Column(Integer, default=0, nullable=False)
    lead_tier = Column(String(10), default="COLD", nullable=False)  # HOT, WARM, COOL, COLD
    is_active = Column(Boolean, default=True)
    converted_to = Column(String(30), nullable=True)  # quote, order, contact
    converted_at = Column(DateTime, nullable=True)

    messages = relationship("ChatMessage", back_populates="session", cascade="all, delete-orphan")
    scoring_events = relationship("ScoringEvent", back_populates="session", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_session_visitor_active", "visitor_id", "is_active", "last_message_at"),
        Index("ix_session_tier_score", "lead_tier", "lead_score"),
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(10), nullable=False)  # visitor, assistant
    content = Column(Text, nullable=False)
    intent = Column(String(30), nullable=True)
    confidence = Column(Float, nullable=True)
    entities_json = Column(JSON, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    used_fallback = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    session = relationship("ChatSession", back_populates="messages")


class ScoringEvent(Base):
    __tablename__ = "scoring_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    points = Column(Integer, nullable=False, default=0)
    metadata_json = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    session = relationship("ChatSession", back_populates="scoring_events")

    __table_args__ = (
        Index("ix_scoring_event_type_created", "event_type", "created_at"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    session_id = Column(String(36), nullable=True, index=True)
    channel = Column(String(20), nullable=False)  # email, webhook
    notification_type = Column(String(30), nullable=False)  # hot_lead
    recipient = Column(String(255), nullable=True)
    subject = Column(String(255), nullable=True)
    payload_json = Column(JSON, default=dict)
    status = Column(String(20), default="pending")  # pending, sent, failed
    created_at = Column(DateTime, default=datetime.utcnow)
    sent_at = Column(DateTime, nullable=True)


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False)
    slug = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)

    products = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    sku = Column(String(64), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    unit = Column(String(20), default="each")
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True, index=True)
    specifications_json = Column(JSON, default=dict)
    bulk_discounts_json = Column(JSON, nullable=True)  # [{"min_quantity": 100, "discount": 0.1}]
    weight_kg = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True)
    is_featured = Column(Boolean, default=False)
    track_stock = Column(Boolean, default=True)
    stock_qty = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    category = relationship("Category", back_populates="products")


class ComplianceStandard(Base):
    __tablename__ = "compliance_standards"

    id = Column(String(36), primary_key=True, default=_uuid)
    code = Column(String(50), unique=True, nullable=False)  # SANS-1700
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    issuing_body = Column(String(100), nullable=True)
    industries_json = Column(JSON, default=list)
    requirements_json = Column(JSON, default=list)
    is_active = Column(Boolean, default=True)
