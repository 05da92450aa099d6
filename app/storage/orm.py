"""
ORM tables for users, sessions, anonymous identities, topics, tags and
knowledge points.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    or_,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo on read; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Base(DeclarativeBase):
    pass


def visible_to(model, owner_id: Optional[str]):
    """Rows owned by ``owner_id`` plus shared rows with no owner."""
    return or_(model.user_id == owner_id, model.user_id.is_(None))


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100))
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500))
    anonymous_id: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Public view of the user (never includes the password hash)."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "avatar_url": self.avatar_url,
        }


class UserSession(Base):
    __tablename__ = "user_sessions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class AnonymousUser(Base):
    __tablename__ = "anonymous_users"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_active: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class LearningTopic(Base):
    __tablename__ = "learning_topics"
    __table_args__ = (UniqueConstraint("name", "user_id", name="learning_topics_name_user_id_key"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    ai_summary: Mapped[Optional[str]] = mapped_column(Text)
    total_learning_minutes: Mapped[int] = mapped_column(Integer, default=0)
    first_study_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_study_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    user_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    is_demo: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "ai_summary": self.ai_summary,
            "total_learning_minutes": self.total_learning_minutes or 0,
            "first_study_at": _iso(self.first_study_at),
            "last_study_at": _iso(self.last_study_at),
            "user_id": self.user_id,
            "is_demo": bool(self.is_demo),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("name", "user_id", name="tags_name_user_id_key"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(20), default="#3B82F6")
    user_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    is_demo: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "user_id": self.user_id,
            "usage_count": self.usage_count or 0,
            "is_demo": bool(self.is_demo),
            "created_at": _iso(self.created_at),
        }


class KnowledgePoint(Base):
    __tablename__ = "knowledge_points"
    __table_args__ = (CheckConstraint("importance >= 1 AND importance <= 5", name="knowledge_points_importance_check"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[Optional[str]] = mapped_column(String(200))
    content: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text)
    tag_ids: Mapped[List[str]] = mapped_column(JSON, default=list)
    keywords: Mapped[List[str]] = mapped_column(JSON, default=list)
    importance: Mapped[int] = mapped_column(Integer, default=3)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    learning_topic_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("learning_topics.id", ondelete="SET NULL"), index=True
    )
    related_ids: Mapped[List[str]] = mapped_column(JSON, default=list)
    attachments: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    processing_status: Mapped[str] = mapped_column(String(50), default="completed")
    study_duration_minutes: Mapped[int] = mapped_column(Integer, default=0)
    user_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    is_demo: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self, tags: Optional[List[Tag]] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "summary": self.summary,
            "tag_ids": list(self.tag_ids or []),
            "tags": [t.to_dict() for t in tags] if tags is not None else [],
            "keywords": list(self.keywords or []),
            "importance": self.importance,
            "confidence": self.confidence or 0.0,
            "learning_topic_id": self.learning_topic_id,
            "related_ids": list(self.related_ids or []),
            "attachments": list(self.attachments or []),
            "processing_status": self.processing_status,
            "study_duration_minutes": self.study_duration_minutes or 0,
            "user_id": self.user_id,
            "is_demo": bool(self.is_demo),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
