"""
Knowledge point and tag services.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from app.storage import Database, KnowledgePoint, Tag, visible_to

from .models import COMPLETED, estimate_study_duration, tag_color, unique_names

logger = logging.getLogger(__name__)

# Columns callers may change through update_knowledge_point
UPDATABLE_FIELDS = {
    "title",
    "content",
    "summary",
    "tag_ids",
    "keywords",
    "importance",
    "confidence",
    "learning_topic_id",
    "related_ids",
    "attachments",
    "processing_status",
    "study_duration_minutes",
}
LIST_FIELDS = {"tag_ids", "keywords", "related_ids", "attachments"}


class TagService:
    """Tags are unique per (name, owner) and coloured on creation."""

    def __init__(self, database: Database):
        self.database = database

    def create_tag(self, name: str, owner_id: Optional[str], color: Optional[str] = None,
                   is_demo: bool = False) -> Dict[str, Any]:
        """Create a tag, or return the existing one with the same name."""
        name = (name or "").strip()
        if not name:
            raise ValueError("标签名称不能为空")
        existing = self._find(name, owner_id)
        if existing:
            return existing
        try:
            with self.database.session_scope() as session:
                if color is None:
                    count = session.scalar(
                        select(func.count()).select_from(Tag).where(Tag.user_id == owner_id)
                    ) or 0
                    color = tag_color(count)
                tag = Tag(name=name, color=color, user_id=owner_id, usage_count=0, is_demo=is_demo)
                session.add(tag)
                session.flush()
                return tag.to_dict()
        except IntegrityError:
            # Lost a race with a concurrent insert
            return self._find(name, owner_id)

    def _find(self, name: str, owner_id: Optional[str]) -> Optional[Dict[str, Any]]:
        with self.database.session_scope() as session:
            owner_filter = Tag.user_id.is_(None) if owner_id is None else Tag.user_id == owner_id
            tag = session.scalar(select(Tag).where(Tag.name == name, owner_filter))
            return tag.to_dict() if tag else None

    def create_or_get_tags(self, names: Iterable[str], owner_id: Optional[str]) -> List[Dict[str, Any]]:
        return [self.create_tag(name, owner_id) for name in unique_names(names)]

    def list_tags(self, owner_id: Optional[str]) -> List[Dict[str, Any]]:
        with self.database.session_scope() as session:
            tags = session.scalars(
                select(Tag)
                .where(visible_to(Tag, owner_id))
                .order_by(Tag.usage_count.desc(), Tag.created_at.desc())
            )
            return [t.to_dict() for t in tags]

    def get_tags_by_ids(self, tag_ids: Iterable[str]) -> List[Dict[str, Any]]:
        """Tags in the order of ``tag_ids``; unknown ids are skipped."""
        tag_ids = [t for t in tag_ids or [] if t]
        if not tag_ids:
            return []
        with self.database.session_scope() as session:
            tags = {t.id: t.to_dict() for t in session.scalars(select(Tag).where(Tag.id.in_(tag_ids)))}
        return [tags[t] for t in tag_ids if t in tags]

    def increment_tag_usage(self, tag_ids: Iterable[str], amount: int = 1) -> None:
        tag_ids = [t for t in tag_ids or [] if t]
        if not tag_ids:
            return
        with self.database.session_scope() as session:
            for tag in session.scalars(select(Tag).where(Tag.id.in_(tag_ids))):
                tag.usage_count = max(0, (tag.usage_count or 0) + amount)


class KnowledgeService:
    """Service for knowledge points (notes)."""

    def __init__(self, database: Database, tag_service: TagService, topic_service, analysis_config):
        self.database = database
        self.tag_service = tag_service
        self.topic_service = topic_service
        self.analysis_config = analysis_config

    def _to_dicts(self, session, points: Iterable[KnowledgePoint]) -> List[Dict[str, Any]]:
        points = list(points)
        tag_ids = {t for p in points for t in (p.tag_ids or [])}
        tags = {}
        if tag_ids:
            tags = {t.id: t for t in session.scalars(select(Tag).where(Tag.id.in_(tag_ids)))}
        return [
            p.to_dict(tags=[tags[t] for t in (p.tag_ids or []) if t in tags])
            for p in points
        ]

    def create_knowledge_point(
        self,
        content: str,
        owner_id: Optional[str],
        title: Optional[str] = None,
        summary: Optional[str] = None,
        tag_ids: Optional[List[str]] = None,
        keywords: Optional[List[str]] = None,
        importance: int = 3,
        confidence: float = 0.0,
        learning_topic_id: Optional[str] = None,
        related_ids: Optional[List[str]] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
        processing_status: str = COMPLETED,
        is_demo: bool = False,
        refresh_overview: bool = True,
    ) -> Dict[str, Any]:
        """Save a note and update everything derived from it.

        Referenced tags get their usage bumped, the topic's learning time is
        rolled up and, when ``refresh_overview`` is set, the topic overview is
        regenerated.
        """
        if not content or not content.strip():
            raise ValueError("内容不能为空")
        tag_ids = list(tag_ids or [])
        with self.database.session_scope() as session:
            point = KnowledgePoint(
                title=title,
                content=content,
                summary=summary,
                tag_ids=tag_ids,
                keywords=list(keywords or []),
                importance=max(1, min(5, int(importance or 3))),
                confidence=float(confidence or 0.0),
                learning_topic_id=learning_topic_id,
                related_ids=list(related_ids or []),
                attachments=list(attachments or []),
                processing_status=processing_status,
                study_duration_minutes=estimate_study_duration(content),
                user_id=owner_id,
                is_demo=is_demo,
            )
            session.add(point)
            session.flush()
            point_id = point.id

        self.tag_service.increment_tag_usage(tag_ids)
        if learning_topic_id:
            self.topic_service.update_topic_learning_time(learning_topic_id)
            if refresh_overview:
                self.topic_service.schedule_overview_refresh(learning_topic_id)
        logger.info("Created knowledge point %s (status=%s)", point_id, processing_status)
        return self.get_knowledge_point(point_id)

    def get_knowledge_point(self, point_id: str, owner_id: Optional[str] = None,
                            check_owner: bool = False) -> Optional[Dict[str, Any]]:
        """Fetch a note; with ``check_owner`` it must be visible to ``owner_id``."""
        with self.database.session_scope() as session:
            point = session.get(KnowledgePoint, point_id)
            if not point:
                return None
            if check_owner and point.user_id not in (owner_id, None):
                return None
            return self._to_dicts(session, [point])[0]

    def list_knowledge_points(self, owner_id: Optional[str], topic_id: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.database.session_scope() as session:
            query = select(KnowledgePoint).where(visible_to(KnowledgePoint, owner_id))
            if topic_id:
                query = query.where(KnowledgePoint.learning_topic_id == topic_id)
            points = session.scalars(query.order_by(KnowledgePoint.created_at.desc()))
            return self._to_dicts(session, points)

    def search_knowledge_points(self, query: str, owner_id: Optional[str]) -> List[Dict[str, Any]]:
        """Case-insensitive match on title or content."""
        query = (query or "").strip()
        if not query:
            return self.list_knowledge_points(owner_id)
        escaped = query.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        with self.database.session_scope() as session:
            points = session.scalars(
                select(KnowledgePoint)
                .where(visible_to(KnowledgePoint, owner_id))
                .where(or_(
                    func.lower(func.coalesce(KnowledgePoint.title, "")).like(pattern, escape="\\"),
                    func.lower(KnowledgePoint.content).like(pattern, escape="\\"),
                ))
                .order_by(KnowledgePoint.created_at.desc())
            )
            return self._to_dicts(session, points)

    def update_knowledge_point(self, point_id: str, refresh_overview: bool = True, **fields) -> Dict[str, Any]:
        """Update the given columns and refresh the (new) topic.

        Raises:
            LookupError: unknown note
        """
        fields = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        with self.database.session_scope() as session:
            point = session.get(KnowledgePoint, point_id)
            if not point:
                raise LookupError(f"Knowledge point {point_id} not found")
            old_topic_id = point.learning_topic_id
            old_tag_ids = set(point.tag_ids or [])
            for key, value in fields.items():
                if key in LIST_FIELDS:
                    value = list(value or [])
                elif key == "importance":
                    value = max(1, min(5, int(value or 3)))
                setattr(point, key, value)
            if "content" in fields and "study_duration_minutes" not in fields:
                point.study_duration_minutes = estimate_study_duration(point.content)
            new_topic_id = point.learning_topic_id
            added_tag_ids = [t for t in (point.tag_ids or []) if t not in old_tag_ids]

        self.tag_service.increment_tag_usage(added_tag_ids)
        for topic_id in {old_topic_id, new_topic_id}:
            self.topic_service.update_topic_learning_time(topic_id)
        if refresh_overview and new_topic_id:
            self.topic_service.schedule_overview_refresh(new_topic_id)
        return self.get_knowledge_point(point_id)

    def set_processing_status(self, point_id: str, status: str) -> None:
        self.update_knowledge_point(point_id, refresh_overview=False, processing_status=status)

    def related_knowledge_points(self, point: Dict[str, Any], owner_id: Optional[str],
                                 limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Other notes sharing a tag name, same topic first, then most recently updated."""
        limit = limit or self.analysis_config.related_limit
        tag_names = {t["name"] for t in point.get("tags") or []}
        if not tag_names:
            return []
        candidates = [
            p for p in self.list_knowledge_points(owner_id)
            if p["id"] != point["id"] and tag_names & {t["name"] for t in p["tags"]}
        ]
        topic_id = point.get("learning_topic_id")
        candidates.sort(key=lambda p: p["updated_at"] or "", reverse=True)
        candidates.sort(key=lambda p: not (topic_id and p["learning_topic_id"] == topic_id))
        return candidates[:limit]

    def update_study_duration(self, point_id: str, minutes: int) -> Dict[str, Any]:
        """Record a study duration and roll it up to the topic."""
        return self.update_knowledge_point(
            point_id, refresh_overview=False, study_duration_minutes=max(0, int(minutes))
        )

    def estimate_all_durations(self) -> int:
        """Fill in durations for notes that have none; returns the count updated."""
        with self.database.session_scope() as session:
            points = list(session.scalars(
                select(KnowledgePoint).where(or_(
                    KnowledgePoint.study_duration_minutes.is_(None),
                    KnowledgePoint.study_duration_minutes == 0,
                ))
            ))
            topic_ids = set()
            for point in points:
                point.study_duration_minutes = estimate_study_duration(point.content)
                if point.learning_topic_id:
                    topic_ids.add(point.learning_topic_id)
        for topic_id in topic_ids:
            self.topic_service.update_topic_learning_time(topic_id)
        logger.info("Estimated study duration for %d notes", len(points))
        return len(points)

    def count_knowledge_points(self, owner_id: Optional[str]) -> int:
        with self.database.session_scope() as session:
            return session.scalar(
                select(func.count()).select_from(KnowledgePoint).where(KnowledgePoint.user_id == owner_id)
            ) or 0
