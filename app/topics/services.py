"""
Learning topic services: CRUD, statistics, learning-time roll-up and AI overviews.
"""
import json
import logging
import threading
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from analysis_service.topic_overview import generate_topic_overview
from app.storage import Database, KnowledgePoint, LearningTopic, Tag, as_aware, utcnow, visible_to

logger = logging.getLogger(__name__)

MAX_NAME_SUFFIX = 100


class TopicService:
    """Service for learning topics."""

    def __init__(self, database: Database, analysis_config, llm_config=None):
        self.database = database
        self.analysis_config = analysis_config
        self.llm_config = llm_config

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_topic(
        self,
        name: str,
        description: Optional[str] = None,
        owner_id: Optional[str] = None,
        is_demo: bool = False,
    ) -> Dict[str, Any]:
        """Create a topic, suffixing `` (n)`` while the name is taken by the owner."""
        base_name = (name or "").strip()
        if not base_name:
            raise ValueError("主题名称不能为空")

        for attempt in range(MAX_NAME_SUFFIX + 1):
            candidate = base_name if attempt == 0 else f"{base_name} ({attempt})"
            try:
                with self.database.session_scope() as session:
                    topic = LearningTopic(
                        name=candidate,
                        description=description,
                        user_id=owner_id,
                        is_demo=is_demo,
                        total_learning_minutes=0,
                    )
                    session.add(topic)
                    session.flush()
                    result = topic.to_dict()
                if attempt:
                    logger.info("Topic name %r taken, created %r instead", base_name, candidate)
                return result
            except IntegrityError:
                continue
        raise ValueError(f"无法为主题生成唯一名称: {base_name}")

    def list_topics(self, owner_id: Optional[str]) -> List[Dict[str, Any]]:
        with self.database.session_scope() as session:
            topics = session.scalars(
                select(LearningTopic)
                .where(visible_to(LearningTopic, owner_id))
                .order_by(LearningTopic.created_at.desc())
            )
            return [t.to_dict() for t in topics]

    def get_topic(self, topic_id: str) -> Optional[Dict[str, Any]]:
        with self.database.session_scope() as session:
            topic = session.get(LearningTopic, topic_id)
            return topic.to_dict() if topic else None

    def get_visible_topic(self, topic_id: str, owner_id: Optional[str]) -> Optional[Dict[str, Any]]:
        topic = self.get_topic(topic_id)
        if topic and topic["user_id"] in (owner_id, None):
            return topic
        return None

    def update_topic(self, topic_id: str, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        """Rename / re-describe a topic.

        Raises:
            ValueError: empty name or name already used by the owner
            LookupError: unknown topic
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("主题名称不能为空")
        try:
            with self.database.session_scope() as session:
                topic = session.get(LearningTopic, topic_id)
                if not topic:
                    raise LookupError(f"Topic {topic_id} not found")
                topic.name = name
                topic.description = (description or "").strip() or None
                session.flush()
                return topic.to_dict()
        except IntegrityError:
            raise ValueError("已存在同名主题")

    # ------------------------------------------------------------------
    # Statistics and learning time
    # ------------------------------------------------------------------

    def update_topic_learning_time(self, topic_id: Optional[str]) -> None:
        """Roll note durations and first/last study times up to the topic."""
        if not topic_id:
            return
        with self.database.session_scope() as session:
            topic = session.get(LearningTopic, topic_id)
            if not topic:
                return
            total, first, last = session.execute(
                select(
                    func.coalesce(func.sum(KnowledgePoint.study_duration_minutes), 0),
                    func.min(KnowledgePoint.created_at),
                    func.max(KnowledgePoint.created_at),
                ).where(KnowledgePoint.learning_topic_id == topic_id)
            ).one()
            topic.total_learning_minutes = int(total or 0)
            topic.first_study_at = first
            topic.last_study_at = last

    def update_all_topics_learning_time(self) -> int:
        with self.database.session_scope() as session:
            topic_ids = list(session.scalars(select(LearningTopic.id)))
        for topic_id in topic_ids:
            self.update_topic_learning_time(topic_id)
        logger.info("Updated learning time for %d topics", len(topic_ids))
        return len(topic_ids)

    def topics_with_stats(self, owner_id: Optional[str]) -> List[Dict[str, Any]]:
        """Topics with note count, tag names and last activity, most active first."""
        with self.database.session_scope() as session:
            topics = list(session.scalars(
                select(LearningTopic).where(visible_to(LearningTopic, owner_id))
            ))
            tags_by_id = {
                t.id: t.name
                for t in session.scalars(select(Tag).where(visible_to(Tag, owner_id)))
            }
            result = []
            for topic in topics:
                points = list(session.scalars(
                    select(KnowledgePoint).where(KnowledgePoint.learning_topic_id == topic.id)
                ))
                tag_names: List[str] = []
                for point in points:
                    for tag_id in point.tag_ids or []:
                        tag_name = tags_by_id.get(tag_id)
                        if tag_name and tag_name not in tag_names:
                            tag_names.append(tag_name)
                last_activity = max(
                    (as_aware(p.updated_at) for p in points if p.updated_at),
                    default=as_aware(topic.updated_at),
                )
                result.append({
                    **topic.to_dict(),
                    "knowledge_count": len(points),
                    "tag_names": tag_names,
                    "last_activity": last_activity.isoformat() if last_activity else None,
                })
        result.sort(key=lambda t: t["last_activity"] or "", reverse=True)
        return result

    # ------------------------------------------------------------------
    # AI overview
    # ------------------------------------------------------------------

    def _overview_points(self, topic_id: str) -> List[Dict[str, Any]]:
        with self.database.session_scope() as session:
            points = session.scalars(
                select(KnowledgePoint)
                .where(KnowledgePoint.learning_topic_id == topic_id)
                .order_by(KnowledgePoint.created_at.desc())
                .limit(self.analysis_config.overview_max_points)
            )
            return [
                {
                    "title": p.title,
                    "content": p.content,
                    "keywords": list(p.keywords or []),
                    "created_at": p.created_at,
                }
                for p in points
            ]

    def refresh_overview(self, topic_id: str):
        """Regenerate and store the topic's AI overview.

        Returns:
            The ``TopicOverview`` stored, or None when the topic has no notes

        Raises:
            LookupError: unknown topic
        """
        topic = self.get_topic(topic_id)
        if not topic:
            raise LookupError(f"Topic {topic_id} not found")

        points = self._overview_points(topic_id)
        if not points:
            logger.info("Topic %s has no notes, skipping overview", topic["name"])
            return None

        overview = generate_topic_overview(topic["name"], points, self.llm_config)
        with self.database.session_scope() as session:
            row = session.get(LearningTopic, topic_id)
            if row is None:
                return None
            row.ai_summary = json.dumps(overview.model_dump(), ensure_ascii=False)
            row.updated_at = utcnow()
        logger.info("AI overview updated for topic %s", topic["name"])
        return overview

    def _refresh_overview_quietly(self, topic_id: str) -> None:
        try:
            self.refresh_overview(topic_id)
        except Exception as e:
            logger.error("Failed to refresh overview for topic %s: %s", topic_id, e, exc_info=True)

    def schedule_overview_refresh(self, topic_id: Optional[str]) -> None:
        """Refresh the overview in a daemon thread (inline when background is off)."""
        if not topic_id:
            return
        if not self.analysis_config.background:
            self._refresh_overview_quietly(topic_id)
            return
        thread = threading.Thread(
            target=self._refresh_overview_quietly,
            args=(topic_id,),
            daemon=True,
        )
        thread.start()

    @staticmethod
    def parse_overview(topic: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Decode the stored overview JSON; None when missing or malformed."""
        raw = (topic or {}).get("ai_summary")
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Malformed ai_summary on topic %s", (topic or {}).get("id"))
            return None
        return data if isinstance(data, dict) else None
