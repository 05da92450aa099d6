"""
Note capture: save a raw note immediately, then classify it with the LLM.
"""
import logging
import threading
from typing import Any, Dict, List, Optional

from analysis_service.models import DEFAULT_CATEGORY, LearningNoteAnalysis, TopicBrief
from analysis_service.note_analyzer import analyze_learning_note
from app.knowledge.models import COMPLETED, FAILED, PROCESSING

from .processing_tracker import ProcessingTracker

logger = logging.getLogger(__name__)

AUTO_TOPIC_DESCRIPTION = "自动创建的学习主题：{category}"


class NoteCaptureService:
    """Creates notes from the home page and runs their analysis jobs."""

    def __init__(
        self,
        knowledge_service,
        tag_service,
        topic_service,
        processing_tracker: ProcessingTracker,
        analysis_config,
        llm_config=None,
    ):
        self.knowledge_service = knowledge_service
        self.tag_service = tag_service
        self.topic_service = topic_service
        self.processing_tracker = processing_tracker
        self.analysis_config = analysis_config
        self.llm_config = llm_config

    def temporary_title(self, content: str) -> str:
        return content[:self.analysis_config.title_preview_chars] + "..."

    def submit_note(self, content: str, owner_id: str) -> Dict[str, Any]:
        """Save the note as ``processing`` and start its analysis job.

        Raises:
            ValueError: empty content
        """
        content = (content or "").strip()
        if not content:
            raise ValueError("内容不能为空")

        point = self.knowledge_service.create_knowledge_point(
            content,
            owner_id,
            title=self.temporary_title(content),
            summary="",
            confidence=0.0,
            processing_status=PROCESSING,
            refresh_overview=False,
        )
        self.processing_tracker.start_processing(point["id"], owner_id)

        if self.analysis_config.background:
            thread = threading.Thread(
                target=self.process_note,
                args=(point["id"], owner_id),
                daemon=True,
            )
            thread.start()
        else:
            self.process_note(point["id"], owner_id)
        return point

    def existing_topic_briefs(self, owner_id: str) -> List[TopicBrief]:
        return [
            TopicBrief(id=t["id"], name=t["name"], description=t.get("description"))
            for t in self.topic_service.list_topics(owner_id)
        ]

    def analyze(self, content: str, owner_id: str) -> LearningNoteAnalysis:
        """Run the LLM analysis against the owner's topics and tags."""
        tag_names = [t["name"] for t in self.tag_service.list_tags(owner_id)]
        return analyze_learning_note(
            content,
            self.existing_topic_briefs(owner_id),
            tag_names,
            self.llm_config,
        )

    def _topic_named(self, name: str, owner_id: str) -> Optional[Dict[str, Any]]:
        for topic in self.topic_service.list_topics(owner_id):
            if topic["name"] == name and topic["user_id"] == owner_id:
                return topic
        return None

    def topic_for_category(self, category: str, owner_id: str) -> Optional[str]:
        """Topic named after a non-default category, created when missing."""
        category = (category or "").strip()
        if not category or category == DEFAULT_CATEGORY:
            return None
        existing = self._topic_named(category, owner_id)
        if existing:
            return existing["id"]
        topic = self.topic_service.create_topic(
            category, AUTO_TOPIC_DESCRIPTION.format(category=category), owner_id
        )
        return topic["id"]

    def resolve_topic(self, analysis: LearningNoteAnalysis, owner_id: str) -> Optional[str]:
        """Pick the topic for an analyzed note.

        Order: an existing visible topic the model pointed at, then the
        recommended topic by name (created when new), then a topic named
        after the category unless it is the default one.
        """
        recommended = analysis.recommended_topic
        if recommended:
            if recommended.existing_topic_id and self.topic_service.get_visible_topic(
                recommended.existing_topic_id, owner_id
            ):
                return recommended.existing_topic_id
            if recommended.name:
                existing = self._topic_named(recommended.name, owner_id)
                if existing:
                    return existing["id"]
                topic = self.topic_service.create_topic(
                    recommended.name, recommended.description or None, owner_id
                )
                return topic["id"]
        return self.topic_for_category(analysis.category, owner_id)

    def process_note(self, knowledge_id: str, owner_id: str) -> None:
        """Analysis job body; never raises."""
        try:
            point = self.knowledge_service.get_knowledge_point(knowledge_id)
            if not point:
                raise LookupError(f"Knowledge point {knowledge_id} not found")

            analysis = self.analyze(point["content"], owner_id)
            topic_id = self.resolve_topic(analysis, owner_id)
            tags = self.tag_service.create_or_get_tags(analysis.suggested_tags, owner_id)

            self.knowledge_service.update_knowledge_point(
                knowledge_id,
                refresh_overview=False,
                title=analysis.title,
                summary=analysis.summary,
                keywords=analysis.keywords,
                importance=analysis.importance,
                confidence=analysis.confidence,
                tag_ids=[t["id"] for t in tags],
                learning_topic_id=topic_id,
                processing_status=COMPLETED,
            )
            self.processing_tracker.mark_completed(knowledge_id, owner_id)
            logger.info("Note %s analyzed: %r -> topic %s", knowledge_id, analysis.title, topic_id)
        except Exception as e:
            logger.error("Analysis job for %s failed: %s", knowledge_id, e, exc_info=True)
            try:
                self.knowledge_service.set_processing_status(knowledge_id, FAILED)
            except Exception as status_error:
                logger.error("Could not mark %s as failed: %s", knowledge_id, status_error)
            self.processing_tracker.mark_failed(knowledge_id, owner_id, str(e))
            return

        # The note is already usable; the overview can take its time
        if topic_id:
            try:
                self.topic_service.refresh_overview(topic_id)
            except Exception as e:
                logger.error("Overview refresh for topic %s failed: %s", topic_id, e, exc_info=True)

    def save_reviewed_note(
        self,
        owner_id: str,
        content: str,
        title: str,
        category: str,
        importance: int,
        tag_names: List[str],
        topic_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Save a note whose analysis the owner reviewed on the analyze page."""
        if topic_id and not self.topic_service.get_visible_topic(topic_id, owner_id):
            topic_id = None
        if not topic_id:
            topic_id = self.topic_for_category(category, owner_id)
        tags = self.tag_service.create_or_get_tags(tag_names, owner_id)
        return self.knowledge_service.create_knowledge_point(
            content,
            owner_id,
            title=title,
            tag_ids=[t["id"] for t in tags],
            importance=importance,
            confidence=0.8,
            learning_topic_id=topic_id,
            processing_status=COMPLETED,
        )
