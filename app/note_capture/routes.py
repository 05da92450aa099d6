"""
Note capture routes: home page, progress page and the analyze/review flow.
"""
import logging

from flask import Blueprint, abort, redirect, render_template_string, request, url_for

from app.auth import models as user_state
from app.knowledge.models import PROCESSING, split_tag_names
from app.topics import mock_data

from .services import NoteCaptureService

logger = logging.getLogger(__name__)


def create_note_capture_routes(
    capture_service: NoteCaptureService,
    auth_service,
    index_template: str,
    progress_template: str,
    analyze_template: str,
) -> Blueprint:
    """Create note capture routes."""
    bp = Blueprint('note_capture', __name__)
    topic_service = capture_service.topic_service
    knowledge_service = capture_service.knowledge_service
    processing_tracker = capture_service.processing_tracker

    def _running_notes(owner_id):
        """Notes of the owner whose analysis is still running."""
        running = []
        for job in processing_tracker.get_processing_jobs(owner_id):
            point = knowledge_service.get_knowledge_point(job.knowledge_id)
            if point and point["processing_status"] == PROCESSING:
                running.append({"id": point["id"], "title": point["title"]})
        return running

    def _render_index(current, error=None, content="", status=200):
        topics = topic_service.list_topics(current.owner_id)
        show_demo = current.is_demo and not topics and \
            knowledge_service.count_knowledge_points(current.owner_id) == 0
        return render_template_string(
            index_template,
            topics=mock_data.MOCK_TOPICS if show_demo else topics,
            running_notes=_running_notes(current.owner_id),
            show_demo_notice=show_demo,
            error=error,
            content=content,
            current_user=current,
            display_name=user_state.display_name(current),
            is_authenticated=user_state.is_authenticated(current),
        ), status

    @bp.route("/", methods=["GET"])
    def index():
        return _render_index(auth_service.get_current_user())

    @bp.route("/", methods=["POST"])
    def submit():
        current = auth_service.get_current_user()
        content = request.form.get("content", "")
        if not content.strip():
            return _render_index(current, error="内容不能为空", status=400)
        try:
            point = capture_service.submit_note(content, current.owner_id)
        except Exception as e:
            logger.error("保存笔记失败: %s", e, exc_info=True)
            return _render_index(current, error="保存失败，请重试", content=content, status=500)
        return redirect(url_for("note_capture.progress", knowledgeId=point["id"]))

    @bp.route("/progress")
    def progress():
        current = auth_service.get_current_user()
        knowledge_id = (request.args.get("knowledgeId") or "").strip()
        if not knowledge_id:
            return redirect(url_for("note_capture.index"))
        point = knowledge_service.get_knowledge_point(knowledge_id, current.owner_id, check_owner=True)
        if not point:
            abort(404)
        return render_template_string(
            progress_template,
            point=point,
            knowledge_id=knowledge_id,
            status_url=url_for("knowledge.knowledge_status", point_id=knowledge_id),
            detail_url=url_for("knowledge.knowledge_detail", point_id=knowledge_id),
            current_user=current,
            display_name=user_state.display_name(current),
        )

    @bp.route("/analyze", methods=["GET"])
    def analyze():
        current = auth_service.get_current_user()
        content = (request.args.get("content") or "").strip()
        if not content:
            return redirect(url_for("note_capture.index"))
        topic_id = (request.args.get("topicId") or "").strip() or None
        analysis = capture_service.analyze(content, current.owner_id)
        return render_template_string(
            analyze_template,
            content=content,
            topic_id=topic_id,
            analysis=analysis,
            topics=topic_service.list_topics(current.owner_id),
            error=None,
            current_user=current,
            display_name=user_state.display_name(current),
        )

    @bp.route("/analyze", methods=["POST"])
    def analyze_action():
        current = auth_service.get_current_user()
        intent = request.form.get("intent", "analyze")
        content = request.form.get("content", "").strip()
        topic_id = request.form.get("topicId", "").strip() or None
        if not content:
            return redirect(url_for("note_capture.index"))

        if intent == "analyze":
            params = {"content": content}
            if topic_id:
                params["topicId"] = topic_id
            return redirect(url_for("note_capture.analyze", **params))

        if intent != "save":
            return redirect(url_for("note_capture.index"))

        title = request.form.get("title", "").strip()
        if not title:
            return render_template_string(
                analyze_template,
                content=content,
                topic_id=topic_id,
                analysis=None,
                topics=topic_service.list_topics(current.owner_id),
                error="标题不能为空",
                current_user=current,
                display_name=user_state.display_name(current),
            ), 400

        try:
            importance = int(request.form.get("importance", 3))
        except ValueError:
            importance = 3
        point = capture_service.save_reviewed_note(
            current.owner_id,
            content,
            title,
            request.form.get("category", ""),
            importance,
            split_tag_names(request.form.get("tags")),
            topic_id=topic_id,
        )
        return redirect(url_for("knowledge.knowledge_detail", point_id=point["id"]))

    return bp
