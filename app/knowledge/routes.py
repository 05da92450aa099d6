"""
Knowledge routes: note list, note detail / edit and the processing status API.
"""
import logging

from flask import Blueprint, abort, jsonify, redirect, render_template_string, request, url_for

from app.auth import models as user_state
from app.topics import mock_data

from .models import COMPLETED, render_markdown, split_tag_names
from .services import KnowledgeService, TagService

logger = logging.getLogger(__name__)

CUSTOM_TOPIC = "__custom__"


def create_knowledge_routes(
    knowledge_service: KnowledgeService,
    tag_service: TagService,
    topic_service,
    auth_service,
    list_template: str,
    detail_template: str,
    processing_tracker=None,
) -> Blueprint:
    """Create knowledge routes."""
    bp = Blueprint('knowledge', __name__)

    @bp.route("/knowledge")
    def knowledge_list():
        """List (or search) the visitor's notes."""
        current = auth_service.get_current_user()
        owner_id = current.owner_id
        search_query = (request.args.get("q") or "").strip()
        topic_filter = (request.args.get("topic") or "").strip() or None

        if search_query:
            points = knowledge_service.search_knowledge_points(search_query, owner_id)
            if topic_filter:
                points = [p for p in points if p["learning_topic_id"] == topic_filter]
        else:
            points = knowledge_service.list_knowledge_points(owner_id, topic_filter)
        topics = topic_service.list_topics(owner_id)

        show_demo = user_state.should_show_demo_notice(current, topics=topics, knowledge_points=points)
        if show_demo and not search_query and not topic_filter:
            points = mock_data.all_mock_points()
            topics = list(mock_data.MOCK_TOPICS)

        topic_names = {t["id"]: t["name"] for t in topics}
        return render_template_string(
            list_template,
            points=points,
            topics=topics,
            topic_names=topic_names,
            search_query=search_query,
            topic_filter=topic_filter,
            show_demo_notice=show_demo,
            current_user=current,
            display_name=user_state.display_name(current),
        )

    def _render_detail(point, current, topic, related, editable, error=None, status=200):
        topics = topic_service.list_topics(current.owner_id) if editable else []
        return render_template_string(
            detail_template,
            point=point,
            content_html=render_markdown(point["content"]),
            topic=topic,
            related=related,
            topics=topics,
            tags=tag_service.list_tags(current.owner_id) if editable else [],
            tag_text=", ".join(t["name"] for t in point.get("tags") or []),
            editable=editable,
            error=error,
            show_demo_notice=not editable and current.is_demo,
            current_user=current,
            display_name=user_state.display_name(current),
        ), status

    @bp.route("/knowledge/<point_id>", methods=["GET"])
    def knowledge_detail(point_id):
        current = auth_service.get_current_user()

        if user_state.is_viewing_mock_data(current, point_id):
            point = mock_data.get_mock_point(point_id)
            if not point:
                abort(404)
            topic = mock_data.get_mock_topic(point["learning_topic_id"])
            related = [p for p in mock_data.mock_points_for_topic(point["learning_topic_id"]) if p["id"] != point_id]
            return _render_detail(point, current, topic, related, editable=False)

        point = knowledge_service.get_knowledge_point(point_id, current.owner_id, check_owner=True)
        if not point:
            abort(404)
        topic = None
        if point["learning_topic_id"]:
            topic = topic_service.get_topic(point["learning_topic_id"])
        related = knowledge_service.related_knowledge_points(point, current.owner_id)
        return _render_detail(point, current, topic, related, editable=True)

    @bp.route("/knowledge/<point_id>", methods=["POST"])
    def knowledge_update(point_id):
        current = auth_service.get_current_user()
        if user_state.should_disable_editing(current, point_id):
            abort(403)
        point = knowledge_service.get_knowledge_point(point_id, current.owner_id, check_owner=True)
        if not point:
            abort(404)

        intent = request.form.get("intent")
        if intent != "update":
            return jsonify({"error": "Unknown intent"}), 400

        title = request.form.get("title", "").strip()
        content = request.form.get("content", "").strip()
        if not content:
            related = knowledge_service.related_knowledge_points(point, current.owner_id)
            topic = topic_service.get_topic(point["learning_topic_id"]) if point["learning_topic_id"] else None
            return _render_detail(point, current, topic, related, editable=True, error="内容不能为空", status=400)

        topic_id = request.form.get("learning_topic_id", "").strip() or None
        if topic_id == CUSTOM_TOPIC:
            custom_name = request.form.get("custom_topic_name", "").strip()
            if custom_name:
                topic = topic_service.create_topic(
                    custom_name, f"用户自定义主题: {custom_name}", current.owner_id
                )
                topic_id = topic["id"]
            else:
                topic_id = point["learning_topic_id"]
        elif topic_id and not topic_service.get_visible_topic(topic_id, current.owner_id):
            topic_id = point["learning_topic_id"]

        tags = tag_service.create_or_get_tags(split_tag_names(request.form.get("tags")), current.owner_id)

        knowledge_service.update_knowledge_point(
            point_id,
            title=title or point["title"],
            content=content,
            tag_ids=[t["id"] for t in tags],
            learning_topic_id=topic_id,
        )
        logger.info("Knowledge point %s updated", point_id)
        return redirect(url_for("knowledge.knowledge_detail", point_id=point_id))

    @bp.route("/api/knowledge/<point_id>/status")
    def knowledge_status(point_id):
        """Processing status polled by the progress page."""
        current = auth_service.get_current_user()
        point = knowledge_service.get_knowledge_point(point_id, current.owner_id, check_owner=True)
        if not point:
            return jsonify({"error": "Knowledge point not found"}), 404

        error = None
        if processing_tracker:
            job = processing_tracker.get_job(point_id, current.owner_id)
            if job and point["processing_status"] == COMPLETED:
                # The progress page leaves once it sees completion
                processing_tracker.dismiss_job(point_id, current.owner_id)
            elif job:
                error = job.error_message
        return jsonify({
            "status": point["processing_status"],
            "learning_topic_id": point["learning_topic_id"],
            "title": point["title"],
            "summary": point["summary"],
            "confidence": point["confidence"],
            "error": error,
        })

    return bp
