"""
Topic routes: topic overview list, topic detail / edit and overview regeneration.
"""
import logging

from flask import Blueprint, abort, jsonify, redirect, render_template_string, request, url_for

from app.auth import models as user_state

from . import mock_data
from .services import TopicService

logger = logging.getLogger(__name__)


def create_topic_routes(
    topic_service: TopicService,
    knowledge_service,
    auth_service,
    topics_template: str,
    detail_template: str,
) -> Blueprint:
    """Create topic routes."""
    bp = Blueprint('topics', __name__)

    @bp.route("/topics")
    def topics():
        current = auth_service.get_current_user()
        topics_stats = topic_service.topics_with_stats(current.owner_id)
        show_demo = current.is_demo and not topics_stats and \
            knowledge_service.count_knowledge_points(current.owner_id) == 0
        if show_demo:
            topics_stats = mock_data.mock_topics_with_stats()
        return render_template_string(
            topics_template,
            topics=topics_stats,
            show_demo_notice=show_demo,
            current_user=current,
            display_name=user_state.display_name(current),
        )

    def _render_detail(topic, points, current, editable, error=None, status=200):
        return render_template_string(
            detail_template,
            topic=topic,
            points=points,
            overview=topic_service.parse_overview(topic),
            editable=editable,
            error=error,
            show_demo_notice=not editable,
            current_user=current,
            display_name=user_state.display_name(current),
        ), status

    @bp.route("/knowledge/topic/<topic_id>", methods=["GET"])
    def topic_detail(topic_id):
        current = auth_service.get_current_user()
        if user_state.is_viewing_mock_data(current, topic_id):
            topic = mock_data.get_mock_topic(topic_id)
            if not topic:
                abort(404)
            return _render_detail(topic, mock_data.mock_points_for_topic(topic_id), current, editable=False)

        topic = topic_service.get_visible_topic(topic_id, current.owner_id)
        if not topic:
            abort(404)
        points = knowledge_service.list_knowledge_points(current.owner_id, topic_id)
        return _render_detail(topic, points, current, editable=True)

    @bp.route("/knowledge/topic/<topic_id>", methods=["POST"])
    def topic_update(topic_id):
        current = auth_service.get_current_user()
        if user_state.should_disable_editing(current, topic_id):
            abort(403)
        topic = topic_service.get_visible_topic(topic_id, current.owner_id)
        if not topic:
            abort(404)
        if request.form.get("intent") != "update_topic":
            return jsonify({"error": "Unknown intent"}), 400

        try:
            topic_service.update_topic(
                topic_id,
                request.form.get("name", ""),
                request.form.get("description", ""),
            )
        except ValueError as e:
            points = knowledge_service.list_knowledge_points(current.owner_id, topic_id)
            return _render_detail(topic, points, current, editable=True, error=str(e), status=400)
        return redirect(url_for("topics.topic_detail", topic_id=topic_id))

    @bp.route("/api/regenerate-overview", methods=["GET", "POST", "PUT", "DELETE"])
    def regenerate_overview():
        if request.method != "POST":
            return jsonify({"error": "Method not allowed"}), 405

        current = auth_service.get_current_user()
        data = request.get_json(silent=True) or {}
        topic_id = data.get("topicId") or request.form.get("topicId")
        if not topic_id:
            return jsonify({"error": "Topic ID is required"}), 400

        topic = topic_service.get_topic(topic_id)
        if not topic or topic["user_id"] != current.owner_id:
            return jsonify({"error": "Topic not found"}), 404

        try:
            overview = topic_service.refresh_overview(topic_id)
        except Exception as e:
            logger.error("重新生成概览失败: %s", e, exc_info=True)
            return jsonify({"error": "Failed to regenerate overview"}), 500
        return jsonify({
            "success": True,
            "overview": overview.model_dump() if overview else None,
        })

    return bp
