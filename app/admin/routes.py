"""
Maintenance routes: data migration actions and sample data seeding.
"""
import logging

from flask import Blueprint, jsonify, redirect, render_template_string, request, url_for

from app.auth import models as user_state
from app.storage import Database, create_demo_data

logger = logging.getLogger(__name__)


def create_admin_routes(
    database: Database,
    auth_service,
    knowledge_service,
    topic_service,
    init_data_template: str,
) -> Blueprint:
    """Create maintenance routes."""
    bp = Blueprint('admin', __name__)

    def _require_admin():
        current = auth_service.get_current_user()
        if not auth_service.is_admin(current):
            return jsonify({"error": "无权限执行此操作"}), 403
        return None

    @bp.route("/admin/migrate", methods=["GET"])
    def migrate_info():
        denied = _require_admin()
        if denied:
            return denied
        return jsonify({
            "message": "数据迁移接口",
            "actions": [
                "estimate-duration - 估算所有知识点的学习时长",
                "update-topics - 更新所有主题的学习时长统计",
                "full-migration - 依次执行以上两项",
            ],
        })

    @bp.route("/admin/migrate", methods=["POST"])
    def migrate():
        denied = _require_admin()
        if denied:
            return denied

        action = request.form.get("action") or (request.get_json(silent=True) or {}).get("action")
        try:
            if action == "estimate-duration":
                count = knowledge_service.estimate_all_durations()
                return jsonify({"success": True, "message": "已成功估算所有知识点的学习时长", "updated": count})
            if action == "update-topics":
                count = topic_service.update_all_topics_learning_time()
                return jsonify({"success": True, "message": "已成功更新所有主题的学习时长统计", "updated": count})
            if action == "full-migration":
                points = knowledge_service.estimate_all_durations()
                topics = topic_service.update_all_topics_learning_time()
                return jsonify({
                    "success": True,
                    "message": "已完成完整数据迁移",
                    "updated": {"knowledge_points": points, "topics": topics},
                })
        except Exception as e:
            logger.error("数据迁移失败: %s", e, exc_info=True)
            return jsonify({"error": "数据迁移失败", "details": str(e)}), 500
        return jsonify({"error": "未知操作"}), 400

    @bp.route("/init-data", methods=["GET"])
    def init_data_page():
        current = auth_service.get_current_user()
        return render_template_string(
            init_data_template,
            current_user=current,
            display_name=user_state.display_name(current),
        )

    @bp.route("/init-data", methods=["POST"])
    def init_data():
        current = auth_service.get_current_user()
        create_demo_data(database, current.owner_id)
        return redirect(url_for("knowledge.knowledge_list"))

    return bp
