"""
Authentication routes: login, registration and logout.
"""
import logging

from flask import Blueprint, make_response, redirect, render_template_string, request, url_for

from .models import SESSION_COOKIE
from .services import AuthService

logger = logging.getLogger(__name__)


def create_auth_routes(auth_service: AuthService, login_template: str, register_template: str) -> Blueprint:
    """Create authentication routes."""
    bp = Blueprint('auth', __name__, url_prefix='/auth')

    def _home():
        return redirect(url_for("note_capture.index"))

    @bp.route("/login", methods=["GET", "POST"])
    def login():
        current = auth_service.get_current_user()
        if not current.is_demo:
            return _home()
        if request.method == "GET":
            return render_template_string(login_template, error=None, email="", current_user=current)

        email = request.form.get("email", "").strip()
        password = request.form.get("password", "")
        if not email or not password:
            return render_template_string(
                login_template, error="请填写邮箱和密码", email=email, current_user=current
            ), 400

        user, error = auth_service.login_user(email, password)
        if error:
            return render_template_string(login_template, error=error, email=email, current_user=current), 400

        session_id = auth_service.create_session(user["id"])
        logger.info("User %s logged in", user["email"])
        resp = make_response(_home())
        auth_service.set_cookie(resp, auth_service.session_cookie(session_id))
        return resp

    @bp.route("/register", methods=["GET", "POST"])
    def register():
        current = auth_service.get_current_user()
        if not current.is_demo:
            return _home()
        if request.method == "GET":
            return render_template_string(register_template, error=None, email="", name="", current_user=current)

        email = request.form.get("email", "").strip()
        password = request.form.get("password", "")
        confirm = request.form.get("confirmPassword", "")
        name = request.form.get("name", "").strip()

        def _fail(message):
            return render_template_string(
                register_template, error=message, email=email, name=name, current_user=current
            ), 400

        if not email or not password or not confirm:
            return _fail("请填写所有必填字段")
        if password != confirm:
            return _fail("两次输入的密码不一致")

        user, error = auth_service.register_user(email, password, name or None, current.anonymous_id)
        if error:
            return _fail(error)

        session_id = auth_service.create_session(user["id"])
        resp = make_response(_home())
        auth_service.set_cookie(resp, auth_service.session_cookie(session_id))
        return resp

    @bp.route("/logout", methods=["POST"])
    def logout():
        auth_service.logout(request.cookies.get(SESSION_COOKIE))
        new_anonymous_id = auth_service.get_or_create_anonymous_id()
        resp = make_response(_home())
        auth_service.clear_session_cookie(resp)
        auth_service.set_cookie(resp, auth_service.anonymous_cookie(new_anonymous_id))
        return resp

    @bp.route("/logout", methods=["GET"])
    def logout_page():
        return _home()

    return bp
