"""
Web integration tests: pages, JSON endpoints and cookies through the Flask test client.
"""
from urllib.parse import parse_qs, urlparse

import pytest

from analysis_service.models import LearningNoteAnalysis


def _services(app):
    ext = app.extensions["squirrel_notes"]
    return ext["knowledge"]["service"], ext["topics"]["service"], ext["auth"]["service"]


def _anonymous_id(client):
    cookie = client.get_cookie("anonymous_id")
    return cookie.value if cookie else None


def _register(client, email="jane@example.com", password="secret123", name="Jane"):
    return client.post("/auth/register", data={
        "email": email,
        "password": password,
        "confirmPassword": password,
        "name": name,
    })


def _submit(client, content):
    resp = client.post("/", data={"content": content})
    assert resp.status_code == 302
    location = urlparse(resp.headers["Location"])
    assert location.path == "/progress"
    return parse_qs(location.query)["knowledgeId"][0]


class TestStaticAndHealth:

    def test_health(self, client):
        resp = client.get("/actuator/health")
        assert resp.status_code == 200
        assert resp.get_json() == {"status": "UP", "service": "squirrel-notes"}

    def test_assets(self, client):
        css = client.get("/assets/base.css")
        assert css.status_code == 200
        assert css.mimetype == "text/css"
        js = client.get("/static/js/processing.js")
        assert js.status_code == 200
        assert js.mimetype == "application/javascript"


class TestProductionCookies:

    @pytest.fixture
    def secure_client(self, config_manager):
        from app.main import create_app

        config_manager.update_section("app", {"production": True})
        flask_app = create_app(config_manager)
        flask_app.config.update(TESTING=True)
        yield flask_app.test_client()
        flask_app.extensions["squirrel_notes"]["database"].dispose()

    @staticmethod
    def _cookie_header(resp, name):
        return next(h for h in resp.headers.getlist("Set-Cookie") if h.startswith(f"{name}="))

    def test_cookies_are_secure(self, secure_client):
        anon_header = self._cookie_header(
            secure_client.get("/", base_url="https://localhost"), "anonymous_id"
        )
        assert "Secure" in anon_header
        assert "HttpOnly" in anon_header

        resp = secure_client.post("/auth/register", base_url="https://localhost", data={
            "email": "secure@example.com",
            "password": "secret123",
            "confirmPassword": "secret123",
            "name": "Sec",
        })
        assert resp.status_code == 302
        session_header = self._cookie_header(resp, "session_id")
        assert "Secure" in session_header
        assert "SameSite=Lax" in session_header


class TestAnonymousVisitor:

    def test_first_visit_sets_anonymous_cookie(self, client):
        resp = client.get("/")

        assert resp.status_code == 200
        headers = resp.headers.getlist("Set-Cookie")
        anon_header = next(h for h in headers if h.startswith("anonymous_id="))
        assert "anonymous_id=anon_" in anon_header
        assert "HttpOnly" in anon_header
        assert "SameSite=Lax" in anon_header
        assert "Path=/" in anon_header
        assert "Secure" not in anon_header
        assert _anonymous_id(client).startswith("anon_")

    def test_anonymous_id_is_stable(self, client):
        client.get("/")
        first = _anonymous_id(client)
        client.get("/knowledge")
        assert _anonymous_id(client) == first

    def test_empty_visitor_sees_mock_content(self, client):
        home = client.get("/").get_data(as_text=True)
        assert "网球技能" in home
        assert "示例内容" in home

        knowledge = client.get("/knowledge").get_data(as_text=True)
        assert "网球正手击球技巧" in knowledge

        topics = client.get("/topics").get_data(as_text=True)
        assert "编程学习" in topics

    def test_mock_pages_are_read_only(self, client):
        client.get("/")
        detail = client.get("/knowledge/mock-kp-1")
        assert detail.status_code == 200
        assert "编辑笔记" not in detail.get_data(as_text=True)

        assert client.get("/knowledge/topic/mock-topic-1").status_code == 200
        assert client.post("/knowledge/mock-kp-1", data={"intent": "update", "content": "x"}).status_code == 403
        assert client.post("/knowledge/topic/mock-topic-1", data={"intent": "update_topic", "name": "x"}).status_code == 403
        assert client.get("/knowledge/mock-kp-999").status_code == 404


class TestCaptureFlow:

    def test_submit_empty_content(self, client):
        resp = client.post("/", data={"content": "   "})
        assert resp.status_code == 400
        assert "内容不能为空" in resp.get_data(as_text=True)

    def test_submit_and_poll(self, app, client, fake_llm):
        fake_llm.analyze.return_value = LearningNoteAnalysis(
            title="正手击球要点", category="网球", suggested_tags=["正手"], summary="摘要",
        )
        knowledge_id = _submit(client, "今天练习了正手击球")

        progress = client.get(f"/progress?knowledgeId={knowledge_id}")
        assert progress.status_code == 200
        assert f"/api/knowledge/{knowledge_id}/status" in progress.get_data(as_text=True)

        status = client.get(f"/api/knowledge/{knowledge_id}/status").get_json()
        assert status["status"] == "completed"
        assert status["title"] == "正手击球要点"
        assert status["learning_topic_id"]
        assert status["error"] is None

        # Now the visitor has content, so no more mock data
        home = client.get("/").get_data(as_text=True)
        assert "网球技能" not in home
        assert "网球" in home

    def test_status_poll_forgets_completed_job(self, app, client):
        tracker = app.extensions["squirrel_notes"]["processing_tracker"]
        knowledge_id = _submit(client, "网球正手练习")
        owner_id = _anonymous_id(client)
        assert tracker.get_job(knowledge_id, owner_id).status == "completed"

        status = client.get(f"/api/knowledge/{knowledge_id}/status").get_json()

        assert status["status"] == "completed"
        assert tracker.get_job(knowledge_id, owner_id) is None

    def test_home_lists_running_analysis(self, app, client):
        client.get("/")
        owner_id = _anonymous_id(client)
        knowledge_service, _, _ = _services(app)
        tracker = app.extensions["squirrel_notes"]["processing_tracker"]
        point = knowledge_service.create_knowledge_point(
            "还在分析的笔记", owner_id, title="分析中的标题", processing_status="processing",
        )
        tracker.start_processing(point["id"], owner_id)

        home = client.get("/").get_data(as_text=True)

        assert "正在分析" in home
        assert "分析中的标题" in home
        assert f"knowledgeId={point['id']}" in home

    def test_progress_requires_id(self, client):
        resp = client.get("/progress")
        assert resp.status_code == 302
        assert urlparse(resp.headers["Location"]).path == "/"

    def test_failed_analysis_reports_error(self, app, client):
        knowledge_service, _, _ = _services(app)
        capture_service = app.extensions["squirrel_notes"]["note_capture"]["service"]
        original = capture_service.resolve_topic

        def boom(*args, **kwargs):
            raise RuntimeError("分类失败")

        capture_service.resolve_topic = boom
        try:
            knowledge_id = _submit(client, "内容")
        finally:
            capture_service.resolve_topic = original

        status = client.get(f"/api/knowledge/{knowledge_id}/status").get_json()
        assert status["status"] == "failed"
        assert status["error"] == "分类失败"
        # Failed jobs keep their message for later polls
        again = client.get(f"/api/knowledge/{knowledge_id}/status").get_json()
        assert again["error"] == "分类失败"

    def test_other_visitor_cannot_see_note(self, app, client):
        knowledge_id = _submit(client, "我的秘密笔记")

        stranger = app.test_client()
        assert stranger.get(f"/knowledge/{knowledge_id}").status_code == 404
        assert stranger.get(f"/api/knowledge/{knowledge_id}/status").status_code == 404
        assert stranger.get(f"/progress?knowledgeId={knowledge_id}").status_code == 404

    def test_analyze_then_save(self, client, fake_llm):
        fake_llm.analyze.return_value = LearningNoteAnalysis(
            title="建议标题", category="编程", suggested_tags=["Python"], summary="摘要",
        )

        resp = client.post("/analyze", data={"intent": "analyze", "content": "学习 Python 装饰器"})
        assert resp.status_code == 302
        review = client.get(resp.headers["Location"])
        assert review.status_code == 200
        assert "建议标题" in review.get_data(as_text=True)

        missing_title = client.post("/analyze", data={
            "intent": "save", "content": "学习 Python 装饰器", "title": "",
        })
        assert missing_title.status_code == 400
        assert "标题不能为空" in missing_title.get_data(as_text=True)

        saved = client.post("/analyze", data={
            "intent": "save",
            "content": "学习 Python 装饰器",
            "title": "装饰器",
            "category": "编程",
            "importance": "4",
            "tags": "Python，装饰器",
        })
        assert saved.status_code == 302
        detail = client.get(saved.headers["Location"]).get_data(as_text=True)
        assert "装饰器" in detail
        assert "编程" in detail

    def test_analyze_without_content_goes_home(self, client):
        assert client.get("/analyze").status_code == 302


class TestKnowledgePages:

    def test_list_search_and_filter(self, app, client, fake_llm):
        fake_llm.analyze.side_effect = lambda content, *args: LearningNoteAnalysis(title=content, category="默认")
        _submit(client, "React Hooks 学习")
        _submit(client, "网球发球")

        listing = client.get("/knowledge").get_data(as_text=True)
        assert "React Hooks" in listing
        assert "网球发球" in listing

        search = client.get("/knowledge?q=react").get_data(as_text=True)
        assert "React Hooks" in search
        assert "网球发球" not in search

        nothing = client.get("/knowledge?q=不存在的内容").get_data(as_text=True)
        assert "没有找到" in nothing

    def test_detail_and_update(self, app, client):
        knowledge_id = _submit(client, "# 标题\n\n正文内容")
        knowledge_service, topic_service, _ = _services(app)

        detail = client.get(f"/knowledge/{knowledge_id}")
        assert detail.status_code == 200
        assert "<h1>标题</h1>" in detail.get_data(as_text=True)

        resp = client.post(f"/knowledge/{knowledge_id}", data={
            "intent": "update",
            "title": "新标题",
            "content": "更新后的内容",
            "tags": "a, b",
            "learning_topic_id": "__custom__",
            "custom_topic_name": "自定义主题",
        })
        assert resp.status_code == 302

        point = knowledge_service.get_knowledge_point(knowledge_id)
        assert point["title"] == "新标题"
        assert point["content"] == "更新后的内容"
        assert [t["name"] for t in point["tags"]] == ["a", "b"]
        topic = topic_service.get_topic(point["learning_topic_id"])
        assert topic["name"] == "自定义主题"
        assert topic["description"] == "用户自定义主题: 自定义主题"

    def test_update_validation(self, client):
        knowledge_id = _submit(client, "内容")

        empty = client.post(f"/knowledge/{knowledge_id}", data={"intent": "update", "content": " "})
        assert empty.status_code == 400
        assert "内容不能为空" in empty.get_data(as_text=True)

        unknown = client.post(f"/knowledge/{knowledge_id}", data={"intent": "delete"})
        assert unknown.status_code == 400


class TestTopicPages:

    def _topic_with_note(self, app, client, fake_llm):
        fake_llm.analyze.return_value = LearningNoteAnalysis(title="发球", category="网球")
        knowledge_id = _submit(client, "发球练习")
        knowledge_service, _, _ = _services(app)
        return knowledge_service.get_knowledge_point(knowledge_id)["learning_topic_id"]

    def test_topic_list_and_detail(self, app, client, fake_llm):
        topic_id = self._topic_with_note(app, client, fake_llm)

        topics = client.get("/topics").get_data(as_text=True)
        assert "网球" in topics
        assert "1 条笔记" in topics

        detail = client.get(f"/knowledge/topic/{topic_id}").get_data(as_text=True)
        assert "测试概览" in detail
        assert "要点一" in detail

    def test_update_topic(self, app, client, fake_llm):
        topic_id = self._topic_with_note(app, client, fake_llm)
        _, topic_service, _ = _services(app)
        topic_service.create_topic("羽毛球", None, _anonymous_id(client))

        ok = client.post(f"/knowledge/topic/{topic_id}", data={
            "intent": "update_topic", "name": "网球技术", "description": "技术动作",
        })
        assert ok.status_code == 302
        assert topic_service.get_topic(topic_id)["name"] == "网球技术"

        duplicate = client.post(f"/knowledge/topic/{topic_id}", data={
            "intent": "update_topic", "name": "羽毛球",
        })
        assert duplicate.status_code == 400
        assert "已存在同名主题" in duplicate.get_data(as_text=True)

    def test_foreign_topic_is_hidden(self, app, client, fake_llm):
        topic_id = self._topic_with_note(app, client, fake_llm)
        stranger = app.test_client()
        assert stranger.get(f"/knowledge/topic/{topic_id}").status_code == 404

    def test_regenerate_overview(self, app, client, fake_llm):
        topic_id = self._topic_with_note(app, client, fake_llm)

        assert client.get("/api/regenerate-overview").status_code == 405
        assert client.post("/api/regenerate-overview", json={}).status_code == 400
        assert client.post("/api/regenerate-overview", json={"topicId": "missing"}).status_code == 404
        assert app.test_client().post("/api/regenerate-overview", json={"topicId": topic_id}).status_code == 404

        resp = client.post("/api/regenerate-overview", json={"topicId": topic_id})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["overview"]["summary"] == "测试概览"

    def test_regenerate_overview_failure(self, app, client, fake_llm):
        topic_id = self._topic_with_note(app, client, fake_llm)
        fake_llm.overview.side_effect = RuntimeError("llm down")

        resp = client.post("/api/regenerate-overview", json={"topicId": topic_id})
        assert resp.status_code == 500


class TestAuthPages:

    def test_register_binds_anonymous_notes(self, app, client):
        knowledge_id = _submit(client, "匿名时记下的笔记")

        resp = _register(client)
        assert resp.status_code == 302
        session_header = next(
            h for h in resp.headers.getlist("Set-Cookie") if h.startswith("session_id=")
        )
        assert "HttpOnly" in session_header
        assert "Max-Age=2592000" in session_header

        knowledge_service, _, _ = _services(app)
        point = knowledge_service.get_knowledge_point(knowledge_id)
        assert not point["user_id"].startswith("anon_")

        home = client.get("/").get_data(as_text=True)
        assert "Jane" in home
        assert client.get(f"/knowledge/{knowledge_id}").status_code == 200

    def test_register_validation(self, client):
        mismatch = client.post("/auth/register", data={
            "email": "a@b.co", "password": "secret123", "confirmPassword": "other123",
        })
        assert mismatch.status_code == 400
        assert "两次输入的密码不一致" in mismatch.get_data(as_text=True)

        missing = client.post("/auth/register", data={"email": "a@b.co"})
        assert missing.status_code == 400
        assert "请填写所有必填字段" in missing.get_data(as_text=True)

    def test_login_logout(self, app, client):
        _register(client)
        client.post("/auth/logout")
        assert client.get_cookie("session_id") is None
        assert "匿名用户" in client.get("/").get_data(as_text=True)

        wrong = client.post("/auth/login", data={"email": "jane@example.com", "password": "nope12345"})
        assert wrong.status_code == 400
        assert "邮箱或密码错误" in wrong.get_data(as_text=True)

        ok = client.post("/auth/login", data={"email": "jane@example.com", "password": "secret123"})
        assert ok.status_code == 302
        assert "Jane" in client.get("/").get_data(as_text=True)

        # Logged-in visitors are sent home from the auth pages
        assert client.get("/auth/login").status_code == 302

    def test_logout_issues_new_anonymous_id(self, client):
        client.get("/")
        before = _anonymous_id(client)
        _register(client)

        client.post("/auth/logout")

        after = _anonymous_id(client)
        assert after.startswith("anon_")
        assert after != before

    def test_invalid_session_cookie_is_cleared(self, client):
        client.set_cookie("session_id", "bogus")

        resp = client.get("/")

        assert resp.status_code == 200
        cleared = [h for h in resp.headers.getlist("Set-Cookie") if h.startswith("session_id=")]
        assert len(cleared) == 1
        assert "Max-Age=0" in cleared[0]


class TestAdmin:

    def test_non_admin_is_rejected(self, client):
        assert client.get("/admin/migrate").status_code == 403
        _register(client)
        assert client.post("/admin/migrate", data={"action": "full-migration"}).status_code == 403

    def test_admin_actions(self, client):
        _register(client, email="admin@example.com")

        info = client.get("/admin/migrate")
        assert info.status_code == 200
        assert len(info.get_json()["actions"]) == 3

        estimate = client.post("/admin/migrate", data={"action": "estimate-duration"}).get_json()
        assert estimate["message"] == "已成功估算所有知识点的学习时长"

        topics = client.post("/admin/migrate", json={"action": "update-topics"}).get_json()
        assert topics["message"] == "已成功更新所有主题的学习时长统计"

        full = client.post("/admin/migrate", data={"action": "full-migration"}).get_json()
        assert full["message"] == "已完成完整数据迁移"

        unknown = client.post("/admin/migrate", data={"action": "drop-everything"})
        assert unknown.status_code == 400
        assert unknown.get_json()["error"] == "未知操作"

    def test_init_data(self, app, client):
        assert client.get("/init-data").status_code == 200

        resp = client.post("/init-data")
        assert resp.status_code == 302
        assert urlparse(resp.headers["Location"]).path == "/knowledge"

        _, topic_service, _ = _services(app)
        names = {t["name"] for t in topic_service.list_topics(_anonymous_id(client))}
        assert {"网球", "编程", "英语学习"} <= names
