"""
Tests for knowledge points and tags.
"""
import pytest
from sqlalchemy import select

from app.knowledge.models import (
    TAG_COLORS,
    estimate_study_duration,
    render_markdown,
    split_tag_names,
    tag_color,
)
from app.storage import KnowledgePoint, LearningTopic

OWNER = "anon_owner"
OTHER = "anon_other"


class TestKnowledgeHelpers:

    @pytest.mark.parametrize("length,minutes", [
        (0, 5),
        (99, 5),
        (100, 10),
        (299, 10),
        (300, 20),
        (599, 20),
        (600, 30),
        (999, 30),
        (1000, 30),
        (1200, 35),
        (1999, 50),
        (5000, 60),
    ])
    def test_estimate_study_duration(self, length, minutes):
        assert estimate_study_duration("字" * length) == minutes

    def test_split_tag_names(self):
        assert split_tag_names("正手, 发球，战术,, ") == ["正手", "发球", "战术"]
        assert split_tag_names("") == []
        assert split_tag_names(None) == []

    def test_tag_colors_cycle(self):
        assert tag_color(0) == TAG_COLORS[0]
        assert tag_color(len(TAG_COLORS)) == TAG_COLORS[0]

    def test_render_markdown(self):
        html = render_markdown("# 标题\n\n```python\nprint(1)\n```\n\n| a | b |\n|---|---|\n| 1 | 2 |")
        assert "<h1>标题</h1>" in html
        assert "<code" in html
        assert "<table>" in html


class TestTagService:

    def test_create_tag_reuses_existing(self, services):
        first = services.tags.create_tag("正手", OWNER)
        again = services.tags.create_tag("正手", OWNER)
        assert first["id"] == again["id"]

        other = services.tags.create_tag("正手", OTHER)
        assert other["id"] != first["id"]

    def test_colors_follow_owner_tag_count(self, services):
        tags = services.tags.create_or_get_tags(["a", "b", "c"], OWNER)
        assert [t["color"] for t in tags] == TAG_COLORS[:3]

    def test_create_or_get_tags_dedupes(self, services):
        tags = services.tags.create_or_get_tags(["a", " a ", "", "b"], OWNER)
        assert [t["name"] for t in tags] == ["a", "b"]

    def test_empty_name_rejected(self, services):
        with pytest.raises(ValueError):
            services.tags.create_tag("  ", OWNER)

    def test_list_orders_by_usage(self, services):
        rare, common = services.tags.create_or_get_tags(["rare", "common"], OWNER)
        services.tags.increment_tag_usage([common["id"]], amount=3)
        services.tags.create_tag("hidden", OTHER)

        assert [t["name"] for t in services.tags.list_tags(OWNER)] == ["common", "rare"]

    def test_get_tags_by_ids_keeps_order(self, services):
        a, b = services.tags.create_or_get_tags(["a", "b"], OWNER)
        result = services.tags.get_tags_by_ids([b["id"], "missing", a["id"]])
        assert [t["name"] for t in result] == ["b", "a"]


class TestKnowledgeService:

    def test_create_rejects_empty_content(self, services):
        with pytest.raises(ValueError):
            services.knowledge.create_knowledge_point("   ", OWNER)

    def test_create_updates_tags_topic_and_overview(self, services, fake_llm):
        topic = services.topics.create_topic("网球", "", OWNER)
        tags = services.tags.create_or_get_tags(["正手"], OWNER)

        point = services.knowledge.create_knowledge_point(
            "正手击球要在身体前方", OWNER, title="正手",
            tag_ids=[tags[0]["id"]], learning_topic_id=topic["id"], importance=9,
        )

        assert point["importance"] == 5
        assert point["study_duration_minutes"] == 5
        assert [t["name"] for t in point["tags"]] == ["正手"]
        assert services.tags.list_tags(OWNER)[0]["usage_count"] == 1

        stored_topic = services.topics.get_topic(topic["id"])
        assert stored_topic["total_learning_minutes"] == 5
        assert stored_topic["first_study_at"] is not None
        assert services.topics.parse_overview(stored_topic)["summary"] == "测试概览"
        fake_llm.overview.assert_called_once()

    def test_visibility(self, services):
        mine = services.knowledge.create_knowledge_point("我的笔记", OWNER)
        theirs = services.knowledge.create_knowledge_point("别人的笔记", OTHER)
        shared = services.knowledge.create_knowledge_point("公共笔记", None)

        ids = {p["id"] for p in services.knowledge.list_knowledge_points(OWNER)}
        assert ids == {mine["id"], shared["id"]}
        assert services.knowledge.get_knowledge_point(theirs["id"], OWNER, check_owner=True) is None
        assert services.knowledge.get_knowledge_point(shared["id"], OWNER, check_owner=True) is not None
        assert services.knowledge.count_knowledge_points(OWNER) == 1

    def test_list_by_topic(self, services):
        topic = services.topics.create_topic("网球", "", OWNER)
        in_topic = services.knowledge.create_knowledge_point("发球", OWNER, learning_topic_id=topic["id"])
        services.knowledge.create_knowledge_point("别的", OWNER)

        points = services.knowledge.list_knowledge_points(OWNER, topic["id"])
        assert [p["id"] for p in points] == [in_topic["id"]]

    def test_search_is_case_insensitive(self, services):
        services.knowledge.create_knowledge_point("Learning React Hooks", OWNER, title="React")
        services.knowledge.create_knowledge_point("网球发球", OWNER, title="发球")
        services.knowledge.create_knowledge_point("react from someone else", OTHER)

        results = services.knowledge.search_knowledge_points("REACT", OWNER)
        assert [p["title"] for p in results] == ["React"]
        assert len(services.knowledge.search_knowledge_points("", OWNER)) == 2

    def test_search_treats_wildcards_literally(self, services):
        services.knowledge.create_knowledge_point("命中率提升到 80%", OWNER, title="发球命中率")
        services.knowledge.create_knowledge_point("snake_case 命名", OWNER, title="命名规范")
        services.knowledge.create_knowledge_point("路径 C:\\notes 里的文件", OWNER, title="Windows 路径")
        services.knowledge.create_knowledge_point("普通笔记", OWNER, title="普通")

        assert [p["title"] for p in services.knowledge.search_knowledge_points("%", OWNER)] == ["发球命中率"]
        assert [p["title"] for p in services.knowledge.search_knowledge_points("_", OWNER)] == ["命名规范"]
        assert [p["title"] for p in services.knowledge.search_knowledge_points("\\", OWNER)] == ["Windows 路径"]

    def test_update_moves_topic_and_reestimates(self, services):
        old_topic = services.topics.create_topic("旧主题", "", OWNER)
        new_topic = services.topics.create_topic("新主题", "", OWNER)
        point = services.knowledge.create_knowledge_point("短", OWNER, learning_topic_id=old_topic["id"])

        updated = services.knowledge.update_knowledge_point(
            point["id"], content="长" * 400, learning_topic_id=new_topic["id"], bogus="ignored",
        )

        assert updated["study_duration_minutes"] == 20
        assert updated["learning_topic_id"] == new_topic["id"]
        assert services.topics.get_topic(old_topic["id"])["total_learning_minutes"] == 0
        assert services.topics.get_topic(new_topic["id"])["total_learning_minutes"] == 20

    def test_update_counts_only_added_tags(self, services):
        a, b = services.tags.create_or_get_tags(["a", "b"], OWNER)
        point = services.knowledge.create_knowledge_point("内容", OWNER, tag_ids=[a["id"]])

        services.knowledge.update_knowledge_point(point["id"], tag_ids=[a["id"], b["id"]])

        usage = {t["name"]: t["usage_count"] for t in services.tags.list_tags(OWNER)}
        assert usage == {"a": 1, "b": 1}

    def test_update_unknown_point(self, services):
        with pytest.raises(LookupError):
            services.knowledge.update_knowledge_point("missing", title="x")

    def test_related_points(self, services):
        topic = services.topics.create_topic("网球", "", OWNER)
        tennis, serve, other = services.tags.create_or_get_tags(["网球", "发球", "其他"], OWNER)
        point = services.knowledge.create_knowledge_point(
            "正手", OWNER, tag_ids=[tennis["id"]], learning_topic_id=topic["id"],
        )
        outside = services.knowledge.create_knowledge_point("网球鞋", OWNER, tag_ids=[tennis["id"]])
        same_topic = services.knowledge.create_knowledge_point(
            "反手", OWNER, tag_ids=[tennis["id"], serve["id"]], learning_topic_id=topic["id"],
        )
        services.knowledge.create_knowledge_point("无关", OWNER, tag_ids=[other["id"]])

        related = services.knowledge.related_knowledge_points(point, OWNER)
        assert [p["id"] for p in related] == [same_topic["id"], outside["id"]]
        assert services.knowledge.related_knowledge_points(point, OWNER, limit=1)[0]["id"] == same_topic["id"]

    def test_related_points_without_tags(self, services):
        point = services.knowledge.create_knowledge_point("无标签", OWNER)
        assert services.knowledge.related_knowledge_points(point, OWNER) == []

    def test_estimate_all_durations(self, services):
        topic = services.topics.create_topic("网球", "", OWNER)
        point = services.knowledge.create_knowledge_point("字" * 150, OWNER, learning_topic_id=topic["id"])
        with services.database.session_scope() as session:
            session.get(KnowledgePoint, point["id"]).study_duration_minutes = 0
            session.get(LearningTopic, topic["id"]).total_learning_minutes = 0

        assert services.knowledge.estimate_all_durations() == 1
        assert services.knowledge.get_knowledge_point(point["id"])["study_duration_minutes"] == 10
        assert services.topics.get_topic(topic["id"])["total_learning_minutes"] == 10

    def test_update_study_duration(self, services):
        topic = services.topics.create_topic("网球", "", OWNER)
        point = services.knowledge.create_knowledge_point("内容", OWNER, learning_topic_id=topic["id"])

        services.knowledge.update_study_duration(point["id"], 45)

        assert services.topics.get_topic(topic["id"])["total_learning_minutes"] == 45

    def test_topic_deletion_clears_reference(self, services):
        topic = services.topics.create_topic("网球", "", OWNER)
        point = services.knowledge.create_knowledge_point("内容", OWNER, learning_topic_id=topic["id"])
        with services.database.session_scope() as session:
            session.delete(session.get(LearningTopic, topic["id"]))

        with services.database.session_scope() as session:
            stored = session.scalar(select(KnowledgePoint).where(KnowledgePoint.id == point["id"]))
            assert stored.learning_topic_id is None
