"""
Read-only showcase content for anonymous visitors who have saved nothing yet.

Every id starts with ``mock-`` so pages can tell showcase rows apart and
disable editing.
"""
import json
from typing import Any, Dict, List, Optional

MOCK_TAGS: List[Dict[str, Any]] = [
    {"id": "mock-tag-1", "name": "正手", "color": "#3B82F6", "usage_count": 1},
    {"id": "mock-tag-2", "name": "击球", "color": "#10B981", "usage_count": 1},
    {"id": "mock-tag-3", "name": "发球", "color": "#EF4444", "usage_count": 1},
    {"id": "mock-tag-4", "name": "React", "color": "#8B5CF6", "usage_count": 1},
    {"id": "mock-tag-5", "name": "Hooks", "color": "#F59E0B", "usage_count": 1},
    {"id": "mock-tag-6", "name": "异步", "color": "#EC4899", "usage_count": 1},
]

MOCK_TOPICS: List[Dict[str, Any]] = [
    {
        "id": "mock-topic-1",
        "name": "网球技能",
        "description": "网球技能学习记录，包含发球、击球、战术等技巧",
        "created_at": "2024-01-15T00:00:00+00:00",
        "updated_at": "2024-01-20T00:00:00+00:00",
        "total_learning_minutes": 40,
        "ai_summary": json.dumps({
            "summary": "网球技能学习涵盖了基础击球技术、发球要领和战术运用。通过系统练习，可以逐步掌握网球的核心技能。",
            "key_insights": [
                "正手击球是网球的基础技术，需要掌握正确的站位和握拍",
                "发球技术直接影响比赛节奏，抛球稳定性是关键",
                "身体协调性和腰部转动是发力的重要因素",
            ],
            "learning_progress": "基础阶段",
            "next_steps": [
                "掌握基本站位和握拍方法",
                "练习正手击球的基本动作",
                "学习发球技术和战术运用",
            ],
            "confidence": 0.85,
            "updated_at": "2024-01-20T00:00:00+00:00",
        }, ensure_ascii=False),
    },
    {
        "id": "mock-topic-2",
        "name": "编程学习",
        "description": "编程技能提升笔记，涵盖前端、后端、算法等知识",
        "created_at": "2024-01-10T00:00:00+00:00",
        "updated_at": "2024-01-18T00:00:00+00:00",
        "total_learning_minutes": 40,
        "ai_summary": json.dumps({
            "summary": "现代前端开发需要掌握React Hooks、异步编程和状态管理等核心技术。这些技能是构建复杂应用的基础。",
            "key_insights": [
                "React Hooks改变了组件状态管理的方式，使代码更简洁",
                "异步编程是现代JavaScript开发的核心技能",
                "状态管理是复杂应用架构的重要组成部分",
            ],
            "learning_progress": "进阶阶段",
            "next_steps": [
                "学习React Hooks的基本概念和使用",
                "掌握JavaScript异步编程的多种方式",
                "实践状态管理和应用架构设计",
            ],
            "confidence": 0.88,
            "updated_at": "2024-01-18T00:00:00+00:00",
        }, ensure_ascii=False),
    },
]

MOCK_KNOWLEDGE_POINTS: List[Dict[str, Any]] = [
    {
        "id": "mock-kp-1",
        "title": "网球正手击球技巧",
        "content": (
            "今天网球课学习了正手击球的关键要点：\n\n"
            "1. 站位：双脚与肩同宽，侧身对网\n"
            "2. 握拍：大陆式握拍，拇指和食指形成V字\n"
            "3. 引拍：拍头指向后场，肘部弯曲\n"
            "4. 击球点：在身体前方，腰部高度\n"
            "5. 随挥：击球后拍子继续向前上方挥动\n\n"
            "重点是要保持身体平衡，转动腰部带动手臂发力。"
        ),
        "summary": "正手击球是网球的基础技术，需要掌握正确的站位、握拍和击球动作。",
        "tag_ids": ["mock-tag-1", "mock-tag-2"],
        "keywords": ["网球", "正手", "击球", "站位", "握拍"],
        "importance": 5,
        "confidence": 0.9,
        "learning_topic_id": "mock-topic-1",
        "study_duration_minutes": 20,
        "created_at": "2024-01-15T00:00:00+00:00",
        "updated_at": "2024-01-15T00:00:00+00:00",
    },
    {
        "id": "mock-kp-2",
        "title": "网球发球动作要领",
        "content": (
            "网球发球是比赛中的关键环节，今天重点练习了：\n\n"
            "1. 准备姿势：双脚分开，前脚脚尖指向目标\n"
            "2. 抛球：左手抛球，球要抛到右肩上方\n"
            "3. 击球：在最高点击球，手腕发力\n\n"
            "注意事项：抛球要稳定，击球时机要准确，力量要适中。"
        ),
        "summary": "发球的关键是抛球要稳定，击球时机要准确。",
        "tag_ids": ["mock-tag-3", "mock-tag-2"],
        "keywords": ["网球", "发球", "抛球", "击球"],
        "importance": 4,
        "confidence": 0.85,
        "learning_topic_id": "mock-topic-1",
        "study_duration_minutes": 20,
        "created_at": "2024-01-16T00:00:00+00:00",
        "updated_at": "2024-01-16T00:00:00+00:00",
    },
    {
        "id": "mock-kp-3",
        "title": "React Hooks 使用技巧",
        "content": (
            "今天学习了React Hooks的核心概念：\n\n"
            "useState 管理组件状态，useEffect 处理副作用，"
            "useContext 跨组件传递数据。\n\n"
            "重点是要理解Hooks的执行时机和依赖关系。"
        ),
        "summary": "理解Hooks的执行时机和依赖关系是关键。",
        "tag_ids": ["mock-tag-4", "mock-tag-5"],
        "keywords": ["React", "Hooks", "useState", "useEffect"],
        "importance": 5,
        "confidence": 0.92,
        "learning_topic_id": "mock-topic-2",
        "study_duration_minutes": 20,
        "created_at": "2024-01-10T00:00:00+00:00",
        "updated_at": "2024-01-10T00:00:00+00:00",
    },
    {
        "id": "mock-kp-4",
        "title": "JavaScript 异步编程",
        "content": (
            "深入学习了JavaScript异步编程的几种方式：Promise、async/await 和 Generator。\n\n"
            "实际项目中async/await最常用，代码简洁易懂。"
        ),
        "summary": "实际项目中async/await最常用，代码简洁易懂。",
        "tag_ids": ["mock-tag-6"],
        "keywords": ["JavaScript", "Promise", "async", "await"],
        "importance": 4,
        "confidence": 0.88,
        "learning_topic_id": "mock-topic-2",
        "study_duration_minutes": 20,
        "created_at": "2024-01-12T00:00:00+00:00",
        "updated_at": "2024-01-12T00:00:00+00:00",
    },
]

_TAGS_BY_ID = {t["id"]: t for t in MOCK_TAGS}


def _with_tags(point: Dict[str, Any]) -> Dict[str, Any]:
    return {**point, "tags": [_TAGS_BY_ID[t] for t in point["tag_ids"] if t in _TAGS_BY_ID]}


def get_mock_topic(topic_id: str) -> Optional[Dict[str, Any]]:
    for topic in MOCK_TOPICS:
        if topic["id"] == topic_id:
            return dict(topic)
    return None


def mock_points_for_topic(topic_id: str) -> List[Dict[str, Any]]:
    points = [_with_tags(p) for p in MOCK_KNOWLEDGE_POINTS if p["learning_topic_id"] == topic_id]
    points.sort(key=lambda p: p["created_at"], reverse=True)
    return points


def mock_topics_with_stats() -> List[Dict[str, Any]]:
    """Same shape as ``TopicService.topics_with_stats``."""
    result = []
    for topic in MOCK_TOPICS:
        points = mock_points_for_topic(topic["id"])
        tag_names = []
        for point in points:
            for tag in point["tags"]:
                if tag["name"] not in tag_names:
                    tag_names.append(tag["name"])
        result.append({
            **topic,
            "knowledge_count": len(points),
            "tag_names": tag_names,
            "last_activity": max((p["updated_at"] for p in points), default=topic["updated_at"]),
        })
    result.sort(key=lambda t: t["last_activity"], reverse=True)
    return result


def get_mock_point(point_id: str) -> Optional[Dict[str, Any]]:
    for point in MOCK_KNOWLEDGE_POINTS:
        if point["id"] == point_id:
            return _with_tags(point)
    return None


def all_mock_points() -> List[Dict[str, Any]]:
    points = [_with_tags(p) for p in MOCK_KNOWLEDGE_POINTS]
    points.sort(key=lambda p: p["created_at"], reverse=True)
    return points
