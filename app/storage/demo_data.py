"""
Sample topics and notes for trying the application out.
"""
import logging
from typing import Any, Dict, List

from sqlalchemy import func, select

from app.knowledge.models import COMPLETED, estimate_study_duration, tag_color

from .database import Database
from .orm import KnowledgePoint, LearningTopic, Tag

logger = logging.getLogger(__name__)

DEMO_TOPICS: List[Dict[str, Any]] = [
    {
        "name": "网球",
        "description": "网球技术学习和训练记录",
        "notes": [
            {
                "title": "正手击球技术要点",
                "content": (
                    "今天练习了正手击球，教练强调了几个重要要点：\n"
                    "1. 击球点要在身体前方，不能等球来到身体侧面\n"
                    "2. 挥拍时要转动腰部，用整个身体的力量\n"
                    "3. 击球后要有完整的随挥动作\n"
                    "4. 脚步要跟上，保持身体平衡\n"
                    "需要多练习，目前稳定性还不够好。"
                ),
                "summary": "正手击球的关键在于身体前方的击球点、转腰发力和完整随挥。",
                "tags": ["正手", "击球", "基础技术"],
                "keywords": ["击球点", "转腰", "随挥", "脚步"],
                "importance": 4,
                "confidence": 0.9,
            },
        ],
    },
    {
        "name": "编程",
        "description": "编程技术学习和项目经验",
        "notes": [
            {
                "title": "React Hooks 使用心得",
                "content": (
                    "学习了 React Hooks，主要掌握了以下几点：\n"
                    "1. useState 用于管理组件状态\n"
                    "2. useEffect 用于处理副作用，依赖数组控制执行时机\n"
                    "3. useCallback 和 useMemo 用于性能优化\n"
                    "4. 自定义 Hook 可以复用逻辑\n\n"
                    "注意事项：\n"
                    "- Hook 只能在函数组件顶层调用\n"
                    "- 依赖数组要包含所有使用的变量\n"
                    "- 避免在 useEffect 中直接修改状态"
                ),
                "summary": "React Hooks 管理状态与副作用，需注意调用位置和依赖数组。",
                "tags": ["React", "Hooks", "前端"],
                "keywords": ["useState", "useEffect", "性能优化"],
                "importance": 4,
                "confidence": 0.95,
            },
        ],
    },
    {
        "name": "英语学习",
        "description": "英语语言学习记录",
        "notes": [
            {
                "title": "英语发音练习记录",
                "content": (
                    "今天练习了几个容易搞错的发音：\n"
                    "1. \"th\" 音 - think, thank, three\n"
                    "   舌尖要轻触上牙，气流从舌头两侧流出\n"
                    "2. \"r\" 音 - red, right, really\n"
                    "   舌尖要卷起但不能碰到上颚\n"
                    "3. 重音位置 - today, tomorrow, understand\n"
                    "   重音在第二个音节\n\n"
                    "需要每天练习15分钟，录音对比标准发音。"
                ),
                "summary": "练习 th 音、r 音和重音位置，坚持每日录音对比。",
                "tags": ["发音", "练习", "音标"],
                "keywords": ["th音", "r音", "重音"],
                "importance": 3,
                "confidence": 0.8,
            },
        ],
    },
]


def create_demo_data(database: Database, owner_id: str) -> int:
    """Seed the sample topics and notes for ``owner_id``.

    Rows are flagged ``is_demo`` so they are discarded when an anonymous
    owner registers. Seeding an owner that already has sample topics is a
    no-op.

    Returns:
        Number of notes created
    """
    created = 0
    with database.session_scope() as session:
        existing = session.scalar(
            select(func.count()).select_from(LearningTopic).where(
                LearningTopic.user_id == owner_id, LearningTopic.is_demo.is_(True)
            )
        )
        if existing:
            logger.info("Demo data already present for %s", owner_id)
            return 0

        tag_count = session.scalar(
            select(func.count()).select_from(Tag).where(Tag.user_id == owner_id)
        ) or 0
        tags_by_name: Dict[str, Tag] = {
            t.name: t for t in session.scalars(select(Tag).where(Tag.user_id == owner_id))
        }

        for spec in DEMO_TOPICS:
            name = spec["name"]
            if session.scalar(
                select(LearningTopic.id).where(
                    LearningTopic.name == name, LearningTopic.user_id == owner_id
                )
            ):
                name = f"{name} (示例)"
            topic = LearningTopic(
                name=name,
                description=spec["description"],
                user_id=owner_id,
                is_demo=True,
            )
            session.add(topic)
            session.flush()

            minutes = 0
            for note in spec["notes"]:
                tag_ids = []
                for tag_name in note["tags"]:
                    tag = tags_by_name.get(tag_name)
                    if tag is None:
                        tag = Tag(
                            name=tag_name,
                            color=tag_color(tag_count),
                            user_id=owner_id,
                            usage_count=0,
                            is_demo=True,
                        )
                        tag_count += 1
                        session.add(tag)
                        session.flush()
                        tags_by_name[tag_name] = tag
                    tag.usage_count = (tag.usage_count or 0) + 1
                    tag_ids.append(tag.id)

                duration = estimate_study_duration(note["content"])
                point = KnowledgePoint(
                    title=note["title"],
                    content=note["content"],
                    summary=note["summary"],
                    tag_ids=tag_ids,
                    keywords=list(note["keywords"]),
                    importance=note["importance"],
                    confidence=note["confidence"],
                    learning_topic_id=topic.id,
                    related_ids=[],
                    attachments=[],
                    processing_status=COMPLETED,
                    study_duration_minutes=duration,
                    user_id=owner_id,
                    is_demo=True,
                )
                session.add(point)
                session.flush()
                minutes += duration
                created += 1
                topic.first_study_at = topic.first_study_at or point.created_at
                topic.last_study_at = point.created_at

            topic.total_learning_minutes = minutes

    logger.info("Created %d demo notes for %s", created, owner_id)
    return created
