from .database import Database
from .demo_data import create_demo_data
from .orm import (
    AnonymousUser,
    Base,
    KnowledgePoint,
    LearningTopic,
    Tag,
    User,
    UserSession,
    as_aware,
    visible_to,
    utcnow,
)

__all__ = [
    "Database",
    "create_demo_data",
    "AnonymousUser",
    "Base",
    "KnowledgePoint",
    "LearningTopic",
    "Tag",
    "User",
    "UserSession",
    "as_aware",
    "visible_to",
    "utcnow",
]
