"""
Factory for creating the topics module.
"""
from app.storage import Database

from .routes import create_topic_routes
from .services import TopicService


def create_topics_module(database: Database, analysis_config, llm_config=None) -> dict:
    """Create the topic service.

    The blueprint needs the knowledge service, which itself depends on the
    topic service, so it is attached afterwards by ``attach_topic_routes``.

    Returns:
        Dictionary containing the service
    """
    return {
        "service": TopicService(database, analysis_config, llm_config),
    }


def attach_topic_routes(
    topics_module: dict,
    knowledge_service,
    auth_service,
    topics_template: str,
    detail_template: str,
) -> dict:
    """Build the topic blueprint and store it in ``topics_module``."""
    topics_module["blueprint"] = create_topic_routes(
        topics_module["service"],
        knowledge_service,
        auth_service,
        topics_template,
        detail_template,
    )
    return topics_module
