"""
Factory for creating the knowledge module.
"""
from app.storage import Database

from .routes import create_knowledge_routes
from .services import KnowledgeService, TagService


def create_knowledge_module(
    database: Database,
    topic_service,
    auth_service,
    analysis_config,
    list_template: str,
    detail_template: str,
    processing_tracker=None,
) -> dict:
    """Create knowledge module with services and routes.

    Returns:
        Dictionary containing the services and blueprint
    """
    tag_service = TagService(database)
    knowledge_service = KnowledgeService(database, tag_service, topic_service, analysis_config)
    blueprint = create_knowledge_routes(
        knowledge_service,
        tag_service,
        topic_service,
        auth_service,
        list_template,
        detail_template,
        processing_tracker=processing_tracker,
    )
    return {
        "service": knowledge_service,
        "tag_service": tag_service,
        "blueprint": blueprint,
    }
