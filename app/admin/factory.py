"""
Factory for creating the admin module.
"""
from app.storage import Database

from .routes import create_admin_routes


def create_admin_module(
    database: Database,
    auth_service,
    knowledge_service,
    topic_service,
    init_data_template: str,
) -> dict:
    """Create admin module.

    Returns:
        Dictionary containing the blueprint
    """
    return {
        "blueprint": create_admin_routes(
            database, auth_service, knowledge_service, topic_service, init_data_template
        ),
    }
