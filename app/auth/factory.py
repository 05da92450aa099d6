"""
Factory for creating the authentication module.
"""
from typing import List

from app.storage import Database

from .routes import create_auth_routes
from .services import AuthService


def create_auth_module(
    database: Database,
    auth_config,
    login_template: str,
    register_template: str,
    admin_emails: List[str] = None,
    production: bool = False,
) -> dict:
    """Create authentication module with service and routes.

    Args:
        database: Shared database handle
        auth_config: ``AuthConfig`` (session lifetime, bcrypt rounds, ...)
        login_template: Template string for the login page
        register_template: Template string for the registration page
        admin_emails: Emails allowed to run maintenance actions
        production: Mark cookies ``Secure``

    Returns:
        Dictionary containing the service and blueprint
    """
    auth_service = AuthService(database, auth_config, admin_emails, production)
    blueprint = create_auth_routes(auth_service, login_template, register_template)
    return {
        "service": auth_service,
        "blueprint": blueprint,
    }
