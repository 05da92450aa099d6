"""
Shared fixtures: an isolated SQLite database per test, services wired the
way the app wires them, and LLM calls replaced by mocks.
"""
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from analysis_service.models import TopicOverview
from analysis_service.note_analyzer import default_analysis
from config_manager import ConfigManager


@pytest.fixture(autouse=True)
def fake_llm():
    """Keep every test offline; tests adjust the mocks' return values."""
    with patch("app.topics.services.generate_topic_overview") as overview, \
            patch("app.note_capture.services.analyze_learning_note") as analyze:
        overview.return_value = TopicOverview(
            summary="测试概览",
            key_insights=["要点一"],
            learning_progress="基础阶段",
            next_steps=["继续练习"],
            confidence=0.8,
            updated_at="2024-01-01T00:00:00+00:00",
        )
        analyze.return_value = default_analysis()
        yield SimpleNamespace(overview=overview, analyze=analyze)


@pytest.fixture
def config_manager(tmp_path):
    manager = ConfigManager(str(tmp_path / "squirrel_config.json"))
    manager.update_section("database", {"url": f"sqlite:///{tmp_path / 'test.db'}", "echo": False})
    manager.update_section("auth", {"bcrypt_rounds": 4})
    manager.update_section("analysis", {"background": False})
    manager.update_section("paths", {"data_dir": str(tmp_path / "data")})
    manager.update_section("app", {"admin_emails": ["admin@example.com"], "production": False})
    return manager


@pytest.fixture
def services(config_manager, tmp_path):
    """All services on a fresh database, without Flask."""
    from app.auth.services import AuthService
    from app.knowledge.services import KnowledgeService, TagService
    from app.note_capture.processing_tracker import ProcessingTracker
    from app.note_capture.services import NoteCaptureService
    from app.storage import Database
    from app.topics.services import TopicService

    analysis_config = config_manager.get_analysis_config()
    database = Database(config_manager.get_database_config().url)
    database.init_database()

    topic_service = TopicService(database, analysis_config, config_manager.get_llm_config())
    tag_service = TagService(database)
    knowledge_service = KnowledgeService(database, tag_service, topic_service, analysis_config)
    auth_service = AuthService(
        database, config_manager.get_auth_config(), ["admin@example.com"], production=False
    )
    tracker = ProcessingTracker(tmp_path / "jobs.json")
    capture_service = NoteCaptureService(
        knowledge_service, tag_service, topic_service, tracker, analysis_config
    )

    yield SimpleNamespace(
        database=database,
        topics=topic_service,
        tags=tag_service,
        knowledge=knowledge_service,
        auth=auth_service,
        tracker=tracker,
        capture=capture_service,
    )
    database.dispose()


@pytest.fixture
def app(config_manager):
    from app.main import create_app

    flask_app = create_app(config_manager)
    flask_app.config.update(TESTING=True)
    yield flask_app
    flask_app.extensions["squirrel_notes"]["database"].dispose()


@pytest.fixture
def client(app):
    return app.test_client()
