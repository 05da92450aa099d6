#!/usr/bin/env python3
"""
Data maintenance script for Squirrel Notes:
- create / migrate the database schema
- seed sample topics and notes for an owner
- estimate missing study durations and roll learning time up to topics
- inspect and clean up login sessions
- forget finished analysis jobs
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

sys.path.insert(0, str(Path(__file__).parent))

from config_manager import ConfigManager, resolve_path
from app.auth.services import AuthService
from app.knowledge.services import KnowledgeService, TagService
from app.note_capture.processing_tracker import ProcessingTracker
from app.storage import Database, create_demo_data
from app.topics.services import TopicService

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


class DataManager:
    """Runs maintenance actions against the configured database."""

    def __init__(self, config_manager: ConfigManager):
        db_config = config_manager.get_database_config()
        analysis_config = config_manager.get_analysis_config()
        app_config = config_manager.get_app_config()

        self.database = Database(db_config.url, echo=db_config.echo)
        self.topic_service = TopicService(self.database, analysis_config, config_manager.get_llm_config())
        self.tag_service = TagService(self.database)
        self.knowledge_service = KnowledgeService(
            self.database, self.tag_service, self.topic_service, analysis_config
        )
        self.auth_service = AuthService(
            self.database, config_manager.get_auth_config(), app_config.admin_emails, app_config.production
        )
        self.jobs_file = resolve_path(config_manager.get_paths_config().data_dir) / "analysis_jobs.json"

    def init_db(self) -> Dict[str, Any]:
        self.database.init_database()
        return {"status": "ok"}

    def seed_demo(self, owner_id: str) -> Dict[str, Any]:
        self.database.init_database()
        created = create_demo_data(self.database, owner_id)
        return {"owner_id": owner_id, "knowledge_points_created": created}

    def cleanup_sessions(self) -> Dict[str, Any]:
        return {"sessions_removed": self.auth_service.cleanup_expired_sessions()}

    def estimate_durations(self) -> Dict[str, Any]:
        return {"knowledge_points_updated": self.knowledge_service.estimate_all_durations()}

    def update_topics(self) -> Dict[str, Any]:
        return {"topics_updated": self.topic_service.update_all_topics_learning_time()}

    def list_sessions(self) -> List[Dict[str, Any]]:
        return self.auth_service.list_sessions()

    def cleanup_jobs(self, max_age_hours: int) -> Dict[str, Any]:
        tracker = ProcessingTracker(self.jobs_file)
        return {"jobs_removed": tracker.cleanup_old_jobs(max_age_hours=max_age_hours)}


def main():
    parser = argparse.ArgumentParser(description="Squirrel Notes data management script")
    parser.add_argument("--config", type=Path, default=Path("squirrel_config.json"),
                        help="Path to the JSON configuration file")
    parser.add_argument("--database-url", type=str,
                        help="Override the configured database URL")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("init-db", help="Create tables and add missing columns")
    seed = subparsers.add_parser("seed-demo", help="Create sample topics and notes")
    seed.add_argument("--owner", required=True,
                      help="User id or anonymous id that will own the sample data")
    subparsers.add_parser("cleanup-sessions", help="Delete expired login sessions")
    subparsers.add_parser("estimate-durations", help="Estimate study duration of notes without one")
    subparsers.add_parser("update-topics", help="Recompute learning time of every topic")
    subparsers.add_parser("list-sessions", help="Show login sessions")
    jobs = subparsers.add_parser("cleanup-jobs", help="Forget finished analysis jobs")
    jobs.add_argument("--max-age-hours", type=int, default=24,
                      help="Keep jobs that finished more recently than this")

    args = parser.parse_args()

    config_manager = ConfigManager(str(args.config))
    if args.database_url:
        config_manager.update_section("database", {"url": args.database_url})

    manager = DataManager(config_manager)

    if args.command == "init-db":
        result = manager.init_db()
    elif args.command == "seed-demo":
        result = manager.seed_demo(args.owner)
    elif args.command == "cleanup-sessions":
        result = manager.cleanup_sessions()
    elif args.command == "estimate-durations":
        result = manager.estimate_durations()
    elif args.command == "update-topics":
        result = manager.update_topics()
    elif args.command == "cleanup-jobs":
        result = manager.cleanup_jobs(args.max_age_hours)
    else:
        result = manager.list_sessions()

    print(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
