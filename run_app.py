#!/usr/bin/env python3
"""
Start the Squirrel Notes web server.

    python run_app.py --port 8080 --debug
"""

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from analysis_service.logging_config import setup_logging, stop_logging
from config_manager import ConfigManager
from app.main import create_app


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Squirrel Notes web application")
    parser.add_argument("--config", default="squirrel_config.json", help="JSON configuration file")
    parser.add_argument("--host", help="Bind address (overrides app.host)")
    parser.add_argument("--port", type=int, help="Port (overrides app.port)")
    parser.add_argument("--debug", action="store_true", help="Flask debug mode and verbose logs")
    parser.add_argument("--log-file", type=Path, help="Copy logs into this file")
    return parser.parse_args(argv)


def print_banner(config_manager: ConfigManager, host: str, port: int) -> None:
    llm = config_manager.get_llm_config()
    print("🐿️  Squirrel Notes")
    print(f"   LLM:      {llm.provider} / {llm.model} @ {llm.base_url}")
    print(f"   Database: {config_manager.get_database_config().url}")
    print(f"   Listen:   http://{host}:{port}")


def main(argv=None):
    args = parse_args(argv)
    config_manager = ConfigManager(args.config)

    overrides = {k: v for k, v in (("host", args.host), ("port", args.port)) if v}
    if args.debug:
        overrides["debug"] = True
    if overrides:
        config_manager.update_section("app", overrides)
    app_config = config_manager.get_app_config()

    setup_logging(debug=app_config.debug, log_file=args.log_file)
    app = create_app(config_manager)
    print_banner(config_manager, app_config.host, app_config.port)

    try:
        app.run(host=app_config.host, port=app_config.port, debug=app_config.debug)
    finally:
        stop_logging()


if __name__ == "__main__":
    main()
