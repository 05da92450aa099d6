"""
Configuration management for Squirrel Notes.

Settings are read from a JSON file (``squirrel_config.json`` by default),
merged section by section over built-in defaults, and finally overridden by
environment variables. Each section is exposed as a typed dataclass.
"""

import copy
import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent

T = TypeVar("T")


@dataclass
class LLMConfig:
    """LLM provider settings."""
    provider: str
    api_key: str
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: int


@dataclass
class AppConfig:
    """Web server settings."""
    host: str
    port: int
    debug: bool
    production: bool
    admin_emails: List[str]


@dataclass
class DatabaseConfig:
    """Relational store settings."""
    url: str
    echo: bool


@dataclass
class AuthConfig:
    """Session and password settings."""
    session_days: int
    anonymous_cookie_days: int
    bcrypt_rounds: int
    min_password_length: int


@dataclass
class AnalysisConfig:
    """Note analysis and topic overview settings."""
    background: bool
    title_preview_chars: int
    overview_max_points: int
    related_limit: int


@dataclass
class PathsConfig:
    """Directories, relative to the project root unless absolute."""
    data_dir: str
    ui_dir: str


DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "llm": {
        "provider": "openai",
        "api_key": "",
        "base_url": "https://api.openai.com/v1",
        "model": "gpt-4.1",
        "temperature": 0.3,
        "max_tokens": 1000,
        "timeout": 60,
    },
    "app": {
        "host": "0.0.0.0",
        "port": 5173,
        "debug": False,
        "production": False,
        "admin_emails": [],
    },
    "database": {
        "url": "sqlite:///data/squirrel_notes.db",
        "echo": False,
    },
    "auth": {
        "session_days": 30,
        "anonymous_cookie_days": 365,
        "bcrypt_rounds": 12,
        "min_password_length": 6,
    },
    "analysis": {
        "background": True,
        "title_preview_chars": 50,
        "overview_max_points": 30,
        "related_limit": 3,
    },
    "paths": {
        "data_dir": "data",
        "ui_dir": "ui",
    },
}


def resolve_path(path_str: str) -> Path:
    """Relative paths are taken from the project root, not the working directory."""
    path = Path(path_str)
    return path if path.is_absolute() else PROJECT_ROOT / path


def resolve_sqlite_url(url: str) -> str:
    """Anchor a relative SQLite file URL at the project root."""
    prefix = "sqlite:///"
    if not url.startswith(prefix):
        return url
    db_path = url[len(prefix):]
    if not db_path or db_path.startswith((":memory:", "/")) or Path(db_path).is_absolute():
        return url
    return f"{prefix}{resolve_path(db_path)}"


def _as_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _as_email_list(value: str) -> List[str]:
    return [email.strip().lower() for email in value.split(",") if email.strip()]


# (environment variable, section, key, converter)
ENV_OVERRIDES: List[Tuple[str, str, str, Callable[[str], Any]]] = [
    ("LLM_PROVIDER", "llm", "provider", str),
    ("OPENAI_API_ENDPOINT", "llm", "base_url", str),
    ("LLM_MODEL", "llm", "model", str),
    ("DATABASE_URL", "database", "url", str),
    ("APP_HOST", "app", "host", str),
    ("APP_PORT", "app", "port", int),
    ("APP_DEBUG", "app", "debug", _as_bool),
    ("APP_ENV", "app", "production", lambda v: v.strip().lower() == "production"),
    ("ADMIN_EMAILS", "app", "admin_emails", _as_email_list),
    ("BCRYPT_ROUNDS", "auth", "bcrypt_rounds", int),
]

# The API key variable depends on the chosen provider
API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
}


class ConfigManager:
    """Loads configuration and hands out typed sections."""

    def __init__(self, config_file: str = "squirrel_config.json"):
        self.config_file = Path(config_file)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        if self.config_file.exists():
            try:
                file_config = json.loads(self.config_file.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Ignoring unreadable config file %s: %s", self.config_file, e)
            else:
                self._merge_config(file_config)
        self._override_with_env()

    def _merge_config(self, file_config: Dict[str, Any]) -> None:
        """Merge dict sections key by key; anything else replaces the section."""
        for section, values in file_config.items():
            current = self._config.get(section)
            if isinstance(current, dict) and isinstance(values, dict):
                current.update(values)
            else:
                self._config[section] = values

    def _override_with_env(self) -> None:
        for env_name, section, key, convert in ENV_OVERRIDES:
            raw = os.getenv(env_name)
            if raw:
                self._config[section][key] = convert(raw)

        key_env = API_KEY_ENV.get(str(self._config["llm"]["provider"]).lower())
        if key_env and os.getenv(key_env):
            self._config["llm"]["api_key"] = os.getenv(key_env)

    def _section(self, name: str, cls: Type[T]) -> T:
        values = self._config[name]
        return cls(**{f.name: values[f.name] for f in fields(cls)})

    def get_llm_config(self) -> LLMConfig:
        return self._section("llm", LLMConfig)

    def get_app_config(self) -> AppConfig:
        app_config = self._section("app", AppConfig)
        app_config.admin_emails = [email.lower() for email in app_config.admin_emails]
        return app_config

    def get_database_config(self) -> DatabaseConfig:
        db_config = self._section("database", DatabaseConfig)
        db_config.url = resolve_sqlite_url(db_config.url)
        return db_config

    def get_auth_config(self) -> AuthConfig:
        return self._section("auth", AuthConfig)

    def get_analysis_config(self) -> AnalysisConfig:
        return self._section("analysis", AnalysisConfig)

    def get_paths_config(self) -> PathsConfig:
        return self._section("paths", PathsConfig)

    def get_config(self) -> Dict[str, Any]:
        """Raw configuration dictionary (a copy)."""
        return copy.deepcopy(self._config)

    def update_section(self, section: str, values: Dict[str, Any]) -> None:
        """Override values of a single section in memory."""
        self._config.setdefault(section, {}).update(values)

    def reload(self) -> None:
        """Re-read the file and environment, dropping in-memory overrides."""
        self._load_config()

    def save_config(self, path: Optional[Path] = None) -> None:
        """Write the current configuration as JSON."""
        target = Path(path) if path else self.config_file
        target.write_text(json.dumps(self._config, indent=2, ensure_ascii=False), encoding="utf-8")
