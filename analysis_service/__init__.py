# Analysis service package: LLM note classification and topic overviews

from .llm_utils import (
    ModelSettings,
    llm_invoke,
    resolve_settings,
)
from .note_analyzer import (
    analyze_learning_note,
    build_note_analysis_prompt,
    parse_note_analysis,
    default_analysis,
)
from .topic_overview import (
    generate_topic_overview,
    build_topic_overview_prompt,
    parse_topic_overview,
    default_overview,
)
from .logging_config import (
    setup_logging,
    stop_logging,
    ThreadSafeLoggingConfig,
)

__all__ = [
    "ModelSettings",
    "llm_invoke",
    "resolve_settings",
    "analyze_learning_note",
    "build_note_analysis_prompt",
    "parse_note_analysis",
    "default_analysis",
    "generate_topic_overview",
    "build_topic_overview_prompt",
    "parse_topic_overview",
    "default_overview",
    "setup_logging",
    "stop_logging",
    "ThreadSafeLoggingConfig",
]
