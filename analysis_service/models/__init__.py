"""
Models package for LLM analysis results.
"""

from .analysis_models import (
    DEFAULT_CATEGORY,
    TopicBrief,
    RecommendedTopic,
    LearningNoteAnalysis,
    TopicOverview,
)
from .utils import clean_json_response, safe_parse_json, as_str_list, clamp

__all__ = [
    "DEFAULT_CATEGORY",
    "TopicBrief",
    "RecommendedTopic",
    "LearningNoteAnalysis",
    "TopicOverview",
    "clean_json_response",
    "safe_parse_json",
    "as_str_list",
    "clamp",
]
