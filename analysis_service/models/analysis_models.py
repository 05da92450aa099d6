"""
Data models for LLM note analysis and topic overviews.

This module contains Pydantic models for the structured JSON the LLM is
asked to return.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


DEFAULT_CATEGORY = "默认"


class TopicBrief(BaseModel):
    """An existing learning topic offered to the LLM for matching."""
    id: str
    name: str
    description: Optional[str] = None


class RecommendedTopic(BaseModel):
    """Topic the LLM recommends for a note."""
    name: str = ""
    description: str = ""
    confidence: float = Field(default=0.0, description="0-1 confidence in the recommendation")
    is_new: bool = False
    existing_topic_id: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value):
        try:
            return min(1.0, max(0.0, float(value)))
        except (TypeError, ValueError):
            return 0.0

    @field_validator("existing_topic_id", mode="before")
    @classmethod
    def _normalize_topic_id(cls, value):
        if value in (None, "", "null", "None"):
            return None
        return str(value)


class LearningNoteAnalysis(BaseModel):
    """Classification result for one learning note."""
    title: str
    category: str = DEFAULT_CATEGORY
    keywords: List[str] = Field(default_factory=list)
    importance: int = Field(default=3, description="1-5")
    confidence: float = Field(default=0.5, description="0-1")
    related_topics: List[str] = Field(default_factory=list)
    summary: str = ""
    suggested_tags: List[str] = Field(default_factory=list)
    recommended_topic: Optional[RecommendedTopic] = None


class TopicOverview(BaseModel):
    """AI overview stored on a learning topic."""
    summary: str = ""
    key_insights: List[str] = Field(default_factory=list)
    learning_progress: str = ""
    next_steps: List[str] = Field(default_factory=list)
    confidence: float = 0.0
    updated_at: Optional[str] = None
