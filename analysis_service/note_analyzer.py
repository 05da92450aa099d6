"""
note_analyzer.py - Classify a freeform learning note with the LLM

Builds the analysis prompt from the note and the owner's existing topics
and tags, calls the configured provider, and parses the JSON reply. Any
failure degrades to a default analysis so the note still gets saved.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.prompts import PromptTemplate

from .llm_utils import llm_invoke
from .models import (
    DEFAULT_CATEGORY,
    LearningNoteAnalysis,
    RecommendedTopic,
    TopicBrief,
    as_str_list,
    clamp,
    safe_parse_json,
)

_LOG = logging.getLogger("note_analyzer")

PROMPTS_DIR = Path(__file__).parent / "prompts"

SYSTEM_PROMPT = "你是一个专业的学习内容分析专家，擅长智能分类和信息提取。"

FALLBACK_TITLE = "学习笔记"
FALLBACK_SUMMARY = "AI分析暂时不可用，已保存到默认分类"


def default_analysis() -> LearningNoteAnalysis:
    """Analysis used whenever the LLM call or its parsing fails."""
    return LearningNoteAnalysis(
        title=FALLBACK_TITLE,
        category=DEFAULT_CATEGORY,
        keywords=[],
        importance=3,
        confidence=0.5,
        related_topics=[],
        summary=FALLBACK_SUMMARY,
        suggested_tags=[],
        recommended_topic=None,
    )


def _format_topics(existing_topics: Sequence[TopicBrief]) -> str:
    if not existing_topics:
        return "无"
    return "\n".join(
        f"ID: {t.id}, 名称: {t.name}, 描述: {t.description or '无描述'}"
        for t in existing_topics
    )


def _to_brief(topic: Union[TopicBrief, dict]) -> TopicBrief:
    if isinstance(topic, TopicBrief):
        return topic
    return TopicBrief(
        id=str(topic["id"]),
        name=topic["name"],
        description=topic.get("description"),
    )


def build_note_analysis_prompt(
    content: str,
    existing_topics: Iterable[Union[TopicBrief, dict]] = (),
    existing_tags: Iterable[str] = (),
) -> str:
    """Render the user prompt for note analysis."""
    briefs = [_to_brief(t) for t in existing_topics]
    tag_names = [name for name in existing_tags if name]
    template = PromptTemplate.from_file(PROMPTS_DIR / "note_analysis.md", encoding="utf-8")
    return template.format(
        content=content,
        existing_topics=_format_topics(briefs),
        existing_tags=", ".join(tag_names) or "无",
    )


def parse_note_analysis(response_text: str) -> LearningNoteAnalysis:
    """Parse and normalise the LLM's JSON reply.

    Raises:
        ValueError: when the reply is empty, not JSON, or lacks title/category
    """
    if not response_text or not response_text.strip():
        raise ValueError("AI分析返回为空")

    data = safe_parse_json(response_text)
    title = str(data.get("title") or "").strip()
    category = str(data.get("category") or "").strip()
    if not title or not category:
        raise ValueError("AI分析结果缺少必要字段")

    recommended: Optional[RecommendedTopic] = None
    raw_topic = data.get("recommended_topic")
    if isinstance(raw_topic, dict) and str(raw_topic.get("name") or "").strip():
        recommended = RecommendedTopic.model_validate({
            **raw_topic,
            "name": str(raw_topic["name"]).strip(),
            "description": str(raw_topic.get("description") or "").strip(),
        })

    return LearningNoteAnalysis(
        title=title,
        category=category,
        keywords=as_str_list(data.get("keywords")),
        importance=int(round(clamp(data.get("importance"), 1, 5, 3))),
        confidence=clamp(data.get("confidence"), 0, 1, 0.5),
        related_topics=as_str_list(data.get("related_topics")),
        summary=str(data.get("summary") or ""),
        suggested_tags=as_str_list(data.get("suggested_tags")),
        recommended_topic=recommended,
    )


def analyze_learning_note(
    content: str,
    existing_topics: Iterable[Union[TopicBrief, dict]] = (),
    existing_tags: Iterable[str] = (),
    llm_config=None,
) -> LearningNoteAnalysis:
    """Analyze a learning note, never raising.

    Args:
        content: The raw note text
        existing_topics: Topics the owner already has (for matching)
        existing_tags: Tag names the owner already uses
        llm_config: ``LLMConfig`` describing the provider

    Returns:
        The parsed analysis, or ``default_analysis()`` on any error
    """
    try:
        prompt = build_note_analysis_prompt(content, existing_topics, existing_tags)
        messages: List = [
            SystemMessage(content=SYSTEM_PROMPT),
            HumanMessage(content=prompt),
        ]
        response = llm_invoke(messages, llm_config)
        analysis = parse_note_analysis(response.content)
        _LOG.info(
            "Analyzed note: title=%r category=%r confidence=%.2f",
            analysis.title, analysis.category, analysis.confidence,
        )
        return analysis
    except Exception as e:
        _LOG.error("学习笔记分析失败: %s", e)
        return default_analysis()
