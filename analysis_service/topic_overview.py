"""
topic_overview.py - Generate the AI learning overview of a topic
"""

import datetime
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.prompts import PromptTemplate

from .llm_utils import llm_invoke
from .models import TopicOverview, as_str_list, clamp, safe_parse_json

_LOG = logging.getLogger("topic_overview")

PROMPTS_DIR = Path(__file__).parent / "prompts"

SYSTEM_PROMPT = "你是一个学习内容分析专家，擅长从学习记录中总结学习进展并给出建议。"

# Per-note content budget inside the overview prompt
POINT_CONTENT_CHARS = 400


def default_overview() -> TopicOverview:
    return TopicOverview(
        summary="AI概览暂时不可用",
        key_insights=[],
        learning_progress="",
        next_steps=[],
        confidence=0.0,
        updated_at=_now_iso(),
    )


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _format_point(index: int, point: Dict[str, Any]) -> str:
    created_at = point.get("created_at")
    if isinstance(created_at, datetime.datetime):
        created_at = created_at.strftime("%Y-%m-%d")
    keywords = "、".join(as_str_list(point.get("keywords"))) or "无"
    content = (point.get("content") or "").strip()
    if len(content) > POINT_CONTENT_CHARS:
        content = content[:POINT_CONTENT_CHARS] + "…"
    return (
        f"{index}. 标题：{point.get('title') or '未命名'}（{created_at or '未知日期'}）\n"
        f"   关键词：{keywords}\n"
        f"   内容：{content}"
    )


def build_topic_overview_prompt(topic_name: str, points: List[Dict[str, Any]]) -> str:
    template = PromptTemplate.from_file(PROMPTS_DIR / "topic_overview.md", encoding="utf-8")
    return template.format(
        topic_name=topic_name,
        point_count=len(points),
        points="\n".join(_format_point(i, p) for i, p in enumerate(points, start=1)) or "无",
    )


def parse_topic_overview(response_text: str) -> TopicOverview:
    """Parse the overview JSON; raises ValueError on unusable replies."""
    if not response_text or not response_text.strip():
        raise ValueError("AI概览返回为空")
    data = safe_parse_json(response_text)
    summary = str(data.get("summary") or "").strip()
    if not summary:
        raise ValueError("AI概览缺少summary字段")
    return TopicOverview(
        summary=summary,
        key_insights=as_str_list(data.get("key_insights")),
        learning_progress=str(data.get("learning_progress") or ""),
        next_steps=as_str_list(data.get("next_steps")),
        confidence=clamp(data.get("confidence"), 0, 1, 0.5),
        updated_at=_now_iso(),
    )


def generate_topic_overview(
    topic_name: str,
    points: Iterable[Dict[str, Any]],
    llm_config=None,
) -> TopicOverview:
    """Summarize every note of a topic; returns ``default_overview()`` on error."""
    points = list(points)
    try:
        prompt = build_topic_overview_prompt(topic_name, points)
        response = llm_invoke(
            [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=prompt)],
            llm_config,
        )
        return parse_topic_overview(response.content)
    except Exception as e:
        _LOG.error("生成主题概览失败 (%s): %s", topic_name, e)
        return default_overview()
