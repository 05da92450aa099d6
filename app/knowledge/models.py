"""
Knowledge point helpers shared by services, demo data and maintenance tools.
"""
from typing import Iterable, List, Optional

import markdown

# Tag colours are handed out in this order and then repeat
TAG_COLORS = [
    "#3B82F6",
    "#EF4444",
    "#10B981",
    "#F59E0B",
    "#8B5CF6",
    "#EC4899",
    "#6B7280",
]

PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"


def tag_color(index: int) -> str:
    return TAG_COLORS[index % len(TAG_COLORS)]


def estimate_study_duration(content: Optional[str]) -> int:
    """Estimate the minutes spent studying a note from its length."""
    length = len(content or "")
    if length < 100:
        return 5
    if length < 300:
        return 10
    if length < 600:
        return 20
    if length < 1000:
        return 30
    return min(60, 30 + ((length - 1000) // 200) * 5)


def split_tag_names(raw: Optional[str]) -> List[str]:
    """Split a comma-separated tag field (ASCII or full-width commas)."""
    if not raw:
        return []
    return [part.strip() for part in raw.replace("，", ",").split(",") if part.strip()]


def unique_names(names: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for name in names:
        name = (name or "").strip()
        if name and name not in seen:
            seen.add(name)
            result.append(name)
    return result


def render_markdown(md_text: Optional[str]) -> str:
    """Convert a note's Markdown to HTML."""
    return markdown.markdown(
        md_text or "",
        extensions=[
            "fenced_code",
            "tables",
            "sane_lists",
            "nl2br",
        ],
    )
