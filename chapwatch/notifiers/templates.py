"""
Message rendering for chapter announcements.


Public API:
- render_message(item) -> str


`item` is a CandidateItem from chapwatch.watchers.base.
"""
from __future__ import annotations
from typing import List

HEADLINE = "⭐️ Có chap mới rồi nè!"


def render_message(item) -> str:
    """Three-line plain text: headline, chapter label and title, link."""
    title = (item.title or "").strip()
    number = (item.number or "").strip()
    label = f"{number}: {title}" if number else title

    lines: List[str] = [HEADLINE, f"📚 {label}", f"🔗 {item.url}"]
    return "\n".join(lines)
