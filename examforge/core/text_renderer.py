"""Markdown rendering for question and answer text shown to participants.

Question text is authored as Markdown (optionally with ``$...$`` math that the
browser typesets with MathJax). The participant view carries both the raw text
and an HTML rendering so clients without a Markdown renderer can display it.
Raw HTML in the source is escaped, not passed through.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt


@dataclass(slots=True)
class QuestionTextRenderer:
    """Converts markdown question/answer text into HTML."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_block(self, markdown_text: str) -> str:
        """Render question text into an HTML fragment of block elements."""
        sanitized = (markdown_text or "").strip()
        if not sanitized:
            return ""
        return self._markdown.render(sanitized)

    def render_inline(self, markdown_text: str) -> str:
        """Render a short answer label without wrapping it in a paragraph."""
        sanitized = (markdown_text or "").strip()
        if not sanitized:
            return ""
        return self._markdown.renderInline(sanitized)
