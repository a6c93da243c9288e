"""
Body formatting shared by preview and send.
"""

from .content_formatter import FormattedContent, render_draft, to_html, to_plain_text, visible_text

__all__ = ["FormattedContent", "render_draft", "to_html", "to_plain_text", "visible_text"]
