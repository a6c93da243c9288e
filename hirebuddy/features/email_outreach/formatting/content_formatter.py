"""
Content formatter for outreach bodies.

`to_html` and `to_plain_text` are pure and idempotent. Plain text is the
canonical form: `to_html` first reduces its input to plain text and then
renders it, so formatting an already formatted body yields the same string.
`render_draft` is the single path used by both the preview endpoint and the
send flow.
"""

import html
import re
from dataclasses import dataclass

# Markup we produce or commonly receive from mail providers.
_MARKUP = re.compile(r"<\s*(?:br|p|div)\b[^>]*>|<\s*/\s*(?:p|div)\s*>", re.IGNORECASE)
_PARAGRAPH_BREAK = re.compile(r"</p>\s*<p\b[^>]*>", re.IGNORECASE)
_BLOCK_BREAK = re.compile(r"</div>\s*<div\b[^>]*>", re.IGNORECASE)
_LINE_BREAK = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")

RESUME_SECTION = "\n\n---\nResume: {url}\n(Click the link above to view or download my resume)"


@dataclass(frozen=True, slots=True)
class FormattedContent:
    subject: str
    body: str
    is_html: bool


def _normalize(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n").replace("\xa0", " ")


def _html_to_text(markup: str) -> str:
    # Raw newlines carry no meaning inside markup.
    text = markup.replace("\n", " ")
    text = _PARAGRAPH_BREAK.sub("\n\n", text)
    text = _BLOCK_BREAK.sub("\n", text)
    text = _LINE_BREAK.sub("\n", text)
    text = _TAG.sub("", text)
    text = html.unescape(text).replace("\xa0", " ")
    # Decoded tag text stays escaped so the result never reads as markup again.
    return _MARKUP.sub(lambda m: html.escape(m.group(0), quote=False), text)


def to_plain_text(text: str | None) -> str:
    """
    Reduce a body to plain text.

    Plain input only has its line endings normalized. Markup input has
    paragraph boundaries turned into blank lines, line breaks into newlines,
    remaining tags removed and entities decoded. Entities that decode to
    `<br>`, `<p>` or `<div>` tags are left escaped.
    """
    if not text:
        return ""

    normalized = _normalize(text)
    if not _MARKUP.search(normalized):
        return normalized
    return _html_to_text(normalized)


def to_html(text: str | None) -> str:
    """
    Render a body as HTML.

    Double newlines become paragraph boundaries and single newlines become
    `<br>`. Text content is escaped exactly once.
    """
    plain = to_plain_text(text)
    if not plain:
        return ""

    paragraphs = (html.escape(part, quote=False).replace("\n", "<br>") for part in plain.split("\n\n"))
    return "<p>" + "</p><p>".join(paragraphs) + "</p>"


def visible_text(body: str | None) -> str:
    """Text a reader would see, used to hide empty records from the timeline."""
    return to_plain_text(body).replace("&nbsp;", " ").strip()


def compose_body(body: str, resume_url: str | None = None) -> str:
    """Append the resume link section once when a resume is attached."""
    text = to_plain_text(body)
    if resume_url and resume_url not in text:
        text = text.rstrip() + RESUME_SECTION.format(url=resume_url)
    return text


def render_draft(
    subject: str, body: str, is_html: bool, resume_url: str | None = None
) -> FormattedContent:
    """
    Produce the exact subject and body that are previewed and transmitted.

    Args:
        subject: Draft subject as typed
        body: Draft body as typed or as generated
        is_html: Whether the transport payload is HTML
        resume_url: Resume link to append, when the user attached it

    Returns:
        FormattedContent with the final strings
    """
    composed = compose_body(body, resume_url)
    formatted = to_html(composed) if is_html else to_plain_text(composed)
    return FormattedContent(subject=(subject or "").strip(), body=formatted, is_html=is_html)
