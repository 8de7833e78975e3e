"""Markdown to Notion block conversion.

A single forward scan over the lines of a Markdown body. Only a practical
subset of Markdown is recognized; anything else becomes a paragraph, so
conversion never fails.
"""

import re
from dataclasses import dataclass
from typing import Any

from ..models.document import DEFAULT_LANGUAGE, Block, InlineStyles, format_date

FENCE = "```"
BYLINE_SEPARATOR = " · "

_HEADING = re.compile(r"^(#+)\s*(.*)$")
_BULLET = re.compile(r"^[-*+]\s+(.*)$")
_TODO = re.compile(r"^\[([ xX])\]\s+(.+)$")
_NUMBERED = re.compile(r"^\d+\.\s+(.*)$")
_QUOTE_PREFIX = "> "
_IMAGE = re.compile(r'^!\[([^\]]*)\]\((\S+?)(?:\s+"[^"]*")?\)$')
_DIVIDER = re.compile(r"^[-*_]{3,}$")

# Checked in this order; "**" pairs also count towards "*"
_STYLE_MARKERS = (
    ("bold", "**"),
    ("italic", "*"),
    ("strikethrough", "~~"),
    ("code", "`"),
)


@dataclass(frozen=True)
class ConversionContext:
    """Page-level fields used by full page conversion."""

    title: str | None = None
    author: str | None = None
    date: Any = None

    @classmethod
    def from_metadata(cls, title: str, metadata: dict[str, Any]) -> "ConversionContext":
        """Build a context from a document title and its front matter."""
        author = metadata.get("author")
        return cls(
            title=title,
            author=str(author) if author else None,
            date=metadata.get("date"),
        )


def detect_styles(text: str) -> InlineStyles:
    """Flag each style whose marker appears a non-zero even number of times.

    The flags apply to the whole run; the markers themselves stay in the text.
    """
    flags = {}
    for name, marker in _STYLE_MARKERS:
        count = text.count(marker)
        flags[name] = count > 0 and count % 2 == 0
    return InlineStyles(**flags)


def _preamble(context: ConversionContext) -> list[Block]:
    blocks: list[Block] = []
    if context.title:
        blocks.append(Block.heading(1, context.title))

    byline = [part for part in (context.author, context.date) if part]
    if byline:
        text = BYLINE_SEPARATOR.join(format_date(part) for part in byline)
        blocks.append(Block.paragraph(text, InlineStyles(italic=True)))

    if blocks:
        blocks.append(Block.divider())
    return blocks


def _classify(line: str) -> Block | None:
    """Classify a trimmed, non-fence line. Returns None for paragraph text."""
    match = _HEADING.match(line)
    if match and match.group(2):
        text = match.group(2).strip()
        return Block.heading(len(match.group(1)), text, detect_styles(text))

    match = _BULLET.match(line)
    if match:
        text = match.group(1).strip()
        todo = _TODO.match(text)
        if todo:
            item = todo.group(2).strip()
            return Block.todo(item, checked=todo.group(1) != " ", styles=detect_styles(item))
        return Block.bulleted_item(text, detect_styles(text))

    match = _NUMBERED.match(line)
    if match:
        text = match.group(1).strip()
        return Block.numbered_item(text, detect_styles(text))

    if line.startswith(_QUOTE_PREFIX):
        text = line[len(_QUOTE_PREFIX):].strip()
        return Block.quote(text, detect_styles(text))

    match = _IMAGE.match(line)
    if match:
        return Block.image(match.group(2), caption=match.group(1).strip())

    if _DIVIDER.match(line):
        return Block.divider()

    return None


def convert(markdown: str, context: ConversionContext | None = None) -> list[Block]:
    """Convert a Markdown body into an ordered list of blocks.

    Args:
        markdown: Markdown text without front matter
        context: Page fields for full page mode; None converts content only

    Returns:
        Blocks in render order
    """
    blocks: list[Block] = _preamble(context) if context else []
    paragraph: list[str] = []

    def flush_paragraph() -> None:
        if paragraph:
            text = "\n".join(paragraph)
            blocks.append(Block.paragraph(text, detect_styles(text)))
            paragraph.clear()

    lines = (markdown or "").splitlines()
    i = 0
    while i < len(lines):
        line = lines[i].strip()
        i += 1

        if not line:
            flush_paragraph()
            continue

        if line.startswith(FENCE):
            flush_paragraph()
            tokens = line[len(FENCE):].split()
            language = tokens[0] if tokens else DEFAULT_LANGUAGE

            code_lines = []
            while i < len(lines) and not lines[i].strip().startswith(FENCE):
                code_lines.append(lines[i])
                i += 1
            i += 1  # closing fence, or past the end

            code = "\n".join(code_lines)
            if code.strip():
                blocks.append(Block.code(code, language))
            continue

        block = _classify(line)
        if block is None:
            paragraph.append(line)
            continue

        flush_paragraph()
        blocks.append(block)

    flush_paragraph()
    return blocks
