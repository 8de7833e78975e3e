"""Document and block models for the Notion sync system."""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

# Notion rejects rich text runs longer than this
MAX_TEXT_LENGTH = 2000

DEFAULT_LANGUAGE = "plain text"

# Fence tags that Notion only accepts under their long name
LANGUAGE_ALIASES = {
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "rb": "ruby",
    "sh": "shell",
    "zsh": "shell",
    "console": "shell",
    "yml": "yaml",
    "md": "markdown",
    "txt": "plain text",
    "text": "plain text",
    "plaintext": "plain text",
    "cpp": "c++",
    "cs": "c#",
    "csharp": "c#",
    "golang": "go",
    "rs": "rust",
    "kt": "kotlin",
    "ps1": "powershell",
    "dockerfile": "docker",
}

NOTION_LANGUAGES = {
    "abap", "arduino", "bash", "basic", "c", "clojure", "coffeescript", "c++",
    "c#", "css", "dart", "diff", "docker", "elixir", "elm", "erlang", "flow",
    "fortran", "f#", "gherkin", "glsl", "go", "graphql", "groovy", "haskell",
    "html", "java", "javascript", "json", "julia", "kotlin", "latex", "less",
    "lisp", "livescript", "lua", "makefile", "markdown", "markup", "matlab",
    "mermaid", "nix", "objective-c", "ocaml", "pascal", "perl", "php",
    "plain text", "powershell", "prolog", "protobuf", "python", "r", "reason",
    "ruby", "rust", "sass", "scala", "scheme", "scss", "shell", "sql", "swift",
    "typescript", "vb.net", "verilog", "vhdl", "visual basic", "webassembly",
    "xml", "yaml",
}

_SLUG_SEPARATORS = re.compile(r"[^\w\u4e00-\u9fa5]+")


class ValidationError(Exception):
    """Raised when a document is missing its title or slug."""


def generate_slug(title: str) -> str:
    """Generate a stable slug from a title.

    Lowercases the title and collapses every run of characters that are
    neither word characters nor CJK ideographs into a single hyphen.

    Example:
        >>> generate_slug("Hello, World!")
        'hello-world'
    """
    return _SLUG_SEPARATORS.sub("-", title.lower()).strip("-")


def notion_language(language: str) -> str:
    """Map a fence language tag to a language name Notion accepts."""
    key = language.strip().lower()
    key = LANGUAGE_ALIASES.get(key, key)
    return key if key in NOTION_LANGUAGES else DEFAULT_LANGUAGE


def format_date(value: Any) -> str:
    """Render a front matter date value as an ISO string."""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


class BlockType:
    """Kinds of content blocks produced by the converter."""

    HEADING = "heading"
    PARAGRAPH = "paragraph"
    BULLETED_ITEM = "bulleted_item"
    NUMBERED_ITEM = "numbered_item"
    QUOTE = "quote"
    CODE = "code"
    DIVIDER = "divider"
    IMAGE = "image"
    TODO = "todo"


# Block type -> Notion block type for the simple rich text blocks
_NOTION_TEXT_TYPES = {
    BlockType.PARAGRAPH: "paragraph",
    BlockType.BULLETED_ITEM: "bulleted_list_item",
    BlockType.NUMBERED_ITEM: "numbered_list_item",
    BlockType.QUOTE: "quote",
}


@dataclass(frozen=True)
class InlineStyles:
    """Whole-run text annotations derived from inline Markdown markers."""

    bold: bool = False
    italic: bool = False
    strikethrough: bool = False
    code: bool = False

    def to_annotations(self) -> dict[str, Any]:
        """Convert to a Notion annotations object."""
        return {
            "bold": self.bold,
            "italic": self.italic,
            "strikethrough": self.strikethrough,
            "underline": False,
            "code": self.code,
            "color": "default",
        }


def rich_text(text: str, styles: InlineStyles | None = None) -> list[dict[str, Any]]:
    """Build a Notion rich text array, splitting text over the length limit."""
    annotations = (styles or InlineStyles()).to_annotations()
    return [
        {
            "type": "text",
            "text": {"content": text[start:start + MAX_TEXT_LENGTH]},
            "annotations": annotations,
        }
        for start in range(0, len(text), MAX_TEXT_LENGTH)
    ]


@dataclass(frozen=True)
class Block:
    """One render-ready content unit."""

    type: str
    text: str = ""
    styles: InlineStyles = field(default_factory=InlineStyles)
    level: int = 1  # heading level, 1..3
    language: str = DEFAULT_LANGUAGE  # code blocks
    url: str = ""  # images
    caption: str = ""  # images
    checked: bool = False  # todos

    @classmethod
    def heading(cls, level: int, text: str, styles: InlineStyles | None = None) -> "Block":
        """Create a heading, clamping the level to 1..3."""
        return cls(
            type=BlockType.HEADING,
            text=text,
            level=min(max(level, 1), 3),
            styles=styles or InlineStyles(),
        )

    @classmethod
    def paragraph(cls, text: str, styles: InlineStyles | None = None) -> "Block":
        return cls(type=BlockType.PARAGRAPH, text=text, styles=styles or InlineStyles())

    @classmethod
    def bulleted_item(cls, text: str, styles: InlineStyles | None = None) -> "Block":
        return cls(type=BlockType.BULLETED_ITEM, text=text, styles=styles or InlineStyles())

    @classmethod
    def numbered_item(cls, text: str, styles: InlineStyles | None = None) -> "Block":
        return cls(type=BlockType.NUMBERED_ITEM, text=text, styles=styles or InlineStyles())

    @classmethod
    def quote(cls, text: str, styles: InlineStyles | None = None) -> "Block":
        return cls(type=BlockType.QUOTE, text=text, styles=styles or InlineStyles())

    @classmethod
    def code(cls, text: str, language: str = DEFAULT_LANGUAGE) -> "Block":
        return cls(type=BlockType.CODE, text=text, language=language or DEFAULT_LANGUAGE)

    @classmethod
    def divider(cls) -> "Block":
        return cls(type=BlockType.DIVIDER)

    @classmethod
    def image(cls, url: str, caption: str = "") -> "Block":
        return cls(type=BlockType.IMAGE, url=url, caption=caption)

    @classmethod
    def todo(cls, text: str, checked: bool = False, styles: InlineStyles | None = None) -> "Block":
        return cls(type=BlockType.TODO, text=text, checked=checked, styles=styles or InlineStyles())

    def to_notion(self) -> dict[str, Any]:
        """Serialize to a Notion block object."""
        if self.type == BlockType.HEADING:
            notion_type = f"heading_{self.level}"
            body: dict[str, Any] = {"rich_text": rich_text(self.text, self.styles)}
        elif self.type in _NOTION_TEXT_TYPES:
            notion_type = _NOTION_TEXT_TYPES[self.type]
            body = {"rich_text": rich_text(self.text, self.styles)}
        elif self.type == BlockType.CODE:
            notion_type = "code"
            body = {
                "rich_text": rich_text(self.text),
                "language": notion_language(self.language),
            }
        elif self.type == BlockType.DIVIDER:
            notion_type = "divider"
            body = {}
        elif self.type == BlockType.IMAGE:
            notion_type = "image"
            body = {
                "type": "external",
                "external": {"url": self.url},
                "caption": rich_text(self.caption),
            }
        elif self.type == BlockType.TODO:
            notion_type = "to_do"
            body = {
                "rich_text": rich_text(self.text, self.styles),
                "checked": self.checked,
            }
        else:
            raise ValueError(f"Unknown block type: {self.type}")

        return {"object": "block", "type": notion_type, notion_type: body}


@dataclass(frozen=True)
class Document:
    """A logical unit of content synchronized to one remote record."""

    title: str
    slug: str
    metadata: dict[str, Any] = field(default_factory=dict)
    blocks: tuple[Block, ...] = ()

    def validate(self) -> None:
        """Check the preconditions for syncing this document.

        Raises:
            ValidationError: If the title or slug is empty
        """
        if not self.title or not self.title.strip():
            raise ValidationError("Document title must not be empty")
        if not self.slug or not self.slug.strip():
            raise ValidationError(f"Document slug must not be empty (title: {self.title!r})")

    def to_notion_blocks(self) -> list[dict[str, Any]]:
        """Serialize all blocks in order."""
        return [block.to_notion() for block in self.blocks]
