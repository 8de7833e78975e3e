"""Parsing of Notion IDs and URLs.

Database IDs can be given as a bare 32-character hex ID, a dashed UUID or
a full Notion URL copied from the browser.
"""

import re
from urllib.parse import urlparse


class NotionUrlParseError(Exception):
    """Raised when an ID or URL cannot be parsed."""
    pass


_HEX_ID = re.compile(r"^[0-9a-fA-F]{32}$")
_DASHED_ID = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
# The ID is the trailing 32 hex characters of the last path segment
_PATH_ID = re.compile(r"([0-9a-fA-F]{32})$")


def format_id(hex_id: str) -> str:
    """Format a 32-character hex ID as a dashed UUID."""
    hex_id = hex_id.lower()
    return f"{hex_id[:8]}-{hex_id[8:12]}-{hex_id[12:16]}-{hex_id[16:20]}-{hex_id[20:]}"


def parse_notion_id(value: str) -> str:
    """Extract a Notion object ID from an ID or URL.

    Supported formats:
    - 0123456789abcdef0123456789abcdef
    - 01234567-89ab-cdef-0123-456789abcdef
    - https://www.notion.so/{workspace}/{Title}-{id}?v={view}
    - https://www.notion.so/{id}

    Args:
        value: ID or URL

    Returns:
        Dashed lowercase UUID

    Raises:
        NotionUrlParseError: If no ID can be found
    """
    value = (value or "").strip()
    if not value:
        raise NotionUrlParseError("Empty Notion ID")

    if _DASHED_ID.match(value):
        return value.lower()
    if _HEX_ID.match(value):
        return format_id(value)

    parsed = urlparse(value)
    if not parsed.scheme or not parsed.netloc:
        raise NotionUrlParseError(f"Invalid Notion ID or URL: {value}")

    segment = parsed.path.rstrip("/").rsplit("/", 1)[-1].replace("-", "")
    match = _PATH_ID.search(segment)
    if not match:
        raise NotionUrlParseError(f"No Notion ID found in URL: {value}")

    return format_id(match.group(1))
