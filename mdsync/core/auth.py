"""Bearer token authentication for the Notion API."""

import os
from urllib.parse import urlencode

from dotenv import load_dotenv

NOTION_VERSION = "2022-06-28"
DEFAULT_BASE_URL = "https://api.notion.com"


class NotionAuth:
    """Holds the integration token and builds request headers."""

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        notion_version: str | None = None,
    ) -> None:
        """Initialize authentication with credentials.

        Args:
            token: Notion integration token (or load from NOTION_TOKEN env)
            base_url: API base URL (or load from NOTION_BASE_URL env)
            notion_version: Notion-Version header value
        """
        load_dotenv()

        self.token = token or os.getenv("NOTION_TOKEN", "")
        self.base_url = (base_url or os.getenv("NOTION_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.notion_version = notion_version or NOTION_VERSION

        if not self.token:
            raise ValueError(
                "Missing Notion API credentials. Set the NOTION_TOKEN environment "
                "variable (or add it to .env) or pass the token directly."
            )

    def get_headers(self, content_type: str = "application/json") -> dict[str, str]:
        """Generate headers for an API request."""
        return {
            "Authorization": f"Bearer {self.token}",
            "Notion-Version": self.notion_version,
            "Content-Type": content_type,
            "Accept": "application/json",
        }

    def get_full_url(self, path: str, query_params: dict[str, str] | None = None) -> str:
        """Build full URL from base URL, path, and query params.

        Args:
            path: API path (e.g., /v1/databases/{id})
            query_params: Optional query parameters

        Returns:
            Full URL string
        """
        url = f"{self.base_url}{path}"
        if query_params:
            url += "?" + urlencode(sorted(query_params.items()))
        return url

    def masked_token(self) -> str:
        """Get the token with its middle hidden, for display."""
        if len(self.token) <= 12:
            return "*" * len(self.token)
        return f"{self.token[:8]}...{self.token[-4:]}"
