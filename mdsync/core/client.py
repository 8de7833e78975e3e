"""HTTP client wrapper for the Notion API."""

from typing import Any

import requests

from .auth import NotionAuth

# Notion's ceiling for children per append call and results per page
MAX_PAGE_SIZE = 100

TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}
PERMANENT_STATUS_CODES = {401, 403}


class NotionAPIError(Exception):
    """Exception raised for Notion API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        response: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.response = response


class TransientRemoteError(NotionAPIError):
    """Rate limiting, server hiccups and network failures; safe to retry."""

    def __init__(self, *args: Any, retry_after: float | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.retry_after = retry_after


class PermanentRemoteError(NotionAPIError):
    """Authentication or access failures; no document can succeed."""


def _parse_retry_after(response: requests.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class NotionClient:
    """HTTP client for the Notion REST API."""

    API_VERSION = "v1"

    def __init__(self, auth: NotionAuth | None = None, timeout: float = 30) -> None:
        """Initialize client with authentication.

        Args:
            auth: NotionAuth instance (creates one from env if not provided)
            timeout: Per-request timeout in seconds
        """
        self.auth = auth or NotionAuth()
        self.timeout = timeout
        self.session = requests.Session()

    def _request(
        self,
        method: str,
        path: str,
        query_params: dict[str, str] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to the Notion API.

        Args:
            method: HTTP method
            path: API path (without base URL or version prefix)
            query_params: Optional query parameters
            json_data: Optional JSON body data

        Returns:
            Parsed JSON response

        Raises:
            TransientRemoteError: On 429/5xx responses and network failures
            PermanentRemoteError: On 401/403 responses
            NotionAPIError: On any other API error
        """
        full_path = f"/{self.API_VERSION}{path}"
        url = self.auth.get_full_url(full_path, query_params)

        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=self.auth.get_headers(),
                json=json_data if method in ("POST", "PATCH") else None,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransientRemoteError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            code = body.get("code") if isinstance(body, dict) else None
            detail = body.get("message") if isinstance(body, dict) else None
            error_msg = f"API error {response.status_code}: {detail or response.text[:500]}"

            if response.status_code in TRANSIENT_STATUS_CODES:
                raise TransientRemoteError(
                    error_msg,
                    response.status_code,
                    code,
                    response,
                    retry_after=_parse_retry_after(response),
                )
            if response.status_code in PERMANENT_STATUS_CODES:
                raise PermanentRemoteError(error_msg, response.status_code, code, response)
            raise NotionAPIError(error_msg, response.status_code, code, response)

        # Handle empty responses
        if not response.content:
            return {}

        return response.json()  # type: ignore[no-any-return]

    # -------------------------------------------------------------------------
    # Database Operations
    # -------------------------------------------------------------------------

    def retrieve_database(self, database_id: str) -> dict[str, Any]:
        """Get a database including its property schema."""
        return self._request("GET", f"/databases/{database_id}")

    def query_database(
        self,
        database_id: str,
        filter_obj: dict[str, Any] | None = None,
        start_cursor: str | None = None,
        page_size: int = MAX_PAGE_SIZE,
    ) -> dict[str, Any]:
        """Query one page of database results.

        Args:
            database_id: Database ID
            filter_obj: Optional Notion filter object
            start_cursor: Cursor from a previous response
            page_size: Number of results (max 100)

        Returns:
            Response with 'results', 'has_more' and 'next_cursor'
        """
        body: dict[str, Any] = {"page_size": min(page_size, MAX_PAGE_SIZE)}
        if filter_obj:
            body["filter"] = filter_obj
        if start_cursor:
            body["start_cursor"] = start_cursor
        return self._request("POST", f"/databases/{database_id}/query", json_data=body)

    def query_all(
        self,
        database_id: str,
        filter_obj: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Query every matching page, following pagination."""
        results: list[dict[str, Any]] = []
        start_cursor = None
        while True:
            response = self.query_database(database_id, filter_obj, start_cursor)
            results.extend(response.get("results", []))
            if not response.get("has_more"):
                return results
            start_cursor = response.get("next_cursor")

    # -------------------------------------------------------------------------
    # Page Operations
    # -------------------------------------------------------------------------

    def create_page(
        self,
        database_id: str,
        properties: dict[str, Any],
        children: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Create a page in a database.

        Args:
            database_id: Parent database ID
            properties: Page property values
            children: Initial content blocks (at most 100)

        Returns:
            The created page
        """
        body: dict[str, Any] = {
            "parent": {"database_id": database_id},
            "properties": properties,
        }
        if children:
            body["children"] = children
        return self._request("POST", "/pages", json_data=body)

    def update_page(self, page_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        """Update a page's property values."""
        return self._request("PATCH", f"/pages/{page_id}", json_data={"properties": properties})

    def archive_page(self, page_id: str) -> dict[str, Any]:
        """Archive (soft-delete) a page."""
        return self._request("PATCH", f"/pages/{page_id}", json_data={"archived": True})

    # -------------------------------------------------------------------------
    # Block Operations
    # -------------------------------------------------------------------------

    def list_children(self, block_id: str) -> list[dict[str, Any]]:
        """Get all child blocks of a block or page, following pagination."""
        results: list[dict[str, Any]] = []
        start_cursor = None
        while True:
            query_params = {"page_size": str(MAX_PAGE_SIZE)}
            if start_cursor:
                query_params["start_cursor"] = start_cursor
            response = self._request("GET", f"/blocks/{block_id}/children", query_params)
            results.extend(response.get("results", []))
            if not response.get("has_more"):
                return results
            start_cursor = response.get("next_cursor")

    def delete_block(self, block_id: str) -> dict[str, Any]:
        """Delete (archive) a block."""
        return self._request("DELETE", f"/blocks/{block_id}")

    def append_children(self, block_id: str, children: list[dict[str, Any]]) -> dict[str, Any]:
        """Append blocks to a block or page.

        Raises:
            ValueError: If more blocks are passed than one call accepts
        """
        if len(children) > MAX_PAGE_SIZE:
            raise ValueError(
                f"Cannot append {len(children)} blocks in one call (max {MAX_PAGE_SIZE})"
            )
        return self._request("PATCH", f"/blocks/{block_id}/children", json_data={"children": children})

    # -------------------------------------------------------------------------
    # Health Check
    # -------------------------------------------------------------------------

    def get_me(self) -> dict[str, Any]:
        """Get the bot user behind the token."""
        return self._request("GET", "/users/me")

    def verify_connection(self) -> bool:
        """Verify API connectivity and authentication.

        Returns:
            True if connection successful

        Raises:
            NotionAPIError: On connection or auth failure
        """
        response = self.get_me()
        return response.get("object") == "user"
