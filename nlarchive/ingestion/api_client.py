"""MailerLite API client."""

from typing import Any, Dict, List, Optional

import httpx

from ..config import ApiConfig
from .models import CampaignDetail, CampaignSummary


class ApiError(Exception):
    """The source API could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(ApiError):
    """The source API answered 429 Too Many Requests."""


class MailerLiteClient:
    """Fetch sent campaigns and their content."""

    def __init__(
        self,
        config: ApiConfig,
        transport: Optional[httpx.BaseTransport] = None,
        user_agent: str = "nlarchive/0.1 (Newsletter Archive)",
    ) -> None:
        """Initialize API client."""
        if not config.api_key:
            raise ValueError("MailerLite API key is not configured")

        self.config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Accept": "application/json",
                "User-Agent": user_agent,
            },
        )

    def __enter__(self) -> "MailerLiteClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                raise RateLimitError(f"HTTP 429 rate limited on {path}", status) from e
            if status == 404:
                raise ApiError(f"Not found (404): {path}", status) from e
            if status in (401, 403):
                raise ApiError(f"Access denied ({status}): check the API key", status) from e
            raise ApiError(f"HTTP {status} on {path}", status) from e
        except httpx.TimeoutException as e:
            raise ApiError(f"Request timed out: {path}") from e
        except httpx.HTTPError as e:
            raise ApiError(f"HTTP error on {path}: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON from {path}", response.status_code) from e

        if not isinstance(body, dict):
            raise ApiError(f"Unexpected response structure from {path}", response.status_code)
        return body

    def list_sent_campaigns(self, page: int) -> List[CampaignSummary]:
        """List one page of sent campaigns, newest first."""
        body = self._get("/campaigns", params={"filter[status]": "sent", "page": page})
        data = body.get("data")
        if not isinstance(data, list):
            raise ApiError("API response missing expected structure")
        return [CampaignSummary.from_api(c) for c in data if isinstance(c, dict)]

    def get_campaign(self, source_id: str) -> CampaignDetail:
        """Fetch a campaign with its content."""
        body = self._get(f"/campaigns/{source_id}")
        data = body.get("data")
        if not isinstance(data, dict):
            raise ApiError(f"Campaign {source_id} not found in response", 404)
        return CampaignDetail.from_api(data)

    def fetch_preview(self, url: str) -> str:
        """Download a public preview page (outside the API base URL)."""
        request = self._client.build_request(
            "GET", url, headers={"Accept": "text/html,application/xhtml+xml"}
        )
        # The bearer token belongs to the API only
        del request.headers["Authorization"]
        try:
            response = self._client.send(request, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ApiError(f"HTTP {e.response.status_code} fetching preview", e.response.status_code) from e
        except httpx.HTTPError as e:
            raise ApiError(f"HTTP error fetching preview: {e}") from e
        return response.text
