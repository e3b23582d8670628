"""Tests for the MailerLite API client."""

import httpx
import pytest

from nlarchive.config import ApiConfig
from nlarchive.ingestion.api_client import ApiError, MailerLiteClient, RateLimitError


def _client(handler):
    config = ApiConfig(api_key="secret", base_url="https://api.example.test/api/")
    return MailerLiteClient(config, transport=httpx.MockTransport(handler))


def test_list_sent_campaigns_sends_filter_and_auth():
    """Test the listing request and response parsing."""
    seen = {}

    def handler(request):
        seen["url"] = request.url
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "id": "42",
                        "name": "Weekly #42",
                        "finished_at": "2024-05-01T08:30:00Z",
                        "settings": {"preview_text": "Inside this week"},
                        "emails": [{"subject": "Borges y el tiempo"}],
                    }
                ]
            },
        )

    with _client(handler) as client:
        campaigns = client.list_sent_campaigns(3)

    assert seen["url"].path == "/api/campaigns"
    assert seen["url"].params["filter[status]"] == "sent"
    assert seen["url"].params["page"] == "3"
    assert seen["auth"] == "Bearer secret"

    assert len(campaigns) == 1
    campaign = campaigns[0]
    assert campaign.source_id == "42"
    assert campaign.subject == "Borges y el tiempo"
    assert campaign.preview_text == "Inside this week"
    assert campaign.sent_at.isoformat() == "2024-05-01T08:30:00"


def test_get_campaign_prefers_top_level_html():
    """Test the content fallbacks of a campaign detail."""

    def handler(request):
        assert request.url.path == "/api/campaigns/42"
        return httpx.Response(
            200,
            json={"data": {"id": "42", "html": "<p>top</p>", "emails": [{"html": "<p>email</p>"}]}},
        )

    with _client(handler) as client:
        detail = client.get_campaign("42")

    assert detail.content_html() == "<p>top</p>"


def test_get_campaign_falls_back_to_email_content():
    """Test the last content fallback."""

    def handler(request):
        return httpx.Response(200, json={"data": {"id": "42", "emails": [{"content": "<p>content</p>"}]}})

    with _client(handler) as client:
        assert client.get_campaign("42").content_html() == "<p>content</p>"


def test_rate_limit_raises_rate_limit_error():
    """Test that 429 is distinguishable from other errors."""
    with _client(lambda request: httpx.Response(429)) as client:
        with pytest.raises(RateLimitError) as excinfo:
            client.list_sent_campaigns(1)
    assert excinfo.value.status_code == 429


@pytest.mark.parametrize("status", [401, 403, 404, 500])
def test_http_errors_raise_api_error(status):
    """Test that other failures map to ApiError."""
    with _client(lambda request: httpx.Response(status)) as client:
        with pytest.raises(ApiError) as excinfo:
            client.get_campaign("42")
    assert not isinstance(excinfo.value, RateLimitError)
    assert excinfo.value.status_code == status


def test_unexpected_structure_raises_api_error():
    """Test responses without a data list."""
    with _client(lambda request: httpx.Response(200, json={"items": []})) as client:
        with pytest.raises(ApiError):
            client.list_sent_campaigns(1)


def test_invalid_json_raises_api_error():
    """Test a non-JSON body."""
    with _client(lambda request: httpx.Response(200, text="<html>maintenance</html>")) as client:
        with pytest.raises(ApiError):
            client.list_sent_campaigns(1)


def test_network_error_raises_api_error():
    """Test transport failures."""

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as client:
        with pytest.raises(ApiError):
            client.list_sent_campaigns(1)


def test_fetch_preview_does_not_send_api_key():
    """Test that the bearer token stays with the API."""
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["host"] = request.url.host
        return httpx.Response(200, text="<html>preview</html>")

    with _client(handler) as client:
        html = client.fetch_preview("https://preview.example.test/abc")

    assert html == "<html>preview</html>"
    assert seen["auth"] is None
    assert seen["host"] == "preview.example.test"


def test_missing_api_key_is_rejected():
    """Test construction without credentials."""
    with pytest.raises(ValueError):
        MailerLiteClient(ApiConfig(api_key=None))
