"""Tests for client.py — FlowReader REST client with mocked HTTP."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from conftest import FakeApi, article_rows

from flowreader_sync.client import ApiError, FlowReaderClient


@pytest.fixture
def api():
    return FakeApi(article_rows(5))


@pytest.fixture
def client(config, api):
    return FlowReaderClient(config, transport=httpx.MockTransport(api))


# --- Errors ---


@pytest.mark.asyncio
async def test_error_body_message_is_surfaced(config):
    transport = httpx.MockTransport(lambda r: httpx.Response(404, json={"error": "Article not found"}))
    client = FlowReaderClient(config, transport=transport)

    with pytest.raises(ApiError) as exc_info:
        await client.get_article("missing")

    assert exc_info.value.status == 404
    assert str(exc_info.value) == "Article not found"


@pytest.mark.asyncio
async def test_non_json_error_body_falls_back(config):
    transport = httpx.MockTransport(lambda r: httpx.Response(500, text="<html>oops</html>"))
    client = FlowReaderClient(config, transport=transport)

    with pytest.raises(ApiError, match="Request failed") as exc_info:
        await client.mark_read("a1")

    assert exc_info.value.status == 500


@pytest.mark.asyncio
async def test_get_retries_transport_errors(config):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=[])

    client = FlowReaderClient(config, transport=httpx.MockTransport(handler))
    client.retry_delay = 0

    assert await client.list_feeds() == []
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_get_gives_up_after_retries(config):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = FlowReaderClient(config, transport=httpx.MockTransport(handler))
    client.retry_delay = 0

    with pytest.raises(httpx.ConnectError):
        await client.list_articles()


@pytest.mark.asyncio
async def test_writes_are_not_retried(config):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = FlowReaderClient(config, transport=httpx.MockTransport(handler))

    with pytest.raises(httpx.ConnectError):
        await client.toggle_favorite("a1")
    assert len(calls) == 1


# --- Session ---


@pytest.mark.asyncio
async def test_session_cookie_sent(client, api):
    await client.list_feeds()
    assert "session_id=sess-1" in api.requests[0].headers["cookie"]


@pytest.mark.asyncio
async def test_login_stores_token(config):
    def handler(request):
        return httpx.Response(
            200,
            json={
                "token": "tok-42",
                "expires_at": "2030-01-01T00:00:00Z",
                "user": {"id": "u1", "email": "alice@example.com", "is_admin": False},
            },
        )

    client = FlowReaderClient(config, transport=httpx.MockTransport(handler))
    user = await client.login("alice@example.com", "pw")

    assert user.email == "alice@example.com"
    assert client.session_token == "tok-42"


@pytest.mark.asyncio
async def test_login_rejected(config):
    transport = httpx.MockTransport(lambda r: httpx.Response(401, json={"error": "Invalid credentials"}))
    client = FlowReaderClient(config, transport=transport)

    with pytest.raises(ApiError, match="Invalid credentials"):
        await client.login("alice@example.com", "wrong")


# --- Article listings ---


@pytest.mark.asyncio
async def test_list_articles_paginates(client, api):
    articles = await client.list_articles(limit=2, offset=2)

    assert [a.id for a in articles] == ["a2", "a3"]
    params = api.requests[0].url.params
    assert params["limit"] == "2"
    assert params["offset"] == "2"
    assert "unread" not in params


@pytest.mark.asyncio
async def test_list_articles_unread(client, api):
    api.articles[0]["is_read"] = True
    articles = await client.list_articles(unread=True)

    assert api.requests[0].url.params["unread"] == "true"
    assert "a0" not in [a.id for a in articles]


@pytest.mark.asyncio
async def test_list_articles_by_feed(client, api):
    await client.list_articles(feed_id="F9")
    assert api.requests[0].url.path == "/api/v1/feeds/F9/articles"


@pytest.mark.asyncio
async def test_list_favorites_wins_over_feed(client, api):
    await client.list_articles(favorite=True, feed_id="F9")
    assert api.requests[0].url.path == "/api/v1/articles/favorites"


@pytest.mark.asyncio
async def test_search(client, api):
    articles = await client.search_articles("article 3", limit=10)

    assert [a.id for a in articles] == ["a3"]
    assert api.requests[0].url.params["q"] == "article 3"


# --- Writes ---


@pytest.mark.asyncio
async def test_mark_read_and_unread(client, api):
    assert await client.mark_read("a1") is True
    assert api.requests[-1].method == "POST"
    assert await client.mark_unread("a1") is False
    assert api.requests[-1].method == "DELETE"
    assert api.requests[-1].url.path == "/api/v1/articles/a1/read"


@pytest.mark.asyncio
async def test_toggle_favorite(client):
    assert await client.toggle_favorite("a1") is True
    assert await client.toggle_favorite("a1") is False


@pytest.mark.asyncio
async def test_mark_all_read_paths(client, api):
    await client.mark_all_read("F1")
    await client.mark_all_read()

    assert api.requests[0].url.path == "/api/v1/feeds/F1/read-all"
    assert api.requests[1].url.path == "/api/v1/articles/read-all"


# --- Feeds ---


@pytest.mark.asyncio
async def test_list_feeds(client, api):
    api.feeds = [
        {"id": "F1", "url": "https://a.com/rss", "title": "Feed A", "unread_count": 3},
        {"id": "F2", "url": "https://b.com/rss", "title": "Feed B"},
    ]
    feeds = await client.list_feeds()

    assert feeds[0].unread_count == 3
    assert feeds[1].unread_count == 0


@pytest.mark.asyncio
async def test_add_feed_posts_json(client):
    mock_response = MagicMock()
    mock_response.is_success = True
    mock_response.content = b"{}"
    mock_response.json.return_value = {"id": "F3", "url": "https://c.com/rss", "title": "C"}

    mock_request = AsyncMock(return_value=mock_response)
    with patch.object(client._client, "request", mock_request):
        feed = await client.add_feed("https://c.com/rss")

    assert feed.id == "F3"
    assert mock_request.call_args[1]["json"] == {"url": "https://c.com/rss"}


@pytest.mark.asyncio
async def test_import_opml_is_multipart(config):
    seen = {}

    def handler(request):
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content
        return httpx.Response(200, json={"imported": 2, "skipped": 0})

    client = FlowReaderClient(config, transport=httpx.MockTransport(handler))
    result = await client.import_opml(b"<opml/>")

    assert result["imported"] == 2
    assert seen["content_type"].startswith("multipart/form-data")
    assert b"<opml/>" in seen["body"]


@pytest.mark.asyncio
async def test_export_opml_returns_text(config):
    transport = httpx.MockTransport(lambda r: httpx.Response(200, text="<opml version='2.0'/>"))
    client = FlowReaderClient(config, transport=transport)

    assert await client.export_opml() == "<opml version='2.0'/>"


# --- Lifecycle ---


@pytest.mark.asyncio
async def test_aclose(client):
    await client.aclose()
    assert client._client.is_closed
