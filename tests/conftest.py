"""Shared fixtures: a config, an in-memory FlowReader API and sample articles."""

import json

import httpx
import pytest

from flowreader_sync.config import Config
from flowreader_sync.models import Article


@pytest.fixture
def config():
    return Config(FLOWREADER_URL="https://reader.test", FLOWREADER_SESSION="sess-1")


def make_article(article_id: str, feed_id: str = "F1", **kwargs) -> Article:
    return Article(id=article_id, feed_id=feed_id, title=f"Article {article_id}", **kwargs)


class FakeApi:
    """Request router standing in for the FlowReader server.

    Serves ``articles`` with limit/offset paging and records every request.
    ``fail_writes`` makes every non-GET request answer with that status.
    """

    def __init__(self, articles: list[dict] | None = None):
        self.articles = articles or []
        self.feeds: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.fail_writes: int | None = None

    def page(self, request: httpx.Request, items: list[dict]) -> httpx.Response:
        limit = int(request.url.params.get("limit", 50))
        offset = int(request.url.params.get("offset", 0))
        return httpx.Response(200, json=items[offset : offset + limit])

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/v1")

        if request.method != "GET" and self.fail_writes:
            return httpx.Response(self.fail_writes, text="upstream exploded")

        if request.method == "GET":
            if path == "/articles":
                items = self.articles
                if request.url.params.get("unread") == "true":
                    items = [a for a in items if not a.get("is_read")]
                return self.page(request, items)
            if path == "/articles/favorites":
                return self.page(request, [a for a in self.articles if a.get("is_favorite")])
            if path == "/articles/search":
                q = request.url.params["q"].lower()
                return self.page(request, [a for a in self.articles if q in a["title"].lower()])
            if path.startswith("/feeds/") and path.endswith("/articles"):
                feed_id = path.split("/")[2]
                return self.page(request, [a for a in self.articles if a["feed_id"] == feed_id])
            if path == "/feeds":
                return httpx.Response(200, json=self.feeds)

        if path.endswith("/read"):
            article_id = path.split("/")[2]
            is_read = request.method == "POST"
            for a in self.articles:
                if a["id"] == article_id:
                    a["is_read"] = is_read
            return httpx.Response(200, json={"is_read": is_read})
        if path.endswith("/favorite"):
            article_id = path.split("/")[2]
            for a in self.articles:
                if a["id"] == article_id:
                    a["is_favorite"] = not a.get("is_favorite", False)
                    return httpx.Response(200, json={"is_favorite": a["is_favorite"]})
        if path.endswith("/read-all"):
            return httpx.Response(200, json={"message": "All articles marked as read"})

        return httpx.Response(404, content=json.dumps({"error": "Not found"}))


def article_rows(n: int, feed_id: str = "F1") -> list[dict]:
    return [
        {"id": f"a{i}", "feed_id": feed_id, "title": f"Article {i}", "is_read": False, "is_favorite": False}
        for i in range(n)
    ]
