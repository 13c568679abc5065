"""FlowReader REST API client."""

import asyncio
import logging
from typing import Any

import httpx

from .config import Config
from .models import Article, Feed, User

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_id"


class ApiError(Exception):
    """A non-2xx response from the FlowReader API."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        return self.message


class FlowReaderClient:
    """Async client for the FlowReader ``/api/v1`` endpoints.

    Designed for single-instance lifecycle: create once at startup,
    log in (or pass a session cookie through config), then share it.
    GET requests are retried on transport errors; writes never are.
    """

    retry_delay = 0.5

    def __init__(self, config: Config, transport: httpx.AsyncBaseTransport | None = None):
        self._config = config
        self.api_url = config.api_url
        self._read_retries = config.read_retries
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            timeout=config.request_timeout,
            follow_redirects=True,
            transport=transport or httpx.AsyncHTTPTransport(retries=config.read_retries),
        )
        if config.flowreader_session:
            self._client.cookies.set(SESSION_COOKIE, config.flowreader_session.get_secret_value())

    @property
    def session_token(self) -> str | None:
        return self._client.cookies.get(SESSION_COOKIE)

    @staticmethod
    def _handle_response(response: httpx.Response) -> Any:
        if not response.is_success:
            try:
                message = response.json().get("error") or "Request failed"
            except (ValueError, AttributeError):
                message = "Request failed"
            raise ApiError(response.status_code, message)
        if not response.content:
            return None
        return response.json()

    async def _get(self, path: str, params: dict | None = None) -> Any:
        attempt = 0
        while True:
            try:
                response = await self._client.get(path, params=params)
                break
            except httpx.TransportError as e:
                attempt += 1
                if attempt > self._read_retries:
                    raise
                logger.warning("GET %s failed (%s), retry %d/%d", path, e, attempt, self._read_retries)
                await asyncio.sleep(self.retry_delay * attempt)
        return self._handle_response(response)

    async def _send(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)
        return self._handle_response(response)

    # --- Session ---

    async def login(self, email: str, password: str) -> User:
        """Log in and keep the session cookie for later requests.

        Raises:
            ApiError: If the credentials are rejected
        """
        self._client.cookies.delete(SESSION_COOKIE)
        response = await self._client.post("/auth/login", json={"email": email, "password": password})
        data = self._handle_response(response)
        token = data.get("token")
        if token and SESSION_COOKIE not in response.cookies:
            self._client.cookies.set(SESSION_COOKIE, token)
        logger.info("Logged in as %s", email)
        return User(**{k: v for k, v in data["user"].items() if k in ("id", "email", "is_admin")})

    async def logout(self) -> None:
        await self._send("POST", "/auth/logout")
        self._client.cookies.delete(SESSION_COOKIE)

    async def get_me(self) -> User:
        data = await self._get("/users/me")
        return User(id=str(data["id"]), email=data["email"], is_admin=data.get("is_admin", False))

    # --- Articles ---

    async def list_articles(
        self,
        limit: int = 50,
        offset: int = 0,
        unread: bool = False,
        favorite: bool = False,
        feed_id: str | None = None,
    ) -> list[Article]:
        """List one page of articles.

        Favorites and per-feed listings use their own endpoints; the
        ``unread`` flag only applies to the global listing.
        """
        params: dict[str, str | int] = {"limit": limit, "offset": offset}
        if favorite:
            path = "/articles/favorites"
        elif feed_id:
            path = f"/feeds/{feed_id}/articles"
        else:
            path = "/articles"
            if unread:
                params["unread"] = "true"

        data = await self._get(path, params=params)
        articles = [Article.from_dict(item) for item in data or []]
        logger.debug("Retrieved %d articles from %s (offset %d)", len(articles), path, offset)
        return articles

    async def search_articles(self, query: str, limit: int = 50, offset: int = 0) -> list[Article]:
        data = await self._get("/articles/search", params={"q": query, "limit": limit, "offset": offset})
        return [Article.from_dict(item) for item in data or []]

    async def get_article(self, article_id: str) -> Article:
        return Article.from_dict(await self._get(f"/articles/{article_id}"))

    async def mark_read(self, article_id: str) -> bool:
        data = await self._send("POST", f"/articles/{article_id}/read")
        return bool(data["is_read"])

    async def mark_unread(self, article_id: str) -> bool:
        data = await self._send("DELETE", f"/articles/{article_id}/read")
        return bool(data["is_read"])

    async def toggle_favorite(self, article_id: str) -> bool:
        data = await self._send("POST", f"/articles/{article_id}/favorite")
        return bool(data["is_favorite"])

    async def mark_all_read(self, feed_id: str | None = None) -> str:
        """Mark every article of one feed (or of all feeds) as read."""
        path = f"/feeds/{feed_id}/read-all" if feed_id else "/articles/read-all"
        data = await self._send("POST", path)
        return data.get("message", "")

    async def request_summary(self, article_id: str) -> None:
        """Ask the server to summarize an article.

        The summary is not in the response; it arrives later as an
        ``article_updated`` notification.
        """
        await self._send("POST", f"/articles/{article_id}/summarize")

    # --- Feeds ---

    async def list_feeds(self) -> list[Feed]:
        data = await self._get("/feeds")
        feeds = [Feed.from_dict(item) for item in data or []]
        logger.info("Retrieved %d feeds", len(feeds))
        return feeds

    async def get_feed(self, feed_id: str) -> Feed:
        return Feed.from_dict(await self._get(f"/feeds/{feed_id}"))

    async def add_feed(self, url: str) -> Feed:
        return Feed.from_dict(await self._send("POST", "/feeds", json={"url": url}))

    async def rename_feed(self, feed_id: str, title: str) -> Feed:
        return Feed.from_dict(await self._send("PATCH", f"/feeds/{feed_id}", json={"title": title}))

    async def delete_feed(self, feed_id: str) -> None:
        await self._send("DELETE", f"/feeds/{feed_id}")

    async def refresh_feeds(self) -> str:
        data = await self._send("POST", "/feeds/refresh")
        return data.get("message", "")

    async def import_opml(self, content: bytes, filename: str = "feeds.opml") -> dict:
        """Upload an OPML document. Returns ``{imported, skipped, errors}``."""
        files = {"file": (filename, content, "text/x-opml")}
        return await self._send("POST", "/feeds/import/opml", files=files)

    async def export_opml(self) -> str:
        response = await self._client.get("/feeds/export/opml")
        if not response.is_success:
            self._handle_response(response)
        return response.text

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
