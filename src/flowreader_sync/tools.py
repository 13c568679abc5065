"""MCP tool definitions over the synchronized FlowReader cache.

Reads are served from the cache and only hit the server when a collection
is stale or more pages are requested. Writes go through the coordinator so
they are applied optimistically. All exceptions are caught at the tool
boundary and returned as "Error: ..." strings so the MCP protocol never
sees an uncaught exception.
"""

import logging

from fastmcp import FastMCP

from .cache import CollectionKey, CollectionView
from .client import FlowReaderClient
from .coordinator import SyncCoordinator
from .models import Article

logger = logging.getLogger(__name__)


def _truncate_summary(summary: str | None, max_length: int) -> str:
    """Truncate summary to max_length at a word boundary."""
    summary = summary or ""
    if len(summary) <= max_length:
        return summary
    return summary[:max_length].rsplit(" ", 1)[0] + "..."


def _article_row(article: Article, max_summary_length: int) -> dict:
    d = article.to_dict()
    d.pop("content", None)
    d["summary"] = _truncate_summary(d["summary"], max_summary_length)
    return d


def _render(view: CollectionView, max_summary_length: int) -> str:
    return str(
        {
            "articles": [_article_row(a, max_summary_length) for a in view.items],
            "exhausted": view.exhausted,
        }
    )


def register_tools(mcp: FastMCP, coordinator: SyncCoordinator, client: FlowReaderClient) -> None:
    """Register all FlowReader tools on the given MCP server instance."""

    async def _read(key: CollectionKey, load_more: bool) -> CollectionView:
        view = coordinator.view(key)
        if view.stale or (load_more and not view.exhausted):
            view = await coordinator.load_next_page(key)
        return view

    @mcp.tool()
    async def get_articles(
        feed_id: str | None = None,
        unread_only: bool = False,
        favorites_only: bool = False,
        load_more: bool = False,
        max_summary_length: int = 500,
    ) -> str:
        """Get cached articles, fetching from FlowReader when the listing is stale.

        Args:
            feed_id: Optional feed ID to restrict the listing to.
            unread_only: Only list unread articles (global listing only).
            favorites_only: Only list favorite articles.
            load_more: Fetch the next page and append it to the listing.
            max_summary_length: Maximum characters for article summaries (default 500).

        Returns the accumulated listing and whether all pages have been loaded.
        """
        try:
            key = CollectionKey.articles(feed_id=feed_id, unread=unread_only, favorite=favorites_only)
            return _render(await _read(key, load_more), max_summary_length)
        except Exception as e:
            logger.error("get_articles failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def search_articles(query: str, load_more: bool = False, max_summary_length: int = 500) -> str:
        """Search articles on the server.

        Args:
            query: Search query string.
            load_more: Fetch the next page of results.
            max_summary_length: Maximum characters for article summaries (default 500).
        """
        try:
            return _render(await _read(CollectionKey.search(query), load_more), max_summary_length)
        except Exception as e:
            logger.error("search_articles failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def get_article(article_id: str) -> str:
        """Get one article with its full content.

        Args:
            article_id: ID of the article.
        """
        try:
            article = await client.get_article(article_id)
            return str(article.to_dict())
        except Exception as e:
            logger.error("get_article failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def list_feeds() -> str:
        """List all subscribed feeds with unread counts."""
        try:
            feeds = await coordinator.load_feeds()
            return str([f.to_dict() for f in feeds])
        except Exception as e:
            logger.error("list_feeds failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def mark_as_read(article_ids: list[str]) -> str:
        """Mark articles as read.

        Args:
            article_ids: List of article IDs to mark as read.

        Returns "OK" on success or an error message.
        """
        try:
            for article_id in article_ids:
                await coordinator.mark_read(article_id)
            return "OK"
        except Exception as e:
            logger.error("mark_as_read failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def mark_as_unread(article_ids: list[str]) -> str:
        """Mark articles as unread.

        Args:
            article_ids: List of article IDs to mark as unread.

        Returns "OK" on success or an error message.
        """
        try:
            for article_id in article_ids:
                await coordinator.mark_unread(article_id)
            return "OK"
        except Exception as e:
            logger.error("mark_as_unread failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def toggle_favorite(article_id: str) -> str:
        """Add an article to favorites, or remove it if it already is one.

        Args:
            article_id: ID of the article.

        Returns the new favorite state or an error message.
        """
        try:
            is_favorite = await coordinator.toggle_favorite(article_id)
            return f"is_favorite={is_favorite}"
        except Exception as e:
            logger.error("toggle_favorite failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def mark_all_read(feed_id: str | None = None) -> str:
        """Mark every article of a feed as read, or of all feeds if no feed is given.

        Args:
            feed_id: Optional feed ID.
        """
        try:
            return await coordinator.mark_all_read(feed_id)
        except Exception as e:
            logger.error("mark_all_read failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def summarize_article(article_id: str) -> str:
        """Request an AI summary. It shows up on the article once generated.

        Args:
            article_id: ID of the article.
        """
        try:
            await coordinator.request_summary(article_id)
            return "OK"
        except Exception as e:
            logger.error("summarize_article failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def add_feed(url: str) -> str:
        """Subscribe to a feed.

        Args:
            url: Feed or site URL.
        """
        try:
            feed = await client.add_feed(url)
            coordinator.cache.invalidate(CollectionKey.feeds())
            return str(feed.to_dict())
        except Exception as e:
            logger.error("add_feed failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def delete_feed(feed_id: str) -> str:
        """Unsubscribe from a feed.

        Args:
            feed_id: ID of the feed.
        """
        try:
            await client.delete_feed(feed_id)
            coordinator.refresh_all()
            return "OK"
        except Exception as e:
            logger.error("delete_feed failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def refresh_feeds() -> str:
        """Ask the server to poll all feeds now. New articles arrive as notifications."""
        try:
            return await client.refresh_feeds()
        except Exception as e:
            logger.error("refresh_feeds failed: %s", e, exc_info=True)
            return f"Error: {e}"
