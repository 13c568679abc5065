"""Wires the event stream, the cache and the mutation ledger together.

The presentation layer talks only to :class:`SyncCoordinator`: it issues
commands, reads :class:`CollectionView` snapshots and subscribes to change
events. The coordinator holds no state of its own beyond in-flight fetches.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from .cache import ChangeCallback, Collection, CollectionKey, CollectionView, PagedCollectionCache
from .client import FlowReaderClient
from .events import EventStreamClient
from .ledger import MutationLedger, PendingMutation
from .models import Article, Feed
from .notifications import ArticleUpdated, NewArticles, Notification

logger = logging.getLogger(__name__)

T = TypeVar("T")

FEEDS_KEY = CollectionKey.feeds()


def _is_unread_derived(key: CollectionKey) -> bool:
    """Article listings that new arrivals can show up in."""
    return key.kind == "articles" and not key.favorite


def _is_article_view(key: CollectionKey) -> bool:
    return key.kind in ("articles", "search")


class SyncCoordinator:
    refetch_limit = 2

    def __init__(
        self,
        client: FlowReaderClient,
        cache: PagedCollectionCache,
        events: EventStreamClient | None = None,
        mutation_timeout: float | None = 30.0,
    ):
        self._client = client
        self._cache = cache
        self._events = events
        self._ledger = MutationLedger(cache, timeout=mutation_timeout, on_commit=self._after_commit)
        self._inflight: dict[tuple[CollectionKey, int], asyncio.Task] = {}

    @property
    def cache(self) -> PagedCollectionCache:
        return self._cache

    @property
    def ledger(self) -> MutationLedger:
        return self._ledger

    # --- Lifecycle ---

    def start(self) -> None:
        """Start listening for server notifications."""
        if self._events is not None:
            self._events.start(self.on_notification)

    async def stop(self) -> None:
        if self._events is not None:
            await self._events.stop()
        for task in list(self._inflight.values()):
            task.cancel()

    # --- Notifications ---

    def on_notification(self, notification: Notification) -> None:
        if isinstance(notification, NewArticles):
            keys = self._cache.invalidate_matching(_is_unread_derived)
            self._cache.invalidate(FEEDS_KEY)
            logger.info(
                "New articles (feed=%s, count=%d), invalidated %d collections",
                notification.feed_id,
                notification.count,
                len(keys),
            )
        elif isinstance(notification, ArticleUpdated):
            if notification.article_id and notification.changes:
                self._cache.update_item(notification.article_id, notification.changes)
            # Payloads do not say which listings the article moved in or out of.
            self._cache.invalidate_matching(_is_article_view)
            self._cache.invalidate(FEEDS_KEY)
        else:
            logger.debug("Ignoring notification %s", notification.type)

    # --- Reads ---

    def view(self, key: CollectionKey) -> CollectionView:
        return CollectionView.of(self._cache.get_or_create(key))

    def subscribe(self, key: CollectionKey | None, callback: ChangeCallback) -> Callable[[], None]:
        return self._cache.subscribe(key, callback)

    async def load_next_page(self, key: CollectionKey) -> CollectionView:
        """Fetch the next page of ``key`` into the cache.

        A stale collection restarts from the first page. Concurrent calls for
        the same collection share one request. A page that lands after the
        collection was invalidated is discarded and the first page is fetched
        again, up to ``refetch_limit`` times.
        """
        for _ in range(self.refetch_limit + 1):
            collection = self._cache.get_or_create(key)
            if collection.exhausted and not collection.stale:
                break
            await asyncio.shield(self._page_task(key, collection))
            if not self._cache.get_or_create(key).stale:
                break
            logger.debug("Page for %s was superseded, fetching again", key)
        return self.view(key)

    def _page_task(self, key: CollectionKey, collection: Collection) -> asyncio.Task:
        inflight_key = (key, collection.generation)
        task = self._inflight.get(inflight_key)
        if task is not None:
            return task

        # The feed list is never paginated: every load replaces it.
        is_first_page = collection.stale or key.kind == "feeds"
        offset = 0 if is_first_page else collection.offset
        token = self._ledger.track()
        task = asyncio.ensure_future(
            self._fetch_page(key, offset, is_first_page, collection.generation, token)
        )
        self._inflight[inflight_key] = task

        def done(_: asyncio.Task) -> None:
            self._inflight.pop(inflight_key, None)
            self._ledger.untrack(token)

        task.add_done_callback(done)
        return task

    async def _fetch_page(
        self, key: CollectionKey, offset: int, is_first_page: bool, generation: int, token: int
    ) -> None:
        try:
            items = await self._fetch(key, offset)
        finally:
            recent = self._ledger.untrack(token)
        if key.kind != "feeds":
            # The server may not reflect writes issued while the request was out.
            items = self._ledger.replay(recent, items)
        self._cache.merge_page(key, items, is_first_page=is_first_page, generation=generation)

    async def _fetch(self, key: CollectionKey, offset: int) -> list[Any]:
        limit = self._cache.page_size
        if key.kind == "feeds":
            return await self._client.list_feeds()
        if key.kind == "search":
            return await self._client.search_articles(key.query or "", limit=limit, offset=offset)
        return await self._client.list_articles(
            limit=limit,
            offset=offset,
            unread=key.unread,
            favorite=key.favorite,
            feed_id=key.feed_id,
        )

    async def load_feeds(self) -> list[Feed]:
        """Feed list with unread counters, refetched when stale."""
        collection = self._cache.get_or_create(FEEDS_KEY)
        if collection.stale:
            await self.load_next_page(FEEDS_KEY)
        return list(self._cache.get_or_create(FEEDS_KEY).items)

    def refresh_all(self) -> None:
        keys = self._cache.invalidate()
        logger.info("Invalidated %d collections", len(keys))

    # --- Writes ---

    async def apply_mutation(
        self,
        article_id: str,
        patch: dict[str, Any],
        remote_call: Callable[[], Awaitable[T]],
    ) -> T:
        return await self._ledger.perform(article_id, patch, remote_call)

    def _after_commit(self, mutations: list[PendingMutation]) -> None:
        # Unread counters cannot be predicted locally.
        if any("is_read" in m.patch for m in mutations):
            self._cache.invalidate(FEEDS_KEY)

    @staticmethod
    def _read_patch() -> dict[str, Any]:
        return {"is_read": True, "read_at": datetime.now(timezone.utc).isoformat()}

    async def mark_read(self, article_id: str) -> bool:
        patch = self._read_patch()
        return await self.apply_mutation(article_id, patch, lambda: self._client.mark_read(article_id))

    async def mark_unread(self, article_id: str) -> bool:
        patch = {"is_read": False, "read_at": None}
        return await self.apply_mutation(article_id, patch, lambda: self._client.mark_unread(article_id))

    async def toggle_favorite(self, article_id: str) -> bool:
        """Flip the favorite flag. The prediction is the inverse of the cached value."""
        cached = self._cache.find(article_id)
        predicted = not cached.is_favorite if cached is not None else True
        result = await self.apply_mutation(
            article_id,
            {"is_favorite": predicted},
            lambda: self._client.toggle_favorite(article_id),
        )
        if result != predicted:
            self._cache.update_item(article_id, {"is_favorite": result})
        return result

    async def mark_all_read(self, feed_id: str | None = None) -> str:
        """Mark a feed (or everything) read, optimistically for every cached article.

        On failure each article gets its own prior value back.
        """
        targets = [
            item.id
            for _, item in self._cache.iter_items()
            if isinstance(item, Article)
            and not item.is_read
            and (feed_id is None or item.feed_id == feed_id)
        ]
        message = await self._ledger.perform_bulk(
            targets, self._read_patch(), lambda: self._client.mark_all_read(feed_id)
        )
        # With nothing cached to patch, the commit hook never saw a read.
        if not targets:
            self._cache.invalidate(FEEDS_KEY)
        return message

    async def request_summary(self, article_id: str) -> None:
        await self._client.request_summary(article_id)
