"""In-memory cache of paginated, keyed collections.

One explicitly constructed :class:`PagedCollectionCache` is shared by the
coordinator and the presentation layer. It is not thread-safe and does not
need to be: every state transition runs to completion on the event loop
before the next one starts.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field, replace
from typing import Any, Literal

logger = logging.getLogger(__name__)

CollectionKind = Literal["articles", "search", "feeds"]
ChangeCallback = Callable[["CollectionKey"], None]


@dataclass(frozen=True)
class CollectionKey:
    """Selector identifying one cached collection.

    Search keys never compare equal to filter keys, so a search cannot
    contaminate the unread or favorites listings.
    """

    kind: CollectionKind = "articles"
    feed_id: str | None = None
    unread: bool = False
    favorite: bool = False
    query: str | None = None

    @classmethod
    def articles(
        cls, feed_id: str | None = None, unread: bool = False, favorite: bool = False
    ) -> "CollectionKey":
        return cls(kind="articles", feed_id=feed_id, unread=unread, favorite=favorite)

    @classmethod
    def search(cls, query: str) -> "CollectionKey":
        return cls(kind="search", query=query)

    @classmethod
    def feeds(cls) -> "CollectionKey":
        return cls(kind="feeds")


@dataclass
class Collection:
    key: CollectionKey
    items: list[Any] = field(default_factory=list)
    offset: int = 0
    exhausted: bool = False
    stale: bool = True
    generation: int = 0


@dataclass(frozen=True)
class CollectionView:
    """Read-only snapshot of a collection handed to the presentation layer."""

    key: CollectionKey
    items: tuple[Any, ...]
    exhausted: bool
    stale: bool

    @classmethod
    def of(cls, collection: Collection) -> "CollectionView":
        return cls(
            key=collection.key,
            items=tuple(collection.items),
            exhausted=collection.exhausted,
            stale=collection.stale,
        )


class PagedCollectionCache:
    """Keyed collections with page merge, point update and invalidation.

    Collections are created on first access and live for the lifetime of
    the cache; invalidation marks them stale instead of evicting them.
    """

    def __init__(self, page_size: int = 50):
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self._collections: dict[CollectionKey, Collection] = {}
        self._subscribers: dict[CollectionKey | None, list[ChangeCallback]] = {}

    def __contains__(self, key: CollectionKey) -> bool:
        return key in self._collections

    def keys(self) -> list[CollectionKey]:
        return list(self._collections)

    def get(self, key: CollectionKey) -> Collection | None:
        return self._collections.get(key)

    def get_or_create(self, key: CollectionKey) -> Collection:
        collection = self._collections.get(key)
        if collection is None:
            collection = Collection(key=key)
            self._collections[key] = collection
        return collection

    def merge_page(
        self,
        key: CollectionKey,
        items: Iterable[Any],
        is_first_page: bool,
        generation: int | None = None,
    ) -> bool:
        """Merge one fetched page into a collection.

        A stale collection always takes the page as its first page. When
        ``generation`` is given and the collection has been invalidated
        since, the page is discarded.

        Returns:
            True if the collection changed, False if the page was discarded
        """
        collection = self.get_or_create(key)
        if generation is not None and generation != collection.generation:
            logger.debug(
                "Discarding page for %s: generation %d superseded by %d",
                key,
                generation,
                collection.generation,
            )
            return False

        page = list(items)
        if is_first_page or collection.stale:
            collection.items = page
            collection.offset = len(page)
        else:
            # No dedup by id; the server's order is kept verbatim.
            collection.items.extend(page)
            collection.offset += len(page)
        collection.exhausted = len(page) < self.page_size
        collection.stale = False
        self._emit([key])
        return True

    def update_item(self, item_id: str, patch: dict[str, Any]) -> set[CollectionKey]:
        """Apply ``patch`` to every cached copy of an article.

        Returns:
            Keys of the collections that held the article
        """
        if not patch:
            return set()
        touched: set[CollectionKey] = set()
        for key, collection in self._collections.items():
            if key.kind == "feeds":
                continue
            for index, item in enumerate(collection.items):
                if item.id == item_id:
                    collection.items[index] = replace(item, **patch)
                    touched.add(key)
        self._emit(touched)
        return touched

    def find(self, item_id: str) -> Any | None:
        """First cached copy of an article, or None."""
        for _, item in self.iter_items():
            if item.id == item_id:
                return item
        return None

    def current_values(self, item_id: str, field_names: Iterable[str]) -> dict[str, Any] | None:
        item = self.find(item_id)
        if item is None:
            return None
        return {name: getattr(item, name) for name in field_names}

    def iter_items(self) -> Iterator[tuple[CollectionKey, Any]]:
        """Every cached article occurrence, across all article collections."""
        for key, collection in self._collections.items():
            if key.kind == "feeds":
                continue
            for item in collection.items:
                yield key, item

    def invalidate(self, key: CollectionKey | None = None) -> list[CollectionKey]:
        """Mark one collection (or all of them) stale.

        The next read refetches from the first page, and any fetch issued
        before this call is discarded when it lands.
        """
        if key is None:
            return self.invalidate_matching(lambda _: True)
        if key not in self._collections:
            return []
        self._mark_stale(self._collections[key])
        self._emit([key])
        return [key]

    def invalidate_matching(self, predicate: Callable[[CollectionKey], bool]) -> list[CollectionKey]:
        keys = [key for key in self._collections if predicate(key)]
        for key in keys:
            self._mark_stale(self._collections[key])
        self._emit(keys)
        return keys

    @staticmethod
    def _mark_stale(collection: Collection) -> None:
        collection.stale = True
        collection.generation += 1

    def subscribe(self, key: CollectionKey | None, callback: ChangeCallback) -> Callable[[], None]:
        """Register ``callback`` for changes to ``key`` (or to any key if None).

        Returns:
            A function that removes the subscription
        """
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _emit(self, keys: Iterable[CollectionKey]) -> None:
        for key in keys:
            for callback in [*self._subscribers.get(key, []), *self._subscribers.get(None, [])]:
                try:
                    callback(key)
                except Exception:
                    logger.exception("Change subscriber for %s failed", key)
