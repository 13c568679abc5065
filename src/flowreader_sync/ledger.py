"""Optimistic mutations with rollback."""

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, TypeVar

from .cache import PagedCollectionCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MutationState(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class PendingMutation:
    """One in-flight optimistic write.

    ``prior`` holds the cached values of the patched fields as they were
    when the mutation was issued, or None if the article was not cached.
    """

    seq: int
    article_id: str
    patch: dict[str, Any]
    prior: dict[str, Any] | None
    state: MutationState = MutationState.PENDING
    error: BaseException | None = field(default=None, repr=False)


class MutationLedger:
    """Applies a predicted local effect, then confirms it with the server.

    The optimistic patch is written to the cache before the first await,
    so it is visible as soon as the caller schedules :meth:`perform`.
    Page fetches that race a mutation open a window with :meth:`track` and
    :meth:`replay` the recorded patches onto what the server returned.
    """

    def __init__(
        self,
        cache: PagedCollectionCache,
        timeout: float | None = 30.0,
        on_commit: Callable[[list[PendingMutation]], None] | None = None,
    ):
        self._cache = cache
        self.timeout = timeout
        self._on_commit = on_commit
        self._seq = itertools.count(1)
        self._pending: dict[int, PendingMutation] = {}
        self._windows: dict[int, list[PendingMutation]] = {}
        self._window_ids = itertools.count(1)

    @property
    def pending(self) -> list[PendingMutation]:
        return list(self._pending.values())

    async def perform(
        self,
        article_id: str,
        patch: dict[str, Any],
        remote_call: Callable[[], Awaitable[T]],
    ) -> T:
        """Apply ``patch`` now and run ``remote_call``; undo the patch if it fails.

        Priors are read at call time, so a second mutation issued while the
        first is in flight records the first one's optimistic value.

        Raises:
            Whatever ``remote_call`` raised, after the rollback
            (``asyncio.TimeoutError`` when the call exceeds the timeout)
        """
        return await self._run([self._begin(article_id, patch)], remote_call)

    async def perform_bulk(
        self,
        article_ids: Iterable[str],
        patch: dict[str, Any],
        remote_call: Callable[[], Awaitable[T]],
    ) -> T:
        """Same as :meth:`perform`, for one server call that affects many articles.

        Each article keeps its own prior, so a rollback restores them individually.
        """
        mutations = [self._begin(article_id, patch) for article_id in dict.fromkeys(article_ids)]
        return await self._run(mutations, remote_call)

    def track(self) -> int:
        """Open a window for a fetch that is about to be issued.

        The window records every mutation pending now and every mutation
        issued until :meth:`untrack`, since the fetched page may predate them.

        Returns:
            A token for :meth:`untrack`
        """
        token = next(self._window_ids)
        self._windows[token] = list(self._pending.values())
        return token

    def untrack(self, token: int) -> list[PendingMutation]:
        """Close a window and return the mutations it recorded."""
        return self._windows.pop(token, [])

    @staticmethod
    def replay(mutations: Iterable[PendingMutation], items: Iterable[Any]) -> list[Any]:
        """Re-apply the patches of mutations that were not rolled back to fetched items."""
        live = [m for m in mutations if m.state != MutationState.ROLLED_BACK]
        patched = []
        for item in items:
            for mutation in live:
                if mutation.article_id == item.id:
                    item = replace(item, **mutation.patch)
            patched.append(item)
        return patched

    def _begin(self, article_id: str, patch: dict[str, Any]) -> PendingMutation:
        mutation = PendingMutation(
            seq=next(self._seq),
            article_id=article_id,
            patch=dict(patch),
            prior=self._cache.current_values(article_id, patch.keys()),
        )
        self._pending[mutation.seq] = mutation
        for window in self._windows.values():
            window.append(mutation)
        self._cache.update_item(article_id, mutation.patch)
        return mutation

    async def _run(self, mutations: list[PendingMutation], remote_call: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await asyncio.wait_for(remote_call(), timeout=self.timeout)
        except BaseException as e:
            for mutation in reversed(mutations):
                self._rollback(mutation, e)
            raise
        finally:
            for mutation in mutations:
                self._pending.pop(mutation.seq, None)

        for mutation in mutations:
            mutation.state = MutationState.COMMITTED
            logger.debug("Mutation %d on %s committed", mutation.seq, mutation.article_id)
        if self._on_commit and mutations:
            self._on_commit(mutations)
        return result

    def _rollback(self, mutation: PendingMutation, error: BaseException) -> None:
        if mutation.prior:
            self._cache.update_item(mutation.article_id, mutation.prior)
        mutation.state = MutationState.ROLLED_BACK
        mutation.error = error
        logger.warning(
            "Mutation %d on %s rolled back: %s",
            mutation.seq,
            mutation.article_id,
            str(error) or type(error).__name__,
        )
