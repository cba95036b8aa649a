"""Optimistic watchlist toggle for a single item."""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from bidmarket.middleware.exceptions import ToggleError
from bidmarket.schemas.watchlist import WatchlistState
from bidmarket.services.optimistic import SKIPPED, MutationOutcome, OptimisticMutation

logger = logging.getLogger(__name__)


class WatchlistBackend(Protocol):
    async def add_to_watchlist(self, item_id: str) -> str: ...

    async def remove_from_watchlist(self, entry_id: str) -> None: ...


class WatchlistToggle:
    """Flips the watchlisted flag first, then confirms with the server.

    The entry id is only replaced when the server confirms: set on a
    successful add, cleared on a successful remove. A failed call restores
    the previous flag and records a ToggleError in ``last_error``.
    """

    def __init__(
        self,
        backend: WatchlistBackend,
        item_id: str,
        watchlist_entry_id: str | None = None,
        on_add: Callable[[], None] | None = None,
        on_remove: Callable[[], None] | None = None,
    ):
        self.backend = backend
        self.item_id = item_id
        self.entry_id = watchlist_entry_id
        self.is_watchlisted = bool(watchlist_entry_id)
        self.last_error: ToggleError | None = None
        self._on_add = on_add
        self._on_remove = on_remove
        self._mutation = OptimisticMutation(name=f"watchlist:{item_id}")

    @property
    def pending(self) -> bool:
        return self._mutation.pending

    def state(self) -> WatchlistState:
        return WatchlistState(
            item_id=self.item_id,
            is_watchlisted=self.is_watchlisted,
            entry_id=self.entry_id,
            pending=self.pending,
            error=self.last_error.message if self.last_error else None,
        )

    def reset(self, watchlist_entry_id: str | None) -> None:
        """Re-seed from the page's current view. Ignored while a request is in flight."""
        if self.pending:
            return
        self.entry_id = watchlist_entry_id
        self.is_watchlisted = bool(watchlist_entry_id)
        self.last_error = None

    def _set_watchlisted(self, value: bool) -> None:
        self.is_watchlisted = value

    async def toggle(self) -> MutationOutcome:
        if self.pending:
            logger.debug(f"Watchlist toggle for {self.item_id} already in flight")
            return MutationOutcome(SKIPPED)

        self.last_error = None
        if self.is_watchlisted and self.entry_id:
            outcome = await self._remove(self.entry_id)
        else:
            outcome = await self._add()

        if outcome.error is not None:
            self.last_error = _as_toggle_error(outcome.error, self.item_id)
        return outcome

    async def _remove(self, entry_id: str) -> MutationOutcome:
        def commit(_):
            self.entry_id = None
            if self._on_remove:
                self._on_remove()

        return await self._mutation.run(
            apply=lambda: self._set_watchlisted(False),
            request=lambda: self.backend.remove_from_watchlist(entry_id),
            rollback=lambda: self._set_watchlisted(True),
            commit=commit,
        )

    async def _add(self) -> MutationOutcome:
        def commit(new_entry_id: str):
            self.entry_id = new_entry_id
            if self._on_add:
                self._on_add()

        return await self._mutation.run(
            apply=lambda: self._set_watchlisted(True),
            request=lambda: self.backend.add_to_watchlist(self.item_id),
            rollback=lambda: self._set_watchlisted(False),
            commit=commit,
        )


def _as_toggle_error(error: Exception, item_id: str) -> ToggleError:
    if isinstance(error, ToggleError):
        return error
    return ToggleError(f"Could not update watchlist: {error}", item_id)
