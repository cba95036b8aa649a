"""Optimistic mutation: apply locally, call the server, commit or roll back.

One `OptimisticMutation` belongs to one controller and allows a single
mutation in flight at a time. A call made while another is pending is
skipped without touching state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

COMMITTED = "committed"
ROLLED_BACK = "rolled_back"
SKIPPED = "skipped"


@dataclass
class MutationOutcome(Generic[T]):
    status: str
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status == COMMITTED


class OptimisticMutation:
    """Runs apply -> await request -> commit, or rollback on failure."""

    def __init__(self, name: str = "mutation"):
        self.name = name
        self._pending = False

    @property
    def pending(self) -> bool:
        return self._pending

    async def run(
        self,
        apply: Callable[[], Any],
        request: Callable[[], Awaitable[T]],
        rollback: Callable[[], Any],
        commit: Callable[[T], Any] | None = None,
    ) -> MutationOutcome[T]:
        if self._pending:
            logger.debug(f"{self.name}: mutation already in flight, ignoring")
            return MutationOutcome(SKIPPED)

        self._pending = True
        try:
            apply()
            try:
                value = await request()
            except Exception as exc:
                rollback()
                logger.warning(
                    f"{self.name}: request failed, rolled back: {exc}",
                    extra={"mutation": self.name},
                )
                return MutationOutcome(ROLLED_BACK, error=exc)

            if commit is not None:
                commit(value)
            return MutationOutcome(COMMITTED, value=value)
        finally:
            self._pending = False
