"""In-process registry of open wizards and watchlist toggles.

One entry per wizard instance, keyed by an opaque id handed to the
browser and bound to the caller that opened it. Nothing is persisted: an
idle timeout, a process restart or `discard` drops the draft, and the
marketplace keeps whatever it already saved.

Toggles only live here while their request is in flight, so a repeat
click from the same caller hits the same in-flight guard.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from bidmarket.config import settings
from bidmarket.middleware.exceptions import ResourceNotFoundError
from bidmarket.services.watchlist import WatchlistToggle
from bidmarket.services.wizard import WizardController, WizardState

logger = logging.getLogger(__name__)


@dataclass
class OpenWizard:
    wizard: WizardController
    owner: str
    touched_at: float


class WizardRegistry:

    def __init__(
        self,
        idle_ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.idle_ttl_seconds = (
            settings.wizard_idle_ttl_seconds if idle_ttl_seconds is None else idle_ttl_seconds
        )
        self._clock = clock
        self._wizards: dict[str, OpenWizard] = {}
        self._toggles: dict[tuple[str, str], WatchlistToggle] = {}

    # ── Wizards ──────────────────────────────────────────────

    def sweep(self) -> int:
        """Drop wizards idle past the TTL. A submit in flight is never dropped."""
        cutoff = self._clock() - self.idle_ttl_seconds
        expired = [
            wizard_id
            for wizard_id, entry in self._wizards.items()
            if entry.touched_at < cutoff and entry.wizard.state is not WizardState.SUBMITTING
        ]
        for wizard_id in expired:
            del self._wizards[wizard_id]
        if expired:
            logger.info(f"Expired {len(expired)} idle wizard(s)")
        return len(expired)

    def open(self, wizard: WizardController, owner: str = "") -> str:
        self.sweep()
        wizard_id = str(uuid.uuid4())
        self._wizards[wizard_id] = OpenWizard(wizard, owner, self._clock())
        logger.debug(f"Opened wizard {wizard_id}")
        return wizard_id

    def get(self, wizard_id: str, owner: str | None = None) -> WizardController:
        """Look up a wizard for its owner. Another caller's wizard is reported as missing."""
        self.sweep()
        entry = self._wizards.get(wizard_id)
        if entry is None or (owner is not None and entry.owner != owner):
            raise ResourceNotFoundError("Wizard", wizard_id)
        entry.touched_at = self._clock()
        return entry.wizard

    def discard(self, wizard_id: str) -> None:
        if self._wizards.pop(wizard_id, None) is not None:
            logger.debug(f"Discarded wizard {wizard_id}")

    def __len__(self) -> int:
        return len(self._wizards)

    # ── Watchlist toggles ────────────────────────────────────

    def toggle_for(
        self, owner: str, item_id: str, factory: Callable[[], WatchlistToggle]
    ) -> WatchlistToggle:
        key = (owner, item_id)
        toggle = self._toggles.get(key)
        if toggle is None:
            toggle = factory()
            self._toggles[key] = toggle
        return toggle

    def release_toggle(self, owner: str, item_id: str) -> None:
        """Forget a toggle once it has nothing in flight."""
        key = (owner, item_id)
        toggle = self._toggles.get(key)
        if toggle is not None and not toggle.pending:
            del self._toggles[key]

    @property
    def toggle_count(self) -> int:
        return len(self._toggles)


registry = WizardRegistry()


def get_registry() -> WizardRegistry:
    return registry
