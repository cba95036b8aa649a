"""Watchlist toggle endpoint.

A failed add/remove is rolled back and reported in ``error`` with a 200,
so the page can show a transient notice instead of an error screen.
"""

from fastapi import APIRouter, Depends

from bidmarket.clients.marketplace import MarketplaceClient
from bidmarket.deps import get_marketplace
from bidmarket.schemas.watchlist import WatchlistState, WatchlistToggleRequest
from bidmarket.services.sessions import WizardRegistry, get_registry
from bidmarket.services.watchlist import WatchlistToggle

router = APIRouter()


@router.post("/toggle", response_model=WatchlistState)
async def toggle_watchlist(
    body: WatchlistToggleRequest,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    owner = marketplace.context.owner
    toggle = registry.toggle_for(
        owner,
        body.item_id,
        lambda: WatchlistToggle(marketplace, body.item_id, body.watchlist_entry_id),
    )
    if not toggle.pending:
        toggle.reset(body.watchlist_entry_id)
        toggle.backend = marketplace
    try:
        await toggle.toggle()
        return toggle.state()
    finally:
        registry.release_toggle(owner, body.item_id)
