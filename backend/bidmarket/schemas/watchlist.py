"""Pydantic schemas for the watchlist toggle."""

from pydantic import BaseModel


class WatchlistToggleRequest(BaseModel):
    item_id: str
    watchlist_entry_id: str | None = None


class WatchlistState(BaseModel):
    item_id: str
    is_watchlisted: bool
    entry_id: str | None = None
    pending: bool = False
    error: str | None = None
