"""Async HTTP client for the marketplace API.

Covers the calls the listing wizard and watchlist toggle need: category
tree, edit entry, draft create/update/publish, image upload/delete and
watchlist add/remove. Every failure is translated into the error type of
the flow that made the call (SubmissionError, UploadError, ToggleError).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from bidmarket.config import settings
from bidmarket.context import ANONYMOUS, ClientContext
from bidmarket.middleware.exceptions import (
    MarketplaceAPIError,
    ResourceNotFoundError,
    SubmissionError,
    ToggleError,
    UploadError,
)
from bidmarket.schemas.listing import (
    Category,
    EditEntry,
    ListingSubmission,
    UploadedImage,
)

logger = logging.getLogger(__name__)


def parse_error_envelope(response: httpx.Response) -> tuple[str, str, dict[str, str]]:
    """Extract (code, message, field_errors) from an error response.

    Understands both the ``{"error": {...}}`` envelope and the RPC style
    ``{"success": false, "errors": [...]}`` body.
    """
    code = f"HTTP_{response.status_code}"
    message = f"Marketplace returned {response.status_code}"
    field_errors: dict[str, str] = {}

    try:
        body = response.json()
    except ValueError:
        return code, message, field_errors
    if not isinstance(body, dict):
        return code, message, field_errors

    if isinstance(body.get("error"), dict):
        error = body["error"]
        code = error.get("code", code)
        message = error.get("message", message)
        entries = (error.get("details") or {}).get("errors", [])
    else:
        entries = body.get("errors") or []
        if entries:
            message = "; ".join(str(e.get("message", "")) for e in entries if isinstance(e, dict))

    for entry in entries:
        if isinstance(entry, dict) and entry.get("field"):
            field_errors.setdefault(str(entry["field"]), str(entry.get("message", "")))
    return code, message, field_errors


def _ack_id(body: Any, default: str | None = None) -> str | None:
    """The `id` of a write acknowledgement, or `default` when the body has none."""
    if isinstance(body, dict) and body.get("id"):
        return str(body["id"])
    return default


class MarketplaceClient:
    """Thin wrapper over httpx.AsyncClient bound to one ClientContext."""

    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        context: ClientContext = ANONYMOUS,
    ):
        self._http = http or httpx.AsyncClient(
            base_url=settings.marketplace_api_url,
            timeout=settings.request_timeout_seconds,
        )
        self.context = context

    def with_context(self, context: ClientContext) -> "MarketplaceClient":
        """Same connection pool, different caller."""
        return MarketplaceClient(self._http, context)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _send(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {**self.context.headers(), **kwargs.pop("headers", {})}
        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(
                f"Marketplace request failed: {method} {path}: {exc}",
                extra={"method": method, "path": path},
            )
            raise MarketplaceAPIError("Marketplace is unreachable. Please try again.") from exc

        if response.status_code >= 400:
            code, message, field_errors = parse_error_envelope(response)
            logger.warning(
                f"Marketplace {method} {path} -> {response.status_code} {code}",
                extra={"method": method, "path": path, "status": response.status_code},
            )
            raise MarketplaceAPIError(
                message,
                status_code=response.status_code,
                error_code=code,
                field_errors=field_errors,
            )

        if not response.content:
            return None
        body = response.json()
        if isinstance(body, dict) and body.get("success") is False:
            code, message, field_errors = parse_error_envelope(response)
            raise MarketplaceAPIError(message, error_code=code, field_errors=field_errors)
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    # ── Read-only page data ──────────────────────────────────

    async def list_categories(self) -> list[Category]:
        body = await self._send("GET", "/categories")
        return [Category.model_validate(c) for c in body or []]

    async def get_listing_for_edit(self, item_id: str) -> EditEntry:
        try:
            body = await self._send("GET", f"/items/{item_id}/edit")
        except MarketplaceAPIError as exc:
            if exc.status_code == 404:
                raise ResourceNotFoundError("Listing", item_id) from exc
            raise
        return EditEntry.model_validate(body)

    # ── Listing submission ───────────────────────────────────

    async def create_listing(self, submission: ListingSubmission) -> str:
        try:
            body = await self._send("POST", "/items", json=submission.to_wire())
        except MarketplaceAPIError as exc:
            raise SubmissionError(exc.message, exc.field_errors) from exc
        item_id = _ack_id(body)
        if item_id is None:
            raise SubmissionError("Marketplace did not return an id for the new listing", status_code=502)
        return item_id

    async def update_listing(self, item_id: str, submission: ListingSubmission) -> str:
        try:
            body = await self._send("PATCH", f"/items/{item_id}", json=submission.to_wire())
        except MarketplaceAPIError as exc:
            raise SubmissionError(exc.message, exc.field_errors) from exc
        return _ack_id(body, default=item_id)

    async def publish_listing(self, item_id: str) -> None:
        try:
            await self._send("POST", f"/items/{item_id}/publish")
        except MarketplaceAPIError as exc:
            raise SubmissionError(exc.message, exc.field_errors) from exc

    # ── Images ───────────────────────────────────────────────

    async def upload_image(
        self,
        item_id: str | None,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> UploadedImage:
        data = {"owner_type": "item"}
        if item_id:
            data["owner_id"] = item_id
        try:
            body = await self._send(
                "POST",
                "/uploads",
                data=data,
                files={"file": (filename, content, content_type)},
            )
        except MarketplaceAPIError as exc:
            raise UploadError(f"Failed to upload {filename}: {exc.message}", filename) from exc
        image = UploadedImage.model_validate(body)
        if not image.variants:
            raise UploadError(f"{filename} has no processed variants yet", filename)
        return image

    async def delete_image(self, image_id: str) -> None:
        try:
            await self._send("DELETE", f"/uploads/{image_id}")
        except MarketplaceAPIError as exc:
            raise UploadError(f"Failed to delete image: {exc.message}", image_id) from exc

    # ── Watchlist ────────────────────────────────────────────

    async def add_to_watchlist(self, item_id: str) -> str:
        try:
            body = await self._send("POST", "/watchlist", json={"itemId": item_id})
        except MarketplaceAPIError as exc:
            raise ToggleError(exc.message, item_id) from exc
        entry_id = _ack_id(body)
        if entry_id is None:
            raise ToggleError("Marketplace did not return a watchlist entry id", item_id)
        return entry_id

    async def remove_from_watchlist(self, entry_id: str) -> None:
        try:
            await self._send("DELETE", f"/watchlist/{entry_id}")
        except MarketplaceAPIError as exc:
            raise ToggleError(exc.message) from exc
