"""Pytest configuration and fixtures for bidmarket tests.

Provides a category tree, an in-memory marketplace double for the
controllers, and an ASGI test client whose marketplace calls go to an
httpx.MockTransport instead of the network.
"""

import asyncio
import itertools
import json
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from bidmarket.clients.marketplace import MarketplaceClient
from bidmarket.main import create_app
from bidmarket.middleware.exceptions import SubmissionError, ToggleError, UploadError
from bidmarket.schemas.listing import Category, ListingSubmission, UploadedImage
from bidmarket.services import sessions


# ── Test Data Fixtures ───────────────────────────────────────────

CATEGORY_TREE = [
    {
        "id": "electronics",
        "name": "Electronics",
        "slug": "electronics",
        "attributeSchema": [],
        "categories": [
            {
                "id": "phones",
                "name": "Phones",
                "slug": "phones",
                "attributeSchema": [
                    {"name": "Storage", "type": "select", "required": True, "options": ["64GB", "128GB"]},
                    {"name": "Colour", "type": "text"},
                ],
            },
            {"id": "laptops", "name": "Laptops", "slug": "laptops"},
        ],
    },
    {
        "id": "fashion",
        "name": "Fashion",
        "slug": "fashion",
        "categories": [{"id": "shoes", "name": "Shoes", "slug": "shoes"}],
    },
]


def image_payload(image_id: str, position: int = 0, variants: tuple = ("thumbnail", "medium", "full")) -> dict:
    return {
        "id": image_id,
        "position": position,
        "variants": {v: f"https://cdn.example.com/{image_id}/{v}.webp" for v in variants},
    }


@pytest.fixture
def make_image():
    """Factory for processed-upload payloads."""
    return image_payload


@pytest.fixture
def category_tree() -> list[Category]:
    return [Category.model_validate(c) for c in CATEGORY_TREE]


@pytest.fixture
def persisted_item() -> dict:
    """An item as the edit page receives it from the marketplace."""
    return {
        "id": "item-42",
        "title": "iPhone 13 Pro",
        "description": "Barely used, no scratches",
        "category": {"id": "phones", "name": "Phones"},
        "condition": "used",
        "attributes": {
            "Storage": "128GB",
            "_customFeatures": "Original box|||Two cases",
            "_auctionDuration": "3d",
            "_deliveryPreference": "meetup",
            "_legacyFlag": "1",
        },
        "startingPrice": "250000",
        "reservePrice": "300000",
    }


# ── Marketplace double ───────────────────────────────────────────

class FakeMarketplace:
    """In-memory stand-in for MarketplaceClient used by controller tests."""

    def __init__(self):
        self.items: dict[str, dict] = {}
        self.published: set[str] = set()
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.gate: asyncio.Event | None = None
        self._ids = itertools.count(1)

    def fail_next(self, operation: str, exc: Exception) -> None:
        self.failures[operation] = exc

    async def _step(self, operation: str, *args) -> None:
        self.calls.append((operation, *args))
        if self.gate is not None:
            await self.gate.wait()
        exc = self.failures.pop(operation, None)
        if exc is not None:
            raise exc

    async def create_listing(self, submission: ListingSubmission) -> str:
        await self._step("create")
        item_id = f"item-{next(self._ids)}"
        self.items[item_id] = submission.to_wire()
        return item_id

    async def update_listing(self, item_id: str, submission: ListingSubmission) -> str:
        await self._step("update", item_id)
        self.items[item_id] = submission.to_wire()
        return item_id

    async def publish_listing(self, item_id: str) -> None:
        await self._step("publish", item_id)
        self.published.add(item_id)

    async def upload_image(self, item_id, filename, content, content_type="application/octet-stream"):
        await self._step("upload", filename)
        return UploadedImage.model_validate(image_payload(f"upload-{next(self._ids)}"))

    async def delete_image(self, image_id: str) -> None:
        await self._step("delete_image", image_id)

    async def add_to_watchlist(self, item_id: str) -> str:
        await self._step("watch", item_id)
        return f"entry-{next(self._ids)}"

    async def remove_from_watchlist(self, entry_id: str) -> None:
        await self._step("unwatch", entry_id)


@pytest.fixture
def marketplace() -> FakeMarketplace:
    return FakeMarketplace()


@pytest.fixture
def submission_error() -> SubmissionError:
    return SubmissionError("Starting price too low", {"startingPrice": "must be at least 100"})


@pytest.fixture
def upload_error() -> UploadError:
    return UploadError("Failed to upload broken.jpg: unsupported format", "broken.jpg")


@pytest.fixture
def toggle_error() -> ToggleError:
    return ToggleError("Marketplace returned 500", "item-1")


# ── Remote API double (HTTP level) ───────────────────────────────

class MarketplaceAPI:
    """httpx.MockTransport handler emulating the marketplace HTTP API."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.items: dict[str, dict] = {}
        self.reject_writes: dict | None = None
        self._ids = itertools.count(1)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")
        method = request.method

        if method == "GET" and path == "/categories":
            return httpx.Response(200, json={"data": CATEGORY_TREE})

        if method == "GET" and path.startswith("/items/") and path.endswith("/edit"):
            item_id = path.split("/")[2]
            if item_id == "item-43":
                # A half-saved draft: no category yet and no recorded step
                return httpx.Response(200, json={
                    "item": {"id": "item-43", "title": "Lamp", "category": {"id": None}},
                    "images": [],
                    "categories": CATEGORY_TREE,
                    "step": None,
                })
            if item_id != "item-42":
                return httpx.Response(404, json={"error": {"code": "RESOURCE_NOT_FOUND", "message": "Not found"}})
            return httpx.Response(200, json={
                "item": {
                    "id": "item-42",
                    "title": "Trainers",
                    "description": "Size 44",
                    "category": {"id": "shoes"},
                    "condition": "new",
                    "attributes": {"_auctionDuration": "24h"},
                    "startingPrice": "5000",
                },
                "images": [image_payload("img-a", 0), image_payload("img-b", 1)],
                "categories": CATEGORY_TREE,
                "step": 7,
            })

        if method in ("POST", "PATCH") and path.startswith("/items"):
            if self.reject_writes is not None:
                return httpx.Response(422, json=self.reject_writes)
            if path.endswith("/publish"):
                return httpx.Response(200, json={"success": True, "data": {}})
            body = json.loads(request.content)
            if method == "POST":
                item_id = f"item-{next(self._ids)}"
            else:
                item_id = path.split("/")[2]
            self.items[item_id] = body
            return httpx.Response(200, json={"data": {"id": item_id}})

        if method == "POST" and path == "/uploads":
            return httpx.Response(201, json=image_payload(f"img-{next(self._ids)}", 3))

        if method == "DELETE" and path.startswith("/uploads/"):
            return httpx.Response(204)

        if method == "POST" and path == "/watchlist":
            return httpx.Response(201, json={"id": f"entry-{next(self._ids)}"})

        if method == "DELETE" and path.startswith("/watchlist/"):
            return httpx.Response(500, json={"error": {"code": "INTERNAL", "message": "boom"}})

        return httpx.Response(404, json={"error": {"code": "NOT_FOUND", "message": path}})


@pytest.fixture
def marketplace_api() -> MarketplaceAPI:
    return MarketplaceAPI()


@pytest_asyncio.fixture
async def marketplace_client(marketplace_api) -> AsyncGenerator[MarketplaceClient, None]:
    http = httpx.AsyncClient(
        base_url="http://marketplace.test/api",
        transport=httpx.MockTransport(marketplace_api),
    )
    yield MarketplaceClient(http)
    await http.aclose()


@pytest_asyncio.fixture
async def client(marketplace_client) -> AsyncGenerator[AsyncClient, None]:
    """Create test client for the bidmarket app with a mocked marketplace."""
    sessions.registry = sessions.WizardRegistry()
    app = create_app(marketplace=marketplace_client)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers() -> dict:
    """Session cookie + CSRF token as the browser would send them."""
    return {"Cookie": "_session=test-session", "X-CSRF-Token": "csrf-123", "X-User-Id": "user-1"}


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "integration: Integration tests")
