"""Listing wizard endpoints: the 3-step create/edit flow with resume.

Endpoints:
  POST   /api/listings/wizard/                    → open a blank wizard
  POST   /api/listings/wizard/edit/{item_id}      → open a wizard on an existing listing
  GET    /api/listings/wizard/{id}                → current progress + draft
  PATCH  /api/listings/wizard/{id}/step/{n}       → merge fields into step n
  PUT    /api/listings/wizard/{id}/category       → apply a category picker choice
  POST   /api/listings/wizard/{id}/next|back      → move between steps
  POST   /api/listings/wizard/{id}/images         → upload an image
  DELETE /api/listings/wizard/{id}/images/{img}   → delete an image
  PUT    /api/listings/wizard/{id}/images/order   → reorder images
  GET    /api/listings/wizard/{id}/preview        → review summary
  POST   /api/listings/wizard/{id}/submit         → create-or-update (+ publish)
  DELETE /api/listings/wizard/{id}                → abandon the draft

Design:
  - Every wizard owns its own DraftStore and belongs to the caller that
    opened it; another session gets a 404 for the same id.
  - The marketplace client is re-bound to the caller on every request.
  - Blocked step advances return 200 with field errors in the progress body.
  - A rejected submission returns the error envelope; the draft stays open.
"""

from dataclasses import asdict

from fastapi import APIRouter, Body, Depends, File, UploadFile, status

from bidmarket.clients.marketplace import MarketplaceClient
from bidmarket.deps import get_marketplace
from bidmarket.schemas.listing import (
    CategorySelection,
    NewWizardRequest,
    ReorderImagesRequest,
    WizardProgress,
)
from bidmarket.services.draft_store import DraftStore
from bidmarket.services.sessions import WizardRegistry, get_registry
from bidmarket.services.wizard import WizardController, WizardState

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

def _make_progress(wizard_id: str, wizard: WizardController) -> WizardProgress:
    """Build a WizardProgress response from current state."""
    return WizardProgress(
        wizard_id=wizard_id,
        state=wizard.state.value,
        step=wizard.current_step or wizard.store.step,
        draft=wizard.store.snapshot(),
        errors=wizard.store.errors,
        upload_errors=wizard.store.upload_errors,
        submitting=wizard.store.submitting,
        item_id=wizard.item_id,
    )


def _bound(
    wizard_id: str, registry: WizardRegistry, marketplace: MarketplaceClient
) -> WizardController:
    wizard = registry.get(wizard_id, owner=marketplace.context.owner)
    # A submit in flight keeps the client it started with
    if wizard.state is not WizardState.SUBMITTING:
        wizard.backend = marketplace
    return wizard


# ── Open ─────────────────────────────────────────────────────

@router.post("/", response_model=WizardProgress, status_code=status.HTTP_201_CREATED)
async def open_new_wizard(
    body: NewWizardRequest | None = None,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    """Start a brand-new listing."""
    categories = await marketplace.list_categories()
    store = DraftStore.new(body.store_profile if body else None)
    wizard = WizardController(store, marketplace, categories)
    wizard_id = registry.open(wizard, owner=marketplace.context.owner)
    return _make_progress(wizard_id, wizard)


@router.post("/edit/{item_id}", response_model=WizardProgress, status_code=status.HTTP_201_CREATED)
async def open_edit_wizard(
    item_id: str,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    """Resume a saved draft or edit an existing listing at its last-saved step."""
    entry = await marketplace.get_listing_for_edit(item_id)
    store = DraftStore.hydrate(entry.item, entry.images, entry.categories, step=entry.step)
    wizard = WizardController(store, marketplace, entry.categories)
    wizard_id = registry.open(wizard, owner=marketplace.context.owner)
    return _make_progress(wizard_id, wizard)


# ── Progress ─────────────────────────────────────────────────

@router.get("/{wizard_id}", response_model=WizardProgress)
async def get_progress(
    wizard_id: str,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    return _make_progress(wizard_id, _bound(wizard_id, registry, marketplace))


@router.delete("/{wizard_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_wizard(
    wizard_id: str,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    _bound(wizard_id, registry, marketplace)
    registry.discard(wizard_id)


# ── Step edits ───────────────────────────────────────────────

@router.patch("/{wizard_id}/step/{step}", response_model=WizardProgress)
async def save_step(
    wizard_id: str,
    step: int,
    body: dict = Body(...),
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    """Merge partial fields into one step. Does not change the current step."""
    wizard = _bound(wizard_id, registry, marketplace)
    wizard.patch(step, body)
    return _make_progress(wizard_id, wizard)


@router.put("/{wizard_id}/category", response_model=WizardProgress)
async def select_category(
    wizard_id: str,
    body: CategorySelection,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    wizard = _bound(wizard_id, registry, marketplace)
    wizard.select_category(body.parent_id, body.subcategory_id)
    return _make_progress(wizard_id, wizard)


@router.post("/{wizard_id}/next", response_model=WizardProgress)
async def next_step(
    wizard_id: str,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    wizard = _bound(wizard_id, registry, marketplace)
    wizard.next()
    return _make_progress(wizard_id, wizard)


@router.post("/{wizard_id}/back", response_model=WizardProgress)
async def previous_step(
    wizard_id: str,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    wizard = _bound(wizard_id, registry, marketplace)
    wizard.back()
    return _make_progress(wizard_id, wizard)


# ── Images ───────────────────────────────────────────────────

@router.post("/{wizard_id}/images", response_model=WizardProgress)
async def upload_image(
    wizard_id: str,
    file: UploadFile = File(...),
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    """Upload one image. A failed upload shows up in ``upload_errors``."""
    wizard = _bound(wizard_id, registry, marketplace)
    content = await file.read()
    await wizard.upload_image(
        file.filename or "upload",
        content,
        file.content_type or "application/octet-stream",
    )
    return _make_progress(wizard_id, wizard)


@router.put("/{wizard_id}/images/order", response_model=WizardProgress)
async def reorder_images(
    wizard_id: str,
    body: ReorderImagesRequest,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    wizard = _bound(wizard_id, registry, marketplace)
    wizard.reorder_images(body.order)
    return _make_progress(wizard_id, wizard)


@router.delete("/{wizard_id}/images/{image_id}", response_model=WizardProgress)
async def delete_image(
    wizard_id: str,
    image_id: str,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    wizard = _bound(wizard_id, registry, marketplace)
    await wizard.delete_image(image_id)
    return _make_progress(wizard_id, wizard)


# ── Review & submit ──────────────────────────────────────────

@router.get("/{wizard_id}/preview")
async def preview(
    wizard_id: str,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    wizard = _bound(wizard_id, registry, marketplace)
    return asdict(wizard.preview())


@router.post("/{wizard_id}/submit", response_model=WizardProgress)
async def submit(
    wizard_id: str,
    publish: bool = False,
    marketplace: MarketplaceClient = Depends(get_marketplace),
    registry: WizardRegistry = Depends(get_registry),
):
    """Create or update the listing. Pass ?publish=true to also publish it."""
    wizard = _bound(wizard_id, registry, marketplace)
    await wizard.submit(publish=publish)

    if wizard.state is WizardState.SUCCESS:
        registry.discard(wizard_id)
    elif wizard.last_error is not None and wizard.store.errors.get("submission"):
        raise wizard.last_error
    return _make_progress(wizard_id, wizard)
