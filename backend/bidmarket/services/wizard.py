"""Listing wizard: a 3-step state machine over a DraftStore.

States:
  STEP1 basic details -> STEP2 auction info -> STEP3 logistics + review
  STEP3 --submit--> SUBMITTING --ack--> SUCCESS
                              --error--> FAILED -> STEP3 (draft kept)

Design:
  - Advancing validates only the step being left; going back never validates.
  - Validation errors stay here (store.errors); they never reach the server.
  - Submission is one create-or-update: a draft with ``draft_item_id``
    is updated, one without is created and the new id written back, so a
    retry after a failure updates the same record instead of duplicating it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Mapping, Protocol, Union

from pydantic import BaseModel, ValidationError

from bidmarket.config import settings
from bidmarket.middleware.exceptions import (
    InvalidTransitionError,
    MarketplaceAPIError,
    SubmissionError,
    UploadError,
)
from bidmarket.schemas.listing import (
    AuctionInfoComplete,
    BasicDetailsComplete,
    Category,
    ListingSubmission,
    LogisticsComplete,
    SubmissionResult,
    UploadedImage,
    clamp_step,
)
from bidmarket.services import images as image_model
from bidmarket.services.categories import attribute_schema_for, category_name, leaf_id
from bidmarket.services.draft_store import DraftStore, errors_from_pydantic

logger = logging.getLogger(__name__)


class WizardState(str, enum.Enum):
    STEP1 = "step1"
    STEP2 = "step2"
    STEP3 = "step3"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


STEP_STATES = {1: WizardState.STEP1, 2: WizardState.STEP2, 3: WizardState.STEP3}
STATE_STEPS = {state: step for step, state in STEP_STATES.items()}

STEP_NAMES = {1: "Basic details", 2: "Auction info", 3: "Logistics"}

DURATION_DELTAS = {
    "24h": timedelta(hours=24),
    "3d": timedelta(days=3),
    "7d": timedelta(days=7),
}

DURATION_LABELS = {"24h": "24h 0m", "3d": "3 d 0h 0m", "7d": "7 d 0h 0m"}

DELIVERY_LABELS = {
    "meetup": "Meet-up in person",
    "buyer_arranges": "Buyer arranges delivery",
    "seller_arranges": "Seller arranges delivery",
}

# Marketplace field name -> draft field path
SUBMISSION_FIELD_PATHS = {
    "title": "basic_details.title",
    "description": "basic_details.description",
    "categoryId": "basic_details.category_id",
    "condition": "basic_details.condition",
    "attributes": "basic_details.attributes",
    "startingPrice": "auction_info.starting_price",
    "reservePrice": "auction_info.reserve_price",
    "images": "uploaded_images",
}


class ListingBackend(Protocol):
    async def create_listing(self, submission: ListingSubmission) -> str: ...

    async def update_listing(self, item_id: str, submission: ListingSubmission) -> str: ...

    async def publish_listing(self, item_id: str) -> None: ...

    async def upload_image(
        self, item_id: str | None, filename: str, content: bytes, content_type: str = ...
    ) -> UploadedImage: ...

    async def delete_image(self, image_id: str) -> None: ...


@dataclass
class ListingPreview:
    title: str
    description: str
    category_name: str
    condition: str
    cover_src: str
    cover_srcset: str
    features: list[str] = field(default_factory=list)
    starting_price: str = ""
    reserve_price: str = ""
    duration_label: str = ""
    delivery_label: str = ""
    image_count: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WizardController:
    """Drives one DraftStore through the listing steps and submission."""

    def __init__(
        self,
        store: DraftStore,
        backend: ListingBackend,
        category_tree: Iterable[Union[Category, Mapping]] = (),
        now: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.backend = backend
        self.category_tree = tuple(
            c if isinstance(c, Category) else Category.model_validate(c) for c in category_tree
        )
        self.state = STEP_STATES[store.step]
        self.transitions: list[WizardState] = [self.state]
        self.item_id: str | None = None
        self.last_error: SubmissionError | None = None
        self._now = now

    # ── State helpers ────────────────────────────────────────

    @property
    def current_step(self) -> int | None:
        return STATE_STEPS.get(self.state)

    @property
    def is_complete(self) -> bool:
        return self.state is WizardState.SUCCESS

    def _enter(self, state: WizardState) -> None:
        self.state = state
        self.transitions.append(state)
        if state in STATE_STEPS:
            self.store.set_step(STATE_STEPS[state])

    def _require_editable(self) -> None:
        if self.state not in STATE_STEPS:
            raise InvalidTransitionError(f"Draft cannot be edited while {self.state.value}")

    # ── Validation ───────────────────────────────────────────

    def _validate_model(self, model: type[BaseModel], section: str) -> dict[str, str]:
        data = getattr(self.store.draft, section).model_dump()
        try:
            model.model_validate(data)
        except ValidationError as exc:
            return errors_from_pydantic(exc, section)
        return {}

    def validate_step(self, step: int) -> dict[str, str]:
        """Field-path -> message for everything blocking ``step``; empty when valid."""
        draft = self.store.draft
        if step == 1:
            errors = self._validate_model(BasicDetailsComplete, "basic_details")
            if not draft.uploaded_images:
                errors["uploaded_images"] = "Add at least one photo"
            elif len(draft.uploaded_images) > settings.max_images:
                errors["uploaded_images"] = f"Maximum {settings.max_images} images allowed"
            basic = draft.basic_details
            for fld in attribute_schema_for(self.category_tree, basic.category_id, basic.subcategory_id):
                if fld.required and not (basic.attributes.get(fld.name) or "").strip():
                    errors[f"basic_details.attributes.{fld.name}"] = f"{fld.name} is required"
            return errors
        if step == 2:
            return self._validate_model(AuctionInfoComplete, "auction_info")
        if step == 3:
            return self._validate_model(LogisticsComplete, "logistics")
        return {}

    # ── Transitions ──────────────────────────────────────────

    def next(self) -> bool:
        """Validate the current step and advance. Returns False when blocked."""
        step = self.current_step
        if step is None or step >= 3:
            raise InvalidTransitionError(f"Cannot advance from {self.state.value}")

        errors = self.validate_step(step)
        if errors:
            self.store.set_errors(errors)
            logger.info(
                f"Step {step} ({STEP_NAMES[step]}) blocked by {len(errors)} field error(s)",
                extra={"draft_item_id": self.store.draft_item_id, "fields": sorted(errors)},
            )
            return False

        self.store.clear_errors()
        self._enter(STEP_STATES[step + 1])
        return True

    def back(self) -> WizardState:
        """Go one step back. Never validates; data already entered is kept."""
        step = self.current_step
        if step is None:
            raise InvalidTransitionError(f"Cannot go back from {self.state.value}")
        if step > 1:
            self._enter(STEP_STATES[step - 1])
        return self.state

    def go_to(self, step: int) -> bool:
        """Jump to a step, e.g. "edit" links on the review step.

        Backward jumps are free; forward jumps pass through each step's
        validation and stop at the first one that fails.
        """
        self._require_editable()
        step = clamp_step(step)
        while self.current_step > step:
            self.back()
        while self.current_step < step:
            if not self.next():
                return False
        return True

    # ── Draft edits (all routed through the controller) ──────

    def patch(self, step_name: Union[str, int], partial: Mapping | None = None, **fields) -> BaseModel:
        self._require_editable()
        return self.store.patch(step_name, partial, **fields)

    def select_category(self, parent_id: str, subcategory_id: str = "") -> None:
        self._require_editable()
        self.store.select_category(parent_id, subcategory_id)

    def add_image(self, image: Union[UploadedImage, Mapping]) -> UploadedImage:
        self._require_editable()
        return self.store.add_image(image)

    def remove_image(self, image_id: str) -> bool:
        self._require_editable()
        return self.store.remove_image(image_id)

    def reorder_images(self, new_order: list[str]) -> None:
        self._require_editable()
        self.store.reorder_images(new_order)

    async def upload_image(
        self, filename: str, content: bytes, content_type: str = "application/octet-stream"
    ) -> UploadedImage | None:
        """Upload one file. Failures are recorded per image and never raised."""
        self._require_editable()
        if len(self.store.images) >= settings.max_images:
            self.store.record_upload_error(filename, f"Maximum {settings.max_images} images allowed")
            return None
        try:
            image = await self.backend.upload_image(
                self.store.draft_item_id, filename, content, content_type
            )
        except UploadError as exc:
            self.store.record_upload_error(filename, exc.message)
            logger.warning(f"Image upload failed: {filename}: {exc.message}")
            return None
        self.store.upload_errors.pop(filename, None)
        return self.store.add_image(image)

    async def delete_image(self, image_id: str) -> bool:
        """Delete an uploaded image on the server, then drop it locally."""
        self._require_editable()
        try:
            await self.backend.delete_image(image_id)
        except UploadError as exc:
            self.store.record_upload_error(image_id, exc.message)
            logger.warning(f"Image delete failed: {image_id}: {exc.message}")
            return False
        return self.store.remove_image(image_id)

    # ── Review & submission ──────────────────────────────────

    def build_submission(self, publish: bool = False) -> ListingSubmission:
        draft = self.store.draft
        basic = draft.basic_details
        auction = draft.auction_info

        start_time = end_time = None
        if publish:
            start_time = self._now()
            end_time = start_time + DURATION_DELTAS.get(auction.auction_duration, DURATION_DELTAS["7d"])

        return ListingSubmission(
            title=basic.title.strip(),
            description=basic.description.strip() or None,
            category_id=leaf_id(basic.category_id, basic.subcategory_id) or None,
            condition=basic.condition,
            attributes=self.store.merged_attributes(),
            starting_price=auction.starting_price.strip(),
            reserve_price=auction.reserve_price.strip() or None,
            images=[image.id for image in draft.uploaded_images],
            start_time=start_time,
            end_time=end_time,
        )

    def preview(self) -> ListingPreview:
        draft = self.store.draft
        basic = draft.basic_details
        auction = draft.auction_info
        cover = image_model.cover_image(draft.uploaded_images)

        features = [f"{key}: {value}" for key, value in basic.attributes.items() if value]
        features.extend(f.strip() for f in basic.custom_features if f and f.strip())

        return ListingPreview(
            title=basic.title,
            description=basic.description,
            category_name=category_name(self.category_tree, basic.category_id, basic.subcategory_id),
            condition=basic.condition,
            cover_src=image_model.default_src(cover) if cover else "",
            cover_srcset=image_model.srcset(cover) if cover else "",
            features=features,
            starting_price=auction.starting_price,
            reserve_price=auction.reserve_price,
            duration_label=DURATION_LABELS.get(auction.auction_duration, DURATION_LABELS["7d"]),
            delivery_label=DELIVERY_LABELS.get(draft.logistics.delivery_preference, ""),
            image_count=len(draft.uploaded_images),
        )

    async def submit(self, publish: bool = False) -> SubmissionResult | None:
        """Send the whole draft. Returns None when blocked or rejected."""
        if self.state is not WizardState.STEP3:
            raise InvalidTransitionError(f"Cannot submit from {self.state.value}")

        for step in (1, 2, 3):
            errors = self.validate_step(step)
            if errors:
                self.store.set_errors(errors)
                if step < 3:
                    self._enter(STEP_STATES[step])
                return None

        submission = self.build_submission(publish=publish)
        item_id = self.store.draft_item_id
        created = item_id is None

        self.store.clear_errors()
        self.store.submitting = True
        self.last_error = None
        self._enter(WizardState.SUBMITTING)
        try:
            if created:
                item_id = await self.backend.create_listing(submission)
                self.store.set_draft_item_id(item_id)
            else:
                item_id = await self.backend.update_listing(item_id, submission)
            if publish:
                await self.backend.publish_listing(item_id)
        except (SubmissionError, MarketplaceAPIError) as exc:
            self._fail(exc)
            return None
        except Exception as exc:
            logger.error(f"Unexpected error submitting listing: {exc}", exc_info=True)
            self._fail(SubmissionError("Unexpected error while saving the listing. Please try again."))
            return None
        finally:
            self.store.submitting = False

        logger.info(
            f"Listing {'created' if created else 'updated'}: {item_id}",
            extra={"item_id": item_id, "published": publish},
        )
        self.item_id = item_id
        self._enter(WizardState.SUCCESS)
        self._discard()
        return SubmissionResult(id=item_id, created=created, published=publish)

    def _fail(self, exc: Union[SubmissionError, MarketplaceAPIError]) -> None:
        if not isinstance(exc, SubmissionError):
            exc = SubmissionError(exc.message, exc.field_errors, status_code=exc.status_code)
        self.last_error = exc

        errors = {
            SUBMISSION_FIELD_PATHS.get(name, name): message
            for name, message in exc.field_errors.items()
        }
        errors["submission"] = exc.message
        self.store.set_errors(errors)

        logger.warning(
            f"Listing submission failed: {exc.message}",
            extra={"draft_item_id": self.store.draft_item_id, "fields": sorted(exc.field_errors)},
        )
        self._enter(WizardState.FAILED)
        self._enter(WizardState.STEP3)

    def _discard(self) -> None:
        self.store = DraftStore()
