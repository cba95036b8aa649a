"""In-memory state for one listing wizard.

Holds the Draft plus transient UI state (submitting flag, field errors,
per-image upload errors). Each wizard instance owns its own store; nothing
here is shared between drafts. Mutations are applied synchronously in the
order they are called.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Union

from pydantic import BaseModel, ValidationError

from bidmarket.middleware.exceptions import ListingValidationError
from bidmarket.schemas.listing import (
    CONDITIONS,
    AuctionInfo,
    BasicDetails,
    Category,
    Draft,
    Logistics,
    PersistedItem,
    StoreProfile,
    UploadedImage,
    clamp_step,
)
from bidmarket.services.attributes import (
    InternalFields,
    ListingAttributes,
    merge_attributes,
    split_attributes,
    visible_only,
)
from bidmarket.services.categories import resolve, selection_for
from bidmarket.services.images import as_image

logger = logging.getLogger(__name__)

SECTIONS: dict[str, type[BaseModel]] = {
    "basic_details": BasicDetails,
    "auction_info": AuctionInfo,
    "logistics": Logistics,
}

STEP_SECTIONS = {1: "basic_details", 2: "auction_info", 3: "logistics"}

SECTION_ALIASES = {
    "basic": "basic_details",
    "basicDetails": "basic_details",
    "auction": "auction_info",
    "auctionInfo": "auction_info",
}

# Seller store profile delivery setting -> wizard delivery preference
STORE_DELIVERY_MAP = {
    "pickup_only": "meetup",
    "seller_delivers": "seller_arranges",
    "you_arrange": "buyer_arranges",
}


def default_delivery_preference(store_profile: StoreProfile | Mapping | None) -> str:
    if store_profile is None:
        return "buyer_arranges"
    if isinstance(store_profile, Mapping):
        store_profile = StoreProfile.model_validate(store_profile)
    return STORE_DELIVERY_MAP.get(store_profile.delivery_preference or "", "buyer_arranges")


def section_name(step_name: Union[str, int]) -> str:
    if isinstance(step_name, int):
        if step_name not in STEP_SECTIONS:
            raise ListingValidationError({"step": f"Unknown step: {step_name}"})
        return STEP_SECTIONS[step_name]
    name = SECTION_ALIASES.get(step_name, step_name)
    if name not in SECTIONS:
        raise ListingValidationError({"step": f"Unknown step: {step_name}"})
    return name


def errors_from_pydantic(exc: ValidationError, prefix: str) -> dict[str, str]:
    """Flatten a pydantic error into {"prefix.field": "message"}."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"] if not isinstance(part, int))
        key = f"{prefix}.{loc}" if loc else prefix
        if error["type"] == "value_error" and "error" in error.get("ctx", {}):
            message = str(error["ctx"]["error"])
        else:
            message = error["msg"]
        errors.setdefault(key, message)
    return errors


class DraftStore:
    """Mutable holder of a Draft and its transient UI state."""

    def __init__(self, draft: Draft | None = None):
        self.draft = draft if draft is not None else Draft()
        self.submitting = False
        self.errors: dict[str, str] = {}
        self.upload_errors: dict[str, str] = {}

    # ── Construction ─────────────────────────────────────────

    @classmethod
    def new(cls, store_profile: StoreProfile | Mapping | None = None) -> "DraftStore":
        """Empty draft for the new-listing entry point."""
        draft = Draft(logistics=Logistics(delivery_preference=default_delivery_preference(store_profile)))
        return cls(draft)

    @classmethod
    def hydrate(
        cls,
        item: PersistedItem | Mapping,
        images: Iterable[UploadedImage | Mapping],
        category_tree: Iterable[Category | Mapping],
        step: Any = 1,
    ) -> "DraftStore":
        """Fully populated draft for the edit/resume entry point."""
        if not isinstance(item, PersistedItem):
            item = PersistedItem.model_validate(item)

        stored_category = item.category.id if item.category else ""
        resolved = resolve(category_tree, stored_category)
        attrs = split_attributes(item.attributes)
        condition = item.condition if item.condition in CONDITIONS else "used"

        draft = Draft(
            draft_item_id=item.id,
            basic_details=BasicDetails(
                title=item.title or "",
                description=item.description or "",
                category_id=resolved.category_id,
                subcategory_id=resolved.subcategory_id,
                condition=condition,
                attributes=attrs.visible,
                custom_features=attrs.internal.custom_features,
            ),
            auction_info=AuctionInfo(
                starting_price=item.starting_price or "",
                reserve_price=item.reserve_price or "",
                auction_duration=attrs.internal.auction_duration,
            ),
            logistics=Logistics(delivery_preference=attrs.internal.delivery_preference),
            uploaded_images=[
                UploadedImage(id=img.id, position=i, variants=dict(img.variants or {}))
                for i, img in enumerate(as_image(img) for img in images or [])
            ],
            step=step,
            internal_attributes=attrs.internal.extra,
        )
        logger.info(
            f"Hydrated draft {item.id} at step {draft.step}",
            extra={"draft_item_id": item.id, "requested_step": step},
        )
        return cls(draft)

    # ── Accessors ────────────────────────────────────────────

    @property
    def step(self) -> int:
        return self.draft.step

    @property
    def draft_item_id(self) -> str | None:
        return self.draft.draft_item_id

    @property
    def images(self) -> list[UploadedImage]:
        return self.draft.uploaded_images

    def snapshot(self) -> Draft:
        return self.draft.model_copy(deep=True)

    # ── Mutations ────────────────────────────────────────────

    def patch(self, step_name: Union[str, int], partial: Mapping | None = None, **fields) -> BaseModel:
        """Shallow-merge fields into one step's section.

        Other sections and the step counter are untouched. Unknown field
        names or wrongly typed values raise ListingValidationError.
        """
        name = section_name(step_name)
        model = SECTIONS[name]
        updates = dict(partial or {})
        updates.update(fields)

        unknown = [key for key in updates if key not in model.model_fields]
        if unknown:
            raise ListingValidationError({f"{name}.{key}": "Unknown field" for key in unknown})

        if "attributes" in updates:
            updates["attributes"] = visible_only(updates["attributes"] or {})

        current = getattr(self.draft, name)
        try:
            merged = model.model_validate({**current.model_dump(), **updates})
        except ValidationError as exc:
            raise ListingValidationError(errors_from_pydantic(exc, name)) from exc

        setattr(self.draft, name, merged)
        for key in updates:
            self.errors.pop(f"{name}.{key}", None)
        return merged

    def select_category(self, parent_id: str, subcategory_id: str = "") -> None:
        """Apply a category picker choice; category-specific attributes reset."""
        selection = selection_for(parent_id, subcategory_id)
        self.patch(
            "basic_details",
            category_id=selection.category_id,
            subcategory_id=selection.subcategory_id,
            attributes={},
        )

    def _renumber(self, images: list[UploadedImage]) -> None:
        self.draft.uploaded_images = [
            image.model_copy(update={"position": index}) for index, image in enumerate(images)
        ]

    def add_image(self, image: UploadedImage | Mapping) -> UploadedImage:
        """Append a processed upload (replacing any image with the same id)."""
        image = as_image(image)
        images = list(self.draft.uploaded_images)
        for index, existing in enumerate(images):
            if existing.id == image.id:
                images[index] = image
                break
        else:
            images.append(image)
        self._renumber(images)
        self.upload_errors.pop(image.id, None)
        self.errors.pop("uploaded_images", None)
        return next(img for img in self.draft.uploaded_images if img.id == image.id)

    def remove_image(self, image_id: str) -> bool:
        images = [img for img in self.draft.uploaded_images if img.id != image_id]
        removed = len(images) != len(self.draft.uploaded_images)
        self._renumber(images)
        self.upload_errors.pop(image_id, None)
        return removed

    def reorder_images(self, new_order: list[str]) -> None:
        """Reorder by id; new_order must be a permutation of the current ids."""
        by_id = {img.id: img for img in self.draft.uploaded_images}
        if len(new_order) != len(by_id) or set(new_order) != set(by_id):
            raise ListingValidationError(
                {"uploaded_images": "Image order must list every uploaded image exactly once"}
            )
        self._renumber([by_id[image_id] for image_id in new_order])

    def set_step(self, step: Any) -> int:
        self.draft.step = clamp_step(step)
        return self.draft.step

    def set_draft_item_id(self, item_id: str) -> None:
        self.draft.draft_item_id = item_id

    def record_upload_error(self, key: str, message: str) -> None:
        self.upload_errors[key] = message

    def set_errors(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)

    def clear_errors(self) -> None:
        self.errors = {}

    # ── Serialization ────────────────────────────────────────

    def listing_attributes(self) -> ListingAttributes:
        basic = self.draft.basic_details
        return ListingAttributes(
            visible=dict(basic.attributes),
            internal=InternalFields(
                custom_features=list(basic.custom_features),
                auction_duration=self.draft.auction_info.auction_duration,
                delivery_preference=self.draft.logistics.delivery_preference,
                extra=dict(self.draft.internal_attributes),
            ),
        )

    def merged_attributes(self) -> dict[str, str]:
        """Attributes bag as the marketplace stores it, internal keys included."""
        return merge_attributes(self.listing_attributes())
