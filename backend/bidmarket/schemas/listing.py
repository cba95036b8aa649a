"""Pydantic schemas for the 3-step listing wizard.

The draft models (`BasicDetails`, `AuctionInfo`, `Logistics`) accept
whatever the user has typed so far, so partial edits never fail.
The `...Complete` variants are used for validation when advancing past a
step, mirroring the rules the marketplace applies on its side.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from bidmarket.config import settings

CONDITIONS = ("new", "used", "refurbished")
AUCTION_DURATIONS = ("24h", "3d", "7d")
DELIVERY_PREFERENCES = ("meetup", "buyer_arranges", "seller_arranges")

FIRST_STEP = 1
LAST_STEP = 3


def clamp_step(step: int) -> int:
    """Clamp a (possibly resumed, possibly garbage) step number to [1, 3]."""
    try:
        step = int(step)
    except (TypeError, ValueError):
        return FIRST_STEP
    return min(max(step, FIRST_STEP), LAST_STEP)


def parse_price(value: str) -> Decimal | None:
    """Parse a decimal-string price; None when empty or not a finite number."""
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    try:
        price = Decimal(value)
    except InvalidOperation:
        return None
    if not price.is_finite():
        return None
    return price


class WireModel(BaseModel):
    """Base for models exchanged with the marketplace API (camelCase JSON)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Category tree ────────────────────────────────────────────

class CategoryField(WireModel):
    name: str
    type: str = "text"
    required: bool = False
    description: str | None = None
    option_set_slug: str | None = None
    options: list[str] | None = None


class Subcategory(WireModel):
    id: str
    name: str = ""
    slug: str | None = None
    attribute_schema: list[CategoryField] = []


class Category(WireModel):
    id: str
    name: str = ""
    slug: str | None = None
    attribute_schema: list[CategoryField] = []
    categories: list[Subcategory] = []


# ── Images ───────────────────────────────────────────────────

class UploadedImage(WireModel):
    id: str
    position: int = 0
    variants: dict[str, str] = {}
    width: int | None = None
    height: int | None = None


# ── Step 1: Basic details ────────────────────────────────────

class BasicDetails(BaseModel):
    title: str = ""
    description: str = ""
    category_id: str = ""
    subcategory_id: str = ""
    condition: str = "used"
    attributes: dict[str, str] = {}
    custom_features: list[str] = Field(default_factory=lambda: ["", "", ""])


class BasicDetailsComplete(BasicDetails):
    """Title, description, category and condition are required to leave step 1."""

    @field_validator("title")
    @classmethod
    def _title_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Title is required")
        if len(v) > settings.max_title_length:
            raise ValueError(f"Title must be at most {settings.max_title_length} characters")
        return v

    @field_validator("description")
    @classmethod
    def _description_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Description is required")
        return v

    @field_validator("category_id")
    @classmethod
    def _category_required(cls, v: str) -> str:
        if not (v or "").strip():
            raise ValueError("Category is required")
        return v

    @field_validator("condition")
    @classmethod
    def _valid_condition(cls, v: str) -> str:
        if v not in CONDITIONS:
            raise ValueError("Select the item condition")
        return v

    @field_validator("custom_features")
    @classmethod
    def _max_features(cls, v: list[str]) -> list[str]:
        filled = [f.strip() for f in v if f and f.strip()]
        if len(filled) > settings.max_custom_features:
            raise ValueError(f"At most {settings.max_custom_features} custom features")
        return filled


# ── Step 2: Auction info ─────────────────────────────────────

class AuctionInfo(BaseModel):
    starting_price: str = ""
    reserve_price: str = ""
    auction_duration: str = "7d"

    @field_validator("starting_price", "reserve_price", mode="before")
    @classmethod
    def _price_as_string(cls, v):
        if v is None:
            return ""
        if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool):
            return str(v)
        return v


class AuctionInfoComplete(AuctionInfo):
    """Positive starting price; reserve, when given, not below it."""

    @field_validator("starting_price")
    @classmethod
    def _positive_price(cls, v: str) -> str:
        if not (v or "").strip():
            raise ValueError("Starting price is required")
        price = parse_price(v)
        if price is None or price <= 0:
            raise ValueError("Must be a positive number")
        return v.strip()

    @field_validator("reserve_price")
    @classmethod
    def _reserve_not_below_start(cls, v: str, info: ValidationInfo) -> str:
        if not (v or "").strip():
            return ""
        reserve = parse_price(v)
        if reserve is None:
            raise ValueError("Must be a number")
        starting = parse_price(info.data.get("starting_price", ""))
        if starting is not None and reserve < starting:
            raise ValueError("Reserve price must be at least the starting price")
        return v.strip()

    @field_validator("auction_duration")
    @classmethod
    def _valid_duration(cls, v: str) -> str:
        if v not in AUCTION_DURATIONS:
            raise ValueError("Select an auction duration")
        return v


# ── Step 3: Logistics ────────────────────────────────────────

class Logistics(BaseModel):
    delivery_preference: str = "buyer_arranges"


class LogisticsComplete(Logistics):

    @field_validator("delivery_preference")
    @classmethod
    def _valid_preference(cls, v: str) -> str:
        if v not in DELIVERY_PREFERENCES:
            raise ValueError("Select how buyers get the item")
        return v


# ── Draft ────────────────────────────────────────────────────

class Draft(BaseModel):
    draft_item_id: str | None = None
    basic_details: BasicDetails = Field(default_factory=BasicDetails)
    auction_info: AuctionInfo = Field(default_factory=AuctionInfo)
    logistics: Logistics = Field(default_factory=Logistics)
    uploaded_images: list[UploadedImage] = []
    step: int = FIRST_STEP
    # Unrecognised "_" attribute keys from the server, carried through untouched
    internal_attributes: dict[str, str] = {}

    @field_validator("step", mode="before")
    @classmethod
    def _clamp(cls, v) -> int:
        return clamp_step(v)


# ── Persisted item (edit / resume entry) ─────────────────────

class CategoryRef(WireModel):
    id: str = ""
    name: str = ""

    @field_validator("id", "name", mode="before")
    @classmethod
    def _none_as_empty(cls, v):
        return "" if v is None else str(v)


class PersistedItem(WireModel):
    id: str
    title: str | None = None
    description: str | None = None
    category: CategoryRef | None = None
    condition: str | None = None
    attributes: dict[str, str] | None = None
    starting_price: str | None = None
    reserve_price: str | None = None
    status: str | None = None

    @field_validator("starting_price", "reserve_price", mode="before")
    @classmethod
    def _price_as_string(cls, v):
        if v is None:
            return None
        return str(v)


class EditEntry(WireModel):
    """Everything the server hands the edit page: item, images, tree, saved step."""
    item: PersistedItem
    images: list[UploadedImage] = []
    categories: list[Category] = []
    step: int = FIRST_STEP

    @field_validator("step", mode="before")
    @classmethod
    def _clamp(cls, v) -> int:
        return clamp_step(v)


class StoreProfile(WireModel):
    delivery_preference: str | None = None


# ── Submission ───────────────────────────────────────────────

class ListingSubmission(WireModel):
    """Flattened create/update request for the marketplace."""
    title: str
    description: str | None = None
    category_id: str | None = None
    condition: str
    attributes: dict[str, str] = {}
    starting_price: str
    reserve_price: str | None = None
    images: list[str] = []
    start_time: datetime | None = None
    end_time: datetime | None = None

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SubmissionResult(BaseModel):
    id: str
    created: bool
    published: bool = False


# ── Wizard API request/response bodies ───────────────────────

class NewWizardRequest(BaseModel):
    store_profile: StoreProfile | None = None


class ReorderImagesRequest(BaseModel):
    order: list[str]


class CategorySelection(BaseModel):
    parent_id: str
    subcategory_id: str = ""


class WizardProgress(BaseModel):
    wizard_id: str
    state: str
    step: int
    draft: Draft
    errors: dict[str, str] = {}
    upload_errors: dict[str, str] = {}
    submitting: bool = False
    item_id: str | None = None
