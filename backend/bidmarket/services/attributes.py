"""Boundary between user-visible item attributes and internal wizard fields.

The marketplace stores everything in one generic ``attributes`` mapping.
The wizard keeps a few structured fields there under ``_``-prefixed keys:

    _customFeatures      "feat one|||feat two"
    _auctionDuration     "24h" | "3d" | "7d"
    _deliveryPreference  "meetup" | "buyer_arranges" | "seller_arranges"

`split_attributes` is the only place those keys are read and
`merge_attributes` the only place they are written. Any other ``_`` key
is kept untouched in ``internal.extra`` so a round trip never loses data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from bidmarket.schemas.listing import AUCTION_DURATIONS, DELIVERY_PREFERENCES

INTERNAL_PREFIX = "_"
FEATURE_SEPARATOR = "|||"

CUSTOM_FEATURES_KEY = "_customFeatures"
AUCTION_DURATION_KEY = "_auctionDuration"
DELIVERY_PREFERENCE_KEY = "_deliveryPreference"

DEFAULT_AUCTION_DURATION = "7d"
DEFAULT_DELIVERY_PREFERENCE = "buyer_arranges"


def blank_features() -> list[str]:
    return ["", "", ""]


@dataclass
class InternalFields:
    custom_features: list[str] = field(default_factory=blank_features)
    auction_duration: str = DEFAULT_AUCTION_DURATION
    delivery_preference: str = DEFAULT_DELIVERY_PREFERENCE
    extra: dict[str, str] = field(default_factory=dict)


@dataclass
class ListingAttributes:
    """Generic attributes bag split into its two halves."""
    visible: dict[str, str] = field(default_factory=dict)
    internal: InternalFields = field(default_factory=InternalFields)


def is_internal_key(key: str) -> bool:
    return key.startswith(INTERNAL_PREFIX)


def visible_only(attributes: Mapping[str, str]) -> dict[str, str]:
    return {k: v for k, v in (attributes or {}).items() if not is_internal_key(k)}


def split_attributes(raw: Mapping[str, str] | None) -> ListingAttributes:
    """Deserialize a stored attributes mapping."""
    raw = dict(raw or {})
    internal = InternalFields()

    features = raw.pop(CUSTOM_FEATURES_KEY, "")
    if features:
        internal.custom_features = features.split(FEATURE_SEPARATOR)

    duration = raw.pop(AUCTION_DURATION_KEY, "")
    if duration in AUCTION_DURATIONS:
        internal.auction_duration = duration

    preference = raw.pop(DELIVERY_PREFERENCE_KEY, "")
    if preference in DELIVERY_PREFERENCES:
        internal.delivery_preference = preference

    visible = {}
    for key, value in raw.items():
        if is_internal_key(key):
            internal.extra[key] = value
        else:
            visible[key] = value

    return ListingAttributes(visible=visible, internal=internal)


def merge_attributes(attributes: ListingAttributes) -> dict[str, str]:
    """Serialize back into the single mapping the marketplace stores."""
    merged = dict(attributes.internal.extra)
    merged.update(visible_only(attributes.visible))

    features = [f.strip() for f in attributes.internal.custom_features if f and f.strip()]
    if features:
        merged[CUSTOM_FEATURES_KEY] = FEATURE_SEPARATOR.join(features)

    merged[AUCTION_DURATION_KEY] = attributes.internal.auction_duration
    merged[DELIVERY_PREFERENCE_KEY] = attributes.internal.delivery_preference
    return merged
