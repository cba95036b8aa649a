"""Image variant helpers.

The server resizes every upload into three variants. Variant URLs are
stored as absolute URLs and any of them may be missing while processing
is still running, so every helper here degrades to "" / None instead of
raising.
"""

from typing import Mapping, Sequence, Union

from bidmarket.schemas.listing import UploadedImage

ImageLike = Union[UploadedImage, Mapping]

THUMBNAIL = "thumbnail"
MEDIUM = "medium"
FULL = "full"

# Variant max widths, must match the server-side processor config
VARIANT_WIDTHS: dict[str, int] = {
    THUMBNAIL: 200,
    MEDIUM: 600,
    FULL: 1200,
}

DEFAULT_VARIANT = MEDIUM


def as_image(image: ImageLike) -> UploadedImage:
    if isinstance(image, UploadedImage):
        return image
    return UploadedImage.model_validate(image)


def url_for(image: ImageLike, variant: str = DEFAULT_VARIANT) -> str:
    """Stored URL for a variant, or "" if it is not available yet."""
    if image is None:
        return ""
    return as_image(image).variants.get(variant) or ""


def build_source_set(image: ImageLike) -> list[tuple[str, int]]:
    """(url, width) pairs for each available variant, narrowest first."""
    pairs = []
    for variant, width in sorted(VARIANT_WIDTHS.items(), key=lambda kv: kv[1]):
        url = url_for(image, variant)
        if url:
            pairs.append((url, width))
    return pairs


def srcset(image: ImageLike) -> str:
    """Render the source set as an HTML ``srcset`` attribute value."""
    return ", ".join(f"{url} {width}w" for url, width in build_source_set(image))


def default_src(image: ImageLike) -> str:
    return url_for(image, DEFAULT_VARIANT)


def cover_image(images: Sequence[ImageLike]) -> UploadedImage | None:
    """The image at position 0, else the first one; None only when empty."""
    if not images:
        return None
    parsed = [as_image(image) for image in images]
    for image in parsed:
        if image.position == 0:
            return image
    return parsed[0]
