"""Category resolution for the two-level category tree.

Items persist a single leaf category id. The wizard edits a
{category, subcategory} pair, so on load the stored id is resolved back
into that pair, and on submission the pair collapses to the leaf again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Union

from bidmarket.schemas.listing import Category, CategoryField

CategoryLike = Union[Category, Mapping]


@dataclass(frozen=True)
class ResolvedCategory:
    category_id: str
    subcategory_id: str


def _as_category(node: CategoryLike) -> Category:
    if isinstance(node, Category):
        return node
    return Category.model_validate(node)


def resolve(category_tree: Iterable[CategoryLike], stored_id: str | None) -> ResolvedCategory:
    """Map a stored category id onto a {category, subcategory} pair.

    A top-level match returns ``(stored_id, "")``. A subcategory match
    returns ``(stored_id, stored_id)``: the leaf id is mirrored into both
    fields, matching how listings are stored. Unknown ids degrade to
    ``(stored_id, "")``. Never raises.
    """
    if not stored_id:
        return ResolvedCategory("", "")

    tree = [_as_category(c) for c in category_tree or []]

    for cat in tree:
        if cat.id == stored_id:
            return ResolvedCategory(stored_id, "")

    for cat in tree:
        for sub in cat.categories:
            if sub.id == stored_id:
                return ResolvedCategory(stored_id, stored_id)

    return ResolvedCategory(stored_id, "")


def leaf_id(category_id: str, subcategory_id: str) -> str:
    """The single id persisted on the item."""
    return subcategory_id or category_id


def selection_for(parent_id: str, subcategory_id: str = "") -> ResolvedCategory:
    """Pair to store when the user picks a node in the category picker."""
    return ResolvedCategory(subcategory_id or parent_id, subcategory_id)


def category_name(
    category_tree: Iterable[CategoryLike], category_id: str, subcategory_id: str = ""
) -> str:
    """Display label for the current selection ("" when nothing matches)."""
    for cat in (_as_category(c) for c in category_tree or []):
        if subcategory_id:
            for sub in cat.categories:
                if sub.id == subcategory_id:
                    return sub.name
        if cat.id == category_id:
            return cat.name
    return ""


def attribute_schema_for(
    category_tree: Iterable[CategoryLike], category_id: str, subcategory_id: str = ""
) -> list[CategoryField]:
    """Category-specific attribute fields for the selected node."""
    if not category_id:
        return []

    for cat in (_as_category(c) for c in category_tree or []):
        if cat.id == category_id and not subcategory_id:
            return list(cat.attribute_schema)
        for sub in cat.categories:
            if sub.id == subcategory_id:
                return list(sub.attribute_schema)
    return []
