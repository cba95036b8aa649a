"""Draft state store tests."""

import pytest

from bidmarket.middleware.exceptions import ListingValidationError
from bidmarket.services.draft_store import DraftStore



@pytest.mark.unit
class TestPatch:

    def test_patch_merges_only_its_section(self):
        store = DraftStore.new()
        store.patch("auction_info", starting_price="100")
        store.patch("basic_details", {"title": "Lamp"})
        store.patch("basic_details", description="Brass")

        draft = store.draft
        assert draft.basic_details.title == "Lamp"
        assert draft.basic_details.description == "Brass"
        assert draft.auction_info.starting_price == "100"
        assert draft.auction_info.auction_duration == "7d"
        assert draft.step == 1

    def test_patch_by_step_number(self):
        store = DraftStore.new()
        store.patch(3, delivery_preference="meetup")
        assert store.draft.logistics.delivery_preference == "meetup"

    def test_numeric_prices_become_strings(self):
        store = DraftStore.new()
        store.patch("auction_info", starting_price=1500, reserve_price=2000.5)
        assert store.draft.auction_info.starting_price == "1500"
        assert store.draft.auction_info.reserve_price == "2000.5"

    def test_unknown_field_rejected(self):
        store = DraftStore.new()
        with pytest.raises(ListingValidationError) as exc:
            store.patch("logistics", pickup_address="Lagos")
        assert "logistics.pickup_address" in exc.value.errors

    def test_unknown_step_rejected(self):
        with pytest.raises(ListingValidationError):
            DraftStore.new().patch("payment", amount="1")

    def test_internal_attribute_keys_are_filtered(self):
        store = DraftStore.new()
        store.patch("basic_details", attributes={"Colour": "Red", "_auctionDuration": "24h"})
        assert store.draft.basic_details.attributes == {"Colour": "Red"}
        assert store.draft.auction_info.auction_duration == "7d"

    def test_select_category_resets_attributes(self):
        store = DraftStore.new()
        store.patch("basic_details", attributes={"Storage": "64GB"})
        store.select_category("electronics", "phones")
        basic = store.draft.basic_details
        assert (basic.category_id, basic.subcategory_id) == ("phones", "phones")
        assert basic.attributes == {}


@pytest.mark.unit
class TestSetStep:

    @pytest.mark.parametrize("requested, expected", [(0, 1), (99, 3), (-4, 1), (2, 2), ("3", 3), (None, 1)])
    def test_clamps(self, requested, expected):
        store = DraftStore.new()
        assert store.set_step(requested) == expected
        assert store.step == expected


@pytest.mark.unit
class TestImages:

    def _store_with(self, make_image, *ids):
        store = DraftStore.new()
        for image_id in ids:
            store.add_image(make_image(image_id, position=99))
        return store

    def test_positions_follow_sequence(self, make_image):
        store = self._store_with(make_image, "a", "b", "c")
        assert [(i.id, i.position) for i in store.images] == [("a", 0), ("b", 1), ("c", 2)]

    def test_remove_renumbers(self, make_image):
        store = self._store_with(make_image, "a", "b", "c")
        assert store.remove_image("a") is True
        assert [(i.id, i.position) for i in store.images] == [("b", 0), ("c", 1)]
        assert store.remove_image("missing") is False

    def test_reorder(self, make_image):
        store = self._store_with(make_image, "a", "b", "c")
        store.reorder_images(["c", "a", "b"])
        assert [(i.id, i.position) for i in store.images] == [("c", 0), ("a", 1), ("b", 2)]

    def test_reorder_must_be_permutation(self, make_image):
        store = self._store_with(make_image, "a", "b")
        with pytest.raises(ListingValidationError):
            store.reorder_images(["a"])
        with pytest.raises(ListingValidationError):
            store.reorder_images(["a", "a"])
        assert [i.id for i in store.images] == ["a", "b"]

    def test_re_adding_same_id_replaces(self, make_image):
        store = self._store_with(make_image, "a", "b")
        store.add_image({"id": "a", "variants": {"medium": "new"}})
        assert [i.id for i in store.images] == ["a", "b"]
        assert store.images[0].variants == {"medium": "new"}


@pytest.mark.unit
class TestConstruction:

    @pytest.mark.parametrize("profile, expected", [
        (None, "buyer_arranges"),
        ({"deliveryPreference": "pickup_only"}, "meetup"),
        ({"deliveryPreference": "seller_delivers"}, "seller_arranges"),
        ({"deliveryPreference": "you_arrange"}, "buyer_arranges"),
        ({"deliveryPreference": None}, "buyer_arranges"),
    ])
    def test_new_uses_store_profile_delivery(self, profile, expected):
        assert DraftStore.new(profile).draft.logistics.delivery_preference == expected

    def test_new_is_blank(self):
        draft = DraftStore.new().draft
        assert draft.draft_item_id is None
        assert draft.step == 1
        assert draft.basic_details.condition == "used"
        assert draft.basic_details.custom_features == ["", "", ""]
        assert draft.uploaded_images == []

    def test_hydrate(self, persisted_item, category_tree, make_image):
        images = [make_image("img-2", 4), make_image("img-1", 0)]
        store = DraftStore.hydrate(persisted_item, images, category_tree, step=9)
        draft = store.draft

        assert draft.draft_item_id == "item-42"
        assert draft.step == 3
        basic = draft.basic_details
        assert (basic.category_id, basic.subcategory_id) == ("phones", "phones")
        assert basic.attributes == {"Storage": "128GB"}
        assert basic.custom_features == ["Original box", "Two cases"]
        assert draft.auction_info.starting_price == "250000"
        assert draft.auction_info.reserve_price == "300000"
        assert draft.auction_info.auction_duration == "3d"
        assert draft.logistics.delivery_preference == "meetup"
        assert [(i.id, i.position) for i in draft.uploaded_images] == [("img-2", 0), ("img-1", 1)]
        assert draft.internal_attributes == {"_legacyFlag": "1"}

    def test_hydrate_tolerates_missing_category(self, persisted_item, category_tree):
        persisted_item["category"] = None
        persisted_item["condition"] = "broken"
        store = DraftStore.hydrate(persisted_item, [], category_tree, step=0)
        basic = store.draft.basic_details
        assert (basic.category_id, basic.subcategory_id) == ("", "")
        assert basic.condition == "used"
        assert store.step == 1

    def test_hydrate_tolerates_null_category_id(self, persisted_item, category_tree):
        persisted_item["category"] = {"id": None, "name": None}
        store = DraftStore.hydrate(persisted_item, [], category_tree, step=None)
        basic = store.draft.basic_details
        assert (basic.category_id, basic.subcategory_id) == ("", "")
        assert store.step == 1

    def test_merged_attributes_round_trip(self, persisted_item, category_tree):
        store = DraftStore.hydrate(persisted_item, [], category_tree)
        assert store.merged_attributes() == persisted_item["attributes"] | {
            "_customFeatures": "Original box|||Two cases",
        }
