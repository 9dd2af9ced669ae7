"""Tests for GroupStore."""

import re

from models.annotation import Rectangle


class TestCreateGroup:
    def test_bounds_scenario(self, group_store, make_box, document_id):
        a = make_box(x=0, y=0, width=10, height=10)
        b = make_box(x=20, y=5, width=10, height=10)
        group = group_store.create_group([a.box_id, b.box_id], "Pair", "default", 1, document_id).unwrap()
        assert group.bounds == Rectangle(0, 0, 30, 15)
        assert group.box_ids == [a.box_id, b.box_id]
        assert re.fullmatch(r"#[0-9a-f]{6}", group.color)

    def test_needs_two_distinct_boxes(self, group_store, make_box, document_id):
        a = make_box()
        result = group_store.create_group([a.box_id, a.box_id], "Solo", "default", 1, document_id)
        assert result.is_failure()
        assert group_store.count() == 0

    def test_members_must_be_on_page_and_layer(self, group_store, make_box, document_id):
        a = make_box(page_number=1)
        b = make_box(page_number=2)
        assert group_store.create_group([a.box_id, b.box_id], "G", "default", 1, document_id).is_failure()

    def test_missing_member_rejected(self, group_store, make_box, document_id):
        a = make_box()
        assert group_store.create_group([a.box_id, "missing"], "G", "default", 1, document_id).is_failure()

    def test_empty_name_rejected(self, group_store, make_box, document_id):
        a, b = make_box(), make_box(x=200)
        assert group_store.create_group([a.box_id, b.box_id], " ", "default", 1, document_id).is_failure()


class TestGroupLifecycle:
    def _group(self, group_store, make_box, document_id):
        a = make_box(x=0, y=0, width=10, height=10)
        b = make_box(x=20, y=5, width=10, height=10)
        c = make_box(x=100, y=100, width=10, height=10)
        group = group_store.create_group([a.box_id, b.box_id, c.box_id], "G", "default", 1, document_id).unwrap()
        return group, a, b, c

    def test_bounds_not_live(self, box_store, group_store, make_box, document_id):
        group, a, _, _ = self._group(group_store, make_box, document_id)
        box_store.update_box(a.box_id, {"x": -50})
        assert group_store.get_group(group.group_id).bounds == group.bounds

    def test_refresh_bounds(self, box_store, group_store, make_box, document_id):
        group, a, _, _ = self._group(group_store, make_box, document_id)
        box_store.update_box(a.box_id, {"x": -50})
        group_store.refresh_bounds(group.group_id)
        assert group_store.get_group(group.group_id).bounds.x == -50

    def test_update_name_and_members(self, group_store, make_box, document_id):
        group, a, b, _ = self._group(group_store, make_box, document_id)
        assert group_store.update_group(group.group_id, {"name": "Renamed", "box_ids": [a.box_id, b.box_id]}).unwrap()
        updated = group_store.get_group(group.group_id)
        assert updated.name == "Renamed"
        assert updated.bounds == Rectangle(0, 0, 30, 15)

    def test_update_unknown_field(self, group_store, make_box, document_id):
        group, *_ = self._group(group_store, make_box, document_id)
        assert group_store.update_group(group.group_id, {"layer_id": "x"}).is_failure()

    def test_remove_group_keeps_boxes(self, box_store, group_store, make_box, document_id):
        group, *_ = self._group(group_store, make_box, document_id)
        assert group_store.remove_group(group.group_id).unwrap() is True
        assert group_store.remove_group(group.group_id).unwrap() is False
        assert box_store.count() == 3

    def test_box_removal_drops_membership(self, box_store, group_store, make_box, document_id):
        group, a, b, c = self._group(group_store, make_box, document_id)
        box_store.remove_box(a.box_id)
        assert group_store.get_group(group.group_id).box_ids == [b.box_id, c.box_id]
        assert [box.box_id for box in group_store.member_boxes(group.group_id)] == [b.box_id, c.box_id]
        assert group_store.groups_for_box(a.box_id) == []

    def test_group_below_two_members_is_removed(self, box_store, group_store, make_box, document_id):
        group, a, b, c = self._group(group_store, make_box, document_id)
        box_store.remove_box(a.box_id)
        box_store.remove_box(b.box_id)
        assert group_store.get_group(group.group_id) is None
        assert group_store.groups_for_box(c.box_id) == []
        assert box_store.has_box(c.box_id)

    def test_move_keeps_small_member_size(self, box_store, group_store, make_box, document_id):
        """Members smaller than the minimum box size keep their size when moved."""
        group, a, _, _ = self._group(group_store, make_box, document_id)
        box_store.update_box(a.box_id, {"x": -50, "y": -40})
        group_store.refresh_bounds(group.group_id)
        bounds = group_store.get_group(group.group_id).bounds
        assert (bounds.x, bounds.y) == (-50, -40)
        assert (box_store.get_box(a.box_id).width, box_store.get_box(a.box_id).height) == (10, 10)

    def test_groups_for_page(self, group_store, make_box, document_id):
        group, *_ = self._group(group_store, make_box, document_id)
        assert [g.group_id for g in group_store.groups_for_page(document_id, 1)] == [group.group_id]
        assert group_store.groups_for_page(document_id, 2) == []
