"""
Reorder planner tests: capped draft, snapshots, merges and single-slot undo.
"""

import pytest

from frozengoods.errors import (
    BudgetExceededError,
    CapNotSetError,
    NotFoundError,
    ValidationError,
)
from frozengoods.models import ReorderDraftItem, ReorderSnapshot
from frozengoods.services import products_service, reorder_service


@pytest.fixture
def cap_500(db_session):
    return reorder_service.set_cap(amount_cents=500, actor_id="user-1")


def _draft_total():
    return reorder_service.get_draft()["total_amount_cents"]


class TestCap:
    def test_initial_cap_is_zero(self, db_session):
        draft = reorder_service.get_draft()
        assert draft["max_total_amount_cents"] == 0
        assert draft["items"] == []

    def test_add_without_cap_is_rejected(self, db_session, p1):
        with pytest.raises(CapNotSetError):
            reorder_service.add_item(product_id=p1.id, quantity=1)
        assert db_session.query(ReorderDraftItem).count() == 0

    @pytest.mark.parametrize("amount", [-1, None, "1e3", 12.5])
    def test_cap_must_be_non_negative_integer(self, db_session, amount):
        with pytest.raises(ValidationError):
            reorder_service.set_cap(amount_cents=amount)

    def test_cannot_lower_cap_below_draft_total(self, db_session, p1, cap_500):
        reorder_service.add_item(product_id=p1.id, quantity=5)

        with pytest.raises(BudgetExceededError) as exc_info:
            reorder_service.set_cap(amount_cents=250)

        assert exc_info.value.overage_cents == 50
        assert reorder_service.get_settings().max_total_amount_cents == 500

        reorder_service.set_cap(amount_cents=300)
        assert reorder_service.get_draft()["remaining_cents"] == 0


class TestDraftItems:
    def test_scenario_cap_500(self, db_session, p1, cap_500):
        item = reorder_service.add_item(product_id=p1.id, quantity=5, notes="Weekly restock")
        assert item.subtotal_cents == 300
        assert item.unit_price_cents == 60
        assert item.notes == "Weekly restock"

        with pytest.raises(BudgetExceededError) as exc_info:
            reorder_service.add_item(product_id=p1.id, quantity=5)

        assert exc_info.value.overage_cents == 100
        assert exc_info.value.details["cap_cents"] == 500
        assert _draft_total() == 300

    def test_edit_excludes_own_subtotal(self, db_session, p1, cap_500):
        item = reorder_service.add_item(product_id=p1.id, quantity=5)

        edited = reorder_service.edit_item(line_id=item.id, quantity=8)
        assert edited.subtotal_cents == 480

        with pytest.raises(BudgetExceededError) as exc_info:
            reorder_service.edit_item(line_id=item.id, quantity=9)
        assert exc_info.value.overage_cents == 40
        assert _draft_total() == 480

    def test_edit_notes(self, db_session, p1, cap_500):
        item = reorder_service.add_item(product_id=p1.id, quantity=1, notes="old")
        edited = reorder_service.edit_item(line_id=item.id, quantity=1, notes="new")
        assert edited.notes == "new"

    def test_product_without_distributor_price(self, db_session, make_product, cap_500):
        product = make_product(distributor_price_cents=None)
        with pytest.raises(ValidationError):
            reorder_service.add_item(product_id=product.id, quantity=1)

    def test_deleted_product_cannot_be_added(self, db_session, p1, cap_500, actor):
        products_service.delete_product(product_id=p1.id, **actor)
        with pytest.raises(NotFoundError):
            reorder_service.add_item(product_id=p1.id, quantity=1)

    def test_remove_and_clear(self, db_session, make_product, cap_500):
        a = reorder_service.add_item(product_id=make_product().id, quantity=1)
        reorder_service.add_item(product_id=make_product().id, quantity=2)
        reorder_service.add_item(product_id=make_product().id, quantity=3)

        reorder_service.remove_item(line_id=a.id)
        assert _draft_total() == 300

        with pytest.raises(NotFoundError):
            reorder_service.remove_item(line_id=a.id)

        assert reorder_service.clear_draft() == 2
        draft = reorder_service.get_draft()
        assert draft["items"] == []
        assert draft["max_total_amount_cents"] == 500


class TestSnapshots:
    def _saved(self, p1, name="Week 42"):
        reorder_service.add_item(product_id=p1.id, quantity=5, notes="Restock")
        return reorder_service.save_snapshot(name=name, actor_id="user-1")

    def test_save_copies_draft_and_resets_cycle(self, db_session, p1, cap_500):
        snapshot = self._saved(p1)

        assert snapshot.name == "Week 42"
        assert snapshot.total_amount_cents == 300
        assert snapshot.cap_at_save_time_cents == 500
        assert [(i.product_id, i.quantity, i.subtotal_cents, i.notes) for i in snapshot.items] == [
            (p1.id, 5, 300, "Restock")
        ]

        draft = reorder_service.get_draft()
        assert draft["items"] == []
        assert draft["max_total_amount_cents"] == 0

        # Next cycle requires a fresh cap
        with pytest.raises(CapNotSetError):
            reorder_service.add_item(product_id=p1.id, quantity=1)
        reorder_service.set_cap(amount_cents=100)
        assert reorder_service.add_item(product_id=p1.id, quantity=1).subtotal_cents == 60

    def test_save_requires_items_and_name(self, db_session, p1, cap_500):
        with pytest.raises(ValidationError):
            reorder_service.save_snapshot(name="Empty")

        reorder_service.add_item(product_id=p1.id, quantity=1)
        with pytest.raises(ValidationError):
            reorder_service.save_snapshot(name="  ")
        assert db_session.query(ReorderSnapshot).count() == 0

    def test_merge_into_draft_uses_current_distributor_price(self, db_session, p1, cap_500, actor):
        snapshot = self._saved(p1)
        products_service.update_product(product_id=p1.id, payload={"distributor_price_cents": 70}, **actor)
        reorder_service.set_cap(amount_cents=1000)

        result = reorder_service.merge_items_from_snapshot(
            snapshot_id=snapshot.id, item_ids=[snapshot.items[0].id], target="draft"
        )

        assert result["items"][0]["unit_price_cents"] == 70
        assert result["items"][0]["subtotal_cents"] == 350
        assert result["items"][0]["notes"] == "Restock"
        assert _draft_total() == 350

    def test_merge_into_draft_is_all_or_nothing(self, db_session, make_product, cap_500):
        a = make_product()
        b = make_product()
        reorder_service.add_item(product_id=a.id, quantity=4)
        reorder_service.add_item(product_id=b.id, quantity=4)
        snapshot = reorder_service.save_snapshot(name="Two lines")
        reorder_service.set_cap(amount_cents=400)

        with pytest.raises(BudgetExceededError) as exc_info:
            reorder_service.merge_items_from_snapshot(
                snapshot_id=snapshot.id, item_ids=[i.id for i in snapshot.items], target="draft"
            )
        assert exc_info.value.overage_cents == 80
        assert reorder_service.get_draft()["items"] == []

        with pytest.raises(NotFoundError):
            reorder_service.merge_items_from_snapshot(
                snapshot_id=snapshot.id, item_ids=[snapshot.items[0].id, 9999], target="draft"
            )
        assert reorder_service.get_draft()["items"] == []

    def test_merge_into_draft_requires_cap(self, db_session, p1, cap_500):
        snapshot = self._saved(p1)
        with pytest.raises(CapNotSetError):
            reorder_service.merge_items_from_snapshot(
                snapshot_id=snapshot.id, item_ids=[snapshot.items[0].id]
            )

    def test_merge_with_repeated_item_copies_nothing(self, db_session, p1, actor):
        reorder_service.set_cap(amount_cents=2000)
        snapshot = self._saved(p1)
        item_id = snapshot.items[0].id

        with pytest.raises(ValidationError):
            reorder_service.merge_items_from_snapshot(
                snapshot_id=snapshot.id, item_ids=[item_id, item_id], target="snapshot"
            )

        refreshed = reorder_service.get_snapshot(snapshot.id)
        assert len(refreshed.items) == 1
        assert refreshed.total_amount_cents == 300

    def test_merge_into_snapshot_bounded_by_cap_at_save_time(self, db_session, p1, cap_500):
        snapshot = self._saved(p1)
        item_id = snapshot.items[0].id

        with pytest.raises(BudgetExceededError) as exc_info:
            reorder_service.merge_items_from_snapshot(snapshot_id=snapshot.id, item_ids=[item_id], target="snapshot")
        assert exc_info.value.overage_cents == 100
        assert reorder_service.get_snapshot(snapshot.id).total_amount_cents == 300

    def test_merge_into_snapshot_appends_at_saved_price(self, db_session, p1, actor):
        reorder_service.set_cap(amount_cents=1000)
        snapshot = self._saved(p1)
        products_service.update_product(product_id=p1.id, payload={"distributor_price_cents": 90}, **actor)

        result = reorder_service.merge_items_from_snapshot(
            snapshot_id=snapshot.id, item_ids=[snapshot.items[0].id], target="snapshot"
        )

        assert result["total_amount_cents"] == 600
        refreshed = reorder_service.get_snapshot(snapshot.id)
        assert len(refreshed.items) == 2
        assert [i.unit_price_cents for i in refreshed.items] == [60, 60]
        assert refreshed.name == "Week 42"
        assert refreshed.cap_at_save_time_cents == 1000

    @pytest.mark.parametrize(
        "item_ids,target",
        [([], "draft"), (None, "draft"), ("1", "draft"), ([1], "archive"), ([1, 1], "draft"), ([2, "2"], "snapshot")],
    )
    def test_merge_rejects_bad_input(self, db_session, item_ids, target):
        with pytest.raises(ValidationError):
            reorder_service.merge_items_from_snapshot(snapshot_id=1, item_ids=item_ids, target=target)

    def test_list_and_get(self, db_session, p1, cap_500):
        first = self._saved(p1, name="First")
        reorder_service.set_cap(amount_cents=500)
        second = self._saved(p1, name="Second")

        assert [s.id for s in reorder_service.list_snapshots()] == [second.id, first.id]
        assert reorder_service.get_snapshot(first.id).name == "First"
        with pytest.raises(NotFoundError):
            reorder_service.get_snapshot(9999)


class TestUndo:
    def _saved(self, p1, name):
        reorder_service.set_cap(amount_cents=500)
        reorder_service.add_item(product_id=p1.id, quantity=2, notes=f"{name} line")
        return reorder_service.save_snapshot(name=name, actor_id="user-1")

    def test_restore_recreates_snapshot_verbatim(self, db_session, p1):
        snapshot = self._saved(p1, "Week 42")
        original = snapshot.to_dict()

        reorder_service.delete_snapshot(snapshot_id=snapshot.id, actor_id="user-1")
        with pytest.raises(NotFoundError):
            reorder_service.get_snapshot(original["id"])
        assert reorder_service.get_draft()["has_undo"] is True

        restored = reorder_service.restore_snapshot(actor_id="user-1")
        assert restored.to_dict() == original
        assert reorder_service.get_draft()["has_undo"] is False

    def test_restore_with_empty_buffer(self, db_session):
        with pytest.raises(NotFoundError):
            reorder_service.restore_snapshot()

    def test_restore_only_once(self, db_session, p1):
        snapshot = self._saved(p1, "Week 42")
        reorder_service.delete_snapshot(snapshot_id=snapshot.id)
        reorder_service.restore_snapshot()

        with pytest.raises(NotFoundError):
            reorder_service.restore_snapshot()

    def test_single_slot_keeps_latest_delete(self, db_session, p1):
        first = self._saved(p1, "First")
        second = self._saved(p1, "Second")
        first_id, second_id = first.id, second.id

        reorder_service.delete_snapshot(snapshot_id=first_id)
        reorder_service.delete_snapshot(snapshot_id=second_id)

        restored = reorder_service.restore_snapshot()
        assert restored.id == second_id
        assert [s.id for s in reorder_service.list_snapshots()] == [second_id]

    def test_delete_unknown_snapshot(self, db_session):
        with pytest.raises(NotFoundError):
            reorder_service.delete_snapshot(snapshot_id=9999)
