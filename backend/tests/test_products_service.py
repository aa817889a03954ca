"""
Product Store tests.

Verifies:
- Every stock change is documented by exactly one ledger entry
- Cosmetic edits leave the ledger alone
- Soft delete hides products from reads and mutations
- adjust_quantity never drives stock below zero
"""

import pytest

from frozengoods.errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from frozengoods.models import LedgerEntry
from frozengoods.models.ledger import (
    ENTRY_INVENTORY_ADJUSTMENT,
    ENTRY_PRODUCT_ADDED,
    ENTRY_PRODUCT_DELETED,
    ENTRY_PRODUCT_UPDATED,
)
from frozengoods.services import ledger_service, products_service, reservation_service
from frozengoods.services.concurrency import product_lock_key, run_atomic


def _entries(db_session, product_id):
    return (
        db_session.query(LedgerEntry)
        .filter_by(product_id=product_id)
        .order_by(LedgerEntry.id.asc())
        .all()
    )


# =============================================================================
# CREATE
# =============================================================================


class TestCreateProduct:
    def test_create_writes_product_added_with_initial_quantity(self, db_session, make_product):
        product = make_product(name="Chicken Nuggets", quantity=12)

        entries = _entries(db_session, product.id)
        assert len(entries) == 1
        assert entries[0].entry_type == ENTRY_PRODUCT_ADDED
        assert entries[0].quantity_delta == 12
        assert entries[0].notes == "Added new product: Chicken Nuggets"
        assert entries[0].actor_id == "user-1"
        assert entries[0].actor_name == "Maria Santos"

    def test_price_defaults_to_marked_up_distributor_price(self, db_session, make_product):
        product = make_product(price_cents=None, distributor_price_cents=60)
        assert product.price_cents == 72

    def test_markup_rounds_half_up(self, app):
        assert products_service.marked_up_price_cents(1, markup_bps=5000) == 2
        assert products_service.marked_up_price_cents(999, markup_bps=2000) == 1199

    def test_price_required_without_distributor_price(self, db_session, actor):
        with pytest.raises(ValidationError):
            products_service.create_product(
                payload={"name": "Ube Ice Cream", "category": "Ice Cream", "quantity": 3},
                **actor,
            )

    @pytest.mark.parametrize(
        "payload",
        [
            {"category": "Ice Cream", "price_cents": 100},
            {"name": "   ", "category": "Ice Cream", "price_cents": 100},
            {"name": "Tub", "category": "Ice Cream", "price_cents": -1},
            {"name": "Tub", "category": "Ice Cream", "price_cents": 100, "quantity": -5},
            {"name": "Tub", "category": "Ice Cream", "price_cents": 100, "quantity": 1.5},
            {"name": "Tub", "category": "Ice Cream", "price_cents": 100, "sku": "X"},
        ],
    )
    def test_rejects_malformed_payload(self, db_session, actor, payload):
        with pytest.raises(ValidationError):
            products_service.create_product(payload=payload, **actor)
        assert db_session.query(LedgerEntry).count() == 0


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdateProduct:
    def test_price_change_is_logged_without_stock_delta(self, db_session, p1, actor):
        products_service.update_product(product_id=p1.id, payload={"price_cents": 120}, **actor)

        last = _entries(db_session, p1.id)[-1]
        assert last.entry_type == ENTRY_PRODUCT_UPDATED
        assert last.quantity_delta == 0
        assert last.notes == "Price changed from 100 to 120"

    def test_quantity_change_records_signed_delta(self, db_session, p1, actor):
        products_service.update_product(
            product_id=p1.id, payload={"quantity": 12, "name": "Vanilla Tub XL"}, **actor
        )

        last = _entries(db_session, p1.id)[-1]
        assert last.quantity_delta == 2
        assert 'Name changed from "Vanilla Tub" to "Vanilla Tub XL"' in last.notes
        assert "Quantity changed from 10 to 12" in last.notes
        assert ledger_service.reconcile_product(p1.id)["consistent"] is True

    def test_cosmetic_change_writes_no_entry(self, db_session, p1, actor):
        products_service.update_product(
            product_id=p1.id,
            payload={"description": "1.5L tub", "image_url": "https://img.example/v.png"},
            **actor,
        )

        assert len(_entries(db_session, p1.id)) == 1
        assert products_service.get_product(p1.id).description == "1.5L tub"

    def test_same_values_write_no_entry(self, db_session, p1, actor):
        products_service.update_product(
            product_id=p1.id, payload={"price_cents": 100, "quantity": 10}, **actor
        )
        assert len(_entries(db_session, p1.id)) == 1

    def test_unknown_product(self, db_session, actor):
        with pytest.raises(NotFoundError):
            products_service.update_product(product_id=999, payload={"price_cents": 1}, **actor)


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteProduct:
    def test_soft_delete_hides_product(self, db_session, p1, actor):
        products_service.delete_product(product_id=p1.id, **actor)

        with pytest.raises(NotFoundError):
            products_service.get_product(p1.id)
        assert products_service.list_products()["count"] == 0

        last = _entries(db_session, p1.id)[-1]
        assert last.entry_type == ENTRY_PRODUCT_DELETED
        assert last.quantity_delta == 0

    def test_deleted_product_rejects_mutations(self, db_session, p1, actor):
        products_service.delete_product(product_id=p1.id, **actor)

        with pytest.raises(NotFoundError):
            products_service.adjust_inventory(product_id=p1.id, quantity_delta=1, **actor)
        with pytest.raises(NotFoundError):
            products_service.delete_product(product_id=p1.id, **actor)

    def test_cannot_delete_with_held_reservation(self, db_session, p1, actor):
        reservation_service.hold(product_id=p1.id, quantity=2, customer_name="Alice", **actor)

        with pytest.raises(InvalidStateError):
            products_service.delete_product(product_id=p1.id, **actor)
        assert products_service.get_product(p1.id).is_active is True


# =============================================================================
# STOCK
# =============================================================================


class TestStockAdjustments:
    def test_adjust_inventory_documents_change(self, db_session, p1, actor):
        result = products_service.adjust_inventory(
            product_id=p1.id, quantity_delta=-3, notes="Freezer burn", **actor
        )

        assert result["product"]["quantity"] == 7
        assert result["entry"]["entry_type"] == ENTRY_INVENTORY_ADJUSTMENT
        assert result["entry"]["quantity_delta"] == -3
        assert result["entry"]["notes"] == "Freezer burn"
        assert ledger_service.reconcile_product(p1.id)["consistent"] is True

    def test_adjust_below_zero_changes_nothing(self, db_session, p1, actor):
        with pytest.raises(InsufficientStockError) as exc_info:
            products_service.adjust_inventory(product_id=p1.id, quantity_delta=-11, **actor)

        assert exc_info.value.available == 10
        assert exc_info.value.requested == 11
        assert str(exc_info.value) == "Not enough inventory. Only 10 units available."
        assert products_service.get_product(p1.id).quantity == 10
        assert len(_entries(db_session, p1.id)) == 1

    @pytest.mark.parametrize("delta", [0, None, "abc", True])
    def test_adjust_requires_nonzero_integer(self, db_session, p1, actor, delta):
        with pytest.raises(ValidationError):
            products_service.adjust_inventory(product_id=p1.id, quantity_delta=delta, **actor)

    def test_adjust_quantity_to_exactly_zero(self, db_session, p1):
        product = run_atomic(
            lambda: products_service.adjust_quantity(p1.id, -10),
            lock_key=product_lock_key(p1.id),
        )
        assert product.quantity == 0


# =============================================================================
# READS
# =============================================================================


class TestProductReads:
    def test_low_stock_lowest_first(self, db_session, make_product):
        make_product(name="Plenty", quantity=8)
        make_product(name="Five", quantity=5)
        make_product(name="Empty", quantity=0)
        make_product(name="Two", quantity=2)

        names = [p.name for p in products_service.list_low_stock()]
        assert names == ["Empty", "Two", "Five"]

    def test_low_stock_threshold_override(self, db_session, make_product):
        make_product(name="Eight", quantity=8)
        assert [p.name for p in products_service.list_low_stock(8)] == ["Eight"]

    def test_list_filters_and_paginates(self, db_session, make_product):
        make_product(name="Beef Tapa", category="Meat")
        make_product(name="Pork Tocino", category="Meat")
        make_product(name="Mango Bar", category="Ice Cream")

        meat = products_service.list_products(category="meat")
        assert [p["name"] for p in meat["items"]] == ["Beef Tapa", "Pork Tocino"]

        search = products_service.list_products(search="mango")
        assert search["count"] == 1

        page = products_service.list_products(page=2, per_page=2)
        assert page["count"] == 1
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["has_prev"] is True
        assert page["pagination"]["has_next"] is False

    def test_categories_deduplicated(self, db_session, make_product):
        make_product(category="Meat")
        make_product(category="meat ")
        make_product(category="Seafood")

        assert products_service.list_categories() == ["Meat", "Seafood"]
