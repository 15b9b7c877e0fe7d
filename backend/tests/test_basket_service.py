# Overview: Pytest coverage for basket line add/merge, update and delete.

import pytest

from market.errors import (
    InsufficientStockError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from market.models import BasketLine, StockMovement
from market.services import basket_service, sale_accumulator, sale_lifecycle, stock_ledger


def _line_snapshot(db_session, sale_id):
    return [
        (line.id, line.product_id, line.quantity, line.price_cents, line.version_id)
        for line in db_session.query(BasketLine).filter_by(sale_id=sale_id).order_by(BasketLine.id).all()
    ]


class TestAddOrMerge:

    def test_first_add_creates_line(self, db_session, sale, product, branch, stock):
        line = basket_service.add_or_merge(sale.id, product.id, 4)

        assert line.quantity == 4
        assert line.unit_price_cents == 250
        assert line.price_cents == 1000
        assert stock_ledger.check_available(product.id, branch.id) == 6

    def test_same_product_merges_into_one_line(self, db_session, sale, product, branch, stock):
        first = basket_service.add_or_merge(sale.id, product.id, 2)
        second = basket_service.add_or_merge(sale.id, product.id, 3)

        lines = basket_service.list_lines(sale.id)
        assert len(lines) == 1
        assert second.id == first.id
        assert lines[0].quantity == 5
        assert lines[0].price_cents == 5 * 250

    def test_add_merge_then_reject_sequence(self, db_session, sale, product, branch, stock):
        """10 in stock: add 4, add 3 (merge), add 5 (rejected)."""
        basket_service.add_or_merge(sale.id, product.id, 4)
        assert stock_ledger.check_available(product.id, branch.id) == 6

        line = basket_service.add_or_merge(sale.id, product.id, 3)
        assert line.quantity == 7
        assert stock_ledger.check_available(product.id, branch.id) == 3

        with pytest.raises(InsufficientStockError):
            basket_service.add_or_merge(sale.id, product.id, 5)

        assert stock_ledger.check_available(product.id, branch.id) == 3
        lines = basket_service.list_lines(sale.id)
        assert len(lines) == 1
        assert lines[0].quantity == 7
        assert lines[0].price_cents == 7 * 250

    def test_insufficient_stock_changes_nothing(self, db_session, sale, product, branch, stock):
        basket_service.add_or_merge(sale.id, product.id, 8)
        lines_before = _line_snapshot(db_session, sale.id)
        record = stock_ledger.get_stock_record(product.id, branch.id, refresh=True)
        stock_before = (record.quantity, record.reserved_quantity, record.version_id)
        movements_before = db_session.query(StockMovement).count()

        with pytest.raises(InsufficientStockError):
            basket_service.add_or_merge(sale.id, product.id, 3)

        record = stock_ledger.get_stock_record(product.id, branch.id, refresh=True)
        assert (record.quantity, record.reserved_quantity, record.version_id) == stock_before
        assert _line_snapshot(db_session, sale.id) == lines_before
        assert db_session.query(StockMovement).count() == movements_before

    def test_insufficient_stock_on_first_add_creates_no_line(self, db_session, sale, product, branch, stock):
        with pytest.raises(InsufficientStockError):
            basket_service.add_or_merge(sale.id, product.id, 11)

        assert basket_service.list_lines(sale.id) == []
        assert stock_ledger.check_available(product.id, branch.id) == 10

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_non_positive_quantity_rejected(self, db_session, sale, product, stock, quantity):
        with pytest.raises(InvalidArgumentError):
            basket_service.add_or_merge(sale.id, product.id, quantity)

    def test_unknown_product(self, db_session, sale, stock):
        with pytest.raises(NotFoundError):
            basket_service.add_or_merge(sale.id, 9999, 1)

    def test_unknown_sale(self, db_session, product, stock):
        with pytest.raises(NotFoundError):
            basket_service.add_or_merge(9999, product.id, 1)

    def test_product_not_stocked_at_branch(self, db_session, sale, second_product):
        with pytest.raises(NotFoundError):
            basket_service.add_or_merge(sale.id, second_product.id, 1)
        assert basket_service.list_lines(sale.id) == []

    def test_uses_stock_of_sale_branch(self, db_session, sale, product, branch, other_branch, stock):
        stock_ledger.create_stock_record(product.id, other_branch.id, 50)

        basket_service.add_or_merge(sale.id, product.id, 2)

        assert stock_ledger.check_available(product.id, branch.id) == 8
        assert stock_ledger.check_available(product.id, other_branch.id) == 50


class TestUpdateLine:

    def test_grow_reserves_delta(self, db_session, sale, product, branch, stock):
        line = basket_service.add_or_merge(sale.id, product.id, 2)

        updated = basket_service.update_line(line.id, 6)

        assert updated.quantity == 6
        assert updated.price_cents == 6 * 250
        assert stock_ledger.check_available(product.id, branch.id) == 4

    def test_shrink_releases_delta(self, db_session, sale, product, branch, stock):
        line = basket_service.add_or_merge(sale.id, product.id, 6)

        updated = basket_service.update_line(line.id, 1)

        assert updated.quantity == 1
        assert updated.price_cents == 250
        assert stock_ledger.check_available(product.id, branch.id) == 9

    def test_grow_beyond_stock_leaves_line_unchanged(self, db_session, sale, product, branch, stock):
        line = basket_service.add_or_merge(sale.id, product.id, 5)
        line_id = line.id

        with pytest.raises(InsufficientStockError):
            basket_service.update_line(line_id, 11)

        line = basket_service.get_line(line_id)
        assert line.quantity == 5
        assert stock_ledger.check_available(product.id, branch.id) == 5

    def test_zero_removes_line_and_releases(self, db_session, sale, product, branch, stock):
        line = basket_service.add_or_merge(sale.id, product.id, 3)

        assert basket_service.update_line(line.id, 0) is None

        assert basket_service.list_lines(sale.id) == []
        assert stock_ledger.check_available(product.id, branch.id) == 10

    def test_negative_quantity_rejected(self, db_session, sale, product, stock):
        line = basket_service.add_or_merge(sale.id, product.id, 3)
        with pytest.raises(InvalidArgumentError):
            basket_service.update_line(line.id, -1)

    def test_unknown_line(self, db_session, sale):
        with pytest.raises(NotFoundError):
            basket_service.update_line(9999, 1)

    def test_grow_after_price_change_keeps_earlier_units(self, db_session, sale, product, stock):
        line = basket_service.add_or_merge(sale.id, product.id, 2)
        product.price_cents = 400
        db_session.commit()

        updated = basket_service.update_line(line.id, 3)

        assert updated.unit_price_cents == 400
        assert updated.price_cents == 2 * 250 + 400

    def test_same_quantity_after_price_change_keeps_price(self, db_session, sale, product, stock):
        line = basket_service.add_or_merge(sale.id, product.id, 2)
        product.price_cents = 400
        db_session.commit()

        updated = basket_service.update_line(line.id, 2)

        assert updated.price_cents == 500
        assert updated.unit_price_cents == 250
        assert sale_accumulator.get_sale_total(sale.id) == 500

    def test_shrink_mixed_price_line_uses_average(self, db_session, sale, product, stock):
        line = basket_service.add_or_merge(sale.id, product.id, 2)
        product.price_cents = 400
        db_session.commit()
        basket_service.add_or_merge(sale.id, product.id, 1)

        updated = basket_service.update_line(line.id, 1)

        # 900 for 3 units; one unit left keeps 900 * 1 // 3
        assert updated.quantity == 1
        assert updated.price_cents == 300


class TestDeleteLine:

    def test_delete_releases_full_quantity(self, db_session, sale, product, branch, stock):
        line = basket_service.add_or_merge(sale.id, product.id, 7)

        basket_service.delete_line(line.id)

        assert basket_service.list_lines(sale.id) == []
        assert stock_ledger.check_available(product.id, branch.id) == 10
        last = stock_ledger.list_movements(product.id, branch.id)[-1]
        assert last.movement_type == "release"
        assert last.quantity == 7

    def test_delete_unknown_line(self, db_session, sale):
        with pytest.raises(NotFoundError):
            basket_service.delete_line(9999)


class TestTotalPriceInvariant:

    def test_total_tracks_every_edit(self, db_session, sale, product, second_product, branch, stock):
        stock_ledger.create_stock_record(second_product.id, branch.id, 10)

        def assert_total_matches():
            lines = basket_service.list_lines(sale.id)
            assert sale_accumulator.recompute(sale.id) == sum(line.price_cents for line in lines)

        milk = basket_service.add_or_merge(sale.id, product.id, 2)
        assert_total_matches()
        bread = basket_service.add_or_merge(sale.id, second_product.id, 3)
        assert_total_matches()
        basket_service.add_or_merge(sale.id, product.id, 1)
        assert_total_matches()
        basket_service.update_line(bread.id, 1)
        assert_total_matches()
        basket_service.delete_line(milk.id)
        assert_total_matches()

        assert sale_accumulator.recompute(sale.id) == 100


class TestFinalizedSaleIsImmutable:

    def test_edits_rejected_after_finalize(self, db_session, sale, product, second_product, branch, stock):
        stock_ledger.create_stock_record(second_product.id, branch.id, 10)
        line = basket_service.add_or_merge(sale.id, product.id, 2)
        line_id = line.id
        sale_lifecycle.finalize_sale(sale.id)
        total = sale_accumulator.get_sale_total(sale.id)

        with pytest.raises(InvalidStateError):
            basket_service.add_or_merge(sale.id, second_product.id, 1)
        with pytest.raises(InvalidStateError):
            basket_service.add_or_merge(sale.id, product.id, 1)
        with pytest.raises(InvalidStateError):
            basket_service.update_line(line_id, 1)
        with pytest.raises(InvalidStateError):
            basket_service.delete_line(line_id)

        assert sale_accumulator.get_sale_total(sale.id) == total == 500
        assert basket_service.get_line(line_id).quantity == 2
        assert stock_ledger.check_available(second_product.id, branch.id) == 10
