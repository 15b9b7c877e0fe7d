# Overview: Pytest coverage for the stock ledger primitives.

"""
Stock Ledger Tests

Covers check/reserve/release/commit on a single (product, branch) record,
stock administration (create, recount) and the movement log.
"""

import pytest

from market.errors import InsufficientStockError, InvalidArgumentError, NotFoundError
from market.models import StockMovement, StockRecord
from market.services import stock_ledger


class TestCheckAvailable:

    def test_returns_current_quantity(self, db_session, product, branch, stock):
        assert stock_ledger.check_available(product.id, branch.id) == 10

    def test_missing_record_is_not_found(self, db_session, product, branch):
        with pytest.raises(NotFoundError):
            stock_ledger.check_available(product.id, branch.id)

    def test_scoped_to_branch(self, db_session, product, branch, other_branch, stock):
        stock_ledger.create_stock_record(product.id, other_branch.id, 3)
        assert stock_ledger.check_available(product.id, branch.id) == 10
        assert stock_ledger.check_available(product.id, other_branch.id) == 3


class TestReserve:

    def test_reserve_decrements_availability(self, db_session, product, branch, stock):
        record = stock_ledger.reserve(product.id, branch.id, 4)

        assert record.reserved_quantity == 4
        assert record.quantity == 10
        assert stock_ledger.check_available(product.id, branch.id) == 6

    def test_reserve_exact_availability(self, db_session, product, branch, stock):
        stock_ledger.reserve(product.id, branch.id, 10)
        assert stock_ledger.check_available(product.id, branch.id) == 0

    def test_insufficient_stock_leaves_record_unchanged(self, db_session, product, branch, stock):
        stock_ledger.reserve(product.id, branch.id, 7)

        with pytest.raises(InsufficientStockError) as exc_info:
            stock_ledger.reserve(product.id, branch.id, 4)

        assert exc_info.value.details["requested_quantity"] == 4
        assert exc_info.value.details["available_quantity"] == 3
        record = stock_ledger.get_stock_record(product.id, branch.id, refresh=True)
        assert record.reserved_quantity == 7
        assert record.quantity == 10

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_rejected(self, db_session, product, branch, stock, quantity):
        with pytest.raises(InvalidArgumentError):
            stock_ledger.reserve(product.id, branch.id, quantity)
        assert stock_ledger.check_available(product.id, branch.id) == 10

    def test_missing_record_is_not_found_not_insufficient(self, db_session, product, branch):
        with pytest.raises(NotFoundError):
            stock_ledger.reserve(product.id, branch.id, 1)

    def test_reserve_appends_movement(self, db_session, product, branch, stock):
        stock_ledger.reserve(product.id, branch.id, 2, sale_id=42)

        movements = stock_ledger.list_movements(product.id, branch.id)
        assert [m.movement_type for m in movements] == ["adjust", "reserve"]
        assert movements[-1].quantity == 2
        assert movements[-1].sale_id == 42

    def test_failed_reserve_writes_no_movement(self, db_session, product, branch, stock):
        with pytest.raises(InsufficientStockError):
            stock_ledger.reserve(product.id, branch.id, 11)

        count = db_session.query(StockMovement).filter_by(movement_type="reserve").count()
        assert count == 0


class TestRelease:

    def test_release_returns_units(self, db_session, product, branch, stock):
        stock_ledger.reserve(product.id, branch.id, 5)
        stock_ledger.release(product.id, branch.id, 2)

        assert stock_ledger.check_available(product.id, branch.id) == 7

    def test_release_more_than_reserved_rejected(self, db_session, product, branch, stock):
        stock_ledger.reserve(product.id, branch.id, 1)

        with pytest.raises(InvalidArgumentError):
            stock_ledger.release(product.id, branch.id, 2)

        record = stock_ledger.get_stock_record(product.id, branch.id, refresh=True)
        assert record.reserved_quantity == 1

    def test_release_missing_record(self, db_session, product, branch):
        with pytest.raises(NotFoundError):
            stock_ledger.release(product.id, branch.id, 1)


class TestCommitReserved:

    def test_commit_moves_units_out_of_branch(self, db_session, product, branch, stock):
        stock_ledger.reserve(product.id, branch.id, 4)
        record = stock_ledger.commit_reserved(product.id, branch.id, 4)

        assert record.quantity == 6
        assert record.reserved_quantity == 0
        assert stock_ledger.check_available(product.id, branch.id) == 6

    def test_commit_without_reservation_rejected(self, db_session, product, branch, stock):
        with pytest.raises(InsufficientStockError):
            stock_ledger.commit_reserved(product.id, branch.id, 1)

        record = stock_ledger.get_stock_record(product.id, branch.id, refresh=True)
        assert record.quantity == 10


class TestStockAdministration:

    def test_create_duplicate_record_rejected(self, db_session, product, branch, stock):
        with pytest.raises(InvalidArgumentError):
            stock_ledger.create_stock_record(product.id, branch.id, 5)

    def test_create_for_unknown_product(self, db_session, branch):
        with pytest.raises(NotFoundError):
            stock_ledger.create_stock_record(9999, branch.id, 5)

    def test_create_negative_quantity_rejected(self, db_session, product, branch):
        with pytest.raises(InvalidArgumentError):
            stock_ledger.create_stock_record(product.id, branch.id, -1)
        assert db_session.query(StockRecord).count() == 0

    def test_adjust_sets_on_hand_and_logs_delta(self, db_session, product, branch, stock):
        record = stock_ledger.adjust_stock(product.id, branch.id, 25, note="Delivery")

        assert record.quantity == 25
        last = stock_ledger.list_movements(product.id, branch.id)[-1]
        assert last.movement_type == "adjust"
        assert last.quantity == 15
        assert last.note == "Delivery"

    def test_recount_below_reserved_reads_as_zero_available(self, db_session, product, branch, stock):
        stock_ledger.reserve(product.id, branch.id, 4)
        stock_ledger.adjust_stock(product.id, branch.id, 3)

        assert stock_ledger.implied_availability(product.id, branch.id) == -1
        assert stock_ledger.check_available(product.id, branch.id) == 0

        with pytest.raises(InsufficientStockError):
            stock_ledger.reserve(product.id, branch.id, 1)

    def test_adjust_missing_record(self, db_session, product, branch):
        with pytest.raises(NotFoundError):
            stock_ledger.adjust_stock(product.id, branch.id, 5)

    def test_adjust_negative_rejected(self, db_session, product, branch, stock):
        with pytest.raises(InvalidArgumentError):
            stock_ledger.adjust_stock(product.id, branch.id, -3)


class TestNonNegativeStock:

    def test_interleaved_reserve_release_never_negative(self, db_session, product, branch, stock):
        operations = [
            ("reserve", 3), ("reserve", 5), ("reserve", 4), ("release", 2),
            ("reserve", 4), ("release", 6), ("reserve", 9), ("reserve", 1),
        ]
        for op, qty in operations:
            try:
                if op == "reserve":
                    stock_ledger.reserve(product.id, branch.id, qty)
                else:
                    stock_ledger.release(product.id, branch.id, qty)
            except (InsufficientStockError, InvalidArgumentError):
                pass

            record = stock_ledger.get_stock_record(product.id, branch.id, refresh=True)
            assert record.reserved_quantity >= 0
            assert record.quantity - record.reserved_quantity >= 0


class TestSetStock:

    def test_creates_missing_record(self, db_session, product, branch):
        record, created = stock_ledger.set_stock(product.id, branch.id, 12)

        assert created is True
        assert record.quantity == 12
        assert [m.note for m in stock_ledger.list_movements(product.id, branch.id)] == ["Initial stock"]

    def test_adjusts_existing_record(self, db_session, product, branch, stock):
        stock_ledger.reserve(product.id, branch.id, 2)

        record, created = stock_ledger.set_stock(product.id, branch.id, 7, note="Recount")

        assert created is False
        assert (record.quantity, record.reserved_quantity) == (7, 2)
        last = stock_ledger.list_movements(product.id, branch.id)[-1]
        assert (last.movement_type, last.quantity, last.note) == ("adjust", -3, "Recount")

    def test_unknown_branch(self, db_session, product):
        with pytest.raises(NotFoundError):
            stock_ledger.set_stock(product.id, 9999, 1)

    def test_negative_rejected(self, db_session, product, branch):
        with pytest.raises(InvalidArgumentError):
            stock_ledger.set_stock(product.id, branch.id, -1)
        assert db_session.query(StockRecord).count() == 0
