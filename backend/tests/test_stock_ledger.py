# Overview: Pytest coverage for the ledger primitives and the stock transaction recorder.

"""
Stock Ledger Tests

Covers:
- adjust_stock modes and the conditional subtract
- record_in / record_out / record_adjustment and their ledger rows
- the replay invariant: current_stock == signed sum of transactions
- history queries and ledger verification
"""

import pytest

from stockroom.models import StockTransaction
from stockroom.services import stock_service, transaction_service
from stockroom.services.errors import (
    ErrorKind,
    InsufficientStockError,
    InvalidArgumentError,
    NotFoundError,
)

from conftest import ACTOR_ID


def _transactions(db_session, product_id):
    return (
        db_session.query(StockTransaction)
        .filter_by(product_id=product_id)
        .order_by(StockTransaction.id.asc())
        .all()
    )


class TestLedgerPrimitives:
    def test_add_increments(self, db_session, product, stock_of):
        assert stock_service.adjust_stock(product.id, 5, "add") is True
        assert stock_of(product.id) == 55

    def test_set_overwrites(self, db_session, product, stock_of):
        assert stock_service.adjust_stock(product.id, 3, "set") is True
        assert stock_of(product.id) == 3

    def test_subtract_within_stock(self, db_session, product, stock_of):
        assert stock_service.adjust_stock(product.id, 50, "subtract") is True
        assert stock_of(product.id) == 0

    def test_subtract_beyond_stock_fails_without_change(self, db_session, product, stock_of):
        with pytest.raises(InsufficientStockError) as exc:
            stock_service.adjust_stock(product.id, 51, "subtract")

        assert exc.value.available == 50
        assert exc.value.requested == 51
        assert exc.value.kind == ErrorKind.INSUFFICIENT_STOCK
        assert stock_of(product.id) == 50

    def test_missing_product_is_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock(999999, 1, "add")
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock(999999, 1, "subtract")

    def test_unknown_mode_rejected(self, db_session, product):
        with pytest.raises(InvalidArgumentError):
            stock_service.adjust_stock(product.id, 1, "multiply")

    def test_negative_quantity_rejected(self, db_session, product, stock_of):
        with pytest.raises(InvalidArgumentError):
            stock_service.adjust_stock(product.id, -1, "add")
        assert stock_of(product.id) == 50

    def test_cached_instance_sees_new_stock(self, db_session, product):
        loaded = stock_service.get_product_for_update(product.id)
        stock_service.adjust_stock(product.id, 10, "subtract")
        assert loaded.current_stock == 40


class TestRecorder:
    def test_round_trip_restores_stock(self, db_session, make_product, stock_of):
        p = make_product(stock=0)

        transaction_service.record_in(p.id, 10, ACTOR_ID)
        transaction_service.record_out(p.id, 10, ACTOR_ID)

        assert stock_of(p.id) == 0
        txs = _transactions(db_session, p.id)
        assert [(t.transaction_type, t.signed_quantity) for t in txs] == [("In", 10), ("Out", -10)]

    def test_record_in_writes_row_and_stock(self, db_session, product, stock_of):
        movement = transaction_service.record_in(product.id, 8, ACTOR_ID, "RET-1", note="Customer return")

        assert movement.previous_stock == 50
        assert movement.new_stock == 58
        assert stock_of(product.id) == 58

        tx = transaction_service.get_transaction(movement.transaction.id)
        assert tx.transaction_type == "In"
        assert tx.quantity == 8
        assert tx.reference_id == "RET-1"
        assert tx.reference_type == "Manual"
        assert tx.created_by == ACTOR_ID

    def test_out_exceeding_stock_fails(self, db_session, make_product, stock_of):
        """Stock 5, request 10: nothing is written."""
        p = make_product(stock=5)

        with pytest.raises(InsufficientStockError) as exc:
            transaction_service.record_out(p.id, 10, ACTOR_ID)

        assert "Insufficient stock. Available: 5, Requested: 10" == str(exc.value)
        assert stock_of(p.id) == 5
        assert [t.transaction_type for t in _transactions(db_session, p.id)] == ["In"]

    def test_adjustment_records_signed_delta(self, db_session, make_product, stock_of):
        """Stock 10, counted 7: Adjustment -3."""
        p = make_product(stock=10)

        movement = transaction_service.record_adjustment(p.id, 7, ACTOR_ID)

        assert movement.previous_stock == 10
        assert movement.new_stock == 7
        assert movement.transaction.transaction_type == "Adjustment"
        assert movement.transaction.quantity == -3
        assert stock_of(p.id) == 7

    def test_adjustment_to_same_level_records_zero(self, db_session, product, stock_of):
        movement = transaction_service.record_adjustment(product.id, 50, ACTOR_ID)
        assert movement.transaction.quantity == 0
        assert stock_of(product.id) == 50

    def test_negative_adjustment_rejected_before_write(self, db_session, product, stock_of):
        before = len(_transactions(db_session, product.id))

        with pytest.raises(InvalidArgumentError):
            transaction_service.record_adjustment(product.id, -1, ACTOR_ID)

        assert stock_of(product.id) == 50
        assert len(_transactions(db_session, product.id)) == before

    @pytest.mark.parametrize("quantity", [0, -5, 2.5, True, "3"])
    def test_in_rejects_non_positive_or_non_integer(self, db_session, product, quantity):
        with pytest.raises(InvalidArgumentError):
            transaction_service.record_in(product.id, quantity, ACTOR_ID)

    def test_out_for_missing_product(self, db_session):
        with pytest.raises(NotFoundError) as exc:
            transaction_service.record_out(424242, 1, ACTOR_ID)
        assert str(exc.value) == "Product with ID 424242 not found"

    @pytest.mark.parametrize(
        "mode, quantity, expected_type, expected_stock",
        [
            ("add", 5, "In", 55),
            ("subtract", 5, "Out", 45),
            ("set", 12, "Adjustment", 12),
        ],
    )
    def test_apply_stock_update_leaves_history(
        self, db_session, product, stock_of, mode, quantity, expected_type, expected_stock
    ):
        movement = transaction_service.apply_stock_update(product.id, quantity, mode, ACTOR_ID)

        assert movement.transaction.transaction_type == expected_type
        assert stock_of(product.id) == expected_stock
        assert transaction_service.get_ledger_balance(product.id) == expected_stock

    def test_apply_stock_update_rejects_unknown_mode(self, db_session, product):
        with pytest.raises(InvalidArgumentError):
            transaction_service.apply_stock_update(product.id, 1, "double", ACTOR_ID)


class TestLedgerInvariant:
    def test_replay_matches_current_stock(self, db_session, make_product, stock_of):
        p = make_product(stock=0)
        operations = [
            ("in", 20), ("out", 3), ("adjust", 30), ("out", 30),
            ("in", 4), ("adjust", 4), ("in", 1), ("out", 2),
        ]
        for op, qty in operations:
            if op == "in":
                transaction_service.record_in(p.id, qty, ACTOR_ID)
            elif op == "out":
                transaction_service.record_out(p.id, qty, ACTOR_ID)
            else:
                transaction_service.record_adjustment(p.id, qty, ACTOR_ID)

        # A refused Out leaves no trace in either place
        with pytest.raises(InsufficientStockError):
            transaction_service.record_out(p.id, 100, ACTOR_ID)

        assert stock_of(p.id) == 3
        assert transaction_service.get_ledger_balance(p.id) == 3
        assert sum(t.signed_quantity for t in _transactions(db_session, p.id)) == 3
        assert transaction_service.verify_ledger() == []

    def test_verify_reports_drift(self, db_session, product):
        # Bypass the recorder on purpose
        stock_service.adjust_stock(product.id, 49, "set")
        db_session.commit()

        drift = transaction_service.verify_ledger()

        assert drift == [{
            "product_id": product.id,
            "current_stock": 49,
            "ledger_balance": 50,
            "difference": -1,
        }]


class TestHistoryQueries:
    def test_list_newest_first_and_filters(self, db_session, product):
        transaction_service.record_out(product.id, 2, ACTOR_ID, "A")
        transaction_service.record_in(product.id, 4, 99, "B")

        txs = transaction_service.list_transactions(product_id=product.id)
        assert [t.reference_id for t in txs] == ["B", "A", "OPENING"]

        outs = transaction_service.list_transactions(transaction_type="Out")
        assert [t.reference_id for t in outs] == ["A"]

        by_actor = transaction_service.list_transactions(created_by=99)
        assert [t.reference_id for t in by_actor] == ["B"]

        assert len(transaction_service.list_transactions(limit=1)) == 1

    def test_list_rejects_unknown_type(self, db_session):
        with pytest.raises(InvalidArgumentError):
            transaction_service.list_transactions(transaction_type="Transfer")

    def test_get_missing_transaction(self, db_session):
        with pytest.raises(NotFoundError):
            transaction_service.get_transaction(123456)

    def test_stats(self, db_session, product):
        transaction_service.record_out(product.id, 5, ACTOR_ID)
        transaction_service.record_adjustment(product.id, 40, ACTOR_ID)

        stats = transaction_service.get_transaction_stats()

        assert stats == {
            "total_transactions": 3,
            "stock_in_count": 1,
            "stock_out_count": 1,
            "adjustment_count": 1,
            "total_stock_in": 50,
            "total_stock_out": 5,
        }

    def test_movement_summary_groups_by_type(self, db_session, product):
        transaction_service.record_out(product.id, 5, ACTOR_ID)
        transaction_service.record_out(product.id, 6, ACTOR_ID)

        rows = transaction_service.get_movement_summary()
        by_type = {r["transaction_type"]: r for r in rows}

        assert by_type["In"]["total_quantity"] == 50
        assert by_type["Out"]["transaction_count"] == 2
        assert by_type["Out"]["total_quantity"] == 11
