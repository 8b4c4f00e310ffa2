# Overview: Threaded tests against a file-backed database; no oversell, no over-receipt, unique numbers.

"""
Concurrency tests.

Each worker runs in its own thread and app context, so it gets its own
session and connection. Losing workers may fail with any exception
(InsufficientStock, over-receipt, or a locked database); what matters is
that the surviving state is consistent.
"""

import threading

import pytest

from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import Product, PurchaseOrderItem, Supplier
from stockroom.services import invoice_service, purchase_order_service, transaction_service
from stockroom.services.document_service import next_document_number
from stockroom.services.concurrency import atomic

ACTOR_ID = 11


@pytest.fixture
def file_app(tmp_path):
    db_path = tmp_path / "concurrency.db"
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _seed_product(app, stock: int) -> int:
    with app.app_context():
        product = Product(name="Contended", sku="CON-1", cost_price_cents=100, selling_price_cents=200)
        db.session.add(product)
        db.session.commit()
        if stock:
            transaction_service.record_in(product.id, stock, ACTOR_ID, "OPENING")
        return product.id


def _run_workers(app, target, args_list):
    results = []
    lock = threading.Lock()

    def worker(*args):
        with app.app_context():
            try:
                value = target(*args)
                with lock:
                    results.append(value)
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=args) for args in args_list]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def _successes(results):
    return [r for r in results if not isinstance(r, Exception)]


class TestConcurrentStockMovements:
    def test_concurrent_out_never_oversells(self, file_app):
        product_id = _seed_product(file_app, stock=10)

        results = _run_workers(
            file_app,
            lambda: transaction_service.record_out(product_id, 3, ACTOR_ID).new_stock,
            [() for _ in range(6)],
        )

        succeeded = len(_successes(results))
        assert succeeded <= 3

        with file_app.app_context():
            stock = db.session.query(Product.current_stock).filter_by(id=product_id).scalar()
            assert stock >= 0
            assert stock == 10 - 3 * succeeded
            assert transaction_service.get_ledger_balance(product_id) == stock

    def test_concurrent_invoices_never_oversell(self, file_app):
        product_id = _seed_product(file_app, stock=10)

        def sell():
            return invoice_service.create_invoice(
                customer_name="Rush",
                lines=[{"product_id": product_id, "quantity": 6, "unit_price_cents": 200}],
                actor_id=ACTOR_ID,
            ).invoice_number

        results = _run_workers(file_app, sell, [(), ()])

        assert len(_successes(results)) <= 1
        with file_app.app_context():
            stock = db.session.query(Product.current_stock).filter_by(id=product_id).scalar()
            assert stock >= 0
            assert transaction_service.verify_ledger() == []


class TestConcurrentDocuments:
    def test_document_numbers_are_unique(self, file_app):
        def allocate():
            with atomic():
                return next_document_number(document_type="INVOICE")

        results = _run_workers(file_app, allocate, [() for _ in range(10)])

        created = _successes(results)
        assert created
        assert len(created) == len(set(created))


class TestConcurrentReceipts:
    def test_no_over_receipt(self, file_app):
        product_id = _seed_product(file_app, stock=0)
        with file_app.app_context():
            supplier = Supplier(name="Racing Supplies")
            db.session.add(supplier)
            db.session.commit()
            po = purchase_order_service.create_purchase_order(
                supplier_id=supplier.id,
                order_date="2026-10-01",
                items=[{"product_id": product_id, "quantity": 10, "unit_cost_cents": 100}],
                actor_id=ACTOR_ID,
                status="Confirmed",
            )
            po_id, item_id = po.id, po.items[0].id

        def receive():
            return purchase_order_service.record_goods_receipt(
                po_id,
                received_date="2026-10-02",
                items=[{
                    "purchase_order_item_id": item_id,
                    "product_id": product_id,
                    "received_quantity": 4,
                    "unit_cost_cents": 100,
                }],
                actor_id=ACTOR_ID,
            ).receipt_number

        results = _run_workers(file_app, receive, [() for _ in range(4)])

        succeeded = len(_successes(results))
        assert succeeded <= 2
        with file_app.app_context():
            received = db.session.query(PurchaseOrderItem.received_quantity).filter_by(id=item_id).scalar()
            stock = db.session.query(Product.current_stock).filter_by(id=product_id).scalar()
            assert received == 4 * succeeded <= 10
            assert stock == received
