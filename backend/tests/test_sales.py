"""
Checkout and sale reversal against purchase batches.
"""

from datetime import timedelta

import pytest
from sqlalchemy import update

from shopledger.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from shopledger.extensions import db
from shopledger.models import Customer, Invoice, PurchaseBatch, SaleLine, SaleSerial, WarrantyClaim
from shopledger.models.customers import WALK_IN_CUSTOMER
from shopledger.services import customer_service, sales_service
from shopledger.services.concurrency import decrement_remaining
from shopledger.time_utils import utcnow


def _remaining(batch_id):
    return db.session.get(PurchaseBatch, batch_id).remaining_quantity


class TestCreateSale:
    def test_sell_then_delete_restores_batch(self, mouse, make_batch, make_sale):
        batch = make_batch(mouse, quantity=10, buying_price="100", selling_price="150")

        sale = make_sale([{"product_id": mouse.id, "purchase_id": batch.id, "quantity": 3, "discount": 0}])

        assert _remaining(batch.id) == 7
        assert sale["total_cents"] == 45000
        assert sale["total"] == "450.00"

        sales_service.delete_sale(sale["invoice_no"])

        assert _remaining(batch.id) == 10
        assert db.session.get(Invoice, sale["invoice_no"]) is None
        assert db.session.query(SaleLine).count() == 0

    def test_total_applies_line_discounts(self, mouse, laptop, make_batch, make_sale):
        a = make_batch(mouse, quantity=5, selling_price="1000")
        b = make_batch(laptop, quantity=5, selling_price="500")

        sale = make_sale([
            {"product_id": mouse.id, "purchase_id": a.id, "quantity": 2, "discount": 10},
            {"product_id": laptop.id, "purchase_id": b.id, "quantity": 1, "discount": 0, "serial_numbers": ["LT-1"]},
        ])

        assert sale["total_cents"] == 230000
        assert sale["subtotal"] == "2500.00"
        assert sale["total_discount"] == "200.00"
        assert sale["items_count"] == 2

    def test_line_snapshots_batch_price_and_serials(self, laptop, make_batch, make_sale):
        batch = make_batch(laptop, quantity=3, selling_price="250000")

        sale = make_sale([{
            "product_id": laptop.id, "purchase_id": batch.id, "quantity": 2,
            "serial_numbers": ["SN-A", "SN-B"],
        }])

        item = sale["items"][0]
        assert item["unit_price_cents"] == 25000000
        assert item["serial_numbers"] == ["SN-A", "SN-B"]
        assert item["purchase_id"] == batch.id

    def test_new_phone_creates_walk_in_customer(self, mouse, make_batch):
        make_batch(mouse, quantity=2)

        sale = sales_service.create_sale({
            "customer": {"phone": "077 555 1234"},
            "items": [{"product_id": mouse.id, "quantity": 1}],
        })

        customer = db.session.get(Customer, sale["customer_id"])
        assert customer.name == WALK_IN_CUSTOMER
        assert customer.phone == "0775551234"

    def test_existing_phone_reuses_customer(self, mouse, make_batch, make_sale):
        make_batch(mouse, quantity=5)
        first = make_sale([{"product_id": mouse.id, "quantity": 1}])
        second = make_sale([{"product_id": mouse.id, "quantity": 1}])

        assert first["customer_id"] == second["customer_id"]
        assert db.session.query(Customer).count() == 1


class TestSaleRejections:
    def test_missing_serials_fail_without_touching_batches(self, laptop, make_batch, make_sale):
        batch = make_batch(laptop, quantity=5)

        with pytest.raises(ValidationError):
            make_sale([{
                "product_id": laptop.id, "purchase_id": batch.id, "quantity": 2,
                "serial_numbers": ["SN-ONLY-ONE"],
            }])

        assert _remaining(batch.id) == 5
        assert db.session.query(Invoice).count() == 0
        assert db.session.query(SaleSerial).count() == 0

    def test_quantity_above_remaining(self, mouse, make_batch, make_sale):
        batch = make_batch(mouse, quantity=2)

        with pytest.raises(InsufficientStockError) as exc:
            make_sale([{"product_id": mouse.id, "purchase_id": batch.id, "quantity": 3}])

        assert exc.value.available == 2
        assert "Wireless Mouse" in exc.value.message
        assert _remaining(batch.id) == 2

    def test_same_batch_twice_counts_both_lines(self, mouse, make_batch, make_sale):
        batch = make_batch(mouse, quantity=3)

        with pytest.raises(InsufficientStockError):
            make_sale([
                {"product_id": mouse.id, "purchase_id": batch.id, "quantity": 2},
                {"product_id": mouse.id, "purchase_id": batch.id, "quantity": 2},
            ])
        assert _remaining(batch.id) == 3

    def test_batch_of_other_product(self, mouse, laptop, make_batch, make_sale):
        batch = make_batch(laptop, quantity=3)

        with pytest.raises(ValidationError):
            make_sale([{"product_id": mouse.id, "purchase_id": batch.id, "quantity": 1}])

    def test_unknown_product_and_batch(self, mouse, make_sale, db_session):
        with pytest.raises(NotFoundError):
            make_sale([{"product_id": 4242, "quantity": 1}])
        with pytest.raises(NotFoundError):
            make_sale([{"product_id": mouse.id, "purchase_id": 4242, "quantity": 1}])

    @pytest.mark.parametrize("discount", [-1, 101, "lots"])
    def test_discount_out_of_range(self, mouse, make_batch, make_sale, discount):
        make_batch(mouse, quantity=3)

        with pytest.raises(ValidationError):
            make_sale([{"product_id": mouse.id, "quantity": 1, "discount": discount}])

    def test_empty_items(self, db_session, make_sale):
        with pytest.raises(ValidationError):
            make_sale([])

    def test_bad_phone(self, mouse, make_batch, make_sale):
        make_batch(mouse, quantity=3)

        with pytest.raises(ValidationError):
            make_sale([{"product_id": mouse.id, "quantity": 1}], phone="12345")

    def test_drained_batch_at_commit_rolls_back(self, mouse, make_batch, make_sale, monkeypatch):
        """Another checkout empties the batch between planning and the guarded update."""
        batch = make_batch(mouse, quantity=2)
        other = make_batch(mouse, quantity=5)

        original_plan = sales_service.plan_sale

        def plan_then_drain(items):
            planned = original_plan(items)
            db.session.execute(
                update(PurchaseBatch).where(PurchaseBatch.id == batch.id).values(remaining_quantity=0)
            )
            return planned

        monkeypatch.setattr(sales_service, "plan_sale", plan_then_drain)

        with pytest.raises(InsufficientStockError):
            make_sale([
                {"product_id": mouse.id, "purchase_id": other.id, "quantity": 1},
                {"product_id": mouse.id, "purchase_id": batch.id, "quantity": 2},
            ])

        assert db.session.query(Invoice).count() == 0
        assert _remaining(other.id) == 5

    def test_concurrent_new_customer_is_conflict(self, mouse, make_batch, make_sale, monkeypatch):
        """Another checkout inserts the same phone after our lookup missed it."""
        batch = make_batch(mouse, quantity=3)
        db.session.add(Customer(name="Kasun", phone="0771234567"))
        db.session.commit()
        monkeypatch.setattr(customer_service, "find_by_phone", lambda phone: None)

        with pytest.raises(ConflictError):
            make_sale([{"product_id": mouse.id, "purchase_id": batch.id, "quantity": 1}])

        assert db.session.query(Invoice).count() == 0
        assert db.session.query(Customer).count() == 1
        assert _remaining(batch.id) == 3


class TestGuardedDecrement:
    def test_decrement_refuses_to_go_negative(self, mouse, make_batch):
        batch = make_batch(mouse, quantity=3)

        assert decrement_remaining(batch.id, 2) is True
        assert decrement_remaining(batch.id, 2) is False
        db.session.commit()

        assert _remaining(batch.id) == 1

    def test_decrement_unknown_batch(self, db_session):
        assert decrement_remaining(999, 1) is False


class TestFifoAllocation:
    def test_split_across_batches_oldest_first(self, mouse, make_batch, make_sale):
        old = make_batch(mouse, quantity=2, selling_price="100", date="2026-01-01")
        new = make_batch(mouse, quantity=5, selling_price="120", date="2026-02-01")

        sale = make_sale([{"product_id": mouse.id, "quantity": 4}])

        assert [(i["purchase_id"], i["quantity"]) for i in sale["items"]] == [(old.id, 2), (new.id, 2)]
        assert sale["total_cents"] == 2 * 10000 + 2 * 12000
        assert _remaining(old.id) == 0
        assert _remaining(new.id) == 3

    def test_serials_follow_allocation(self, laptop, make_batch, make_sale):
        make_batch(laptop, quantity=1, date="2026-01-01")
        make_batch(laptop, quantity=2, date="2026-02-01")

        sale = make_sale([{"product_id": laptop.id, "quantity": 3, "serial_numbers": ["S1", "S2", "S3"]}])

        assert [i["serial_numbers"] for i in sale["items"]] == [["S1"], ["S2", "S3"]]

    def test_not_enough_across_batches(self, mouse, make_batch, make_sale):
        make_batch(mouse, quantity=1)
        make_batch(mouse, quantity=1)

        with pytest.raises(InsufficientStockError) as exc:
            make_sale([{"product_id": mouse.id, "quantity": 3}])
        assert exc.value.available == 2


class TestDeleteSale:
    def test_outside_window_rejected(self, mouse, make_batch, make_sale):
        batch = make_batch(mouse, quantity=5)
        sale = make_sale([{"product_id": mouse.id, "purchase_id": batch.id, "quantity": 1}])
        invoice = db.session.get(Invoice, sale["invoice_no"])
        invoice.sale_date = utcnow() - timedelta(hours=25)
        db.session.commit()

        with pytest.raises(ConflictError) as exc:
            sales_service.delete_sale(sale["invoice_no"])

        assert "24 hours" in exc.value.message
        assert _remaining(batch.id) == 4
        assert sales_service.can_delete(sale["invoice_no"])["can_delete"] is False

    def test_warranty_claim_blocks_delete(self, laptop, make_batch, make_sale):
        batch = make_batch(laptop, quantity=2)
        sale = make_sale([{
            "product_id": laptop.id, "purchase_id": batch.id, "quantity": 1, "serial_numbers": ["WC-1"],
        }])
        db.session.add(WarrantyClaim(sale_line_id=sale["items"][0]["sale_id"], serial_number="WC-1"))
        db.session.commit()

        with pytest.raises(ConflictError) as exc:
            sales_service.delete_sale(sale["invoice_no"])

        assert "warranty" in exc.value.message
        assert _remaining(batch.id) == 1

    def test_delete_removes_serials(self, laptop, make_batch, make_sale):
        batch = make_batch(laptop, quantity=2)
        sale = make_sale([{
            "product_id": laptop.id, "purchase_id": batch.id, "quantity": 2, "serial_numbers": ["X1", "X2"],
        }])

        sales_service.delete_sale(sale["invoice_no"])

        assert db.session.query(SaleSerial).count() == 0
        assert _remaining(batch.id) == 2

    def test_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.delete_sale(777)


class TestUpdateSale:
    def test_payment_fields_only(self, mouse, make_batch, make_sale):
        make_batch(mouse, quantity=2)
        sale = make_sale([{"product_id": mouse.id, "quantity": 1}])

        updated = sales_service.update_sale(sale["invoice_no"], {
            "payment_method": "Card", "payment_status": "partial", "notes": "Balance next week",
            "total": "1",
        })

        assert updated["payment_method"] == "Card"
        assert updated["payment_status"] == "PARTIAL"
        assert updated["notes"] == "Balance next week"
        assert updated["total_cents"] == sale["total_cents"]

    def test_invalid_payment_method(self, mouse, make_batch, make_sale):
        make_batch(mouse, quantity=2)
        sale = make_sale([{"product_id": mouse.id, "quantity": 1}])

        with pytest.raises(ValidationError):
            sales_service.update_sale(sale["invoice_no"], {"payment_method": "Bitcoin"})


class TestListSales:
    def test_filters_and_pagination(self, mouse, laptop, make_batch, make_sale):
        make_batch(mouse, quantity=10)
        make_batch(laptop, quantity=2)
        make_sale([{"product_id": mouse.id, "quantity": 1}])
        make_sale([{"product_id": laptop.id, "quantity": 1, "serial_numbers": ["L1"]}], phone="0712223334")
        make_sale([{"product_id": mouse.id, "quantity": 2}])

        assert sales_service.list_sales()["count"] == 3
        assert sales_service.list_sales(product_id=laptop.id)["count"] == 1
        assert sales_service.list_sales(search="0712223334")["count"] == 1

        page = sales_service.list_sales(page=1, per_page=2)
        assert page["count"] == 2
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["has_next"] is True
