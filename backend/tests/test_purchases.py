"""
Purchase batch store and inventory aggregation.

Covers batch validation, the frozen-after-sale rule, FIFO ordering and the
recompute cache.
"""

import pytest

from shopledger.errors import ConflictError, NotFoundError, ValidationError
from shopledger.extensions import db
from shopledger.models import InventorySummary, PurchaseBatch
from shopledger.services import inventory_service, purchase_service


def _stock(product_id):
    summary = db.session.query(InventorySummary).filter_by(product_id=product_id).first()
    return summary.stock_quantity if summary else None


class TestCreateBatch:
    def test_remaining_starts_at_quantity(self, mouse, make_batch, admin):
        batch = make_batch(mouse, quantity=10)

        assert batch.remaining_quantity == 10
        assert batch.buying_price_cents == 10000
        assert batch.selling_price_cents == 15000
        assert batch.created_by_user_id == admin.id
        assert _stock(mouse.id) == 10

    def test_warranty_text_is_parsed(self, mouse, make_batch):
        assert make_batch(mouse, warranty="6 months").warranty_months == 6
        assert make_batch(mouse, warranty="No warranty").warranty_months == 0

    def test_unknown_product_rejected(self, db_session):
        with pytest.raises(ValidationError) as exc:
            purchase_service.create_batch({
                "product_id": 999, "quantity": 1, "buying_price": "10", "selling_price": "20",
            })
        assert "Product not found" in str(exc.value)

    @pytest.mark.parametrize("field,value", [
        ("quantity", 0),
        ("quantity", -3),
        ("quantity", "2.5"),
        ("buying_price", "0"),
        ("selling_price", "-1"),
        ("selling_price", "abc"),
    ])
    def test_invalid_numbers_rejected(self, mouse, field, value):
        payload = {"product_id": mouse.id, "quantity": 5, "buying_price": "10", "selling_price": "20"}
        payload[field] = value

        with pytest.raises(ValidationError):
            purchase_service.create_batch(payload)
        assert db.session.query(PurchaseBatch).count() == 0


class TestUpdateDeleteBatch:
    def test_update_resets_remaining_and_recomputes(self, mouse, make_batch):
        batch = make_batch(mouse, quantity=10)

        updated = purchase_service.update_batch(batch.id, {"quantity": 4, "selling_price": "175"})

        assert updated.quantity == 4
        assert updated.remaining_quantity == 4
        assert updated.selling_price_cents == 17500
        assert _stock(mouse.id) == 4

    def test_update_moves_stock_between_products(self, mouse, laptop, make_batch):
        batch = make_batch(mouse, quantity=3)

        purchase_service.update_batch(batch.id, {"product_id": laptop.id})

        assert _stock(mouse.id) == 0
        assert _stock(laptop.id) == 3

    def test_update_refused_after_sale(self, mouse, make_batch, make_sale):
        batch = make_batch(mouse, quantity=10)
        make_sale([{"product_id": mouse.id, "purchase_id": batch.id, "quantity": 1}])

        with pytest.raises(ConflictError):
            purchase_service.update_batch(batch.id, {"quantity": 20})

        db.session.refresh(batch)
        assert batch.quantity == 10
        assert batch.remaining_quantity == 9

    def test_delete_refused_after_sale(self, mouse, make_batch, make_sale):
        batch = make_batch(mouse, quantity=10)
        make_sale([{"product_id": mouse.id, "purchase_id": batch.id, "quantity": 2}])

        with pytest.raises(ConflictError):
            purchase_service.delete_batch(batch.id)
        assert db.session.get(PurchaseBatch, batch.id) is not None

    def test_delete_recomputes(self, mouse, make_batch):
        keep = make_batch(mouse, quantity=5)
        drop = make_batch(mouse, quantity=7)
        assert _stock(mouse.id) == 12

        purchase_service.delete_batch(drop.id)

        assert db.session.get(PurchaseBatch, drop.id) is None
        assert db.session.get(PurchaseBatch, keep.id) is not None
        assert _stock(mouse.id) == 5

    def test_unknown_batch(self, db_session):
        with pytest.raises(NotFoundError):
            purchase_service.delete_batch(12345)
        with pytest.raises(NotFoundError):
            purchase_service.update_batch(12345, {"quantity": 1})


class TestListAvailable:
    def test_fifo_order_skips_empty_batches(self, mouse, make_batch, make_sale):
        newer = make_batch(mouse, quantity=2, date="2026-03-01")
        older = make_batch(mouse, quantity=2, date="2026-01-01")
        middle = make_batch(mouse, quantity=1, date="2026-02-01")
        make_sale([{"product_id": mouse.id, "purchase_id": middle.id, "quantity": 1}])

        ids = [b.id for b in purchase_service.list_available(mouse.id)]

        assert ids == [older.id, newer.id]


class TestInventoryRecompute:
    def test_recompute_is_idempotent(self, mouse, make_batch, make_sale):
        make_batch(mouse, quantity=10)
        make_batch(mouse, quantity=5)
        make_sale([{"product_id": mouse.id, "quantity": 4}])

        first = inventory_service.recompute(mouse.id, commit=True).stock_quantity
        second = inventory_service.recompute(mouse.id, commit=True).stock_quantity

        assert first == second == 11
        assert inventory_service.remaining_total(mouse.id) == 11

    def test_recompute_repairs_drifted_cache(self, mouse, make_batch):
        make_batch(mouse, quantity=6)
        summary = db.session.query(InventorySummary).filter_by(product_id=mouse.id).one()
        summary.stock_quantity = 99
        db.session.commit()
        assert inventory_service.get_summary(mouse.id)["in_sync"] is False

        inventory_service.recompute(mouse.id, commit=True)

        assert inventory_service.get_summary(mouse.id)["stock_quantity"] == 6
        assert inventory_service.get_summary(mouse.id)["in_sync"] is True

    def test_conservation_holds_after_mixed_activity(self, mouse, laptop, make_batch, make_sale):
        a = make_batch(mouse, quantity=10)
        make_batch(mouse, quantity=3)
        make_batch(laptop, quantity=2)
        make_sale([{"product_id": mouse.id, "purchase_id": a.id, "quantity": 4}])
        make_sale([
            {"product_id": mouse.id, "quantity": 8},
            {"product_id": laptop.id, "quantity": 1, "serial_numbers": ["SN-1"]},
        ], phone="0779876543")

        report = inventory_service.audit_ledger()

        assert report["ok"] is True
        assert report["bad_batches"] == []
        assert report["drift"] == []
        assert _stock(mouse.id) == 1
        assert _stock(laptop.id) == 1

    def test_audit_reports_broken_batch(self, mouse, make_batch):
        batch = make_batch(mouse, quantity=5)
        # Bypass the services to simulate a bad manual edit
        db.session.execute(
            PurchaseBatch.__table__.update()
            .where(PurchaseBatch.__table__.c.id == batch.id)
            .values(remaining_quantity=3)
        )
        db.session.commit()

        report = inventory_service.audit_ledger()

        assert report["ok"] is False
        assert report["bad_batches"][0]["purchase_id"] == batch.id
