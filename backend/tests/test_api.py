"""
HTTP layer: actor header, role checks, error mapping and response envelopes.
"""

from datetime import timedelta

from conftest import actor_headers

from shopledger.extensions import db
from shopledger.models import Invoice, PurchaseBatch
from shopledger.time_utils import utcnow


def _purchase(client, admin, product, quantity=10):
    return client.post('/api/purchases', headers=actor_headers(admin), json={
        "product_id": product.id,
        "quantity": quantity,
        "buying_price": "100",
        "selling_price": "150",
        "warranty": "12 months",
    })


def _sale(client, user, items):
    return client.post('/api/sales', headers=actor_headers(user), json={
        "customer": {"name": "Nimal", "phone": "0771234567"},
        "items": items,
        "payment_method": "Cash",
        "amount_paid": "500",
        "change_amount": "50",
    })


class TestActor:
    def test_missing_header(self, client, db_session):
        response = client.get('/api/products')
        assert response.status_code == 401

    def test_unknown_or_inactive_user(self, client, admin):
        assert client.get('/api/products', headers={'X-User-Id': '999'}).status_code == 401
        assert client.get('/api/products', headers={'X-User-Id': 'abc'}).status_code == 401

        admin.is_active = False
        db.session.commit()
        assert client.get('/api/products', headers=actor_headers(admin)).status_code == 401

    def test_cashier_cannot_purchase(self, client, cashier, mouse):
        response = _purchase(client, cashier, mouse)

        assert response.status_code == 403
        assert response.json['required_roles'] == ['admin']

    def test_technician_cannot_sell(self, client, technician, mouse):
        response = _sale(client, technician, [{"product_id": mouse.id, "quantity": 1}])
        assert response.status_code == 403


class TestPurchaseRoutes:
    def test_create_and_get(self, client, admin, mouse):
        response = _purchase(client, admin, mouse)

        assert response.status_code == 201
        purchase = response.json['data']['purchase']
        assert purchase['remaining_quantity'] == 10
        assert purchase['warranty'] == 12
        assert purchase['selling_price'] == "150.00"

        got = client.get(f"/api/purchases/{purchase['purchase_id']}", headers=actor_headers(admin))
        assert got.status_code == 200

    def test_validation_error_is_400(self, client, admin, mouse):
        response = client.post('/api/purchases', headers=actor_headers(admin), json={
            "product_id": mouse.id, "quantity": 0, "buying_price": "1", "selling_price": "2",
        })

        assert response.status_code == 400
        assert response.json['status'] == 'fail'
        assert response.json['error'] == 'validation'

    def test_not_found_is_404(self, client, admin):
        response = client.get('/api/purchases/4040', headers=actor_headers(admin))

        assert response.status_code == 404
        assert response.json['message'] == "No purchase found with that ID"

    def test_delete_with_sales_is_conflict(self, client, admin, cashier, mouse):
        purchase_id = _purchase(client, admin, mouse).json['data']['purchase']['purchase_id']
        _sale(client, cashier, [{"product_id": mouse.id, "purchase_id": purchase_id, "quantity": 1}])

        response = client.delete(f'/api/purchases/{purchase_id}', headers=actor_headers(admin))

        assert response.status_code == 400
        assert response.json['error'] == 'conflict'

    def test_available_batches(self, client, admin, cashier, mouse):
        _purchase(client, admin, mouse, quantity=1)
        _purchase(client, admin, mouse, quantity=2)

        response = client.get(f'/api/purchases/available/{mouse.id}', headers=actor_headers(cashier))

        assert response.status_code == 200
        assert response.json['results'] == 2

    def test_undo_last_and_export(self, client, admin, mouse):
        purchase_id = _purchase(client, admin, mouse).json['data']['purchase']['purchase_id']

        undone = client.post('/api/purchases/undo-last', headers=actor_headers(admin), json={"reason": "Duplicate"})
        assert undone.status_code == 200
        assert undone.json['data']['purchase']['purchase_id'] == purchase_id
        assert db.session.get(PurchaseBatch, purchase_id) is None

        logs = client.get('/api/purchases/undo-logs?page=1&limit=5', headers=actor_headers(admin))
        assert logs.json['pagination']['total'] == 1

        export = client.get('/api/purchases/undo-logs/export-csv', headers=actor_headers(admin))
        assert export.status_code == 200
        assert export.mimetype == 'text/csv'
        lines = export.get_data(as_text=True).strip().splitlines()
        assert lines[0].startswith("Purchase ID,Product,Supplier")
        assert len(lines) == 2

    def test_undo_last_with_nothing_to_undo(self, client, admin):
        response = client.post('/api/purchases/undo-last', headers=actor_headers(admin), json={})
        assert response.status_code == 404

    def test_undo_log_date_filter(self, client, admin, mouse):
        _purchase(client, admin, mouse)
        client.post('/api/purchases/undo-last', headers=actor_headers(admin), json={"reason": "Duplicate"})
        today = utcnow().date().isoformat()

        future = client.get(
            '/api/purchases/undo-logs?page=1&limit=5&startDate=2099-01-01&endDate=2099-12-31',
            headers=actor_headers(admin),
        )
        assert future.json['pagination']['total'] == 0

        current = client.get(
            f'/api/purchases/undo-logs?startDate={today}&endDate={today}', headers=actor_headers(admin),
        )
        assert current.json['pagination']['total'] == 1

        export = client.get(
            '/api/purchases/undo-logs/export-csv?startDate=2099-01-01&endDate=2099-12-31',
            headers=actor_headers(admin),
        )
        assert len(export.get_data(as_text=True).strip().splitlines()) == 1

        bad = client.get('/api/purchases/undo-logs?startDate=yesterday', headers=actor_headers(admin))
        assert bad.status_code == 400


class TestSaleRoutes:
    def test_checkout_delete_cycle(self, client, admin, cashier, mouse):
        purchase_id = _purchase(client, admin, mouse).json['data']['purchase']['purchase_id']

        created = _sale(client, cashier, [{"product_id": mouse.id, "purchase_id": purchase_id, "quantity": 3}])
        assert created.status_code == 201
        sale = created.json['data']['sale']
        assert sale['total'] == "450.00"
        assert sale['user_name'] == "cashier"
        assert db.session.get(PurchaseBatch, purchase_id).remaining_quantity == 7

        check = client.get(f"/api/sales/{sale['invoice_no']}/can-delete", headers=actor_headers(cashier))
        assert check.json['data']['can_delete'] is True

        deleted = client.delete(f"/api/sales/{sale['invoice_no']}", headers=actor_headers(cashier))
        assert deleted.status_code == 204
        assert db.session.get(PurchaseBatch, purchase_id).remaining_quantity == 10

    def test_insufficient_stock(self, client, admin, cashier, mouse):
        purchase_id = _purchase(client, admin, mouse, quantity=1).json['data']['purchase']['purchase_id']

        response = _sale(client, cashier, [{"product_id": mouse.id, "purchase_id": purchase_id, "quantity": 2}])

        assert response.status_code == 400
        assert response.json['error'] == 'insufficient_stock'
        assert response.json['details']['available'] == 1

    def test_expired_sale_delete(self, client, admin, cashier, mouse):
        _purchase(client, admin, mouse)
        sale = _sale(client, cashier, [{"product_id": mouse.id, "quantity": 1}]).json['data']['sale']
        invoice = db.session.get(Invoice, sale['invoice_no'])
        invoice.sale_date = utcnow() - timedelta(hours=48)
        db.session.commit()

        response = client.delete(f"/api/sales/{sale['invoice_no']}", headers=actor_headers(cashier))

        assert response.status_code == 400
        assert response.json['error'] == 'conflict'

    def test_undo_and_logs(self, client, admin, cashier, mouse):
        _purchase(client, admin, mouse)
        sale = _sale(client, cashier, [{"product_id": mouse.id, "quantity": 2}]).json['data']['sale']

        undone = client.post(
            f"/api/sales/{sale['invoice_no']}/undo",
            headers=actor_headers(cashier),
            json={"reason_type": "entry_error", "reason_details": "Wrong item"},
        )
        assert undone.status_code == 200
        log_id = undone.json['data']['undo_log']['id']

        assert client.get('/api/sales/undo-logs', headers=actor_headers(cashier)).status_code == 403

        log = client.get(f'/api/sales/undo-logs/{log_id}', headers=actor_headers(admin))
        assert log.json['data']['log']['sale_data']['invoice_no'] == sale['invoice_no']

        export = client.get('/api/sales/undo-logs/export-csv', headers=actor_headers(admin))
        assert export.get_data(as_text=True).splitlines()[0].startswith("ID,Invoice No,User")

    def test_list_sales(self, client, admin, cashier, mouse):
        _purchase(client, admin, mouse)
        _sale(client, cashier, [{"product_id": mouse.id, "quantity": 1}])

        response = client.get('/api/sales?search=Nimal', headers=actor_headers(cashier))

        assert response.status_code == 200
        assert response.json['results'] == 1
        assert response.json['data']['sales'][0]['items_count'] == 1

    def test_sale_undo_log_date_filter(self, client, admin, cashier, mouse):
        _purchase(client, admin, mouse)
        sale = _sale(client, cashier, [{"product_id": mouse.id, "quantity": 1}]).json['data']['sale']
        client.post(
            f"/api/sales/{sale['invoice_no']}/undo", headers=actor_headers(cashier), json={"reason_type": "duplicate"},
        )

        past = client.get('/api/sales/undo-logs?startDate=2000-01-01&endDate=2000-12-31', headers=actor_headers(admin))
        assert past.json['pagination']['total'] == 0

        since = client.get('/api/sales/undo-logs?startDate=2000-01-01', headers=actor_headers(admin))
        assert since.json['pagination']['total'] == 1

        export = client.get(
            '/api/sales/undo-logs/export-csv?startDate=2000-01-01&endDate=2000-12-31', headers=actor_headers(admin),
        )
        assert len(export.get_data(as_text=True).strip().splitlines()) == 1

    def test_negative_limit_is_clamped(self, client, admin, cashier, mouse):
        _purchase(client, admin, mouse)
        _sale(client, cashier, [{"product_id": mouse.id, "quantity": 1}])

        response = client.get('/api/sales?page=1&limit=-5', headers=actor_headers(cashier))

        assert response.status_code == 200
        assert response.json['pagination']['per_page'] == 1
        assert response.json['results'] == 1


class TestOtherRoutes:
    def test_inventory(self, client, admin, mouse):
        _purchase(client, admin, mouse, quantity=4)

        listing = client.get('/api/inventory', headers=actor_headers(admin))
        assert listing.json['data']['inventory'][0]['stock_quantity'] == 4

        detail = client.get(f'/api/inventory/{mouse.id}', headers=actor_headers(admin))
        assert detail.json['data']['inventory']['in_sync'] is True

    def test_products(self, client, admin, cashier):
        created = client.post('/api/products', headers=actor_headers(admin), json={"name": "Keyboard"})
        assert created.status_code == 201

        denied = client.post('/api/products', headers=actor_headers(cashier), json={"name": "Keyboard"})
        assert denied.status_code == 403

    def test_customers(self, client, cashier):
        created = client.post('/api/customers', headers=actor_headers(cashier), json={
            "name": "Kamal", "phone": "0779998888",
        })
        assert created.status_code == 201

        found = client.get('/api/customers/phone/0779998888', headers=actor_headers(cashier))
        assert found.json['data']['customer']['name'] == "Kamal"

        missing = client.get('/api/customers/phone/0770000000', headers=actor_headers(cashier))
        assert missing.status_code == 404

    def test_repair_status_flow(self, client, technician):
        created = client.post('/api/repairs', headers=actor_headers(technician), json={
            "customer": {"name": "Ruwan", "phone": "0711112222", "email": "ruwan@mail.test"},
            "device_type": "Phone",
            "issue_description": "Cracked screen",
        })
        assert created.status_code == 201
        repair_id = created.json['data']['repair']['id']

        response = client.patch(
            f'/api/repairs/{repair_id}/status', headers=actor_headers(technician), json={"status": "In Progress"},
        )
        assert response.status_code == 200
        data = response.json['data']
        assert data['repair']['status'] == "In Progress"
        assert data['notificationCreated'] is True
        assert data['emailSent'] is True

        illegal = client.patch(
            f'/api/repairs/{repair_id}/status', headers=actor_headers(technician), json={"status": "Pending"},
        )
        assert illegal.status_code == 400
        assert illegal.json['error'] == 'conflict'

        unread = client.get('/api/notifications/unread-count', headers=actor_headers(technician))
        assert unread.json['data']['count'] == 1

    def test_customer_update_and_delete(self, client, admin, cashier):
        customer_id = client.post('/api/customers', headers=actor_headers(cashier), json={
            "name": "Kamal", "phone": "0779998888",
        }).json['data']['customer']['id']

        updated = client.patch(
            f'/api/customers/{customer_id}', headers=actor_headers(cashier), json={"name": "Kamal Perera"},
        )
        assert updated.status_code == 200
        assert updated.json['data']['customer']['name'] == "Kamal Perera"

        assert client.delete(f'/api/customers/{customer_id}', headers=actor_headers(cashier)).status_code == 403
        assert client.delete(f'/api/customers/{customer_id}', headers=actor_headers(admin)).status_code == 204
        assert client.get(f'/api/customers/{customer_id}', headers=actor_headers(admin)).status_code == 404

    def test_customer_with_sales_cannot_be_deleted(self, client, admin, cashier, mouse):
        _purchase(client, admin, mouse)
        sale = _sale(client, cashier, [{"product_id": mouse.id, "quantity": 1}]).json['data']['sale']

        response = client.delete(f"/api/customers/{sale['customer_id']}", headers=actor_headers(admin))

        assert response.status_code == 400
        assert response.json['error'] == 'conflict'

    def test_supplier_get_and_update(self, client, admin, cashier, supplier):
        got = client.get(f'/api/suppliers/{supplier.id}', headers=actor_headers(cashier))
        assert got.json['data']['supplier']['name'] == "Tech Distributors"

        updated = client.patch(
            f'/api/suppliers/{supplier.id}', headers=actor_headers(admin), json={"address": "12 Main St, Kandy"},
        )
        assert updated.status_code == 200
        assert updated.json['data']['supplier']['address'] == "12 Main St, Kandy"

        assert client.patch(f'/api/suppliers/{supplier.id}', headers=actor_headers(cashier), json={}).status_code == 403
        assert client.get('/api/suppliers/404', headers=actor_headers(admin)).status_code == 404

    def test_category_rename_and_delete(self, client, admin, category, mouse):
        renamed = client.patch(
            '/api/products/categories/Accessories', headers=actor_headers(admin), json={"name": "Peripherals"},
        )
        assert renamed.status_code == 200
        assert renamed.json['data']['category']['name'] == "Peripherals"

        in_use = client.delete('/api/products/categories/Peripherals', headers=actor_headers(admin))
        assert in_use.status_code == 400
        assert in_use.json['error'] == 'conflict'

        missing = client.delete('/api/products/categories/Toys', headers=actor_headers(admin))
        assert missing.status_code == 404

    def test_repair_delete(self, client, admin, technician):
        repair_id = client.post('/api/repairs', headers=actor_headers(technician), json={
            "customer": {"name": "Ruwan", "phone": "0711112222"},
            "device_type": "Phone",
            "issue_description": "Battery drains",
        }).json['data']['repair']['id']

        assert client.delete(f'/api/repairs/{repair_id}', headers=actor_headers(technician)).status_code == 403
        assert client.delete(f'/api/repairs/{repair_id}', headers=actor_headers(admin)).status_code == 204
        assert client.get(f'/api/repairs/{repair_id}', headers=actor_headers(admin)).status_code == 404

    def test_health(self, client, db_session):
        response = client.get('/api/health')

        assert response.status_code == 200
        assert response.json['checks']['database']['status'] == 'healthy'
