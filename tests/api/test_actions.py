"""Tests for POST /api/actions unified mutation endpoint."""

import pytest
from decimal import Decimal
from uuid import uuid4

from core.models import InvoiceEmailTrigger, UsedStockItem
from utils.tenant_context import tenant_context


def _action(client, domain, action, data):
    return client.post("/api/actions", json={"domain": domain, "action": action, "data": data})


def _error_code(response):
    return response.json()["error"]["code"]


# =============================================================================
# TEST DATA FIXTURES
# =============================================================================


@pytest.fixture
def sample_customer(make_customer):
    return make_customer()


@pytest.fixture
def sample_stock(make_stock_item):
    return make_stock_item(stock_quantity=Decimal("5"), sale_price=Decimal("10.00"))


@pytest.fixture
def sample_job(make_job, make_stock_item, sample_customer):
    used = make_stock_item(name="Gutter Guard", sale_price=Decimal("15"))
    return make_job(sample_customer, price=Decimal("100"), used_stock_items=[
        UsedStockItem(stock_id=used.id, quantity_used=Decimal("2")),
    ])


@pytest.fixture
def sent_invoice(client, sample_job):
    response = _action(client, "invoice", "create_from_job", {"job_id": str(sample_job.id)})
    assert response.status_code == 200
    return response.json()["data"]


# =============================================================================
# TENANT & VALIDATION
# =============================================================================


class TestActionsValidation:

    def test_missing_tenant_returns_401(self, untenanted_client):
        response = _action(untenanted_client, "invoice", "create_from_job", {"job_id": str(uuid4())})

        assert response.status_code == 401
        assert _error_code(response) == "TENANT_REQUIRED"

    def test_unknown_domain(self, client):
        response = _action(client, "customer", "create", {})

        assert response.status_code == 400
        assert _error_code(response) == "INVALID_REQUEST"
        assert "Valid domains" in response.json()["error"]["message"]

    def test_action_not_allowed(self, client):
        response = _action(client, "invoice", "delete", {"id": str(uuid4())})

        assert response.status_code == 400
        assert "not allowed" in response.json()["error"]["message"]

    def test_malformed_body(self, client):
        response = client.post("/api/actions", json={"domain": "invoice"})

        assert response.status_code == 422
        assert _error_code(response) == "VALIDATION_ERROR"


# =============================================================================
# INVOICE ACTIONS
# =============================================================================


class TestInvoiceCreateActions:

    def test_create_from_stock(self, client, sample_customer, sample_stock):
        response = _action(client, "invoice", "create_from_stock", {
            "customer_id": str(sample_customer.id),
            "items": [{"stock_id": str(sample_stock.id), "quantity": "2"}],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        invoice = body["data"]
        assert invoice["invoice_number"] == "INV-0001"
        assert invoice["status"] == "draft"
        assert Decimal(invoice["total"]) == Decimal("24")

    def test_create_from_stock_insufficient(self, client, sample_customer, sample_stock):
        response = _action(client, "invoice", "create_from_stock", {
            "customer_id": str(sample_customer.id),
            "items": [{"stock_id": str(sample_stock.id), "quantity": "6"}],
        })

        assert response.status_code == 409
        assert _error_code(response) == "INSUFFICIENT_STOCK"

    def test_create_from_stock_rejects_client_totals(self, client, sample_customer, sample_stock):
        response = _action(client, "invoice", "create_from_stock", {
            "customer_id": str(sample_customer.id),
            "items": [{"stock_id": str(sample_stock.id), "quantity": "1"}],
            "total": "1.00",
        })

        assert response.status_code == 422
        assert _error_code(response) == "VALIDATION_ERROR"

    def test_create_from_stock_empty_selection(self, client, sample_customer):
        response = _action(client, "invoice", "create_from_stock", {"customer_id": str(sample_customer.id)})

        assert response.status_code == 400

    def test_create_from_job(self, sent_invoice):
        assert sent_invoice["status"] == "sent"
        assert [Decimal(li["total_price"]) for li in sent_invoice["line_items"]] == [Decimal("100"), Decimal("30")]
        assert Decimal(sent_invoice["subtotal"]) == Decimal("130")

    def test_create_from_job_twice(self, client, sample_job, sent_invoice):
        response = _action(client, "invoice", "create_from_job", {"job_id": str(sample_job.id)})

        assert response.status_code == 409
        assert _error_code(response) == "DUPLICATE_INVOICE"

    def test_create_from_job_not_completed(self, client, make_job, sample_customer):
        job = make_job(sample_customer, status="Booked")

        response = _action(client, "invoice", "create_from_job", {"job_id": str(job.id)})

        assert response.status_code == 409
        assert _error_code(response) == "INVALID_JOB_STATE"

    def test_create_from_job_requires_job_id(self, client):
        response = _action(client, "invoice", "create_from_job", {})

        assert response.status_code == 400
        assert "'job_id' is required" in response.json()["error"]["message"]

    def test_create_from_unknown_job(self, client):
        response = _action(client, "invoice", "create_from_job", {"job_id": str(uuid4())})

        assert response.status_code == 404
        assert _error_code(response) == "NOT_FOUND"

    def test_patterned_customer_job_invoice_is_draft(self, client, make_customer, make_job, services, notifier):
        customer = make_customer(invoice_email_trigger=InvoiceEmailTrigger.WEEKLY)
        job = make_job(customer)

        response = _action(client, "invoice", "create_from_job", {"job_id": str(job.id)})

        assert response.json()["data"]["status"] == "draft"
        services["delivery"].shutdown(wait=True)
        notifier.send.assert_not_called()

    def test_on_completion_job_invoice_is_emailed(self, client, sent_invoice, services, notifier):
        services["delivery"].shutdown(wait=True)

        notifier.send.assert_called_once()
        assert notifier.send.call_args.args[2]["invoice_number"] == sent_invoice["invoice_number"]

    def test_missing_settings_is_configuration_error(self, app, make_customer, make_stock_item):
        from starlette.testclient import TestClient

        tenant = uuid4()
        customer = make_customer(tenant_id=tenant)
        item = make_stock_item(tenant_id=tenant)
        client = TestClient(app, raise_server_exceptions=False)

        response = client.post("/api/actions", headers={"X-Tenant-ID": str(tenant)}, json={
            "domain": "invoice",
            "action": "create_from_stock",
            "data": {"customer_id": str(customer.id), "items": [{"stock_id": str(item.id), "quantity": "1"}]},
        })

        assert response.status_code == 500
        assert _error_code(response) == "CONFIGURATION_ERROR"


class TestInvoicePaymentActions:

    def test_partial_payment(self, client, sent_invoice):
        response = _action(client, "invoice", "record_payment", {
            "id": sent_invoice["id"], "amount": "50", "method": "card", "reference": "ch_1",
        })

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "partially_paid"
        assert Decimal(data["balance_due"]) == Decimal("106")

    def test_overpayment(self, client, sent_invoice):
        response = _action(client, "invoice", "record_payment", {"id": sent_invoice["id"], "amount": "156.02"})

        assert response.status_code == 409
        assert _error_code(response) == "OVERPAYMENT_REJECTED"

    def test_already_paid(self, client, sent_invoice):
        _action(client, "invoice", "record_payment", {"id": sent_invoice["id"], "amount": "156"})

        response = _action(client, "invoice", "record_payment", {"id": sent_invoice["id"], "amount": "1"})

        assert response.status_code == 409
        assert _error_code(response) == "INVOICE_ALREADY_PAID"

    def test_cannot_write_derived_fields(self, client, sent_invoice):
        response = _action(client, "invoice", "record_payment", {
            "id": sent_invoice["id"], "amount": "1", "balance_due": "0",
        })

        assert response.status_code == 422

    def test_zero_amount(self, client, sent_invoice):
        response = _action(client, "invoice", "record_payment", {"id": sent_invoice["id"], "amount": "0"})

        assert response.status_code == 400
        assert _error_code(response) == "INVALID_REQUEST"


class TestInvoiceStatusActions:

    def test_void(self, client, sent_invoice):
        response = _action(client, "invoice", "set_status", {"id": sent_invoice["id"], "status": "void"})

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "void"

    def test_paid_cannot_be_set(self, client, sent_invoice):
        response = _action(client, "invoice", "set_status", {"id": sent_invoice["id"], "status": "paid"})

        assert response.status_code == 409
        assert _error_code(response) == "INVALID_STATUS_TRANSITION"

    def test_payment_on_void_invoice(self, client, sent_invoice):
        _action(client, "invoice", "set_status", {"id": sent_invoice["id"], "status": "void"})

        response = _action(client, "invoice", "record_payment", {"id": sent_invoice["id"], "amount": "5"})

        assert response.status_code == 409
        assert _error_code(response) == "INVOICE_CLOSED"


class TestInvoiceSendAction:

    def test_send(self, client, sample_customer, sample_stock, notifier):
        created = _action(client, "invoice", "create_from_stock", {
            "customer_id": str(sample_customer.id),
            "items": [{"stock_id": str(sample_stock.id), "quantity": "1"}],
        }).json()["data"]

        response = _action(client, "invoice", "send", {"id": created["id"]})

        assert response.status_code == 200
        assert response.json()["data"] == {"id": created["id"], "sent": True}

    def test_send_unknown(self, client):
        response = _action(client, "invoice", "send", {"id": str(uuid4())})

        assert response.status_code == 404


# =============================================================================
# PAYROLL & STOCK ACTIONS
# =============================================================================


class TestPayrollActions:

    def test_calculate(self, client, make_staff, make_time_record):
        from datetime import date

        staff = make_staff(pay_rate_type="Hourly", hourly_rate=Decimal("15"))
        make_time_record(staff, date(2025, 3, 3), 240)
        make_time_record(staff, date(2025, 3, 4), 180)

        response = _action(client, "payroll", "calculate", {
            "period_start": "2025-03-01", "period_end": "2025-03-31",
        })

        assert response.status_code == 200
        [payslip] = response.json()["data"]
        assert payslip["staff_id"] == str(staff.id)
        assert Decimal(payslip["gross_pay"]) == Decimal("105.00")

    def test_invalid_period(self, client):
        response = _action(client, "payroll", "calculate", {
            "period_start": "2025-03-31", "period_end": "2025-03-01",
        })

        assert response.status_code == 400


class TestStockActions:

    def test_return(self, client, sample_stock, store, tenant_id):
        response = _action(client, "stock", "return", {"stock_id": str(sample_stock.id), "quantity": "2"})

        assert response.status_code == 200
        assert Decimal(response.json()["data"]["stock_quantity"]) == Decimal("7")
        with tenant_context(tenant_id):
            with store.transaction() as txn:
                assert txn.get_stock_item(sample_stock.id).stock_quantity == Decimal("7")

    def test_return_other_tenants_item(self, client_b, sample_stock):
        response = _action(client_b, "stock", "return", {"stock_id": str(sample_stock.id), "quantity": "1"})

        assert response.status_code == 404
