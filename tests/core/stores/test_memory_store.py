"""Tests for MemoryLedgerStore transactions."""

import pytest
from decimal import Decimal
from uuid import uuid4

from core.exceptions import DuplicateInvoiceError
from core.models import JobStatus
from utils.tenant_context import tenant_context


class TestTransaction:
    """Commit and rollback semantics."""

    def test_commit_on_normal_exit(self, store, as_tenant, make_stock_item):
        item = make_stock_item()
        with store.transaction() as txn:
            txn.set_stock_quantity(item.id, Decimal("1"))

        with store.transaction() as txn:
            assert txn.get_stock_item(item.id).stock_quantity == Decimal("1")

    def test_rollback_on_exception(self, store, as_tenant, make_stock_item, make_customer, make_job):
        item = make_stock_item()
        job = make_job(make_customer())

        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                txn.set_stock_quantity(item.id, Decimal("0"))
                txn.set_job_status(job.id, JobStatus.INVOICED)
                txn.set_next_invoice_seq(50)
                raise RuntimeError("abort")

        with store.transaction() as txn:
            assert txn.get_stock_item(item.id).stock_quantity == Decimal("5")
            assert txn.get_job(job.id).status == JobStatus.COMPLETED
            assert txn.get_settings().next_invoice_seq == 1

    def test_returned_models_are_copies(self, store, as_tenant, make_customer):
        customer = make_customer()
        with store.transaction() as txn:
            fetched = txn.get_customer(customer.id)
            fetched.name = "Changed"

        with store.transaction() as txn:
            assert txn.get_customer(customer.id).name == "Acme Cleaning"

    def test_requires_tenant_context(self, store):
        with pytest.raises(RuntimeError, match="No tenant context"):
            with store.transaction():
                pass


class TestIsolation:
    """Each tenant sees only its own records."""

    def test_records_scoped_to_tenant(self, store, tenant_id, tenant_b_id, make_customer, make_stock_item):
        customer = make_customer()
        item = make_stock_item()

        with tenant_context(tenant_b_id):
            with store.transaction() as txn:
                assert txn.get_customer(customer.id) is None
                assert txn.get_stock_item(item.id) is None
                assert txn.list_customers() == []
                assert txn.get_settings().invoice_prefix == "B-"

        with tenant_context(tenant_id):
            with store.transaction() as txn:
                assert txn.get_customer(customer.id) == customer


class TestInvoiceConstraints:
    """Uniqueness enforced on insert."""

    def test_second_invoice_for_job_rejected(self, as_tenant, store, invoice_service, make_customer, make_job):
        invoice = invoice_service.create_job_invoice(make_job(make_customer()).id)
        duplicate = invoice.model_copy(update={"id": uuid4(), "invoice_number": "INV-9999"})

        with pytest.raises(DuplicateInvoiceError):
            with store.transaction() as txn:
                txn.insert_invoice(duplicate)

    def test_invoice_number_unique(self, as_tenant, store, invoice_service, make_customer, make_job):
        invoice = invoice_service.create_job_invoice(make_job(make_customer()).id)
        clash = invoice.model_copy(update={"id": uuid4(), "job_id": None})

        with pytest.raises(ValueError, match="already exists"):
            with store.transaction() as txn:
                txn.insert_invoice(clash)


class TestPayslipImmutability:
    """Committed payslips cannot be changed through returned objects."""

    def test_mutating_returned_payslip_leaves_stored_copy(self, as_tenant, payroll_service, make_staff, make_time_record):
        from datetime import date
        from core.models import PayLine

        staff = make_staff(pay_rate_type="Hourly", hourly_rate=Decimal("15"))
        make_time_record(staff, date(2025, 3, 3), 240)
        [slip] = payroll_service.calculate_payroll(date(2025, 3, 1), date(2025, 3, 31))
        breakdown = dict(slip.pay_details_breakdown)
        earnings_count = len(slip.earnings)

        slip.pay_details_breakdown["total_minutes"] = 99999
        slip.earnings.append(PayLine(description="Bonus", amount=Decimal("500")))

        stored = payroll_service.get_payslip(slip.id)
        assert stored.pay_details_breakdown == breakdown
        assert len(stored.earnings) == earnings_count

    def test_mutating_listed_payslip_leaves_stored_copy(self, store, as_tenant, payroll_service, make_staff):
        from datetime import date

        staff = make_staff(pay_rate_type="Hourly", hourly_rate=Decimal("15"))
        [slip] = payroll_service.calculate_payroll(date(2025, 3, 1), date(2025, 3, 31))

        with store.transaction() as txn:
            txn.list_payslips(staff_ids=[staff.id])[0].deductions.clear()

        assert len(payroll_service.get_payslip(slip.id).deductions) == len(slip.deductions)
        assert slip.deductions
