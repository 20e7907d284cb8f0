"""Propagate tenant identity through the call stack using contextvars."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_tenant_id: ContextVar[UUID | None] = ContextVar("current_tenant_id", default=None)


def get_current_tenant_id() -> UUID:
    """
    Get current tenant ID from context.

    Raises RuntimeError if no tenant context is set. Every ledger read and
    write is tenant-scoped, so reaching this without a tenant is a bug.
    """
    tenant_id = _current_tenant_id.get()
    if tenant_id is None:
        raise RuntimeError(
            "No tenant context set. This usually means you're calling "
            "tenant-scoped code outside of a tenant-bound request or job."
        )
    return tenant_id


def set_current_tenant_id(tenant_id: UUID) -> None:
    """
    Set current tenant ID in context.

    Called by TenantContextMiddleware once the upstream gateway has
    resolved the tenant for the request.
    """
    _current_tenant_id.set(tenant_id)


def clear_current_tenant_id() -> None:
    """
    Clear tenant context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_tenant_id.set(None)


@contextmanager
def tenant_context(tenant_id: UUID):
    """
    Context manager for temporarily binding a tenant.

    Useful for:
    - Tests
    - Scheduled sweeps that iterate over tenants
    - Background delivery of invoice emails

    Example:
        with tenant_context(company_id):
            invoice = invoice_service.get_by_id(invoice_id)
    """
    previous = _current_tenant_id.get()
    set_current_tenant_id(tenant_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_tenant_id()
        else:
            set_current_tenant_id(previous)
