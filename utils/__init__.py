"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, start_of_day_utc, end_of_day_utc
from utils.tenant_context import (
    get_current_tenant_id,
    set_current_tenant_id,
    clear_current_tenant_id,
    tenant_context,
)
