"""
Audit trail for ledger changes.

Every invoice, payslip and stock mutation is logged here, inside the same
transaction as the mutation itself. The audit log is:
- Append-only (entries never modified or deleted)
- Tenant-scoped (entries belong to the tenant of the transaction)
- Detailed (captures old and new values)
"""

from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from core.store import LedgerStore, LedgerTransaction
from utils.timezone import now_utc


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in all_keys:
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Audit trail writer.

    IMPORTANT: Always use model_dump(mode="json") when passing Pydantic models
    so Decimals, UUIDs and datetimes are stored as JSON-compatible strings.

    Usage:
        audit = AuditLogger(store)

        with store.transaction() as txn:
            txn.insert_invoice(invoice)
            audit.log_change(
                txn,
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.CREATE,
                changes={"created": invoice.model_dump(mode="json")}
            )

        history = audit.get_entity_history("invoice", invoice.id)
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def log_change(
        self,
        txn: LedgerTransaction,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
    ) -> None:
        """
        Log an entity change inside an open transaction.

        Args:
            txn: Transaction performing the mutation
            entity_type: Type of entity ("invoice", "payslip", "stock_item", ...)
            entity_id: ID of the entity
            action: The action performed (CREATE, UPDATE, DELETE)
            changes: The changes made (format depends on action)

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        """
        txn.insert_audit_entry({
            "id": uuid4(),
            "tenant_id": txn.tenant_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action.value,
            "changes": changes,
            "created_at": now_utc(),
        })

    def get_entity_history(
        self,
        entity_type: str,
        entity_id: UUID
    ) -> list[dict[str, Any]]:
        """
        Get full audit history for an entity.

        Returns:
            List of audit entries, newest first.
        """
        with self.store.transaction() as txn:
            return txn.list_audit_entries(entity_type, entity_id)
