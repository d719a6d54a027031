"""ORM models owned by the kernel."""

from conflict_kernel.models.audit_event import AuditEvent
from conflict_kernel.models.ledger_entry import LEDGER_RECONCILIATION_FIELDS, LedgerEntry
from conflict_kernel.models.marketplace import AppointmentModel, UserModel

__all__ = [
    "AppointmentModel",
    "AuditEvent",
    "LEDGER_RECONCILIATION_FIELDS",
    "LedgerEntry",
    "UserModel",
]
