"""
Append-only guards for audit events and ledger entries.

Mapper ``before_update``/``before_delete`` hooks reject changes during
flush, before any SQL is emitted.  Audit events are frozen outright.  Ledger
entries accept changes only to the reconciliation columns listed in
``LEDGER_RECONCILIATION_FIELDS``.

``create_tables()`` installs the hooks.  Tamper tests remove them with
``unregister_immutability_listeners()`` and put them back afterwards.
"""

from sqlalchemy import event, inspect

from conflict_kernel.exceptions import ImmutabilityViolationError
from conflict_kernel.logging_config import get_logger
from conflict_kernel.models.audit_event import AuditEvent
from conflict_kernel.models.ledger_entry import LEDGER_RECONCILIATION_FIELDS, LedgerEntry

logger = get_logger("db.immutability")


def _reject(target, operation: str, reason: str, field: str | None = None) -> None:
    entity = type(target).__name__
    logger.error(
        "append_only_write_rejected",
        extra={
            "entity_type": entity,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(entity_type=entity, entity_id=str(target.id), reason=reason)


def _audit_event_update(mapper, connection, target):
    _reject(target, "UPDATE", "Audit events cannot be modified")


def _ledger_entry_update(mapper, connection, target):
    changed = [
        attr.key
        for attr in inspect(target).attrs
        if attr.key not in LEDGER_RECONCILIATION_FIELDS and attr.history.has_changes()
    ]
    if changed:
        _reject(target, "UPDATE", f"Ledger field '{changed[0]}' is immutable", field=changed[0])


def _delete(mapper, connection, target):
    _reject(target, "DELETE", f"{type(target).__name__} rows are append-only")


_HOOKS = (
    (AuditEvent, "before_update", _audit_event_update),
    (AuditEvent, "before_delete", _delete),
    (LedgerEntry, "before_update", _ledger_entry_update),
    (LedgerEntry, "before_delete", _delete),
)


def register_immutability_listeners() -> None:
    for model, name, hook in _HOOKS:
        if not event.contains(model, name, hook):
            event.listen(model, name, hook)


def unregister_immutability_listeners() -> None:
    for model, name, hook in _HOOKS:
        if event.contains(model, name, hook):
            event.remove(model, name, hook)
