"""Read-only query selectors over ledger entries and audit events."""
