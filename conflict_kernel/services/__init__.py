"""Kernel services: audit log, ledger, sequences and the unit of work."""
