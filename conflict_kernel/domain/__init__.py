"""Pure domain layer: value objects, ledger rules, scrutiny derivation, ports."""
