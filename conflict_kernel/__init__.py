"""
conflict_kernel -- ledger, audit log and shared primitives of the conflict
resolution engine.

Layers (inner to outer): domain -> db -> models -> selectors -> services.
The kernel never imports conflict_modules or conflict_services, except for
the ORM registry consulted when creating tables.
"""

__version__ = "0.1.0"
