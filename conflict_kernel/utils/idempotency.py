"""
Idempotency keys for gateway refunds and payouts.

The processor deduplicates on the key, so a retried request with the same key
cannot move money twice.  Keys are ``case_type:case_id:action:discriminator``;
the discriminator comes from committed state (the amount already refunded,
the number of earlier payouts) so a legitimate second refund gets a new key
while a retry after a failure reuses the old one.
"""

from uuid import UUID


def generate_idempotency_key(
    case_type: str,
    case_id: UUID | str,
    action: str,
    discriminator: int | str = 0,
) -> str:
    return ":".join((case_type, str(case_id), action, str(discriminator)))


def parse_idempotency_key(key: str) -> tuple[str, str, str, str]:
    """Inverse of :func:`generate_idempotency_key`; ValueError on a malformed key."""
    parts = key.split(":", 3)
    if len(parts) != 4:
        raise ValueError(f"Malformed idempotency key: {key!r}")
    case_type, case_id, action, discriminator = parts
    return case_type, case_id, action, discriminator
