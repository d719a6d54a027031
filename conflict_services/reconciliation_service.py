"""
ReconciliationJob -- pages through unreconciled ledger entries.

Contract:
    ``run()`` compares every unreconciled entry holding an external
    reference against the payment gateway, one page at a time, and
    commits after each page.  Returns the totals across pages.

Invariants enforced:
    - Only reconciliation fields are written (Ledger.reconcile).
    - A fetch error on one entry never stops the page or the run.
    - All pages of one run share a batch id.
    - Pages are keyset-ordered, so an entry left unreconciled in this run
      is not visited twice.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from conflict_config import ConflictPolicy
from conflict_kernel.domain.clock import Clock, SystemClock
from conflict_kernel.domain.ports import PaymentGateway
from conflict_kernel.logging_config import LogContext, get_logger
from conflict_kernel.services.ledger_service import (
    Ledger,
    ReconciliationResult,
    default_batch_id,
)

logger = get_logger("services.reconciliation")


class ReconciliationJob:
    def __init__(
        self,
        session: Session,
        gateway: PaymentGateway,
        clock: Clock | None = None,
        policy: ConflictPolicy | None = None,
    ):
        self._session = session
        self._gateway = gateway
        self._clock = clock or SystemClock()
        self._policy = policy or ConflictPolicy()
        self._ledger = Ledger(
            session, self._clock, self._policy.ledger.form_1099_threshold
        )

    def run(self, batch: str | None = None, max_pages: int | None = None) -> ReconciliationResult:
        batch = batch or default_batch_id(self._clock)
        page_size = self._policy.ledger.reconciliation_page_size
        matched = mismatched = errors = pages = 0
        discrepancies = []
        last = None

        with LogContext.bind(batch_id=batch):
            logger.info("reconciliation_started", extra={"page_size": page_size})
            while max_pages is None or pages < max_pages:
                page = self._ledger.unreconciled_page(page_size, after=last)
                if not page:
                    break
                last = page[-1]
                try:
                    result = self._ledger.reconcile(self._gateway, batch=batch, entries=page)
                    self._session.commit()
                except Exception:
                    self._session.rollback()
                    logger.exception("reconciliation_page_failed", extra={"page": pages})
                    raise
                pages += 1
                matched += result.matched
                mismatched += result.mismatched
                errors += result.errors
                discrepancies.extend(result.discrepancies)
                logger.info(
                    "reconciliation_page_completed",
                    extra={
                        "page": pages,
                        "matched": result.matched,
                        "mismatched": result.mismatched,
                        "errors": result.errors,
                    },
                )

            total = ReconciliationResult(
                batch=batch,
                matched=matched,
                mismatched=mismatched,
                errors=errors,
                discrepancies=tuple(discrepancies),
            )
            logger.info(
                "reconciliation_completed",
                extra={
                    "pages": pages,
                    "processed": total.processed,
                    "matched": matched,
                    "mismatched": mismatched,
                    "errors": errors,
                },
            )
        return total
