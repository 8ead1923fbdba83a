"""
Penalty resolution.

Penalties are created PENDING by the lifecycle. Charging them is the job of an
external worker that calls the payment gateway; administrators may dismiss
them instead. Both moves are final.
"""

import logging
from typing import List, Optional, Protocol

from models import CancellationPenalty, PenaltyStatus
from services.errors import InvalidStateError, NotFoundError
from services.request_store import RequestStore
from utils.datetime_utils import NowFn, utc_now

logger = logging.getLogger(__name__)


class PaymentGate(Protocol):
    def charge_penalty(self, penalty_id: str) -> None:
        ...


class PenaltyService:
    """Moves penalties from PENDING to CHARGED or DISMISSED."""

    def __init__(self, store: RequestStore, now_fn: NowFn = utc_now):
        self.store = store
        self.now_fn = now_fn

    def list_penalties(
        self, booking_id: Optional[str] = None, status: Optional[PenaltyStatus] = None
    ) -> List[CancellationPenalty]:
        with self.store.transaction() as db:
            return self.store.list_penalties(db, booking_id=booking_id, status=status)

    def _resolve(self, penalty_id: str, new_status: PenaltyStatus) -> CancellationPenalty:
        with self.store.transaction() as db:
            penalty = self.store.get_penalty(db, penalty_id, for_update=True)
            if penalty is None:
                raise NotFoundError("Penalty not found", penalty_id)
            if penalty.status != PenaltyStatus.PENDING:
                raise InvalidStateError(
                    f"Penalty is already {penalty.status.value}", penalty_id
                )
            penalty.status = new_status
            penalty.resolved_at = self.now_fn()
        logger.info(f"Penalty {penalty_id} marked {new_status.value}")
        return penalty

    def mark_charged(self, penalty_id: str) -> CancellationPenalty:
        return self._resolve(penalty_id, PenaltyStatus.CHARGED)

    def dismiss(self, penalty_id: str) -> CancellationPenalty:
        return self._resolve(penalty_id, PenaltyStatus.DISMISSED)

    def charge_pending(self, gate: PaymentGate) -> int:
        """
        Charge every PENDING penalty through the payment gateway.

        Entry point for the external payment worker. A failed charge is logged
        and leaves the penalty PENDING for the next run.

        Returns:
            Number of penalties charged
        """
        charged = 0
        for penalty in self.list_penalties(status=PenaltyStatus.PENDING):
            try:
                gate.charge_penalty(penalty.id)
            except Exception as e:
                logger.error(f"Failed to charge penalty {penalty.id}: {e}", exc_info=True)
                continue
            self.mark_charged(penalty.id)
            charged += 1

        if charged:
            logger.info(f"Charged {charged} pending penalties")
        return charged
