"""In-memory credit ledger for local development and tests."""

from __future__ import annotations

import logging

from codereel.adapters.credits.base import CreditLedger
from codereel.core.logging_safety import safe_log_identifier

logger = logging.getLogger(__name__)


class InMemoryCreditLedger(CreditLedger):
    """Balances keyed by owner; unknown owners start with the trial allowance.

    ``reserve_credit`` never awaits between the balance check and the
    deduction, so concurrent submits on one event loop cannot overdraw.
    """

    def __init__(self, *, trial_credits: int = 0, balances: dict[str, int] | None = None) -> None:
        self._trial_credits = trial_credits
        self._balances: dict[str, int] = dict(balances or {})
        self.reservation_count = 0

    def balance_of(self, owner_id: str) -> int:
        return self._balances.get(owner_id, self._trial_credits)

    async def reserve_credit(self, owner_id: str, cost: int) -> int | None:
        if cost < 0:
            raise ValueError("cost must be non-negative")

        balance = self._balances.setdefault(owner_id, self._trial_credits)
        if balance < cost:
            logger.info(
                "credit.rejected owner_id=%s cost=%s balance=%s",
                safe_log_identifier(owner_id, prefix="oid"),
                cost,
                balance,
            )
            return None

        self._balances[owner_id] = balance - cost
        self.reservation_count += 1
        return self._balances[owner_id]


__all__ = ["InMemoryCreditLedger"]
