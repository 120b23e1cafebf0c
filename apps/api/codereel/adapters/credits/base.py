"""Credit ledger interface."""

from abc import ABC, abstractmethod


class CreditLedger(ABC):
    """Atomically reserves a fixed cost against an owner's balance."""

    @abstractmethod
    async def reserve_credit(self, owner_id: str, cost: int) -> int | None:
        """Deduct ``cost`` and return the remaining balance, or ``None`` when funds are insufficient."""


__all__ = ["CreditLedger"]
