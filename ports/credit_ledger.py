"""Port interface for the credit ledger and wallet balances."""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class CreditLedgerPort(Protocol):
    """Credits consumed by meeting requests, plus the optional cash wallet."""

    def decrement_used_credits(self, user_id: str, amount: int = 1) -> int:
        """Give back *amount* consumed credits, floored at zero.

        Returns:
            The user's used-credit count after the update (0 when the user
            has no credit record).

        Raises:
            PersistenceError: If the ledger is unreachable.
        """
        ...

    def adjust_wallet_balance(
        self,
        user_id: str,
        delta_cents: int,
        transaction_type: str,
        description: str,
    ) -> Optional[int]:
        """Add *delta_cents* (negative to debit) and record a transaction.

        Returns:
            New balance, or None if the user has no wallet.
        """
        ...
