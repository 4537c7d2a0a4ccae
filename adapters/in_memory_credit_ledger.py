"""
In-memory credit ledger adapter for local development and tests.

NOT for production use.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from ports.credit_ledger import CreditLedgerPort  # noqa: F401 (runtime_checkable)
from shared_utils.logging_utils import ContextualLogger
from shared_utils.constants import LogScope


logger = ContextualLogger(scope=LogScope.ADAPTER)


class InMemoryCreditLedgerAdapter:
    """Dict-backed CreditLedgerPort; wallets exist only for seeded users."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._used_credits: Dict[str, int] = {}
        self._balances: Dict[str, int] = {}
        self.transactions: List[dict] = []

    def seed(self, user_id: str, used_credits: int = 0, balance_cents: Optional[int] = None) -> None:
        """Create or reset a user's credit record (and wallet if a balance is given)."""
        with self._lock:
            self._used_credits[user_id] = used_credits
            if balance_cents is not None:
                self._balances[user_id] = balance_cents

    def used_credits(self, user_id: str) -> int:
        with self._lock:
            return self._used_credits.get(user_id, 0)

    def balance(self, user_id: str) -> Optional[int]:
        with self._lock:
            return self._balances.get(user_id)

    # ------------------------------------------------------------------
    # CreditLedgerPort implementation
    # ------------------------------------------------------------------

    def decrement_used_credits(self, user_id: str, amount: int = 1) -> int:
        with self._lock:
            if user_id not in self._used_credits:
                return 0
            remaining = max(0, self._used_credits[user_id] - amount)
            self._used_credits[user_id] = remaining
        logger.info("memory_decrement_used_credits", user_id=user_id, used_credits=remaining)
        return remaining

    def adjust_wallet_balance(
        self,
        user_id: str,
        delta_cents: int,
        transaction_type: str,
        description: str,
    ) -> Optional[int]:
        with self._lock:
            if user_id not in self._balances:
                return None
            self._balances[user_id] += delta_cents
            balance = self._balances[user_id]
            self.transactions.append(
                {
                    "user_id": user_id,
                    "amount_cents": delta_cents,
                    "transaction_type": transaction_type,
                    "description": description,
                    "balance_after_cents": balance,
                }
            )
        return balance
