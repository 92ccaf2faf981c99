"""
Credit balance arithmetic.

A partner's credit balance is money already received (or owed back) that is
not attached to any debt. It can never go negative: spending or withdrawing
more than what is there is refused.
"""

import logging
from typing import Type

from pos_ledger.exceptions import InsufficientCreditError, InvalidAmountError
from pos_ledger.utils.parsing import round_amount

logger = logging.getLogger(__name__)


class CreditBalanceManager:
    """Guards the creditBalance >= 0 invariant for every adjustment."""

    @staticmethod
    def _validate(amount: float) -> float:
        if amount is None or amount < 0:
            raise InvalidAmountError(amount)
        return amount

    def credit(self, balance: float, amount: float) -> float:
        """Add funds (payment surplus, refund of credit-funded payment, credit note)."""
        amount = self._validate(amount)
        new_balance = round_amount(max(balance, 0.0) + amount)
        logger.info(f"Credit balance {balance:g} + {amount:g} = {new_balance:g}")
        return new_balance

    def ensure_available(self, balance: float, amount: float,
                         error_cls: Type[InsufficientCreditError] = InsufficientCreditError) -> None:
        if round_amount(amount) > round_amount(balance):
            logger.warning(f"Refused credit debit of {amount:g}, only {balance:g} available")
            raise error_cls(amount, balance)

    def debit(self, balance: float, amount: float,
              error_cls: Type[InsufficientCreditError] = InsufficientCreditError) -> float:
        """
        Withdraw funds.

        Args:
            balance: Current credit balance
            amount: Amount to withdraw
            error_cls: Error raised when the balance does not cover the amount;
                reversals pass CreditAlreadyUsedError

        Returns:
            The new balance, never below zero
        """
        amount = self._validate(amount)
        self.ensure_available(balance, amount, error_cls)
        new_balance = round_amount(max(balance - amount, 0.0))
        logger.info(f"Credit balance {balance:g} - {amount:g} = {new_balance:g}")
        return new_balance
