from typing import Optional, Protocol

from config import get_settings
from errors import InsufficientBalanceError
from models import Account


class BalancePolicy(Protocol):
    def check_debit(self, account: Account, amount_cents: int) -> None:
        ...


class AllowOverdraft:
    """Cash accounts may go negative; nothing is ever vetoed."""

    def check_debit(self, account: Account, amount_cents: int) -> None:
        return None


class MinimumBalance:
    def __init__(self, minimum_cents: int = 0) -> None:
        self.minimum_cents = minimum_cents

    def check_debit(self, account: Account, amount_cents: int) -> None:
        if amount_cents <= 0:
            return
        balance = int(account.current_balance_cents)
        if balance - amount_cents < self.minimum_cents:
            raise InsufficientBalanceError(balance, amount_cents, self.minimum_cents)


def policy_from_settings(min_balance_cents: Optional[int] = None) -> BalancePolicy:
    if min_balance_cents is None:
        min_balance_cents = get_settings().min_balance_cents
    if min_balance_cents is None:
        return AllowOverdraft()
    return MinimumBalance(min_balance_cents)
