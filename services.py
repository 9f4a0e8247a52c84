from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session, joinedload

from balance_policy import BalancePolicy, policy_from_settings
from database import atomic
from errors import (
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    conflict_guard,
)
from models import (
    Account,
    Category,
    ExpenseStatus,
    MonthlyExpenseInstance,
    RecurringExpense,
    Transaction,
    TransactionType,
)
from periods import current_month, local_now, resolve_month
from recurrence import GenerationResult, MonthlyExpenseGenerator, list_active_templates
from schemas import (
    PayMonthlyExpenseIn,
    RecurringExpenseIn,
    RecurringExpenseUpdate,
    UpdateMonthlyExpenseIn,
)


logger = logging.getLogger(__name__)


def get_current_user_id() -> int:
    return 1


class AccountLedger:
    """Balance access for the payment operations.

    Methods never commit; they run inside the caller's unit of work.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _locked_account(self, account_id: int, active_only: bool) -> Optional[Account]:
        stmt = (
            select(Account)
            .where(Account.id == account_id, Account.user_id == self.user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if active_only:
            stmt = stmt.where(Account.is_active.is_(True))
        return self.session.scalar(stmt)

    def find_active_account(self, account_id: int) -> Account:
        account = self._locked_account(account_id, active_only=True)
        if not account:
            raise NotFoundError("Account not found or inactive")
        return account

    def get_account(self, account_id: int) -> Account:
        account = self._locked_account(account_id, active_only=False)
        if not account:
            raise NotFoundError("Account not found")
        return account

    def adjust_balance(self, account_id: int, delta_cents: int) -> None:
        if delta_cents == 0:
            return
        result = self.session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(current_balance_cents=Account.current_balance_cents + delta_cents)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise NotFoundError("Account not found")

    def ledger_balance(self, account_id: int) -> int:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise NotFoundError("Account not found")
        signed = func.coalesce(
            func.sum(
                case(
                    (
                        Transaction.type == TransactionType.income,
                        Transaction.amount_cents,
                    ),
                    else_=-Transaction.amount_cents,
                )
            ),
            0,
        )
        total = self.session.execute(
            select(signed).where(
                Transaction.account_id == account_id,
                Transaction.deleted_at.is_(None),
            )
        ).scalar_one()
        return int(account.initial_balance_cents) + int(total or 0)


class RecurringExpenseService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _expense_category(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if (
            not category
            or category.user_id != self.user_id
            or category.archived_at is not None
        ):
            raise NotFoundError("Category not found")
        if category.type != TransactionType.expense:
            raise InvalidInputError("Category must be an expense category")
        return category

    def get(self, recurring_expense_id: int) -> RecurringExpense:
        template = self.session.get(RecurringExpense, recurring_expense_id)
        if not template or template.user_id != self.user_id:
            raise NotFoundError("Recurring expense not found")
        return template

    def list(self, active_only: bool = False) -> list[RecurringExpense]:
        stmt = (
            select(RecurringExpense)
            .options(joinedload(RecurringExpense.category))
            .where(RecurringExpense.user_id == self.user_id)
            .order_by(RecurringExpense.created_at.desc(), RecurringExpense.id.desc())
        )
        if active_only:
            stmt = stmt.where(RecurringExpense.is_active.is_(True))
        return self.session.scalars(stmt).all()

    def list_active_templates(self) -> list[RecurringExpense]:
        return list_active_templates(self.session, self.user_id)

    def create(self, data: RecurringExpenseIn) -> RecurringExpense:
        self._expense_category(data.category_id)
        template = RecurringExpense(
            user_id=self.user_id,
            concept=data.concept,
            category_id=data.category_id,
            currency_code=data.currency_code,
            due_day=data.due_day,
            is_active=True,
        )
        self.session.add(template)
        self.session.commit()
        self.session.refresh(template)
        return template

    def update(
        self, recurring_expense_id: int, data: RecurringExpenseUpdate
    ) -> RecurringExpense:
        template = self.get(recurring_expense_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("category_id") not in (None, template.category_id):
            self._expense_category(changes["category_id"])
        for field, value in changes.items():
            if value is None and field != "due_day":
                continue
            setattr(template, field, value)
        self.session.commit()
        self.session.refresh(template)
        return template

    def deactivate(self, recurring_expense_id: int) -> RecurringExpense:
        template = self.get(recurring_expense_id)
        template.is_active = False
        self.session.commit()
        return template


class MonthlyExpenseService:
    """Monthly instances and the pay / edit / undo transitions.

    Each transition reads and writes the instance, the account balance and the ledger
    transaction inside a single ``atomic`` unit; storage write conflicts surface as
    ``WriteConflictError``.
    """

    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        balance_policy: Optional[BalancePolicy] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.ledger = AccountLedger(session, self.user_id)
        self.balance_policy = balance_policy or policy_from_settings()

    def list(
        self, month: int, year: int, status: Optional[ExpenseStatus] = None
    ) -> list[MonthlyExpenseInstance]:
        period = resolve_month(month, year)
        pending_first = case(
            (MonthlyExpenseInstance.status == ExpenseStatus.pending, 0), else_=1
        )
        stmt = (
            select(MonthlyExpenseInstance)
            .options(
                joinedload(MonthlyExpenseInstance.category),
                joinedload(MonthlyExpenseInstance.account),
                joinedload(MonthlyExpenseInstance.recurring_expense),
            )
            .where(
                MonthlyExpenseInstance.user_id == self.user_id,
                MonthlyExpenseInstance.month == period.month,
                MonthlyExpenseInstance.year == period.year,
            )
            .order_by(pending_first, MonthlyExpenseInstance.concept)
        )
        if status:
            stmt = stmt.where(MonthlyExpenseInstance.status == status)
        return self.session.scalars(stmt).all()

    def list_current(
        self, status: Optional[ExpenseStatus] = None
    ) -> list[MonthlyExpenseInstance]:
        period = current_month()
        return self.list(period.month, period.year, status)

    def generate(self, month: int, year: int) -> GenerationResult:
        return MonthlyExpenseGenerator(self.session).generate(
            month, year, user_id=self.user_id
        )

    def _get_owned_instance(self, instance_id: int) -> MonthlyExpenseInstance:
        stmt = (
            select(MonthlyExpenseInstance)
            .where(
                MonthlyExpenseInstance.id == instance_id,
                MonthlyExpenseInstance.user_id == self.user_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        instance = self.session.scalar(stmt)
        if not instance:
            raise NotFoundError("Monthly expense not found")
        return instance

    def _linked_transaction(
        self, instance: MonthlyExpenseInstance
    ) -> Optional[Transaction]:
        if instance.transaction_id is None:
            return None
        return self.session.get(Transaction, instance.transaction_id)

    def pay(
        self, instance_id: int, data: PayMonthlyExpenseIn
    ) -> tuple[MonthlyExpenseInstance, Transaction]:
        paid_date = data.paid_date or local_now()
        with conflict_guard(f"pay:{instance_id}"), atomic(self.session):
            instance = self._get_owned_instance(instance_id)
            if instance.status == ExpenseStatus.paid:
                raise InvalidStateError("Monthly expense is already paid")
            account = self.ledger.find_active_account(data.account_id)
            self.balance_policy.check_debit(account, data.amount_cents)

            txn = Transaction(
                user_id=self.user_id,
                account_id=account.id,
                category_id=instance.category_id,
                type=TransactionType.expense,
                amount_cents=data.amount_cents,
                concept=instance.concept,
                date=paid_date.date(),
                occurred_at=paid_date,
                note=data.notes,
            )
            self.session.add(txn)
            self.session.flush()

            instance.status = ExpenseStatus.paid
            instance.amount_cents = data.amount_cents
            instance.account_id = account.id
            instance.paid_date = paid_date
            instance.notes = data.notes
            instance.transaction = txn
            self.session.flush()

            self.ledger.adjust_balance(account.id, -data.amount_cents)

        logger.info(
            f"monthly_expense_paid: instance={instance.id} account={instance.account_id} "
            f"amount_cents={instance.amount_cents} transaction={txn.id}"
        )
        return instance, txn

    def update_paid(
        self, instance_id: int, data: UpdateMonthlyExpenseIn
    ) -> MonthlyExpenseInstance:
        changes = data.model_dump(exclude_unset=True)
        with conflict_guard(f"update:{instance_id}"), atomic(self.session):
            instance = self._get_owned_instance(instance_id)
            if instance.status != ExpenseStatus.paid:
                raise InvalidStateError("Only paid monthly expenses can be edited")

            old_account_id = instance.account_id
            old_amount = int(instance.amount_cents)
            new_account_id = changes.get("account_id") or old_account_id
            new_amount = changes.get("amount_cents") or old_amount
            paid_date = changes.get("paid_date") or instance.paid_date
            notes = changes["notes"] if "notes" in changes else instance.notes

            if new_account_id != old_account_id:
                new_account = self.ledger.find_active_account(new_account_id)
                self.balance_policy.check_debit(new_account, new_amount)
                self.ledger.adjust_balance(old_account_id, old_amount)
                self.ledger.adjust_balance(new_account_id, -new_amount)
            elif new_amount != old_amount:
                if new_amount > old_amount:
                    account = self.ledger.get_account(old_account_id)
                    self.balance_policy.check_debit(account, new_amount - old_amount)
                self.ledger.adjust_balance(old_account_id, old_amount - new_amount)

            txn = self._linked_transaction(instance)
            if txn is None or txn.deleted_at is not None:
                txn = Transaction(
                    user_id=self.user_id,
                    category_id=instance.category_id,
                    type=TransactionType.expense,
                    concept=instance.concept,
                )
                self.session.add(txn)
            txn.account_id = new_account_id
            txn.amount_cents = new_amount
            txn.date = paid_date.date()
            txn.occurred_at = paid_date
            txn.note = notes
            self.session.flush()

            instance.account_id = new_account_id
            instance.amount_cents = new_amount
            instance.paid_date = paid_date
            instance.notes = notes
            instance.transaction = txn
            self.session.flush()

        logger.info(
            f"monthly_expense_updated: instance={instance.id} "
            f"account={old_account_id}->{new_account_id} "
            f"amount_cents={old_amount}->{new_amount}"
        )
        return instance

    def undo_payment(self, instance_id: int) -> MonthlyExpenseInstance:
        with conflict_guard(f"undo:{instance_id}"), atomic(self.session):
            instance = self._get_owned_instance(instance_id)
            if instance.status != ExpenseStatus.paid:
                raise InvalidStateError("Only paid monthly expenses can be undone")

            account_id = instance.account_id
            amount = int(instance.amount_cents)
            txn = self._linked_transaction(instance)
            if txn is not None and txn.deleted_at is None:
                txn.deleted_at = datetime.utcnow()

            instance.status = ExpenseStatus.pending
            instance.amount_cents = 0
            instance.account_id = None
            instance.paid_date = None
            instance.notes = None
            instance.transaction = None
            self.session.flush()

            if account_id is not None:
                self.ledger.adjust_balance(account_id, amount)

        logger.info(
            f"monthly_expense_undone: instance={instance.id} account={account_id} "
            f"refunded_cents={amount}"
        )
        return instance
