import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from balance_policy import AllowOverdraft
from database import Base, atomic
from errors import (
    InvalidStateError,
    WriteConflictError,
    conflict_guard,
    is_write_conflict,
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
from recurrence import MonthlyExpenseGenerator
from schemas import PayMonthlyExpenseIn
from services import MonthlyExpenseService


def seed(engine) -> tuple[int, int]:
    with Session(engine) as session:
        category = Category(user_id=1, name="Housing", type=TransactionType.expense)
        account = Account(
            user_id=1,
            name="Checking",
            initial_balance_cents=100_000,
            current_balance_cents=100_000,
        )
        session.add_all([category, account])
        session.flush()
        session.add(
            RecurringExpense(
                user_id=1,
                concept="Rent",
                category_id=category.id,
                currency_code="ARS",
                is_active=True,
            )
        )
        session.commit()
        MonthlyExpenseGenerator(session).generate(11, 2024)
        instance_id = session.scalar(select(MonthlyExpenseInstance.id))
        return instance_id, account.id


def test_concurrent_pay_on_same_instance_has_single_winner(tmp_path, monkeypatch):
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(engine)
    instance_id, account_id = seed(engine)

    original = MonthlyExpenseService._get_owned_instance
    interleaved = []

    def load_then_lose_race(self, wanted_id):
        instance = original(self, wanted_id)
        if not interleaved:
            interleaved.append(True)
            # Another request pays the same instance after this one has read it.
            with Session(engine) as other:
                MonthlyExpenseService(other, balance_policy=AllowOverdraft()).pay(
                    wanted_id, PayMonthlyExpenseIn(amount_cents=40_000, account_id=account_id)
                )
        return instance

    monkeypatch.setattr(
        MonthlyExpenseService, "_get_owned_instance", load_then_lose_race
    )

    with Session(engine) as session:
        loser = MonthlyExpenseService(session, balance_policy=AllowOverdraft())
        with pytest.raises((WriteConflictError, InvalidStateError)):
            loser.pay(
                instance_id, PayMonthlyExpenseIn(amount_cents=25_000, account_id=account_id)
            )

    with Session(engine) as session:
        instance = session.get(MonthlyExpenseInstance, instance_id)
        assert instance.status == ExpenseStatus.paid
        assert instance.amount_cents == 40_000
        live = session.scalars(
            select(Transaction).where(Transaction.deleted_at.is_(None))
        ).all()
        assert [t.amount_cents for t in live] == [40_000]
        assert session.get(Account, account_id).current_balance_cents == 60_000


def test_stale_write_is_reported_as_retryable_conflict():
    with pytest.raises(WriteConflictError) as excinfo:
        with conflict_guard("pay:1"):
            raise StaleDataError("UPDATE statement matched 0 rows")

    assert excinfo.value.retryable is True
    assert excinfo.value.kind == "write_conflict"
    assert isinstance(excinfo.value.__cause__, StaleDataError)


def test_locked_database_is_a_write_conflict():
    locked = OperationalError("UPDATE accounts", {}, Exception("database is locked"))
    assert is_write_conflict(locked)

    with pytest.raises(WriteConflictError):
        with conflict_guard("undo:1"):
            raise locked


def test_other_operational_errors_pass_through():
    broken = OperationalError("SELECT 1", {}, Exception("no such table: accounts"))
    assert not is_write_conflict(broken)

    with pytest.raises(OperationalError):
        with conflict_guard("pay:1"):
            raise broken


def test_atomic_unit_rolls_back_on_error():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        with pytest.raises(RuntimeError):
            with atomic(session):
                session.add(
                    Account(
                        user_id=1,
                        name="Half",
                        initial_balance_cents=0,
                        current_balance_cents=0,
                    )
                )
                session.flush()
                raise RuntimeError("abort")

        assert session.scalars(select(Account)).all() == []

        with atomic(session):
            session.add(
                Account(
                    user_id=1, name="Whole", initial_balance_cents=0, current_balance_cents=0
                )
            )

    with Session(engine) as fresh:
        assert [a.name for a in fresh.scalars(select(Account))] == ["Whole"]
