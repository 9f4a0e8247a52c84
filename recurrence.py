import logging
from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import atomic
from models import ExpenseStatus, MonthlyExpenseInstance, RecurringExpense
from periods import MonthPeriod, resolve_month


logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    created: int
    skipped: int
    errors: int
    month: int
    year: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class _TemplateSnapshot:
    id: int
    user_id: int
    concept: str
    category_id: int


def list_active_templates(
    session: Session, user_id: Optional[int] = None
) -> list[RecurringExpense]:
    stmt = (
        select(RecurringExpense)
        .where(RecurringExpense.is_active.is_(True))
        .order_by(RecurringExpense.user_id, RecurringExpense.id)
    )
    if user_id is not None:
        stmt = stmt.where(RecurringExpense.user_id == user_id)
    return session.scalars(stmt).all()


class MonthlyExpenseGenerator:
    """Instantiates one monthly expense per active template and period.

    Every template is committed on its own so one failing template never rolls back
    the instances already created for the others. The unique constraint on
    (recurring_expense_id, month, year) makes concurrent runs safe. The generator
    owns the session's transactions: uncommitted caller work is discarded, never
    committed.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def generate(
        self, month: int, year: int, user_id: Optional[int] = None
    ) -> GenerationResult:
        period = resolve_month(month, year)
        scope = "all" if user_id is None else f"user:{user_id}"
        templates = [
            _TemplateSnapshot(t.id, t.user_id, t.concept, t.category_id)
            for t in list_active_templates(self.session, user_id)
        ]
        # End the read transaction without committing anything the caller left pending.
        self.session.rollback()
        logger.info(
            f"generation_start: period={period.label} scope={scope} "
            f"templates={len(templates)}"
        )

        result = GenerationResult(
            created=0, skipped=0, errors=0, month=period.month, year=period.year
        )
        for template in templates:
            try:
                created = self._generate_one(template, period)
            except Exception:
                logger.exception(
                    f"generation_error: template={template.id} "
                    f"concept={template.concept!r} period={period.label}"
                )
                result.errors += 1
                continue
            if created:
                result.created += 1
            else:
                result.skipped += 1

        logger.info(
            f"generation_done: period={period.label} scope={scope} "
            f"created={result.created} skipped={result.skipped} errors={result.errors}"
        )
        return result

    def _generate_one(self, template: _TemplateSnapshot, period: MonthPeriod) -> bool:
        try:
            with atomic(self.session):
                if self._instance_exists(template.id, period):
                    logger.debug(
                        f"generation_skip: template={template.id} period={period.label}"
                    )
                    return False
                previous_amount = self._previous_paid_amount(template.id, period)
                instance = MonthlyExpenseInstance(
                    recurring_expense_id=template.id,
                    user_id=template.user_id,
                    month=period.month,
                    year=period.year,
                    concept=template.concept,
                    category_id=template.category_id,
                    amount_cents=0,
                    previous_amount_cents=previous_amount,
                    status=ExpenseStatus.pending,
                )
                self.session.add(instance)
                self.session.flush()
                logger.info(
                    f"generation_created: instance={instance.id} template={template.id} "
                    f"period={period.label} previous_amount_cents={previous_amount}"
                )
                return True
        except IntegrityError:
            # Another run inserted the same period first.
            if self._instance_exists(template.id, period):
                self.session.rollback()
                logger.info(
                    f"generation_race: template={template.id} period={period.label}"
                )
                return False
            raise

    def _instance_exists(self, recurring_expense_id: int, period: MonthPeriod) -> bool:
        stmt = (
            select(MonthlyExpenseInstance.id)
            .where(
                MonthlyExpenseInstance.recurring_expense_id == recurring_expense_id,
                MonthlyExpenseInstance.month == period.month,
                MonthlyExpenseInstance.year == period.year,
            )
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def _previous_paid_amount(
        self, recurring_expense_id: int, period: MonthPeriod
    ) -> int:
        previous = period.previous()
        stmt = (
            select(MonthlyExpenseInstance.amount_cents)
            .where(
                MonthlyExpenseInstance.recurring_expense_id == recurring_expense_id,
                MonthlyExpenseInstance.month == previous.month,
                MonthlyExpenseInstance.year == previous.year,
                MonthlyExpenseInstance.status == ExpenseStatus.paid,
            )
            .limit(1)
        )
        amount = self.session.execute(stmt).scalar_one_or_none()
        return int(amount or 0)
