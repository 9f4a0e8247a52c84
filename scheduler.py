import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import get_settings
from database import session_scope
from periods import current_month
from recurrence import GenerationResult, MonthlyExpenseGenerator


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


def run_generation(source: str = "manual") -> GenerationResult:
    period = current_month()
    logger.info(f"scheduler_run: source={source} period={period.month}/{period.year}")
    with session_scope() as session:
        result = MonthlyExpenseGenerator(session).generate(period.month, period.year)
    logger.info(f"scheduler_run: source={source} result={result.as_dict()}")
    return result


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.settings = settings
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> None:
        try:
            run_generation(source)
        except Exception:
            logger.exception(f"scheduler_run_failed: source={source}")

    def start(self) -> None:
        self._run_job("startup")

        trigger = CronTrigger(
            day=self.settings.generation_day,
            hour=self.settings.generation_hour,
            minute=self.settings.generation_minute,
        )
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["monthly"],
            id="monthly_expenses_generation",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = CronTrigger(hour=3, minute=15)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["daily_safety_net"],
            id="monthly_expenses_daily_safety",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info(
            "Scheduler started: monthly generation on day "
            f"{self.settings.generation_day} at "
            f"{self.settings.generation_hour:02d}:{self.settings.generation_minute:02d} "
            "with daily 03:15 safety net"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
