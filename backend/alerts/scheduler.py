"""
Alert Scheduler — runs the alert pipeline on a fixed interval with retry.

State machine per tick:
  IDLE -> RUNNING -> success -> IDLE
                  -> failure -> RETRY_WAIT -> RUNNING ...
                  -> retries exhausted -> IDLE (logged, admins notified)

Each tick makes up to `max_attempts` attempts. The delay before attempt
n + 1 is min(base_delay_ms * 2^(n - 1), max_delay_ms). A tick that starts
while another is still running in this process is skipped. A running tick
is never cancelled; stop() waits for it to finish.
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from alerts.engine import AlertChecker, Clock
from alerts.rules import utcnow
from core.config import Settings, get_settings
from db.alert_store import AlertStore

if TYPE_CHECKING:
    from alerts.email import AlertNotifier

logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[Any]]


def backoff_delay_ms(attempt: int, base_delay_ms: int = 1000, max_delay_ms: int = 30000) -> int:
    """Delay after failed attempt `attempt` (1-based), before the next one."""
    if attempt < 1:
        raise ValueError("attempt is 1-based")
    return min(base_delay_ms * 2 ** (attempt - 1), max_delay_ms)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.alert_retry_max_attempts,
            base_delay_ms=settings.alert_retry_base_delay_ms,
            max_delay_ms=settings.alert_retry_max_delay_ms,
        )

    def delay_ms(self, attempt: int) -> int:
        return backoff_delay_ms(attempt, self.base_delay_ms, self.max_delay_ms)

    def wait(self) -> wait_exponential:
        return wait_exponential(multiplier=self.base_delay_ms / 1000, max=self.max_delay_ms / 1000)


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    RETRY_WAIT = "retry_wait"


class AlertScheduler:
    """
    Owns the timer, retry loop and overlap guard for alert checks.

    session_factory, clock, sleep and notifier are injectable so tiering and
    backoff can be tested without real timers or a real database.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | Callable[[], Any],
        *,
        notifier: AlertNotifier | None = None,
        clock: Clock = utcnow,
        policy: RetryPolicy | None = None,
        interval_seconds: float | None = None,
        sleep: Sleep = asyncio.sleep,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.session_factory = session_factory
        self.notifier = notifier
        self.clock = clock
        self.policy = policy or RetryPolicy.from_settings(settings)
        self.interval_seconds = interval_seconds or settings.alert_check_interval_seconds
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.state = SchedulerState.IDLE
        self.last_result: dict[str, Any] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_attempt(self) -> dict[str, int]:
        async with self.session_factory() as db:
            checker = AlertChecker(AlertStore(db), notifier=self.notifier, clock=self.clock)
            return await checker.run_pipeline()

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        self.state = SchedulerState.RETRY_WAIT
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "alerts.scheduler.retry",
            attempt=retry_state.attempt_number,
            max_attempts=self.policy.max_attempts,
            delay_ms=int(delay * 1000),
            error=str(exc),
        )

    async def run_once(self) -> dict[str, Any]:
        """Run one tick. Never raises."""
        if self._lock.locked():
            logger.warning("alerts.scheduler.overlap_skipped")
            return {"status": "skipped", "reason": "already_running"}

        async with self._lock:
            started_at = self.clock()
            attempts = 0
            logger.info("alerts.scheduler.started", started_at=started_at.isoformat())
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.policy.max_attempts),
                    wait=self.policy.wait(),
                    sleep=self._sleep,
                    before_sleep=self._before_sleep,
                    reraise=True,
                ):
                    with attempt:
                        attempts = attempt.retry_state.attempt_number
                        self.state = SchedulerState.RUNNING
                        totals = await self._run_attempt()
            except Exception as exc:  # noqa: BLE001
                result = {"status": "failed", "attempts": attempts, "error": str(exc)}
                logger.error("alerts.scheduler.exhausted", attempts=attempts, error=str(exc), exc_info=True)
                await self._notify_exhausted(attempts, exc)
            else:
                result = {"status": "success", "attempts": attempts, **totals}
                logger.info("alerts.scheduler.completed", **result)
            finally:
                self.state = SchedulerState.IDLE

        self.last_result = result
        return result

    async def _notify_exhausted(self, attempts: int, exc: BaseException) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify_admins(
                "Scheduled Alert Checks Failed",
                f"Alert checks failed after {attempts} attempts: {exc}",
                "high",
            )
        except Exception as notify_exc:  # noqa: BLE001
            logger.warning("alerts.scheduler.notify_failed", error=str(notify_exc))

    async def _loop(self) -> None:
        logger.info("alerts.scheduler.loop_started", interval_seconds=self.interval_seconds)
        while not self._stop.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("alerts.scheduler.loop_stopped")

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None


async def run_alert_checks(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    *,
    notifier: AlertNotifier | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """Run one scheduled tick with default wiring. Never raises."""
    if session_factory is None:
        from db.session import AsyncSessionLocal

        session_factory = AsyncSessionLocal
    if notifier is None:
        from alerts.email import EmailNotifier

        notifier = EmailNotifier()

    scheduler = AlertScheduler(session_factory, notifier=notifier, **kwargs)
    return await scheduler.run_once()
