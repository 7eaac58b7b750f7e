"""
APScheduler wrapper for the daily reminder dispatch.
Each cycle sends every user their reminders, highest priority first, spaced
out by a fixed delay.
"""

import asyncio
from datetime import datetime, tzinfo
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR, EVENT_JOB_MISSED
from dateutil import parser as date_parser
from dateutil import tz

from config.logging_config import get_logger
from config import settings
from src.reminder.errors import RepositoryError
from src.reminder.models import Reminder
from src.reminder.repository import ReminderRepository

logger = get_logger(__name__)

SendFunc = Callable[[str, str], Awaitable[None]]

DEFAULT_DISPATCH_TIME = (8, 0)

# Two defaults that differ only in the hour; a value without a time part
# takes the hour from the default, so the two parses disagree
_HOUR_DEFAULTS = (datetime(2000, 1, 1, 0, 0), datetime(2000, 1, 1, 1, 0))


def parse_dispatch_time(value: str) -> Tuple[int, int]:
    """
    Parse a time of day such as "08:00", "8am" or "18:30".

    A bare number like "8" is read by dateutil as a day of the month, so
    values without a time part are rejected.

    Returns:
        (hour, minute), 08:00 when the value cannot be parsed
    """
    try:
        first, second = (date_parser.parse(value, default=d) for d in _HOUR_DEFAULTS)

    except (ValueError, OverflowError) as e:
        logger.warning(f"Invalid dispatch time {value!r}, using 08:00: {e}")
        return DEFAULT_DISPATCH_TIME

    if first.hour != second.hour:
        logger.warning(f"Dispatch time {value!r} has no time of day (try \"08:00\"), using 08:00")
        return DEFAULT_DISPATCH_TIME

    return first.hour, first.minute


def resolve_timezone(name: str) -> Optional[tzinfo]:
    """
    Look up a timezone by name.

    Returns:
        tzinfo, or None for the system local zone (empty or unknown name)
    """
    if not name:
        return None

    zone = tz.gettz(name)
    if zone is None:
        logger.warning(f"Invalid LOCAL_TIMEZONE {name!r}, using system local time")
    return zone


def format_dispatch_message(reminder: Reminder) -> str:
    """Outbound text for one reminder."""
    return f"Reminder: {reminder.display_text} (priority {reminder.priority})"


class ReminderDispatcher:
    """
    Sends reminders to users with staggered delays.

    Every delayed send is an asyncio task tracked until it finishes, so
    shutdown can either wait for pending sends or cancel them.
    """

    def __init__(self, repository: ReminderRepository, send: SendFunc,
                 delay_unit: float = None):
        """
        Initialize dispatcher.

        Args:
            repository: Reminder storage
            send: Async function delivering (user_id, text)
            delay_unit: Seconds between a user's consecutive reminders
        """
        self.repository = repository
        self.send = send
        self.delay_unit = settings.DISPATCH_DELAY_SECONDS if delay_unit is None else delay_unit

        self._tasks: Set[asyncio.Task] = set()
        # _accepting refuses new cycles; _abandoning also stops in-flight ones
        self._accepting = True
        self._abandoning = False
        self._cycles = 0

        logger.info(f"ReminderDispatcher initialized (spacing {self.delay_unit}s)")

    async def run_cycle(self) -> int:
        """
        Start one dispatch cycle across all users.

        Per-user dispatches run concurrently in the background.

        Returns:
            Number of users dispatched to
        """
        if not self._accepting:
            logger.warning("Dispatcher is shut down, skipping cycle")
            return 0

        self._cycles += 1
        cycle = self._cycles

        try:
            user_ids = await self._run_blocking(self.repository.distinct_user_ids)

        except RepositoryError as e:
            logger.error(f"Dispatch cycle {cycle}: fetching users failed: {e}", exc_info=True)
            return 0

        if self._abandoning:
            return 0

        logger.info(f"Dispatch cycle {cycle}: {len(user_ids)} user(s)")

        for user_id in user_ids:
            self._track(asyncio.create_task(self.dispatch_user(user_id)))

        return len(user_ids)

    async def dispatch_user(self, user_id: str) -> int:
        """
        Schedule all of a user's reminders; reminder N goes out after N delay units.

        Returns:
            Number of reminders scheduled
        """
        try:
            reminders = await self._run_blocking(self.repository.list_by_user, user_id)

        except RepositoryError as e:
            logger.error(f"Dispatch for {user_id} failed: {e}", exc_info=True)
            return 0

        if self._abandoning:
            return 0

        for index, reminder in enumerate(reminders):
            delay = index * self.delay_unit
            self._track(asyncio.create_task(self._send_later(user_id, reminder, delay)))

        logger.debug(f"Scheduled {len(reminders)} reminder(s) for {user_id}")
        return len(reminders)

    async def _send_later(self, user_id: str, reminder: Reminder, delay: float) -> None:
        """Wait, then send one reminder. Failures are logged only."""
        if delay > 0:
            await asyncio.sleep(delay)

        try:
            await self.send(user_id, format_dispatch_message(reminder))
            logger.info(f"Sent reminder {reminder.id} to {user_id}")

        except Exception as e:
            logger.error(f"Sending reminder {reminder.id} to {user_id} failed: {e}", exc_info=True)

    def pending_sends(self) -> int:
        """Number of dispatch tasks not finished yet."""
        return len(self._tasks)

    async def shutdown(self, drain: bool = False, timeout: float = None) -> None:
        """
        Stop dispatching.

        Args:
            drain: Wait for pending sends (up to timeout) instead of cancelling them
            timeout: Seconds to wait when draining; leftovers are cancelled
        """
        self._accepting = False

        if drain and self._tasks:
            logger.info(f"Draining {len(self._tasks)} pending dispatch task(s)")
            loop = asyncio.get_running_loop()
            deadline = None if timeout is None else loop.time() + timeout

            # Per-user tasks may still be adding send tasks while we wait
            while self._tasks:
                remaining = None if deadline is None else deadline - loop.time()
                if remaining is not None and remaining <= 0:
                    break
                await asyncio.wait(set(self._tasks), timeout=remaining)

        self._abandoning = True

        tasks = list(self._tasks)
        if tasks:
            logger.info(f"Abandoning {len(tasks)} pending dispatch task(s)")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info("Dispatcher shut down")

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_blocking(self, func, *args):
        return await asyncio.get_running_loop().run_in_executor(None, func, *args)


class ReminderScheduler:
    """
    APScheduler wrapper firing the dispatch cycle once a day.
    """

    JOB_ID = "daily_dispatch"

    def __init__(self, dispatcher: ReminderDispatcher, dispatch_time: str = None,
                 timezone: str = None):
        """
        Initialize scheduler.

        Args:
            dispatcher: Dispatcher run on every trigger
            dispatch_time: Local time of day (default from settings)
            timezone: Timezone name (default from settings, empty = system local)
        """
        self.dispatcher = dispatcher
        self.hour, self.minute = parse_dispatch_time(dispatch_time or settings.DISPATCH_TIME)
        self.timezone = resolve_timezone(
            settings.LOCAL_TIMEZONE if timezone is None else timezone
        )

        scheduler_kwargs = {
            'job_defaults': {
                'coalesce': settings.SCHEDULER_COALESCE,
                'max_instances': settings.SCHEDULER_MAX_INSTANCES,
                'misfire_grace_time': settings.SCHEDULER_MISFIRE_GRACE_TIME
            }
        }
        if self.timezone is not None:
            scheduler_kwargs['timezone'] = self.timezone

        self.scheduler = AsyncIOScheduler(**scheduler_kwargs)

        # Add event listeners
        self.scheduler.add_listener(self._job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)
        self.scheduler.add_listener(self._job_missed, EVENT_JOB_MISSED)

        logger.info(f"ReminderScheduler initialized: daily at {self.hour:02d}:{self.minute:02d}")

    def start(self) -> None:
        """Register the daily job and start the scheduler (needs a running event loop)."""
        if self.scheduler.running:
            return

        self.scheduler.add_job(
            func=self._run_dispatch_cycle,
            trigger=CronTrigger(hour=self.hour, minute=self.minute, timezone=self.timezone),
            id=self.JOB_ID,
            replace_existing=True
        )
        self.scheduler.start()

        logger.info(f"Scheduler started, next dispatch at {self.get_next_run_time()}")

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler. Running cycles are not interrupted.

        The daily job is removed right away. AsyncIOScheduler stops on the
        next event loop iteration, so `running` stays True until the caller
        yields to the loop.

        Args:
            wait: Wait for running jobs to complete
        """
        if not self.scheduler.running:
            return

        if self.scheduler.get_job(self.JOB_ID):
            self.scheduler.remove_job(self.JOB_ID)

        self.scheduler.shutdown(wait=wait)
        logger.info("Scheduler shutdown requested, daily job removed")

    async def trigger_now(self) -> int:
        """Run a dispatch cycle immediately."""
        logger.info("Manual dispatch cycle triggered")
        return await self.dispatcher.run_cycle()

    def get_next_run_time(self) -> Optional[datetime]:
        """
        Get next dispatch time.

        Returns:
            Next run time or None if not scheduled
        """
        job = self.scheduler.get_job(self.JOB_ID)

        if job:
            return job.next_run_time

        return None

    def get_jobs(self) -> List:
        return self.scheduler.get_jobs()

    async def _run_dispatch_cycle(self) -> None:
        await self.dispatcher.run_cycle()

    def _job_executed(self, event) -> None:
        logger.debug(f"Job executed: {event.job_id}")

    def _job_error(self, event) -> None:
        logger.error(
            f"Job error: {event.job_id}, "
            f"exception: {event.exception}",
            exc_info=event.exception
        )

    def _job_missed(self, event) -> None:
        logger.warning(f"Job missed: {event.job_id} (scheduled {event.scheduled_run_time})")
