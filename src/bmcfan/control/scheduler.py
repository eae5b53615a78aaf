"""
Machine Job Scheduler Module

Keeps exactly one cron job per enabled machine. Each job runs an apply cycle
for its machine; a failing cycle is logged and never affects the scheduler
or the jobs of other machines. Store changes written by other processes are
picked up by polling the store file.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from ..machine.models import Machine
from ..machine.repository import MachineRepository
from .manager import ApplyManager

logger = logging.getLogger(__name__)

STORE_WATCH_JOB = "store-watch"


# Crontab day-of-week numbering: 0 (and 7) is Sunday
WEEKDAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


def _weekday_number(token: str) -> int:
    if token.isdigit():
        number = int(token)
        if number > 7:
            raise ValueError(f"Invalid day of week '{token}'")
        return number
    if token in WEEKDAYS:
        return WEEKDAYS.index(token)
    raise ValueError(f"Invalid day of week '{token}'")


def crontab_day_of_week(field: str) -> str:
    """Translate a crontab day-of-week field into APScheduler day names

    APScheduler counts weekdays from Monday = 0, crontab from Sunday = 0, so
    numeric fields are expanded to explicit names.

    Args:
        field: Day-of-week field (e.g., "0", "1-5", "*/2", "sat,sun")

    Returns:
        "*" or a comma separated list of day names (e.g., "mon,tue")

    Raises:
        ValueError: If the field is malformed
    """
    if field == "*":
        return field

    days = set()
    for part in field.lower().split(","):
        base, _, step = part.partition("/")
        if base == "*":
            first, last = 0, 6
        else:
            start, _, end = base.partition("-")
            first = _weekday_number(start)
            if end:
                last = _weekday_number(end)
                if last == 0:
                    last = 7
            else:
                last = 6 if step else first
        if last < first:
            raise ValueError(f"Invalid day of week range '{base}'")

        interval = int(step) if step.isdigit() else 1
        if step and (not step.isdigit() or interval < 1):
            raise ValueError(f"Invalid day of week step '{step}'")

        for day in range(first, last + 1, interval):
            days.add(day % 7)

    return ",".join(WEEKDAYS[day] for day in sorted(days))


def build_trigger(expression: str, timezone=None) -> CronTrigger:
    """Create a cron trigger from a crontab expression

    Accepts the standard five fields (minute hour day month day-of-week) or
    six fields with a leading seconds field. Day-of-week follows crontab
    numbering (0 or 7 is Sunday).

    Args:
        expression: Cron expression (e.g., "*/30 * * * * *", "*/5 * * * *")
        timezone: Timezone for the trigger (None for local time)

    Raises:
        ValueError: If the expression is malformed
    """
    fields = expression.split()
    if len(fields) == 5:
        fields = ["0"] + fields
    if len(fields) != 6:
        raise ValueError(f"Wrong number of fields in cron expression '{expression}': got {len(fields)}, expected 5 or 6")

    second, minute, hour, day, month, day_of_week = fields
    return CronTrigger(second=second, minute=minute, hour=hour, day=day, month=month,
                       day_of_week=crontab_day_of_week(day_of_week), timezone=timezone)


def job_name(machine_id: str) -> str:
    return f"machine-{machine_id}"


class MachineScheduler:
    """Owns the cron jobs of all enabled machines"""

    def __init__(self, applier: ApplyManager, scheduler: Optional[BackgroundScheduler] = None,
                 timezone=None):
        """Initialize scheduler

        Args:
            applier: Runs apply cycles for fired jobs
            scheduler: APScheduler instance (a BackgroundScheduler by default)
            timezone: Timezone for cron expressions (None for local time)
        """
        self.applier = applier
        self.timezone = timezone
        if scheduler is None:
            scheduler = BackgroundScheduler(timezone=timezone) if timezone else BackgroundScheduler()
        self._scheduler = scheduler
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def start(self, machines: Iterable[Machine]) -> None:
        """Create jobs for all enabled machines and start firing them

        Args:
            machines: All stored machines; disabled ones are ignored
        """
        self.sync(machines)
        self._scheduler.start()
        logger.info(f"Created {len(self.job_ids())} scheduled jobs")

    def sync(self, machines: Iterable[Machine]) -> None:
        """Reconcile every given machine and drop jobs of machines not given

        A machine with a malformed cron expression is logged and left without
        a job; the others are still reconciled.

        Args:
            machines: All stored machines
        """
        machines = list(machines)
        for machine in machines:
            try:
                self.reconcile(machine)
            except ValueError as e:
                logger.error(f"Not scheduling machine {machine.name}: {e}")

        known = {machine.id for machine in machines}
        for machine_id in self.job_ids():
            if machine_id not in known:
                self.remove(machine_id)

    def watch_store(self, repository: MachineRepository, interval: float) -> None:
        """Poll the machine store and sync jobs when another process changed it

        Args:
            repository: Machine store shared with the apply manager
            interval: Seconds between checks
        """
        self._scheduler.add_job(
            self._check_store,
            "interval",
            seconds=interval,
            args=[repository],
            id=STORE_WATCH_JOB,
            name=STORE_WATCH_JOB,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"Watching machine store {repository.path} every {interval}s")

    def reload(self, repository: MachineRepository) -> None:
        """Reload the machine store and sync jobs with it"""
        self.sync(repository.load())

    def _check_store(self, repository: MachineRepository) -> None:
        try:
            if repository.reload_if_changed():
                self.sync(repository.find_all())
        except Exception:
            logger.exception(f"Failed to reload machine store {repository.path}")

    def shutdown(self, wait: bool = True) -> None:
        """Stop all jobs and the background scheduler"""
        with self._lock:
            self._jobs.clear()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)

    def reconcile(self, machine: Machine) -> None:
        """Bring the job of a machine in line with its configuration

        Enabled machines get their job created or replaced with the current
        cron expression; disabled machines lose their job.

        Args:
            machine: Machine whose configuration changed

        Raises:
            ValueError: If the machine's cron expression is malformed. Any
                previous job for the machine has been removed by then.
        """
        with self._lock:
            self._remove_locked(machine.id)
            if not machine.enabled:
                return

            trigger = build_trigger(machine.cron, self.timezone)
            job = self._scheduler.add_job(
                self._run_job,
                trigger=trigger,
                args=[machine.id, machine.name],
                id=job_name(machine.id),
                name=job_name(machine.id),
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            self._jobs[machine.id] = job

        logger.info(f"Scheduled job for machine: {machine.name} with cron: {machine.cron}")

    def remove(self, machine_id: str) -> None:
        """Remove the job of a machine; a machine without a job is ignored"""
        with self._lock:
            self._remove_locked(machine_id)

    def _remove_locked(self, machine_id: str) -> None:
        job = self._jobs.pop(machine_id, None)
        if job is None:
            return
        try:
            self._scheduler.remove_job(job.id)
        except JobLookupError:
            logger.debug(f"Job {job.id} was already gone from the scheduler")
        logger.info(f"Removed job for machine: {machine_id}")

    def job_ids(self) -> List[str]:
        """Get the IDs of machines with a job"""
        with self._lock:
            return list(self._jobs)

    def has_job(self, machine_id: str) -> bool:
        with self._lock:
            return machine_id in self._jobs

    def _run_job(self, machine_id: str, machine_name: str) -> None:
        """Job callback: run one apply cycle and contain its failure"""
        logger.info(f"Running job for machine: {machine_name}")
        try:
            self.applier.apply(machine_id)
            logger.info(f"Job completed for machine: {machine_name}")
        except Exception:
            logger.exception(f"Job failed for machine: {machine_name}")
