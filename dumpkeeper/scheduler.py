"""
APScheduler configuration and job orchestration for Dumpkeeper.

Manages:
- One one-shot timer per configured backup job
- Re-arming each timer after its run completes
- Graceful shutdown that waits for in-flight runs
"""

import itertools
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from dumpkeeper.backup.executor import execute_backup_job
from dumpkeeper.recurrence import get_next_run_time


logger = logging.getLogger(__name__)

# Global orchestrator instance and Flask app reference
orchestrator = None
flask_app = None


class BackupOrchestrator:
    """
    Owns the schedule of every backup job.

    Each job has at most one armed timer. A timer is a one-shot APScheduler
    date job; it is only re-armed after the run it triggered has finished,
    so a job never has two runs in flight. The deadline map and the
    running-set are guarded by a single lock that is never held while a
    backup runs.
    """

    def __init__(self, jobs: Iterable, scheduler: BackgroundScheduler,
                 run_backup: Callable, clock: Optional[Callable[[], datetime]] = None,
                 timezone=None):
        """
        Initialize orchestrator.

        Args:
            jobs: Configured BackupJob instances
            scheduler: APScheduler instance firing the timers
            run_backup: Called as run_backup(job, scheduled_for, is_cancelled)
            clock: Source of the current local time (default: datetime.now)
            timezone: Timezone of the computed deadlines (None = local)
        """
        self.jobs = {job.id: job for job in jobs}
        self.scheduler = scheduler
        self.run_backup = run_backup
        self.clock = clock or datetime.now
        self.timezone = timezone

        self._lock = threading.RLock()
        self._drained = threading.Condition(self._lock)
        self._next_run: Dict[int, datetime] = {}
        self._timer_ids: Dict[int, str] = {}
        self._arm_sequence = itertools.count(1)
        self._running = set()
        self._cancelled = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start(self, now: Optional[datetime] = None):
        """
        Arm the first timer of every job and start the scheduler.

        Args:
            now: Time the first deadlines are computed from (default: clock)
        """
        now = now or self.clock()

        with self._lock:
            for job in self.jobs.values():
                next_run = get_next_run_time(job.frequency, job.time_of_day, now)
                self._arm(job, next_run)
                logger.info(f"Scheduling \"{job.name}\" to run at {next_run}")

        if not self.scheduler.running:
            self.scheduler.start()

    def run_job(self, job_id: int):
        """
        Timer callback: run one backup and re-arm the job's timer.

        Args:
            job_id: Id of the job whose timer fired
        """
        job = self.jobs.get(job_id)
        if job is None:
            return

        with self._lock:
            if self.is_cancelled or job_id not in self._next_run:
                return
            scheduled_for = self._next_run[job_id]
            self._running.add(job_id)

        try:
            self.run_backup(job, scheduled_for, self._cancelled.is_set)
        except Exception:
            logger.exception(f"Backup job \"{job.name}\" failed unexpectedly")
        finally:
            # Leaving the running-set and re-arming happen atomically
            with self._lock:
                self._running.discard(job_id)
                if not self.is_cancelled and job_id in self._next_run:
                    next_run = get_next_run_time(job.frequency, job.time_of_day, self.clock())
                    self._arm(job, next_run)
                    logger.info(f"Scheduling \"{job.name}\" to run at {next_run}")
                self._drained.notify_all()

    def shutdown(self):
        """
        Stop scheduling and wait for in-flight runs to finish.

        Runs that are already executing complete their program but skip
        retention, compression and rescheduling. There is no timeout: a
        program that never exits blocks shutdown.
        """
        self._cancelled.set()

        with self._lock:
            for timer_id in self._timer_ids.values():
                try:
                    self.scheduler.remove_job(timer_id)
                except JobLookupError:
                    # Already fired
                    pass
            self._next_run.clear()
            self._timer_ids.clear()

            if self._running:
                logger.info(f"Waiting for {len(self._running)} running backups to complete")
            while self._running:
                self._drained.wait()

        if self.scheduler.running:
            self.scheduler.shutdown()

    def get_status(self) -> List[dict]:
        """
        Get a snapshot of every job's schedule.

        Returns:
            List of dicts with id, name, next_run and running
        """
        with self._lock:
            return [
                {
                    'id': job.id,
                    'name': job.name,
                    'next_run': self._next_run[job.id].isoformat() if job.id in self._next_run else None,
                    'running': job.id in self._running
                }
                for job in self.jobs.values()
            ]

    def _arm(self, job, run_at: datetime):
        """
        Arm a one-shot timer for a job. Caller holds the lock.

        Every arming gets a fresh timer id: the fired timer is still counted
        as a running instance by APScheduler until run_job returns.
        """
        timer_id = f"backup_{job.id}_{next(self._arm_sequence)}"
        self._next_run[job.id] = run_at
        self._timer_ids[job.id] = timer_id
        self.scheduler.add_job(
            func=self.run_job,
            args=[job.id],
            trigger=DateTrigger(run_date=run_at, timezone=self.timezone),
            id=timer_id,
            name=f"Backup: {job.name}",
            replace_existing=True
        )


def init_scheduler(app, jobs: Iterable) -> BackupOrchestrator:
    """
    Initialize APScheduler and the backup orchestrator.

    Args:
        app: Flask app instance
        jobs: Configured BackupJob instances
    """
    global orchestrator, flask_app

    if orchestrator is not None:
        return orchestrator

    # Store Flask app reference for use in background threads
    flask_app = app

    timezone = app.config.get('SCHEDULER_TIMEZONE')

    executors = {
        'default': ThreadPoolExecutor(max_workers=app.config.get('SCHEDULER_MAX_WORKERS', 4))
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': None  # A deadline of "now" must still run
    }

    scheduler = BackgroundScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone=timezone
    )

    orchestrator = BackupOrchestrator(jobs, scheduler, _execute_backup_wrapper, timezone=timezone)
    return orchestrator


def start_scheduler():
    """
    Start the orchestrator.

    Should be called after Flask app is initialized.
    """
    if orchestrator is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if orchestrator.scheduler.running:
        logger.info("Scheduler already running")
        return

    orchestrator.start()
    logger.info(f"APScheduler started with {len(orchestrator.jobs)} backup jobs")


def stop_scheduler():
    """Stop the orchestrator, waiting for running backups."""
    global orchestrator

    if orchestrator is None:
        return

    orchestrator.shutdown()
    orchestrator = None
    logger.info("APScheduler stopped")


def _execute_backup_wrapper(job, scheduled_for: datetime, is_cancelled: Callable[[], bool]):
    """
    Wrapper function for executing backup jobs in scheduler context.

    Runs the backup inside an app context so the run history can be saved.
    """
    with flask_app.app_context():
        logger.info(f"Scheduler executing backup job: {job.name} (scheduled for {scheduled_for})")
        history = execute_backup_job(job, scheduled_for, is_cancelled=is_cancelled)
        logger.info(f"Backup job {job.name} completed with status: {history.status}")


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled backup jobs.

    Returns:
        List of dicts with job information
    """
    if orchestrator is None:
        return []
    return orchestrator.get_status()


def is_scheduler_running() -> bool:
    """Check if scheduler is running."""
    return orchestrator is not None and orchestrator.scheduler.running
