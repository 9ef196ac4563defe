"""
Daily job scheduler.

Owned by the application: main.py builds one JobScheduler at startup, keeps it
on ``app.state.scheduler`` and routes reach it through a dependency. Jobs run
once a day at a fixed UTC time on an APScheduler background scheduler and can
be started, stopped or run on demand by name.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ScheduledJob:
    """A named daily job and the outcome of its last run."""

    def __init__(self, name: str, func: Callable[[], Any], hour: int, minute: int = 0, description: str = ""):
        # CronTrigger rejects out-of-range fields with ValueError
        self.trigger = CronTrigger(hour=hour, minute=minute, timezone="UTC")
        self.name = name
        self.func = func
        self.hour = hour
        self.minute = minute
        self.description = description

        self.last_run: Optional[datetime] = None
        self.last_result: Any = None
        self.last_error: Optional[str] = None
        self.run_count = 0

        self._run_lock = threading.Lock()

    @property
    def schedule(self) -> str:
        return f"daily {self.hour:02d}:{self.minute:02d} UTC"

    def execute(self, now: datetime) -> Any:
        """Run the job once. Concurrent runs of the same job are serialized."""
        with self._run_lock:
            logger.info(f"Running scheduled job: name={self.name}")
            self.last_run = now
            self.run_count += 1
            try:
                result = self.func()
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"Scheduled job failed: name={self.name}, error={e}", exc_info=True)
                raise
            self.last_result = result
            self.last_error = None
            logger.info(f"Scheduled job finished: name={self.name}, result={result}")
            return result


class JobScheduler:
    """
    Named daily jobs on a background scheduler.

    Jobs are registered paused; ``start`` resumes them and ``stop`` pauses
    them again without losing their run history.

    Args:
        clock: Returns the current naive UTC time; used to stamp runs and
            injectable for tests
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or datetime.utcnow
        self._jobs: Dict[str, ScheduledJob] = {}
        self._lock = threading.Lock()
        self._scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 3600},
        )

    def add_job(self, name: str, func: Callable[[], Any], hour: int, minute: int = 0, description: str = "") -> ScheduledJob:
        with self._lock:
            if name in self._jobs:
                raise ValueError(f"Job '{name}' is already registered")
            job = ScheduledJob(name, func, hour, minute, description)
            self._scheduler.add_job(
                self._run_scheduled,
                job.trigger,
                args=[name],
                id=name,
                name=description or name,
                next_run_time=None,
            )
            self._jobs[name] = job
        logger.info(f"Registered scheduled job: name={name}, schedule={job.schedule}")
        return job

    def job_names(self) -> List[str]:
        return list(self._jobs)

    def get_job(self, name: str) -> ScheduledJob:
        try:
            return self._jobs[name]
        except KeyError:
            raise KeyError(f"Job '{name}' not found") from None

    def _run_scheduled(self, name: str) -> Any:
        # Failures propagate to APScheduler, which logs them and keeps the schedule
        return self.get_job(name).execute(self.clock())

    def next_run(self, name: str) -> Optional[datetime]:
        """Next scheduled run as naive UTC, or None while the job is stopped."""
        self.get_job(name)
        aps_job = self._scheduler.get_job(name)
        if aps_job is None or not self._scheduler.running:
            return None
        return _naive_utc(aps_job.next_run_time)

    def is_running(self, name: str) -> bool:
        return self.next_run(name) is not None

    def start(self, name: Optional[str] = None) -> None:
        """Start one job by name, or every registered job."""
        names = [name] if name else self.job_names()
        for job_name in names:
            self.get_job(job_name)
        if not self._scheduler.running:
            self._scheduler.start()
        for job_name in names:
            if self.is_running(job_name):
                continue
            self._scheduler.resume_job(job_name)
            logger.info(f"Started scheduled job: name={job_name}, next_run={self.next_run(job_name)}")

    def stop(self, name: Optional[str] = None) -> None:
        """Stop one job by name, or every running job."""
        names = [name] if name else self.job_names()
        for job_name in names:
            self.get_job(job_name)
            self._scheduler.pause_job(job_name)
            logger.info(f"Stopped scheduled job: name={job_name}")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Job scheduler shut down")

    def run_manually(self, name: str) -> Any:
        """
        Run a job immediately on the calling thread.

        Raises:
            KeyError: Unknown job name
        """
        job = self.get_job(name)
        return job.execute(self.clock())

    def status(self) -> Dict[str, Dict[str, Any]]:
        report = {}
        for name, job in self._jobs.items():
            next_run = self.next_run(name)
            report[name] = {
                "running": next_run is not None,
                "schedule": job.schedule,
                "description": job.description,
                "lastRun": job.last_run.isoformat() if job.last_run else None,
                "lastResult": job.last_result,
                "lastError": job.last_error,
                "runCount": job.run_count,
                "nextRun": next_run.isoformat() if next_run else None,
            }
        return report
