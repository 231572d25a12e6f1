"""
Scheduler module for the background polling and latency-probe tasks.

Two interval jobs run on an APScheduler BackgroundScheduler: the market
poll (aggregate every source, publish the match list) and the latency
probe. Each job has max_instances=1 and a non-blocking lock, so a slow
run is skipped rather than stacked. Exceptions never escape a job.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

import pytz
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wicketwise.config import Config

# Configure module logger
logger = logging.getLogger(__name__)

POLL_JOB_ID = "market_poll"
PROBE_JOB_ID = "latency_probe"


class MarketScheduler:
    """
    Background runner for the market poll and the latency probe.

    Args:
        poll_function: Called every poll interval; its return value is logged
        probe_function: Called every probe interval; returns latency in ms or None
        timezone: Scheduler timezone name. If None, uses Config.SCHEDULER_TIMEZONE
    """

    def __init__(
        self,
        poll_function: Callable[[], Any],
        probe_function: Optional[Callable[[], Optional[float]]] = None,
        timezone: Optional[str] = None,
    ):
        self.poll_function = poll_function
        self.probe_function = probe_function
        self.timezone = timezone or Config.SCHEDULER_TIMEZONE
        self.scheduler: Optional[BackgroundScheduler] = None
        self.is_running = False
        self.last_latency_ms: Optional[float] = None
        self._poll_lock = threading.Lock()
        self._probe_lock = threading.Lock()

    def start(
        self,
        poll_interval_seconds: Optional[int] = None,
        probe_interval_seconds: Optional[int] = None,
    ) -> bool:
        """
        Start both jobs.

        Returns:
            True if the scheduler started, False otherwise
        """
        if self.is_running:
            logger.warning("Scheduler is already running")
            return False

        if not callable(self.poll_function):
            logger.error("poll_function must be callable")
            return False

        poll_interval = poll_interval_seconds or Config.POLL_INTERVAL_SECONDS
        probe_interval = probe_interval_seconds or Config.LATENCY_PROBE_INTERVAL_SECONDS

        if poll_interval < 1 or probe_interval < 1:
            logger.error(f"Invalid intervals: poll={poll_interval}s probe={probe_interval}s")
            return False

        try:
            self.scheduler = BackgroundScheduler(timezone=pytz.timezone(self.timezone))
            self.scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

            self.scheduler.add_job(
                func=self.run_poll,
                trigger=IntervalTrigger(seconds=poll_interval),
                id=POLL_JOB_ID,
                name="Market Poll",
                replace_existing=True,
                max_instances=1,
            )
            if self.probe_function is not None:
                self.scheduler.add_job(
                    func=self.run_probe,
                    trigger=IntervalTrigger(seconds=probe_interval),
                    id=PROBE_JOB_ID,
                    name="Latency Probe",
                    replace_existing=True,
                    max_instances=1,
                )

            self.scheduler.start()
            self.is_running = True
            logger.info(f"Scheduler started: poll every {poll_interval}s, probe every {probe_interval}s")
            return True

        except (ValueError, pytz.UnknownTimeZoneError) as e:
            logger.error(f"Failed to start scheduler: {e}", exc_info=True)
            self.scheduler = None
            self.is_running = False
            return False

    def stop(self, wait: bool = True) -> bool:
        if not self.is_running or not self.scheduler:
            logger.warning("Scheduler is not running")
            return False

        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=wait)
        self.scheduler = None
        self.is_running = False
        logger.info("Scheduler stopped")
        return True

    def run_poll(self) -> None:
        """Run one market poll, skipping if the previous one is still running."""
        if not self._poll_lock.acquire(blocking=False):
            logger.warning("Market poll skipped: previous poll still in progress")
            return

        start = time.monotonic()
        try:
            result = self.poll_function()
            count = len(result) if result is not None else 0
            logger.info(f"Market poll completed in {time.monotonic() - start:.2f}s ({count} matches)")
        except Exception as e:
            logger.error(f"Market poll failed after {time.monotonic() - start:.2f}s: {e}", exc_info=True)
        finally:
            self._poll_lock.release()

    def run_probe(self) -> None:
        """Run one latency probe and keep the last reading."""
        if self.probe_function is None:
            return
        if not self._probe_lock.acquire(blocking=False):
            return

        try:
            latency = self.probe_function()
            self.last_latency_ms = latency
            if latency is None:
                logger.warning("Latency probe failed")
            else:
                logger.debug(f"Latency probe: {latency:.1f}ms")
        except Exception as e:
            logger.error(f"Latency probe raised: {e}", exc_info=True)
        finally:
            self._probe_lock.release()

    def _on_job_executed(self, event) -> None:
        if event.exception:
            logger.error(f"Job {event.job_id} raised an exception: {event.exception}")
        else:
            logger.debug(f"Job {event.job_id} executed successfully")

    def get_status(self) -> dict:
        status = {
            "is_running": self.is_running,
            "last_latency_ms": self.last_latency_ms,
            "next_poll_time": None,
        }
        if self.is_running and self.scheduler:
            job = self.scheduler.get_job(POLL_JOB_ID)
            if job and job.next_run_time:
                status["next_poll_time"] = job.next_run_time.isoformat()
        return status
