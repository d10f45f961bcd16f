"""Cron activation scheduling backed by APScheduler."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from area_engine.errors import SchedulingError
from area_engine.models import ActivationMode, ActivationModeType
from area_engine.repositories import ActivationModeRepository

logger = logging.getLogger(__name__)


class ActivationScheduler(ABC):
    """Keeps live timers in sync with persisted CRON activation modes."""

    @abstractmethod
    def schedule_activation_mode(self, mode: ActivationMode) -> None:
        """Start (or replace) the timer of a CRON mode."""

    @abstractmethod
    def cancel_scheduled_task(self, mode_id: str) -> bool:
        """Stop the timer of a mode. Returns True if one was running."""

    @abstractmethod
    def reschedule_activation_mode(self, mode: ActivationMode) -> None:
        """Cancel, then schedule again if the mode is enabled."""

    @abstractmethod
    def get_active_tasks_count(self) -> int:
        """Number of scheduled CRON modes."""

    def start(self) -> None:
        """Start firing timers."""

    def shutdown(self) -> None:
        """Stop firing timers."""


def build_cron_trigger(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Build a trigger from a 5-field crontab or a 6-field (seconds first) expression.

    Raises:
        ValueError: If the expression is malformed
    """
    # Quartz-style "?" means "no specific value"
    fields = expression.replace("?", "*").split()
    if len(fields) == 5:
        return CronTrigger.from_crontab(" ".join(fields), timezone=timezone)
    if len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=day_of_week,
            timezone=timezone,
        )
    raise ValueError(f"Expected 5 or 6 cron fields, got {len(fields)}: {expression!r}")


class CronSchedulerService(ActivationScheduler):
    """Runs CRON activation modes on a background scheduler.

    Each run reloads the mode from the repository and triggers the owning
    instance unless the mode, instance or area has been disabled since.
    """

    def __init__(
        self,
        activation_mode_repository: ActivationModeRepository,
        trigger_service,
        timezone: str = "UTC",
        scheduler: BackgroundScheduler | None = None,
    ):
        self.activation_modes = activation_mode_repository
        self.trigger = trigger_service
        self.timezone = timezone
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone)
        self._tasks: dict[str, str] = {}  # mode id -> job id
        self._lock = threading.Lock()

    @staticmethod
    def job_id(mode_id: str) -> str:
        return f"activation_{mode_id}"

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Cron scheduler started")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Cron scheduler shutdown")

    def schedule_activation_mode(self, mode: ActivationMode) -> None:
        """Register a job for a CRON mode, replacing any existing one.

        Raises:
            SchedulingError: If the mode is not CRON or its expression is blank or invalid
        """
        if mode.type != ActivationModeType.CRON:
            raise SchedulingError(
                f"Cannot schedule {mode.type.value} activation mode", activation_mode_id=mode.id
            )
        expression = mode.cron_expression
        if not expression:
            raise SchedulingError(
                "Cron expression is required for CRON activation mode",
                activation_mode_id=mode.id,
            )
        try:
            trigger = build_cron_trigger(expression, self.timezone)
        except ValueError as e:
            raise SchedulingError(
                f"Invalid cron expression {expression!r}: {e}", activation_mode_id=mode.id
            ) from e

        self.cancel_scheduled_task(mode.id)

        job_id = self.job_id(mode.id)
        self.scheduler.add_job(
            self._run_activation,
            trigger=trigger,
            id=job_id,
            args=[mode.id],
            name=f"{mode.action_instance.name} ({expression})",
            replace_existing=True,
            coalesce=True,
            max_instances=mode.max_concurrency or 1,
        )
        with self._lock:
            self._tasks[mode.id] = job_id
        logger.info(
            f"Scheduled activation mode {mode.id} with cron '{expression}'",
            extra={"activation_mode_id": mode.id, "action_instance_id": mode.action_instance.id},
        )

    def cancel_scheduled_task(self, mode_id: str) -> bool:
        with self._lock:
            job_id = self._tasks.pop(mode_id, None)
        if job_id is None:
            return False
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            logger.debug(f"Job {job_id} already gone")
        logger.info(f"Cancelled scheduled task for activation mode {mode_id}")
        return True

    def reschedule_activation_mode(self, mode: ActivationMode) -> None:
        self.cancel_scheduled_task(mode.id)
        if mode.enabled:
            self.schedule_activation_mode(mode)

    def get_active_tasks_count(self) -> int:
        with self._lock:
            return len(self._tasks)

    def is_scheduled(self, mode_id: str) -> bool:
        with self._lock:
            return mode_id in self._tasks

    def load_and_schedule_all(self) -> int:
        """Schedule every enabled CRON mode. Returns how many were scheduled."""
        scheduled = 0
        for mode in self.activation_modes.find_by_type_and_enabled(ActivationModeType.CRON, True):
            try:
                self.schedule_activation_mode(mode)
                scheduled += 1
            except Exception as e:
                logger.error(f"Failed to schedule activation mode {mode.id}: {e}")
        return scheduled

    def reload_all(self) -> int:
        """Drop every job and schedule the enabled CRON modes again."""
        with self._lock:
            mode_ids = list(self._tasks)
        for mode_id in mode_ids:
            self.cancel_scheduled_task(mode_id)
        count = self.load_and_schedule_all()
        logger.info(f"Reloaded {count} cron activations")
        return count

    def get_scheduled_tasks_status(self) -> dict[str, str | None]:
        """Next run time (ISO format) per scheduled mode id."""
        with self._lock:
            tasks = dict(self._tasks)
        status = {}
        for mode_id, job_id in tasks.items():
            job = self.scheduler.get_job(job_id)
            next_run = getattr(job, "next_run_time", None) if job else None
            status[mode_id] = next_run.isoformat() if next_run else None
        return status

    def _run_activation(self, mode_id: str) -> None:
        """Job body. Never raises."""
        try:
            mode = self.activation_modes.get(mode_id)
            if mode is None:
                logger.warning(f"Activation mode {mode_id} no longer exists, cancelling")
                self.cancel_scheduled_task(mode_id)
                return

            instance = mode.action_instance
            if not mode.enabled or not instance.enabled or not instance.area.enabled:
                logger.info(f"Skipping cron run for disabled activation mode {mode_id}")
                return

            payload = {
                "triggered_by": "cron",
                "execution_time": datetime.now(UTC).isoformat(),
                "cron_expression": mode.cron_expression,
                "activation_mode_id": mode.id,
            }
            self.trigger.trigger_area_execution(instance, ActivationModeType.CRON, payload)
        except Exception as e:
            logger.error(
                f"Cron activation {mode_id} failed: {e}", extra={"activation_mode_id": mode_id}
            )
