"""Activation scheduling."""

from .cron_scheduler import ActivationScheduler, CronSchedulerService, build_cron_trigger

__all__ = ["ActivationScheduler", "CronSchedulerService", "build_cron_trigger"]
