"""Cron-based scheduler"""
from dispatcher.cron.main import CronScheduler
from dispatcher.cron.model.scheduler import ScheduledJob, SchedulerConfig

__all__ = ["CronScheduler", "ScheduledJob", "SchedulerConfig"]
