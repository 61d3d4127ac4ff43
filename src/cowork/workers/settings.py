"""arq worker settings module.

Import path for arq CLI: arq cowork.workers.settings.WorkerSettings
"""

from __future__ import annotations

from arq import cron
from arq.connections import RedisSettings

from cowork.config import get_settings
from cowork.workers.jobs import drain_notification_queue, purge_memberships, shutdown, startup


class WorkerSettings:
    """arq worker settings for background notification jobs."""

    functions = [drain_notification_queue, purge_memberships]
    cron_jobs = [
        cron(drain_notification_queue, second={0}, run_at_startup=True),
        cron(purge_memberships, hour={3}, minute={30}),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 4


__all__ = ["WorkerSettings"]
