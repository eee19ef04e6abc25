"""Per-update processing context shared by all handlers."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from config import Config

logger = logging.getLogger(__name__)


class StaleTaskError(Exception):
    """A task save lost a compare-and-swap against a concurrent update."""

    def __init__(self, task_id):
        super().__init__(f"Task {task_id} was modified concurrently")
        self.task_id = task_id


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HandlerContext:
    """
    Collaborators for one inbound update.

    Attributes:
        bot: telegram.Bot used for replies, card edits and file lookups
        repository: Task repository (see db_async.TaskRepository)
        webhooks: PM webhook client (see pm_webhook.PMWebhookClient)
        clock: Returns the current timezone-aware time
    """
    bot: Any
    repository: Any
    webhooks: Any
    clock: Callable[[], datetime] = utc_now
    history_limit: int = field(default_factory=lambda: Config.LOCATION_HISTORY_LIMIT)
    noise_threshold_meters: float = field(default_factory=lambda: Config.LOCATION_NOISE_THRESHOLD_METERS)
    webhook_interval_seconds: int = field(default_factory=lambda: Config.LOCATION_WEBHOOK_INTERVAL_SECONDS)

    def now(self) -> datetime:
        return self.clock()

    async def resolve_active_task(self, worker_chat_id):
        """Most recently created non-terminal task for a worker chat, or None."""
        return await self.repository.find_active_task(str(worker_chat_id))

    async def persist_task(self, task) -> None:
        """Save a task; raise StaleTaskError if another update saved it first."""
        if not await self.repository.save_task(task):
            raise StaleTaskError(task.task_id)
