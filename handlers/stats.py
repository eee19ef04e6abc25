"""Integration stats aggregator."""
import logging

logger = logging.getLogger(__name__)


def response_minutes(task):
    """Minutes between start and completion, or None if the task was never started."""
    if not task.started_at or not task.completed_at:
        return None
    return (task.completed_at - task.started_at).total_seconds() / 60


def completion_minutes(task):
    """Response time that counts towards the average, or None if it should not."""
    minutes = response_minutes(task)
    if minutes is None or minutes <= 0:
        return None
    return minutes


def apply_completion(stats, minutes) -> None:
    """
    Count one completion in an IntegrationStats.

    The average is the running (previous + latest) / 2 recurrence, not a
    cumulative mean. It is left alone when `minutes` is None.
    """
    stats.tasks_completed += 1
    if minutes is not None:
        stats.avg_response_time_mins = (stats.avg_response_time_mins + minutes) / 2


def record_completion(integration, task) -> None:
    """Update the in-memory stats of an integration for a completed task."""
    stats = integration.stats
    apply_completion(stats, completion_minutes(task))

    logger.info(
        f"📊 Integration {integration.integration_id}: {stats.tasks_completed} completed, "
        f"avg response {stats.avg_response_time_mins:.1f} min"
    )
