"""
Location tracker.

Turns one-shot and live location updates into a bounded, denoised track per
task with a running distance total, and pushes throttled updates to the
integration's webhook.
"""
import logging

from telegram import ReplyKeyboardRemove

from handlers.notifications import push_location_update, send_message
from models import LocationPoint, LocationTracking
from utils.geo import haversine_distance

logger = logging.getLogger(__name__)

LIVE_TRACKING_STARTED_TEXT = (
    "📍 Live location tracking started!\n\n"
    "Keep sharing while you work. Reply <code>done</code> when finished."
)
SWITCH_TO_LIVE_TEXT = (
    "📍 Location received.\n\n"
    "For continuous tracking please share your <b>Live Location</b> instead: "
    "tap 📎 → Location → Share My Live Location."
)
NO_ACTIVE_TASK_TEXT = "📍 Location received, but you have no active task, so it was ignored."


def record_location_point(tracking, point, noise_threshold_meters=10.0, history_limit=500) -> float:
    """
    Add a point to a tracking record.

    Distance to the previous current location is added to the running total
    only when it exceeds the noise threshold. History keeps the most recent
    `history_limit` points.

    Returns:
        float: Meters added to the total (0 for the first point or jitter)
    """
    added = 0.0
    previous = tracking.current_location
    if previous is not None:
        distance = haversine_distance(previous.lat, previous.lng, point.lat, point.lng)
        if distance > noise_threshold_meters:
            added = distance
            tracking.total_distance_meters += distance

    tracking.current_location = point
    tracking.history.append(point)
    if len(tracking.history) > history_limit:
        tracking.history = tracking.history[-history_limit:]
    return added


def should_push_webhook(tracking, now, interval_seconds=30) -> bool:
    """True if the last webhook push for this task is at least `interval_seconds` old."""
    last = tracking.last_webhook_sent_at
    if last is None:
        return True
    return (now - last).total_seconds() >= interval_seconds


async def handle_location(event, ctx) -> None:
    """Handle a one-shot location share or a live-location ping."""
    task = await ctx.resolve_active_task(event.chat_id)
    if task is None:
        await send_message(ctx.bot, event.chat_id, NO_ACTIVE_TASK_TEXT)
        return

    integration = await ctx.repository.get_integration(task.integration_id)
    now = ctx.now()

    point = LocationPoint(
        lat=event.latitude,
        lng=event.longitude,
        timestamp=now,
        accuracy=event.accuracy,
        speed=event.speed,
        heading=event.heading,
    )

    if task.location_tracking is None:
        task.location_tracking = LocationTracking()
    tracking = task.location_tracking

    added = record_location_point(tracking, point, ctx.noise_threshold_meters, ctx.history_limit)
    if added:
        logger.debug(f"📍 Task {task.task_id}: +{added:.1f} m (total {tracking.total_distance_meters:.1f} m)")

    reply = None
    if not tracking.enabled:
        if event.live:
            tracking.enabled = True
            tracking.started_at = now
            logger.info(f"📍 Live tracking started for task {task.task_id}")
            reply = (LIVE_TRACKING_STARTED_TEXT, ReplyKeyboardRemove())
        else:
            reply = (SWITCH_TO_LIVE_TEXT, None)

    push = (
        integration is not None
        and bool(integration.settings.location_webhook_url)
        and should_push_webhook(tracking, now, ctx.webhook_interval_seconds)
    )
    if push:
        tracking.last_webhook_sent_at = now

    await ctx.persist_task(task)

    if reply:
        text, markup = reply
        await send_message(ctx.bot, event.chat_id, text, event.message_id, reply_markup=markup)
    if push:
        await push_location_update(ctx.webhooks, integration, task)
