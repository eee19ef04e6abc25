"""Notification handlers: chat replies, status cards, escalations and PM webhook pushes.

Everything here is best effort. Transport failures are logged and swallowed
so the state change that triggered them still stands.
"""
import logging
from datetime import datetime, timezone

from telegram import ReplyParameters
from telegram.constants import ParseMode
from telegram.error import BadRequest

from models import STATUS_COMPLETED, STATUS_PROBLEM
from utils.helpers import (
    build_task_keyboard,
    escape_html,
    format_task_status,
    get_status_emoji,
)

logger = logging.getLogger(__name__)

TELEGRAM_FILE_URL = "https://api.telegram.org/file/bot{token}/{path}"


async def send_message(bot, chat_id, text: str, reply_to_message_id: int = None, reply_markup=None) -> bool:
    """Send an HTML message to a chat. Returns False if Telegram rejected it."""
    try:
        await bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode=ParseMode.HTML,
            reply_parameters=(
                ReplyParameters(message_id=reply_to_message_id, allow_sending_without_reply=True)
                if reply_to_message_id else None
            ),
            reply_markup=reply_markup,
        )
        return True
    except Exception as e:
        logger.error(f"Failed to send message to chat {chat_id}: {e}")
        return False


async def answer_callback(bot, callback_id: str, text: str = "Updated!") -> bool:
    """Dismiss the loading state of a pressed button."""
    try:
        await bot.answer_callback_query(callback_query_id=callback_id, text=text)
        return True
    except Exception as e:
        logger.error(f"Failed to answer callback {callback_id}: {e}")
        return False


def render_task_card(task) -> str:
    """Render the status card text for a task."""
    status = task.status
    message = f"{get_status_emoji(status)} <b>{escape_html(task.title)}</b>\n"
    message += f"\nStatus: <b>{format_task_status(status)}</b>"

    if task.description:
        message += f"\n\n{escape_html(task.description)}"

    if status == STATUS_PROBLEM and task.problem_description:
        message += f"\n\n⚠️ Problem: {escape_html(task.problem_description)}"

    if status == STATUS_COMPLETED:
        completed_at = task.completed_at or datetime.now(timezone.utc)
        message += f"\n\n✅ Completed at {completed_at:%H:%M} UTC"
        if task.photo_urls:
            message += f"\n📷 {len(task.photo_urls)} photo(s) attached"

    return message


async def update_task_message(bot, chat_id, message_id, task) -> bool:
    """Re-render the task status card in place. Buttons disappear once completed."""
    if not message_id:
        return False

    try:
        await bot.edit_message_text(
            chat_id=chat_id,
            message_id=message_id,
            text=render_task_card(task),
            parse_mode=ParseMode.HTML,
            reply_markup=build_task_keyboard(task),
        )
        return True
    except BadRequest as e:
        if "message is not modified" in str(e).lower():
            logger.debug(f"Task card {message_id} for task {task.task_id} not modified")
            return True
        logger.error(f"Failed to edit task card {message_id} for task {task.task_id}: {e}")
        return False
    except Exception as e:
        logger.error(f"Failed to edit task card {message_id} for task {task.task_id}: {e}")
        return False


async def notify_manager_about_problem(bot, integration, task) -> bool:
    """Escalate a worker-reported problem to the integration owner."""
    if not integration.settings.notify_on_problem:
        return False

    message = (
        f"⚠️ <b>Worker reported a problem</b>\n\n"
        f"Task: {escape_html(task.title)}\n"
        f"Problem: {escape_html(task.problem_description)}\n\n"
        f"Worker Telegram ID: {task.worker_chat_id}"
    )
    sent = await send_message(bot, integration.owner_chat_id, message)
    if sent:
        logger.info(f"📣 Problem on task {task.task_id} escalated to {integration.owner_chat_id}")
    return sent


async def get_file_url(bot, file_id: str):
    """Resolve a Telegram file id to a downloadable URL, or None."""
    try:
        telegram_file = await bot.get_file(file_id)
    except Exception as e:
        logger.error(f"Failed to resolve file {file_id}: {e}")
        return None

    path = telegram_file.file_path
    if not path:
        return None
    if path.startswith("http://") or path.startswith("https://"):
        return path
    return TELEGRAM_FILE_URL.format(token=bot.token, path=path)


# ============================================================================
# PM webhook payloads
# ============================================================================

def _iso(value):
    return value.isoformat() if value else None


def build_location_payload(task) -> dict:
    """Body of a location_update push."""
    tracking = task.location_tracking
    point = tracking.current_location
    return {
        "event": "location_update",
        "task_id": task.task_id,
        "external_task_id": task.external_task_id,
        "worker_chat_id": task.worker_chat_id,
        "location": {
            "lat": point.lat,
            "lng": point.lng,
            "accuracy": point.accuracy,
            "speed": point.speed,
            "heading": point.heading,
            "timestamp": _iso(point.timestamp),
        },
        "total_distance_meters": round(tracking.total_distance_meters, 2),
        "tracking_started_at": _iso(tracking.started_at),
    }


def build_progress_payload(task, now) -> dict:
    """Body of a task_<status> progress push."""
    payload = {
        "event": f"task_{task.status}",
        "task_id": task.task_id,
        "external_task_id": task.external_task_id,
        "worker_chat_id": task.worker_chat_id,
        "status": task.status,
        "timestamp": _iso(now),
    }
    if task.status == STATUS_PROBLEM and task.problem_description:
        payload["problem_description"] = task.problem_description
    if task.status == STATUS_COMPLETED and task.location_tracking:
        payload["total_distance_meters"] = round(task.location_tracking.total_distance_meters, 2)
    return payload


async def push_location_update(webhooks, integration, task) -> bool:
    """Send the current point and running totals to the integration's webhook."""
    url = integration.settings.location_webhook_url
    if not url:
        return False
    return await webhooks.post(url, build_location_payload(task))


async def push_progress_event(webhooks, integration, task, now) -> bool:
    """Send a task status change to the integration's webhook."""
    if integration is None or not integration.settings.location_webhook_url:
        return False
    return await webhooks.post(integration.settings.location_webhook_url, build_progress_payload(task, now))
