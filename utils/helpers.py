"""Helper utilities for bot operations"""
import html
from telegram import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
)

from models import STATUS_COMPLETED

SKIP_LOCATION_TEXT = "Skip location"


def format_task_status(status: str) -> str:
    """Format task status for the status card."""
    return status.upper()


def get_status_emoji(status: str) -> str:
    """Get emoji for task status."""
    emoji_map = {
        'sent': '📋',
        'seen': '👁',
        'started': '🔄',
        'problem': '⚠️',
        'completed': '✅',
    }
    return emoji_map.get(status, '📋')


def escape_html(text) -> str:
    """Escape text for Telegram HTML parse mode."""
    if not text:
        return ""
    return html.escape(str(text), quote=False)


def format_distance(meters: float) -> str:
    """Format a distance in meters as kilometers with two decimals."""
    return f"{(meters or 0) / 1000:.2f} km"


def format_duration(minutes: float) -> str:
    """Format a duration in minutes as '1 h 5 min' / '45 min'."""
    total = int(round(minutes))
    hours, mins = divmod(total, 60)
    if hours:
        return f"{hours} h {mins} min"
    return f"{mins} min"


def build_task_keyboard(task) -> InlineKeyboardMarkup:
    """Create the Start / Done / Problem keyboard for a task status card."""
    if task.status == STATUS_COMPLETED:
        return InlineKeyboardMarkup([])

    keyboard = [
        [
            InlineKeyboardButton("✅ Start", callback_data=f"task_start_{task.task_id}"),
            InlineKeyboardButton("✓ Done", callback_data=f"task_done_{task.task_id}"),
        ],
        [
            InlineKeyboardButton("⚠️ Problem", callback_data=f"task_problem_{task.task_id}"),
        ],
    ]
    return InlineKeyboardMarkup(keyboard)


def build_location_request_keyboard() -> ReplyKeyboardMarkup:
    """Create a reply keyboard asking the worker to share location."""
    keyboard = [
        [KeyboardButton("📍 Share Location", request_location=True)],
        [KeyboardButton(SKIP_LOCATION_TEXT)],
    ]
    return ReplyKeyboardMarkup(keyboard, resize_keyboard=True, one_time_keyboard=True)
