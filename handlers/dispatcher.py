"""Routes classified events to their handlers."""
import logging

from handlers.classifier import (
    CallbackEvent,
    IgnoredEvent,
    LocationEvent,
    PhotoEvent,
    TextEvent,
    classify_payload,
)
from handlers.context import StaleTaskError
from handlers.notifications import answer_callback
from handlers.workers import handle_callback, handle_location, handle_photo, handle_text
from performance import log_timing

logger = logging.getLogger(__name__)

# One extra run against fresh state when a save loses the version race
MAX_ATTEMPTS = 2

GIVE_UP_CALLBACK_TEXT = "Task was just updated, please try again"


async def handle_ignored(event, ctx) -> None:
    logger.debug(f"Ignoring update: {event.reason}")


HANDLERS = {
    CallbackEvent: handle_callback,
    TextEvent: handle_text,
    LocationEvent: handle_location,
    PhotoEvent: handle_photo,
    IgnoredEvent: handle_ignored,
}


async def dispatch_event(event, ctx) -> None:
    """
    Run the handler for an event.

    Handlers re-read the task on every run, so a StaleTaskError is retried
    once from scratch before giving up.
    """
    handler = HANDLERS[type(event)]
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            await handler(event, ctx)
            return
        except StaleTaskError as e:
            if attempt == MAX_ATTEMPTS:
                logger.warning(f"Giving up on {type(event).__name__}: {e}")
                if isinstance(event, CallbackEvent):
                    await answer_callback(ctx.bot, event.callback_id, GIVE_UP_CALLBACK_TEXT)
                return
            logger.info(f"Retrying {type(event).__name__} after concurrent update: {e}")


@log_timing("process_update")
async def process_update(payload, ctx) -> None:
    """Classify a raw Telegram update and dispatch it."""
    event = classify_payload(payload, ctx.bot)
    logger.info(f"📨 Update {payload.get('update_id') if isinstance(payload, dict) else None}: "
                f"{type(event).__name__}")
    await dispatch_event(event, ctx)
