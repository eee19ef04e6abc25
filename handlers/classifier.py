"""
Inbound update classifier.

Turns a raw Telegram update into exactly one tagged event. No side effects
happen here; unrecognized or malformed updates become IgnoredEvent.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from telegram import Update

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallbackEvent:
    callback_id: str
    data: str
    chat_id: Optional[str]
    message_id: Optional[int]


@dataclass(frozen=True)
class TextEvent:
    chat_id: str
    message_id: int
    text: str


@dataclass(frozen=True)
class LocationEvent:
    chat_id: str
    message_id: int
    latitude: float
    longitude: float
    live: bool
    accuracy: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None


@dataclass(frozen=True)
class PhotoEvent:
    chat_id: str
    message_id: int
    file_ids: Tuple[str, ...]
    caption: Optional[str] = None


@dataclass(frozen=True)
class IgnoredEvent:
    reason: str


InboundEvent = Union[CallbackEvent, TextEvent, LocationEvent, PhotoEvent, IgnoredEvent]

EVENT_TYPES = (CallbackEvent, TextEvent, LocationEvent, PhotoEvent, IgnoredEvent)


def _location_event(message, live: bool) -> LocationEvent:
    location = message.location
    # speed is not part of the Bot API Location object; clients that send it end up in api_kwargs
    extra = location.api_kwargs or {}
    return LocationEvent(
        chat_id=str(message.chat.id),
        message_id=message.message_id,
        latitude=location.latitude,
        longitude=location.longitude,
        live=live or bool(location.live_period),
        accuracy=location.horizontal_accuracy,
        speed=extra.get("speed"),
        heading=location.heading,
    )


def classify_update(update: Update) -> InboundEvent:
    """Map a parsed Telegram update to a single inbound event."""
    if update.callback_query:
        query = update.callback_query
        message = query.message
        return CallbackEvent(
            callback_id=query.id,
            data=query.data or "",
            chat_id=str(message.chat.id) if message else None,
            message_id=message.message_id if message else None,
        )

    if update.message:
        message = update.message
        chat_id = str(message.chat.id)

        if message.photo:
            return PhotoEvent(
                chat_id=chat_id,
                message_id=message.message_id,
                file_ids=tuple(size.file_id for size in message.photo),
                caption=message.caption,
            )

        if message.location:
            return _location_event(message, live=False)

        if message.text:
            return TextEvent(chat_id=chat_id, message_id=message.message_id, text=message.text)

        return IgnoredEvent("message without text, photo or location")

    if update.edited_message:
        if update.edited_message.location:
            return _location_event(update.edited_message, live=True)
        return IgnoredEvent("edited message without location")

    return IgnoredEvent("unsupported update type")


def classify_payload(payload, bot=None) -> InboundEvent:
    """Parse a webhook JSON body and classify it. Malformed bodies are ignored."""
    if not isinstance(payload, dict):
        return IgnoredEvent("payload is not a JSON object")

    try:
        update = Update.de_json(payload, bot)
        if update is None:
            return IgnoredEvent("empty update")
        # Parsed objects can still lack required parts such as message.chat
        return classify_update(update)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Malformed update {payload.get('update_id')}: {e}")
        return IgnoredEvent("malformed update")
