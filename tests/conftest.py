"""Pytest configuration, fakes and fixtures for the update processor tests."""
import copy
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add parent directory to sys.path to import project modules
sys.path.insert(0, str(Path(__file__).parent.parent))

os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:TEST-TOKEN")

from handlers.context import HandlerContext
from handlers.stats import apply_completion
from models import (
    ACTIVE_STATUSES,
    Integration,
    IntegrationSettings,
    WorkerTask,
)

WORKER_CHAT_ID = "222222222"
OWNER_CHAT_ID = "111111111"
START_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

# Degrees of latitude per meter along a meridian
LAT_DEGREES_PER_METER = 1 / 111194.93


class InMemoryRepository:
    """Task repository fake with the same compare-and-swap semantics as PostgreSQL."""

    def __init__(self):
        self.tasks = {}
        self.integrations = {}

    def add_task(self, task):
        self.tasks[task.task_id] = copy.deepcopy(task)
        return task

    def add_integration(self, integration):
        self.integrations[integration.integration_id] = copy.deepcopy(integration)
        return integration

    def stored_task(self, task_id):
        return self.tasks[task_id]

    async def get_task(self, task_id):
        task = self.tasks.get(task_id)
        return copy.deepcopy(task) if task else None

    async def find_active_task(self, worker_chat_id):
        candidates = [
            t for t in self.tasks.values()
            if t.worker_chat_id == str(worker_chat_id) and t.status in ACTIVE_STATUSES
        ]
        if not candidates:
            return None
        return copy.deepcopy(max(candidates, key=lambda t: t.created_at))

    async def save_task(self, task):
        stored = self.tasks.get(task.task_id)
        if stored is None or stored.version != task.version:
            return False
        task.version += 1
        self.tasks[task.task_id] = copy.deepcopy(task)
        return True

    async def create_task(self, task):
        self.add_task(task)
        return task.task_id

    async def get_integration(self, integration_id):
        integration = self.integrations.get(integration_id)
        return copy.deepcopy(integration) if integration else None

    async def record_completion(self, integration_id, minutes):
        integration = self.integrations.get(integration_id)
        if integration is None:
            return None
        # Read-modify-write without awaiting, like the single UPDATE in PostgreSQL
        apply_completion(integration.stats, minutes)
        return copy.deepcopy(integration.stats)


class FakeWebhooks:
    """Records PM webhook posts instead of sending them."""

    def __init__(self):
        self.posts = []

    async def post(self, url, payload):
        self.posts.append((url, payload))
        return True

    def events(self, name):
        return [payload for _, payload in self.posts if payload["event"] == name]


class FakeClock:
    """Controllable clock for throttling and timing tests."""

    def __init__(self, start=START_TIME):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, seconds=0, minutes=0):
        self.current += timedelta(seconds=seconds, minutes=minutes)


def make_bot():
    """Telegram bot double with async API methods."""
    bot = MagicMock()
    bot.token = "123456:TEST-TOKEN"
    # Update.de_json reads bot.defaults for the timezone of message dates
    bot.defaults = None
    bot.send_message = AsyncMock()
    bot.edit_message_text = AsyncMock()
    bot.answer_callback_query = AsyncMock()
    bot.get_file = AsyncMock()
    return bot


def make_task(**overrides):
    data = {
        "task_id": "task-1",
        "integration_id": "integration-1",
        "worker_chat_id": WORKER_CHAT_ID,
        "title": "Replace lobby door lock",
        "description": "Building 4, ground floor",
        "status": "sent",
        "created_at": START_TIME - timedelta(hours=1),
        "telegram_message_id": 500,
    }
    data.update(overrides)
    return WorkerTask(**data)


def make_integration(**settings):
    return Integration(
        integration_id="integration-1",
        owner_chat_id=OWNER_CHAT_ID,
        connect_id="connect-abc",
        name="Facilities board",
        platform="monday",
        settings=IntegrationSettings(**settings),
    )


def sent_texts(bot):
    """Texts passed to bot.send_message, in call order."""
    return [c.kwargs["text"] for c in bot.send_message.call_args_list]


def sent_to(bot, chat_id):
    return [c.kwargs["text"] for c in bot.send_message.call_args_list if str(c.kwargs["chat_id"]) == str(chat_id)]


# ============================================================================
# Telegram update payloads
# ============================================================================

_update_ids = iter(range(1000, 100000))


def _chat(chat_id):
    return {"id": int(chat_id), "type": "private", "first_name": "Worker"}


def _message(chat_id=WORKER_CHAT_ID, message_id=10, **fields):
    message = {"message_id": message_id, "date": 1772442000, "chat": _chat(chat_id),
               "from": {"id": int(chat_id), "is_bot": False, "first_name": "Worker"}}
    message.update(fields)
    return message


def text_update(text, chat_id=WORKER_CHAT_ID, message_id=10):
    return {"update_id": next(_update_ids), "message": _message(chat_id, message_id, text=text)}


def callback_update(data, chat_id=WORKER_CHAT_ID, message_id=500):
    return {
        "update_id": next(_update_ids),
        "callback_query": {
            "id": "cb-1",
            "from": {"id": int(chat_id), "is_bot": False, "first_name": "Worker"},
            "chat_instance": "instance-1",
            "data": data,
            "message": _message(chat_id, message_id, text="task card"),
        },
    }


def location_update(lat, lng, chat_id=WORKER_CHAT_ID, edited=False, live_period=None, **extra):
    location = {"latitude": lat, "longitude": lng}
    if live_period:
        location["live_period"] = live_period
    location.update(extra)
    key = "edited_message" if edited else "message"
    message = _message(chat_id, 11, location=location)
    if edited:
        message["edit_date"] = 1772442060
    return {"update_id": next(_update_ids), key: message}


def photo_update(file_ids, caption=None, chat_id=WORKER_CHAT_ID):
    sizes = [
        {"file_id": fid, "file_unique_id": f"u-{fid}", "width": 90 * (i + 1), "height": 60 * (i + 1)}
        for i, fid in enumerate(file_ids)
    ]
    fields = {"photo": sizes}
    if caption:
        fields["caption"] = caption
    return {"update_id": next(_update_ids), "message": _message(chat_id, 12, **fields)}


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def bot():
    return make_bot()


@pytest.fixture
def webhooks():
    return FakeWebhooks()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ctx(bot, repo, webhooks, clock):
    return HandlerContext(
        bot=bot,
        repository=repo,
        webhooks=webhooks,
        clock=clock,
        history_limit=500,
        noise_threshold_meters=10.0,
        webhook_interval_seconds=30,
    )
