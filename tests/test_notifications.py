"""
Tests for the notification layer and the PM webhook client.
"""
import json

import httpx
import pytest
from telegram.error import BadRequest, NetworkError

from conftest import (
    OWNER_CHAT_ID,
    START_TIME,
    make_bot,
    make_integration,
    make_task,
    text_update,
)

from handlers import process_update
from handlers.notifications import (
    build_location_payload,
    build_progress_payload,
    notify_manager_about_problem,
    render_task_card,
    send_message,
    update_task_message,
)
from models import LocationPoint, LocationTracking
from pm_webhook import PMWebhookClient
from utils.helpers import build_task_keyboard, format_distance, format_duration


class TestRenderTaskCard:

    def test_escapes_html(self):
        card = render_task_card(make_task(title="Fix <b>pump</b> & valve"))
        assert "Fix &lt;b&gt;pump&lt;/b&gt; &amp; valve" in card
        assert "Status: <b>SENT</b>" in card

    def test_problem_shows_description(self):
        card = render_task_card(make_task(status="problem", problem_description="No key"))
        assert "⚠️ Problem: No key" in card

    def test_completed_shows_time_and_photos(self):
        task = make_task(status="completed", completed_at=START_TIME, photo_urls=["a", "b"])
        card = render_task_card(task)
        assert "Completed at 09:00 UTC" in card
        assert "2 photo(s) attached" in card

    def test_keyboard(self):
        buttons = build_task_keyboard(make_task()).inline_keyboard
        callbacks = [b.callback_data for row in buttons for b in row]
        assert callbacks == ["task_start_task-1", "task_done_task-1", "task_problem_task-1"]
        assert build_task_keyboard(make_task(status="completed")).inline_keyboard == ()


class TestFormatting:

    def test_format_distance(self):
        assert format_distance(1234) == "1.23 km"
        assert format_distance(0) == "0.00 km"

    def test_format_duration(self):
        assert format_duration(45) == "45 min"
        assert format_duration(65.2) == "1 h 5 min"


class TestBestEffortDelivery:

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self):
        bot = make_bot()
        bot.send_message.side_effect = NetworkError("connection reset")
        assert await send_message(bot, 1, "hi") is False

    @pytest.mark.asyncio
    async def test_not_modified_counts_as_success(self):
        bot = make_bot()
        bot.edit_message_text.side_effect = BadRequest("Message is not modified: specified new message content")
        assert await update_task_message(bot, 1, 500, make_task()) is True

    @pytest.mark.asyncio
    async def test_edit_failure_is_swallowed(self):
        bot = make_bot()
        bot.edit_message_text.side_effect = BadRequest("Message to edit not found")
        assert await update_task_message(bot, 1, 500, make_task()) is False

    @pytest.mark.asyncio
    async def test_card_without_message_id_is_skipped(self):
        bot = make_bot()
        assert await update_task_message(bot, 1, None, make_task()) is False
        bot.edit_message_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_transition_survives_telegram_outage(self, ctx, bot, repo):
        repo.add_task(make_task())
        repo.add_integration(make_integration())
        bot.send_message.side_effect = NetworkError("down")
        bot.edit_message_text.side_effect = NetworkError("down")

        await process_update(text_update("start"), ctx)

        assert repo.stored_task("task-1").status == "started"

    @pytest.mark.asyncio
    async def test_escalation_goes_to_owner(self):
        bot = make_bot()
        task = make_task(status="problem", problem_description="Wall <is> wet")
        assert await notify_manager_about_problem(bot, make_integration(), task) is True
        call = bot.send_message.call_args
        assert call.kwargs["chat_id"] == OWNER_CHAT_ID
        assert "Wall &lt;is&gt; wet" in call.kwargs["text"]


class TestPayloads:

    def test_location_payload(self):
        point = LocationPoint(lat=50.1, lng=30.2, timestamp=START_TIME, accuracy=5.0, speed=1.2, heading=90)
        tracking = LocationTracking(enabled=True, current_location=point, history=[point],
                                    total_distance_meters=321.25, started_at=START_TIME)
        task = make_task(external_task_id="PM-9", location_tracking=tracking)

        payload = build_location_payload(task)

        assert payload["event"] == "location_update"
        assert payload["task_id"] == "task-1"
        assert payload["external_task_id"] == "PM-9"
        assert payload["location"] == {
            "lat": 50.1, "lng": 30.2, "accuracy": 5.0, "speed": 1.2, "heading": 90,
            "timestamp": START_TIME.isoformat(),
        }
        assert payload["total_distance_meters"] == 321.25
        json.dumps(payload)

    def test_progress_payload(self):
        task = make_task(status="problem", problem_description="Locked")
        payload = build_progress_payload(task, START_TIME)
        assert payload["event"] == "task_problem"
        assert payload["problem_description"] == "Locked"
        assert payload["timestamp"] == START_TIME.isoformat()


def _recording_client(responses, max_retries=2):
    calls = []

    def handler(request):
        calls.append(json.loads(request.content))
        outcome = responses[min(len(calls), len(responses)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome)

    client = PMWebhookClient(timeout=1, max_retries=max_retries, retry_delay=0,
                             transport=httpx.MockTransport(handler))
    return client, calls


class TestPMWebhookClient:

    @pytest.mark.asyncio
    async def test_delivered(self):
        client, calls = _recording_client([200])
        assert await client.post("https://pm.example.com/hook", {"event": "task_started"}) is True
        assert calls == [{"event": "task_started"}]

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self):
        client, calls = _recording_client([503, 502, 204])
        assert await client.post("https://pm.example.com/hook", {"event": "x"}) is True
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        client, calls = _recording_client([404])
        assert await client.post("https://pm.example.com/hook", {"event": "x"}) is False
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_network_errors_exhaust_retries(self):
        client, calls = _recording_client([httpx.ConnectError("refused")], max_retries=1)
        assert await client.post("https://pm.example.com/hook", {"event": "x"}) is False
        assert len(calls) == 2
