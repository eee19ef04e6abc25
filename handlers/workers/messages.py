"""Worker text and button handlers."""
import logging

from telegram import ReplyKeyboardRemove

from handlers.commands import (
    NO_TASK_REPLY_WORDS,
    Intent,
    interpret_text,
    normalize_text,
    parse_callback_data,
)
from handlers.lifecycle import apply_transition
from handlers.notifications import (
    answer_callback,
    notify_manager_about_problem,
    push_progress_event,
    send_message,
    update_task_message,
)
from handlers.stats import completion_minutes, response_minutes
from models import WorkerComment
from utils.helpers import (
    build_location_request_keyboard,
    format_distance,
    format_duration,
)

logger = logging.getLogger(__name__)

NO_ACTIVE_TASK_TEXT = "No active task found. Wait for a new task to be assigned."
PROBLEM_PROMPT_TEXT = (
    "⚠️ Please describe the problem:\n\n"
    "Just type what went wrong and I'll notify your manager."
)
CALLBACK_ANSWERS = {
    Intent.START: "Task started! 🔄",
    Intent.COMPLETE: "Completed! 🎉",
    Intent.PROBLEM: "Please type the problem",
}


def _wants_location_request(task, integration) -> bool:
    if integration is None or not integration.settings.enable_location_tracking:
        return False
    tracking = task.location_tracking
    return not (tracking and tracking.enabled)


def completion_summary(task) -> str:
    """Reply sent to the worker when a task is completed."""
    text = "🎉 Great job! Task marked as complete."
    tracking = task.location_tracking

    if tracking and tracking.total_distance_meters > 0:
        text += f"\n\n📍 Trip: {format_distance(tracking.total_distance_meters)}"

    minutes = response_minutes(task)
    if minutes is not None:
        text += f"\n⏱ Time on task: {format_duration(minutes)}"

    if tracking and tracking.stopped_at:
        text += "\n\nLocation tracking stopped. You can stop sharing your live location."

    return text


async def _send_intent_reply(ctx, task, integration, intent, chat_id, reply_to_message_id=None):
    bot = ctx.bot
    if intent is Intent.START:
        text = "✅ Task started! Reply <code>done</code> when finished."
        if _wants_location_request(task, integration):
            text += (
                "\n\n📍 Please share your <b>live location</b> while you work:\n"
                "tap 📎 → Location → Share My Live Location."
            )
            await send_message(bot, chat_id, text, reply_to_message_id,
                               reply_markup=build_location_request_keyboard())
        else:
            await send_message(bot, chat_id, text, reply_to_message_id)
    elif intent is Intent.COMPLETE:
        await send_message(bot, chat_id, completion_summary(task), reply_to_message_id,
                           reply_markup=ReplyKeyboardRemove())
    elif intent is Intent.PROBLEM:
        await send_message(bot, chat_id, PROBLEM_PROMPT_TEXT, reply_to_message_id)


async def apply_intent(ctx, task, integration, intent, chat_id, reply_to_message_id=None,
                       card_message_id=None, callback_id=None):
    """
    Run a status intent through the state machine and emit its side effects.

    The task (and, on completion, the integration) is persisted before any
    chat or webhook traffic, so a lost save never leaves notifications behind.

    Returns:
        TransitionResult, or None if the transition was rejected
    """
    now = ctx.now()
    result = apply_transition(task, intent, now, integration)
    if result is None:
        if callback_id:
            await answer_callback(ctx.bot, callback_id, "Task already completed")
        return None

    await ctx.persist_task(task)
    if intent is Intent.COMPLETE and integration is not None:
        # Stats are applied to the stored row, not written back from this copy
        stats = await ctx.repository.record_completion(integration.integration_id, completion_minutes(task))
        if stats is None:
            logger.error(f"Failed to record completion for integration {integration.integration_id}")
        else:
            integration.stats = stats

    if callback_id:
        await answer_callback(ctx.bot, callback_id, CALLBACK_ANSWERS[intent])

    await update_task_message(ctx.bot, chat_id, card_message_id or task.telegram_message_id, task)
    await push_progress_event(ctx.webhooks, integration, task, now)
    await _send_intent_reply(ctx, task, integration, intent, chat_id, reply_to_message_id)
    return result


async def send_greeting(ctx, chat_id) -> None:
    """First-contact reply to /start, independent of any task."""
    text = (
        "👋 Hi! I deliver your field tasks.\n\n"
        f"Your Telegram ID: <code>{chat_id}</code>\n"
        "Share it with your manager so tasks can be sent to you.\n\n"
        "When a task arrives, reply <code>start</code>, <code>done</code> or "
        "<code>problem</code>, send photos as proof, or type any note."
    )
    await send_message(ctx.bot, chat_id, text)


async def capture_problem_description(ctx, task, integration, event) -> None:
    """Record the worker's problem text and escalate it to the manager."""
    task.problem_description = event.text
    await ctx.persist_task(task)

    await update_task_message(ctx.bot, event.chat_id, task.telegram_message_id, task)
    if integration is not None:
        await notify_manager_about_problem(ctx.bot, integration, task)
    await push_progress_event(ctx.webhooks, integration, task, ctx.now())

    await send_message(
        ctx.bot,
        event.chat_id,
        "📝 Problem noted. Your manager has been notified.\n\n"
        "Reply <code>start</code> to try again or wait for instructions.",
        event.message_id,
    )


async def add_comment(ctx, task, event) -> None:
    """Append free text to the task as a worker comment."""
    task.worker_comments.append(WorkerComment(message=event.text, timestamp=ctx.now()))
    await ctx.persist_task(task)
    await send_message(ctx.bot, event.chat_id, "📝 Note added to task.", event.message_id)


async def handle_text(event, ctx) -> None:
    """Handle free text from a worker chat."""
    intent = interpret_text(event.text)

    if intent is Intent.GREETING:
        await send_greeting(ctx, event.chat_id)
        return

    task = await ctx.resolve_active_task(event.chat_id)
    if task is None:
        if normalize_text(event.text) in NO_TASK_REPLY_WORDS:
            await send_message(ctx.bot, event.chat_id, NO_ACTIVE_TASK_TEXT)
        else:
            logger.debug(f"Ignoring text from chat {event.chat_id} without active task")
        return

    if intent is Intent.SKIP_LOCATION:
        await send_message(
            ctx.bot, event.chat_id, "👌 OK, continuing without location tracking.",
            event.message_id, reply_markup=ReplyKeyboardRemove(),
        )
        return

    integration = await ctx.repository.get_integration(task.integration_id)
    if integration is None:
        logger.warning(f"Integration {task.integration_id} of task {task.task_id} not found")

    if intent is not None:
        await apply_intent(ctx, task, integration, intent, event.chat_id,
                           reply_to_message_id=event.message_id)
        return

    if task.awaiting_problem_description:
        await capture_problem_description(ctx, task, integration, event)
        return

    await add_comment(ctx, task, event)


async def handle_callback(event, ctx) -> None:
    """Handle a Start / Done / Problem button press."""
    parsed = parse_callback_data(event.data)
    if parsed is None:
        await answer_callback(ctx.bot, event.callback_id, "Unknown action")
        return

    intent, task_id = parsed
    task = await ctx.repository.get_task(task_id)
    if task is None:
        await answer_callback(ctx.bot, event.callback_id, "Task not found")
        return

    integration = await ctx.repository.get_integration(task.integration_id)
    if integration is None:
        logger.warning(f"Integration {task.integration_id} of task {task.task_id} not found")

    await apply_intent(
        ctx, task, integration, intent,
        chat_id=event.chat_id or task.worker_chat_id,
        card_message_id=event.message_id,
        callback_id=event.callback_id,
    )
