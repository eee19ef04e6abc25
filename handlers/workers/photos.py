"""Worker photo handler."""
import logging

from handlers.notifications import get_file_url, send_message
from models import WorkerComment

logger = logging.getLogger(__name__)


async def handle_photo(event, ctx) -> None:
    """Attach the largest resolution of an uploaded photo to the active task."""
    task = await ctx.resolve_active_task(event.chat_id)
    if task is None:
        await send_message(ctx.bot, event.chat_id, "No active task found. Photo not saved.")
        return

    # Telegram orders sizes from smallest to largest
    file_url = await get_file_url(ctx.bot, event.file_ids[-1])
    if file_url is None:
        await send_message(ctx.bot, event.chat_id, "❌ Could not save the photo. Please send it again.",
                           event.message_id)
        return

    task.photo_urls.append(file_url)
    if event.caption:
        task.worker_comments.append(WorkerComment(message=f"[Photo] {event.caption}", timestamp=ctx.now()))

    await ctx.persist_task(task)
    logger.info(f"📷 Photo added to task {task.task_id} ({len(task.photo_urls)} total)")
    await send_message(ctx.bot, event.chat_id, f"📷 Photo added to task. ({len(task.photo_urls)} total)")
