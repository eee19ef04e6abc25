#!/usr/bin/env python3
"""
Field Task Dispatch Bot
Workers receive tasks in Telegram and report progress with text commands,
buttons, photos and live location. Progress flows back to the PM tool.

DEBUG mode runs long polling; PRODUCTION mode registers the webhook served by main.py.
"""
import asyncio
import sys
import logging

from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from config import Config

from telegram import Bot, Update
from telegram.ext import Application, ContextTypes, TypeHandler

from database import init_db
from db_async import TaskRepository
from handlers import HandlerContext, process_update
from pm_webhook import PMWebhookClient

# Enable logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
)
# httpx logs every Telegram request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def build_context(bot) -> HandlerContext:
    """Wire the collaborators used by the update handlers."""
    return HandlerContext(bot=bot, repository=TaskRepository(), webhooks=PMWebhookClient())


async def handle_webhook_update(payload, bot=None, ctx: HandlerContext = None) -> dict:
    """
    Process one webhook delivery from Telegram.

    Always acknowledges with {"ok": True}: Telegram retries anything else,
    and internal failures are logged here instead.
    """
    if bot is None and ctx is None:
        # The bot owns an HTTP client; the context manager initializes and closes it
        try:
            async with Bot(Config.TELEGRAM_BOT_TOKEN) as owned_bot:
                return await handle_webhook_update(payload, bot=owned_bot)
        except Exception as e:
            logger.exception("Telegram bot unavailable: %s", e)
            return {"ok": True}

    try:
        await process_update(payload, ctx or build_context(bot))
    except Exception as e:
        logger.exception("Error processing Telegram update: %s", e)

    return {"ok": True}


async def on_polled_update(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Feed an update received by long polling through the webhook pipeline."""
    await handle_webhook_update(update.to_dict(), ctx=build_context(context.bot))


async def register_webhook() -> None:
    """Point Telegram at the public webhook endpoint."""
    webhook_url = f"{Config.PUBLIC_URL.rstrip('/')}{Config.WEBHOOK_PATH}"
    async with Bot(Config.TELEGRAM_BOT_TOKEN) as bot:
        await bot.set_webhook(url=webhook_url, allowed_updates=Update.ALL_TYPES)
    logger.info(f"Webhook registered: {webhook_url}")


def start_bot():
    """Start the bot."""
    config_info = Config.get_info()
    logger.info(f"Bot configuration: {config_info}")

    try:
        init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    if Config.USE_WEBHOOK:
        # Production: Telegram posts to main.py's Flask endpoint
        asyncio.run(register_webhook())
        from main import app
        logger.info(f"[BOT] Running in webhook mode on 0.0.0.0:{Config.PORT}")
        app.run(host="0.0.0.0", port=Config.PORT)
        return

    # Debug mode: use polling for local development
    application = Application.builder().token(Config.TELEGRAM_BOT_TOKEN).concurrent_updates(True).build()
    application.add_handler(TypeHandler(Update, on_polled_update))

    logger.info("[BOT] Running in polling mode")
    print("[BOT] Bot started in polling mode. Press Ctrl+C to stop.")
    application.run_polling(allowed_updates=Update.ALL_TYPES, timeout=Config.POLLING_TIMEOUT)


def main():
    """Main entry point."""
    try:
        start_bot()
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    main()
