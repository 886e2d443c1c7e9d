"""Sonic — Main entry point."""

import asyncio
import logging
import os

from .audit import AuditRecorder
from .communication.telegram import TelegramChannel
from .config import SonicSettings, load_settings
from .core.capabilities import Capabilities
from .core.pipeline import AssistantPipeline
from .db.connection import close_db, ensure_schema, init_db
from .llm.google import GoogleProvider

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("sonic")


def setup_logging(settings: SonicSettings):
    handlers = [logging.StreamHandler()]                  # stderr (console)
    if settings.log_file:
        handlers.append(logging.FileHandler(os.path.expanduser(settings.log_file), encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=_log_format,
        handlers=handlers,
    )
    # httpx logs every request URL at INFO, including the Gemini key query param
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_pipeline(settings: SonicSettings) -> AssistantPipeline:
    provider = GoogleProvider(api_key=settings.gemini_api_key, chat_model=settings.gemini_model)
    return AssistantPipeline(
        provider,
        capabilities=Capabilities.load(settings.capabilities_path),
        audit=AuditRecorder(),
        model=settings.gemini_model,
        context_max_pages=settings.context_max_pages,
        context_include_details=settings.context_include_details,
    )


async def run():
    """Main run loop."""
    settings = load_settings()
    setup_logging(settings)

    if not settings.telegram_bot_token or not settings.gemini_api_key:
        logger.critical("Both SONIC_TELEGRAM_BOT_TOKEN and SONIC_GEMINI_API_KEY are required.")
        return

    telegram = None
    try:
        await init_db(settings.database_url)
        await ensure_schema()

        telegram = TelegramChannel(
            build_pipeline(settings),
            settings.telegram_bot_token,
            luma_base_url=settings.luma_api_base,
            luma_timeout=settings.luma_timeout,
        )
        await telegram.start()
        logger.info("Telegram channel active.")

        # Keep alive
        logger.info("Sonic is running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(1)

    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
    finally:
        if telegram:
            await telegram.stop()
        await close_db()


def main():
    """Entry point."""
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
