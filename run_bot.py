#!/usr/bin/env python3
"""
run_bot.py — Screen Mockup Generator Telegram Bot entry point.

Usage:
    python run_bot.py

Required env vars (in .env):
    GEMINI_API_KEY=...
    TELEGRAM_BOT_TOKEN=...

Optional:
    TELEGRAM_ALLOWED_CHAT_IDS=123456,789012   # whitelist (leave empty = allow all)
    SCREEN_MOCKUP_*                           # see screen_mockup/config.py
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    format="%(asctime)s — %(levelname)s — %(name)s — %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)


def main() -> None:
    token = os.environ.get("TELEGRAM_BOT_TOKEN")
    if not token:
        logger.error("TELEGRAM_BOT_TOKEN not set in environment / .env")
        sys.exit(1)

    from screen_mockup.config import Settings
    from screen_mockup.errors import ConfigError

    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    if not settings.api_key:
        logger.error("GEMINI_API_KEY not set in environment / .env")
        sys.exit(1)

    from bot.pipeline_runner import CompositeRunner
    from bot.telegram_bot import build_app, parse_chat_ids

    allowed = parse_chat_ids(os.environ.get("TELEGRAM_ALLOWED_CHAT_IDS"))
    if allowed:
        logger.info("Restricting bot to %d chat(s)", len(allowed))

    logger.info("Starting Screen Mockup Generator Bot...")
    logger.info("Polling for updates — press Ctrl+C to stop")

    app = build_app(token=token, runner=CompositeRunner(settings=settings), allowed_chat_ids=allowed)
    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
