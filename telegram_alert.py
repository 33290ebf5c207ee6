# Filename: telegram_alert.py

import os
import logging
from typing import Optional

import requests

from errors import DeliveryFailure

logger = logging.getLogger("TelegramNotifier")

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramNotifier:
    """
    Sends Markdown messages to one Telegram chat or channel through the Bot API.
    send_markdown() is blocking; the dispatcher runs it in a worker thread.
    """

    def __init__(self, bot_token: Optional[str] = None, chat_id: Optional[str] = None,
                 timeout: float = 10, session: Optional[requests.Session] = None):
        self.bot_token = bot_token or os.getenv("TELEGRAM_BOT_TOKEN", "")
        self.chat_id = chat_id or os.getenv("TELEGRAM_CHAT_ID", "")
        self.timeout = timeout
        self.session = session or requests.Session()

        if not self.bot_token or not self.chat_id:
            logger.error("[Telegram] Missing bot token or chat ID!")

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def send_markdown(self, text: str) -> None:
        """
        Sends a raw Markdown message.

        Raises:
            DeliveryFailure: missing credentials, transport error or non-200 answer.
        """
        if not self.configured:
            raise DeliveryFailure("Telegram bot token or chat ID not configured")

        url = f"{TELEGRAM_API_URL}/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        }

        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise DeliveryFailure(f"Telegram request exception: {e}") from e

        if response.status_code != 200:
            raise DeliveryFailure(f"Telegram sendMessage failed: {response.status_code} - {response.text}")
        logger.debug("[Telegram] ✅ Message sent successfully.")


class LogChannel:
    """Stand-in channel used when Telegram is disabled: alerts go to the log."""

    def __init__(self, name: str = "AlertLog"):
        self.logger = logging.getLogger(name)

    def send_markdown(self, text: str) -> None:
        self.logger.info("\n" + text)
