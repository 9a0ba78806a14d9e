"""
通知服務模組

提供 Telegram 通知功能；測試模式下改用只寫入 log 的 DryRunNotifier。
發送失敗時拋出 NotificationError，由呼叫端決定改用文字訊息或略過。
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from core.config import AppConfig
from core.errors import NotificationError

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"

# Telegram 的長度限制
MAX_MESSAGE_LENGTH = 4096
MAX_CAPTION_LENGTH = 1024


class NotifierSink(ABC):
    """訊息發送介面"""

    @abstractmethod
    def send_text(self, message: str, chat_id: Optional[str] = None) -> None:
        """
        發送文字訊息

        Raises:
            NotificationError: 發送失敗時
        """
        pass

    @abstractmethod
    def send_photo(self, photo_url: str, caption: str, chat_id: Optional[str] = None) -> None:
        """
        發送圖片與說明文字

        Raises:
            NotificationError: 發送失敗時
        """
        pass


class TelegramNotifier(NotifierSink):
    """Telegram 通知服務"""

    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10):
        if not bot_token or not chat_id:
            raise ValueError("Telegram bot token and chat id must be set")
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout

    def _post(self, method: str, payload: dict) -> dict:
        """呼叫 Telegram Bot API 並檢查回應中的 ok 欄位"""
        url = f"{TELEGRAM_API_BASE}/bot{self.bot_token}/{method}"
        try:
            response = requests.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise NotificationError(f"Telegram {method} request failed: {e}") from e

        try:
            result = response.json()
        except ValueError as e:
            raise NotificationError(
                f"Telegram {method} returned a non-JSON response (HTTP {response.status_code})"
            ) from e

        if not isinstance(result, dict):
            raise NotificationError(
                f"Telegram {method} returned an unexpected response (HTTP {response.status_code})"
            )
        if not result.get("ok"):
            raise NotificationError(
                f"Telegram {method} failed: {result.get('description', 'unknown error')}"
            )
        return result

    def send_text(self, message: str, chat_id: Optional[str] = None) -> None:
        self._post(
            "sendMessage",
            {
                "chat_id": chat_id or self.chat_id,
                "text": message[:MAX_MESSAGE_LENGTH],
                "parse_mode": "HTML",
            },
        )

    def send_photo(self, photo_url: str, caption: str, chat_id: Optional[str] = None) -> None:
        self._post(
            "sendPhoto",
            {
                "chat_id": chat_id or self.chat_id,
                "photo": photo_url,
                "caption": caption[:MAX_CAPTION_LENGTH],
                "parse_mode": "HTML",
            },
        )


class DryRunNotifier(NotifierSink):
    """測試模式：不發送訊息，只寫入 log"""

    def __init__(self):
        self.sent_messages = []

    def send_text(self, message: str, chat_id: Optional[str] = None) -> None:
        logger.info(f"[Telegram Text] {message}")
        self.sent_messages.append(("text", message))

    def send_photo(self, photo_url: str, caption: str, chat_id: Optional[str] = None) -> None:
        logger.info(f"[Telegram Photo] {photo_url}")
        logger.info(f"[Caption] {caption}")
        self.sent_messages.append(("photo", caption))


def create_notifier(config: AppConfig) -> NotifierSink:
    """根據設定建立通知服務"""
    if config.test_mode:
        logger.info("Running in TEST MODE - Telegram messages will be skipped")
        return DryRunNotifier()
    return TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)
