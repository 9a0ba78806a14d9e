"""
通知派送模組

將本次的新物件轉換為訊息並依序發送：
- 先發送摘要（沒有新物件時改發「沒有新物件」訊息）
- 每筆物件先嘗試圖片訊息，失敗則改用文字訊息，再失敗則略過
- 每次發送之間固定間隔，避免觸發 Telegram 速率限制
"""

import html
import logging
import time
from typing import List, Optional

from core.errors import NotificationError
from core.models import DEFAULT_LISTING_TEXT, ListingRecord
from core.notifier import MAX_CAPTION_LENGTH, NotifierSink

logger = logging.getLogger(__name__)

MAX_CAPTION_TEXT_LENGTH = 200
CAPTION_TEXT_PREFIX = "\n📝 "


def _escape_within(text: str, limit: int) -> str:
    """跳脫 HTML，並將原文截短到跳脫後不超過 limit 字"""
    escaped = html.escape(text)
    while len(escaped) > limit and text:
        text = text[:-1]
        escaped = html.escape(text)
    return escaped if len(escaped) <= limit else ""


def format_listing_caption(record: ListingRecord, topic: str) -> str:
    """
    組合單一物件的說明文字（HTML 格式）

    Args:
        record: 物件紀錄
        topic: topic 名稱

    Returns:
        說明文字
    """
    caption = f"🏠 <b>新物件上架 - {html.escape(topic)}</b>\n\n"

    if record.price:
        caption += f"💰 價格：{html.escape(record.price)}\n"
    if record.rooms:
        caption += f"🚪 房間：{html.escape(record.rooms)}\n"
    if record.floor:
        caption += f"🏢 樓層：{html.escape(record.floor)}\n"
    if record.size:
        caption += f"📐 坪數：{html.escape(record.size)}\n"

    link = ""
    if record.url:
        link = f'\n\n🔗 <a href="{html.escape(record.url, quote=True)}">查看物件</a>'

    # 描述依剩餘長度截短，連結標籤必須完整保留在長度上限內
    if record.text and record.text != DEFAULT_LISTING_TEXT:
        budget = MAX_CAPTION_LENGTH - len(caption) - len(link) - len(CAPTION_TEXT_PREFIX)
        text = _escape_within(record.text[:MAX_CAPTION_TEXT_LENGTH], budget)
        if text:
            caption += CAPTION_TEXT_PREFIX + text

    return caption + link


def format_summary(topic: str, total: int, shown: int) -> str:
    """組合摘要訊息，total 為本次找到的新物件總數"""
    message = f"🎉 [{html.escape(topic)}] 找到 {total} 筆新物件，顯示 {shown} 筆"
    remaining = total - shown
    if remaining > 0:
        message += f"\n其餘 {remaining} 筆將於下次執行時通知"
    return message


def format_nothing_new(topic: str) -> str:
    return f"[{html.escape(topic)}] 沒有新物件"


def format_failure(topic: str, label: str, error_message: str) -> str:
    return f"❌ [{html.escape(topic)}] 掃描失敗（{label}）😥\n{html.escape(error_message)}"


class NotificationDispatcher:
    """通知派送器"""

    def __init__(
        self,
        sink: NotifierSink,
        send_delay_seconds: float = 1.5,
        chat_id: Optional[str] = None,
    ):
        """
        Args:
            sink: 訊息發送服務
            send_delay_seconds: 兩次發送之間的最小間隔（秒）
            chat_id: 目標聊天室，None 則使用 sink 的預設值
        """
        self.sink = sink
        self.send_delay_seconds = send_delay_seconds
        self.chat_id = chat_id

    def send(self, batch: List[ListingRecord], cap: int, topic: str) -> int:
        """
        發送一批新物件的通知

        只有前 cap 筆會個別發送，其餘僅在摘要中計數。
        單筆發送失敗不會中斷整批。

        Args:
            batch: 本次的新物件（頁面順序）
            cap: 本次最多個別發送的數量
            topic: topic 名稱

        Returns:
            int: 成功發送（含改用文字訊息）的物件數
        """
        if not batch:
            self._send_text_safely(format_nothing_new(topic))
            return 0

        selected = batch[:cap]
        logger.info(
            f"Sending {len(selected)} of {len(batch)} new listings for {topic!r}"
        )
        self._send_text_safely(format_summary(topic, len(batch), len(selected)))

        sent_count = 0
        for record in selected:
            time.sleep(self.send_delay_seconds)
            if self._send_listing(record, topic):
                sent_count += 1

        logger.info(f"Notifications sent: {sent_count}/{len(selected)}")
        return sent_count

    def send_failure(self, topic: str, label: str, error_message: str) -> bool:
        """發送失敗通知，本身失敗時只記錄 log"""
        return self._send_text_safely(format_failure(topic, label, error_message))

    def _send_listing(self, record: ListingRecord, topic: str) -> bool:
        """
        發送單筆物件：圖片訊息 → 文字訊息 → 略過

        Returns:
            是否有任一方式發送成功
        """
        caption = format_listing_caption(record, topic)

        if record.image_url:
            try:
                self.sink.send_photo(record.image_url, caption, self.chat_id)
                return True
            except NotificationError as e:
                logger.warning(f"Failed to send photo for {record.id}: {e}, falling back to text")
            fallback = f"{caption}\n\n📷 {html.escape(record.image_url)}"
        else:
            fallback = caption

        try:
            self.sink.send_text(fallback, self.chat_id)
            return True
        except NotificationError as e:
            logger.error(f"Failed to send listing {record.id}, skipping: {e}")
            return False

    def _send_text_safely(self, message: str) -> bool:
        try:
            self.sink.send_text(message, self.chat_id)
            return True
        except NotificationError as e:
            logger.error(f"Failed to send Telegram message: {e}")
            return False
