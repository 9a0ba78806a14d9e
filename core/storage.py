"""
Storage service for per-topic listing state.

Each topic has its own JSON file under the data directory, mapping
listing id -> stored projection (imageUrl, url, price, rooms, floor, size,
text, addedAt). Only listings that were selected for notification are
merged in, so listings cut by the per-run cap stay candidates.
"""

import json
import logging
import os
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from core.errors import StateIOError
from core.migrator import StateMigrator
from core.models import ListingRecord, utc_now
from core.persistence import atomic_write_json, touch_work_signal

logger = logging.getLogger(__name__)

TopicState = Dict[str, Dict]


class TopicStateStore:
    """物件狀態儲存服務"""

    def __init__(self, data_dir: str = "data", work_signal_path: str = "push_me"):
        self.data_dir = data_dir
        self.work_signal_path = work_signal_path
        self._migrator = StateMigrator()

    def state_path(self, topic: str) -> str:
        """取得 topic 對應的狀態檔路徑"""
        return os.path.join(self.data_dir, f"{topic}.json")

    def load(self, topic: str) -> TopicState:
        """
        載入 topic 的狀態

        檔案不存在時建立空白狀態檔並返回空字典。

        Args:
            topic: topic 名稱

        Returns:
            listing id 到儲存資料的字典

        Raises:
            StateIOError: 檔案存在但無法讀取或內容損毀時
        """
        path = self.state_path(topic)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except FileNotFoundError:
            logger.info(f"No state file for {topic!r}, creating {path}")
            try:
                atomic_write_json(path, {})
            except OSError as e:
                raise StateIOError(f"Could not create {path}: {e}", topic=topic) from e
            return {}
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StateIOError(f"Could not read {path}: {e}", topic=topic) from e

        try:
            return self._migrator.migrate(raw, topic=topic)
        except StateIOError as e:
            e.topic = topic
            raise

    def save(self, topic: str, state: TopicState) -> None:
        """
        覆寫 topic 的狀態檔並建立工作訊號檔

        Raises:
            StateIOError: 寫入失敗時
        """
        path = self.state_path(topic)
        try:
            atomic_write_json(path, state)
            touch_work_signal(self.work_signal_path)
        except OSError as e:
            raise StateIOError(f"Could not write {path}: {e}", topic=topic) from e
        logger.debug(f"Saved {len(state)} listings for {topic!r}")

    def merge_notified(
        self,
        state: TopicState,
        records: Iterable[ListingRecord],
        added_at: Optional[datetime] = None,
    ) -> Tuple[TopicState, int]:
        """
        將已選為通知的物件加入狀態（不修改傳入的字典）

        Args:
            state: 目前的狀態
            records: 本次要通知的物件
            added_at: 加入時間，預設為當前時間

        Returns:
            (新的狀態, 新加入的數量)
        """
        if added_at is None:
            added_at = utc_now()

        merged = dict(state)
        added = 0
        for record in records:
            if record.id in merged:
                continue
            merged[record.id] = record.to_state_entry(added_at)
            added += 1
        return merged, added

    def prune_stale(
        self,
        state: TopicState,
        current: Iterable[ListingRecord],
    ) -> Tuple[TopicState, List[str]]:
        """
        移除已不在目前頁面上的物件

        Returns:
            (新的狀態, 被移除的 id 列表)
        """
        current_ids: Set[str] = {record.id for record in current}
        kept = {
            listing_id: entry
            for listing_id, entry in state.items()
            if listing_id in current_ids
        }
        removed = [listing_id for listing_id in state if listing_id not in current_ids]
        return kept, removed

    def get_listing_count(self, topic: str) -> int:
        """取得 topic 已記錄的物件數量（狀態檔不存在時為 0，不建立檔案）"""
        if not os.path.exists(self.state_path(topic)):
            return 0
        return len(self.load(topic))
