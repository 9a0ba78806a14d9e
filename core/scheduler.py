"""
排程選擇模組

從啟用中的 topic 挑出最久沒有執行的一個，確保每個 topic 都會輪到。
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from core.models import FeedTarget, LedgerEntry, utc_now

logger = logging.getLogger(__name__)


def select_topic(
    candidates: List[FeedTarget],
    ledger: Dict[str, LedgerEntry],
    current_time: Optional[datetime] = None
) -> Optional[FeedTarget]:
    """
    選出下一個要執行的 topic

    規則：
    - 沒有執行紀錄的 topic 優先，依 candidates 順序取第一個
    - 否則選 last_execution_time 最舊者，相同時取 candidates 中較前者

    Args:
        candidates: 啟用中的追蹤目標（設定檔順序）
        ledger: 執行紀錄
        current_time: 當前時間，僅用於紀錄訊息

    Returns:
        Optional[FeedTarget]: 選中的目標，candidates 為空時返回 None
    """
    oldest: Optional[FeedTarget] = None
    oldest_time: Optional[datetime] = None

    for candidate in candidates:
        entry = ledger.get(candidate.topic)
        if entry is None:
            logger.info(f"Project {candidate.topic!r} has never been executed - selecting it")
            return candidate

        if oldest_time is None or entry.last_execution_time < oldest_time:
            oldest_time = entry.last_execution_time
            oldest = candidate

    if oldest is not None:
        elapsed = time_since(oldest_time, current_time)
        logger.info(
            f"Project {oldest.topic!r} was last executed "
            f"{round(elapsed.total_seconds() / 60)} minutes ago - selecting it"
        )
    return oldest


def time_since(last_run: datetime, current_time: Optional[datetime] = None) -> timedelta:
    """取得距離上次執行經過的時間"""
    if current_time is None:
        current_time = utc_now()
    return current_time - last_run
