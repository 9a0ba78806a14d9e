"""
變更偵測模組

比對目前擷取出的物件與已儲存狀態，找出尚未見過的物件。
"""

import logging
from typing import Dict, Iterable, List

from core.models import ListingRecord

logger = logging.getLogger(__name__)


def diff(current: Iterable[ListingRecord], state: Dict[str, Dict]) -> List[ListingRecord]:
    """
    找出新物件

    物件 id 不在 state 中即視為新物件。輸出維持 current 的順序，
    同一個 id 在 current 中重複出現時只保留第一次。

    Args:
        current: 本次擷取的物件（頁面順序）
        state: topic 目前的狀態

    Returns:
        新物件列表
    """
    new_records = []
    seen_ids = set()
    for record in current:
        if record.id in seen_ids:
            continue
        seen_ids.add(record.id)
        if record.id not in state:
            new_records.append(record)

    logger.debug(f"Diff: {len(seen_ids)} current, {len(new_records)} new")
    return new_records


def select_for_notification(new_records: List[ListingRecord], cap: int) -> List[ListingRecord]:
    """取前 cap 筆作為本次通知的物件"""
    if cap < 0:
        raise ValueError(f"cap must not be negative, got {cap}")
    return new_records[:cap]
