"""
執行紀錄模組

記錄每個 topic 最近一次執行的時間與結果，格式為：
{"projects": {"<topic>": {"lastExecution": ISO8601, "success": bool}}}
每次執行覆寫該 topic 的紀錄，不累積歷史。
"""

import json
import logging
import os
import threading
from datetime import datetime
from typing import Dict, Optional

from core.models import LedgerEntry, parse_timestamp, utc_now
from core.persistence import atomic_write_json, touch_work_signal

logger = logging.getLogger(__name__)


# 預設的執行紀錄檔案路徑
DEFAULT_LEDGER_FILE = "data/execution_meta.json"

# 多個 topic 同時執行時，序列化對紀錄檔的讀寫
_ledger_lock = threading.Lock()


def _load_ledger_data(ledger_file: str = DEFAULT_LEDGER_FILE) -> Dict:
    """
    載入執行紀錄檔案

    檔案不存在或無法解析時返回空紀錄。

    Returns:
        Dict: 格式為 {"projects": {topic: {...}}}
    """
    if os.path.exists(ledger_file):
        try:
            with open(ledger_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Could not read {ledger_file}, starting fresh: {e}")
            return {"projects": {}}
        if isinstance(data, dict) and isinstance(data.get("projects"), dict):
            return data
        logger.warning(f"Unexpected content in {ledger_file}, starting fresh")
    return {"projects": {}}


def load_ledger(ledger_file: str = DEFAULT_LEDGER_FILE) -> Dict[str, LedgerEntry]:
    """
    載入所有 topic 的執行紀錄

    無法解析時間的紀錄會被略過（視為從未執行）。

    Returns:
        Dict[str, LedgerEntry]: topic 到紀錄的映射
    """
    data = _load_ledger_data(ledger_file)
    entries = {}
    for topic, raw in data["projects"].items():
        if not isinstance(raw, dict):
            continue
        try:
            last_execution = parse_timestamp(raw["lastExecution"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Ignoring malformed ledger entry for {topic!r}")
            continue
        entries[topic] = LedgerEntry(
            topic=topic,
            last_execution_time=last_execution,
            last_run_succeeded=bool(raw.get("success", False)),
        )
    return entries


def get_entry(topic: str, ledger_file: str = DEFAULT_LEDGER_FILE) -> Optional[LedgerEntry]:
    """取得指定 topic 的執行紀錄，若無記錄則返回 None"""
    return load_ledger(ledger_file).get(topic)


def record_outcome(
    topic: str,
    success: bool,
    run_time: Optional[datetime] = None,
    ledger_file: str = DEFAULT_LEDGER_FILE,
    work_signal_path: Optional[str] = None,
) -> LedgerEntry:
    """
    記錄指定 topic 的執行結果

    Args:
        topic: topic 名稱
        success: 是否成功
        run_time: 執行時間，預設為當前時間
        ledger_file: 執行紀錄檔案路徑
        work_signal_path: 工作訊號檔路徑，None 則不建立

    Returns:
        LedgerEntry: 寫入的紀錄
    """
    if run_time is None:
        run_time = utc_now()

    entry = LedgerEntry(topic=topic, last_execution_time=run_time, last_run_succeeded=success)

    with _ledger_lock:
        data = _load_ledger_data(ledger_file)
        data["projects"][topic] = entry.to_dict()
        atomic_write_json(ledger_file, data)

    if work_signal_path:
        touch_work_signal(work_signal_path)

    logger.info(f"Recorded {'successful' if success else 'failed'} run for {topic!r}")
    return entry


def clear_ledger(
    topic: Optional[str] = None,
    ledger_file: str = DEFAULT_LEDGER_FILE
) -> None:
    """
    清除執行紀錄

    Args:
        topic: topic 名稱，若為 None 則清除所有 topic 的紀錄
        ledger_file: 執行紀錄檔案路徑
    """
    with _ledger_lock:
        if topic is None:
            if os.path.exists(ledger_file):
                os.remove(ledger_file)
        else:
            data = _load_ledger_data(ledger_file)
            if topic in data["projects"]:
                del data["projects"][topic]
                atomic_write_json(ledger_file, data)
