"""
檔案寫入工具

狀態檔與執行紀錄檔都以「寫入暫存檔再取代」的方式更新，
讀取端只會看到完整的舊內容或新內容。
"""

import json
import logging
import os
import tempfile
from typing import Any

logger = logging.getLogger(__name__)


def atomic_write_json(path: str, data: Any) -> None:
    """
    以原子方式寫入 JSON 檔案

    Args:
        path: 目標檔案路徑
        data: 要寫入的資料

    Raises:
        OSError: 寫入或取代失敗時
    """
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        dir=directory, prefix=".{}.".format(os.path.basename(path)), suffix=".tmp"
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        # 清除殘留的暫存檔
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def touch_work_signal(signal_path: str) -> None:
    """
    建立空白的工作訊號檔

    外部的自動化流程（例如 commit 資料檔的 workflow）會依此判斷資料有無變更。
    """
    directory = os.path.dirname(signal_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(signal_path, 'w', encoding='utf-8'):
        pass
    logger.debug(f"Touched work signal file {signal_path}")
