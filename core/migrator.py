"""
Topic state file migration.

Detects which on-disk encoding a topic state file uses and normalizes it to
the current in-memory shape (listing id -> stored projection).
"""

import logging
from typing import Any, Callable, Dict

from core.errors import StateIOError

logger = logging.getLogger(__name__)


class StateMigrator:
    """
    狀態檔格式遷移器

    負責：
    - 版本檢測（V1 舊版字串陣列、V2 目前的物件字典）
    - 將舊版內容正規化為目前格式（單向，不會從舊版內容回推 id）
    """

    CURRENT_VERSION = 2  # 目標版本號

    def __init__(self):
        self._migrations: Dict[int, Callable[[Any], Dict[str, Dict]]] = {}
        self._register_migrations()

    def _register_migrations(self) -> None:
        """註冊所有遷移函數"""
        self._migrations[1] = self._migrate_v1_to_v2
        self._migrations[2] = self._normalize_v2

    def detect_version(self, raw: Any) -> int:
        """
        取得狀態內容的格式版本

        檢測邏輯：
        1. JSON 物件 → V2
        2. JSON 陣列 → V1（舊版 id 列表）
        3. 其他 → 無法辨識

        Returns:
            版本號 (1 或 2)

        Raises:
            StateIOError: 無法辨識格式時
        """
        if isinstance(raw, dict):
            return 2
        if isinstance(raw, list):
            return 1
        raise StateIOError(
            f"Unrecognized state encoding: expected object or array, got {type(raw).__name__}"
        )

    def migrate(self, raw: Any, topic: str = None) -> Dict[str, Dict]:
        """
        將任何已知版本的內容轉換為目前格式

        Args:
            raw: 從 JSON 解析出的原始內容
            topic: topic 名稱（僅用於紀錄）

        Returns:
            目前格式的狀態字典
        """
        version = self.detect_version(raw)
        if version < self.CURRENT_VERSION:
            logger.info(
                f"Migrating state for {topic!r} from version {version} "
                f"to version {self.CURRENT_VERSION}"
            )
        return self._migrations[version](raw)

    def _migrate_v1_to_v2(self, raw: list) -> Dict[str, Dict]:
        """
        V1 到 V2 的遷移邏輯

        V1 只記錄 id，缺少通知所需的欄位，因此視為空狀態重新開始。
        """
        logger.info(f"Dropping {len(raw)} legacy ids, starting with an empty state")
        return {}

    def _normalize_v2(self, raw: dict) -> Dict[str, Dict]:
        """驗證 V2 內容，略過無效的紀錄"""
        state = {}
        for listing_id, entry in raw.items():
            if not listing_id:
                logger.warning("Skipping stored listing with an empty id")
                continue
            if not isinstance(entry, dict):
                raise StateIOError(
                    f"Stored listing {listing_id!r} is not an object"
                )
            state[listing_id] = entry
        return state
