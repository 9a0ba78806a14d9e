"""
資料模型模組

定義物件紀錄、追蹤目標、執行紀錄與單次執行結果。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from core.errors import ConfigError, WatcherError


# 擷取不到描述時使用的預設文字
DEFAULT_LISTING_TEXT = "דירה להשכרה"

# 執行紀錄檔與狀態檔放在同一個資料夾
LEDGER_FILE_NAME = "execution_meta.json"


def utc_now() -> datetime:
    """取得目前 UTC 時間（含時區）"""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """
    解析 ISO-8601 時間字串

    支援結尾為 "Z" 的格式；沒有時區資訊的時間視為 UTC。

    Raises:
        ValueError: 格式無效時
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ListingRecord:
    """從頁面擷取出的單一物件，同一個 topic 內以 id 唯一識別"""
    id: str
    image_url: str = ""
    url: str = ""
    price: str = ""
    rooms: str = ""
    floor: str = ""
    size: str = ""
    text: str = ""
    observed_at: datetime = field(default_factory=utc_now, compare=False)

    def to_state_entry(self, added_at: Optional[datetime] = None) -> Dict[str, str]:
        """
        轉換為狀態檔中儲存的格式

        Args:
            added_at: 加入時間，預設為當前時間

        Returns:
            以 camelCase 為鍵的字典
        """
        if added_at is None:
            added_at = utc_now()
        return {
            "imageUrl": self.image_url,
            "url": self.url,
            "price": self.price,
            "rooms": self.rooms,
            "floor": self.floor,
            "size": self.size,
            "text": self.text,
            "addedAt": added_at.isoformat(),
        }


@dataclass
class FeedTarget:
    """追蹤目標（一個已儲存的搜尋）"""
    topic: str
    url: str
    enabled: bool = True

    def __post_init__(self):
        if not self.topic or not self.topic.strip():
            raise ConfigError("Project topic must not be empty")
        # topic 會作為狀態檔名稱
        if "/" in self.topic or "\\" in self.topic or self.topic in (".", ".."):
            raise ConfigError(f"Invalid project topic: {self.topic!r}")
        if f"{self.topic}.json".lower() == LEDGER_FILE_NAME.lower():
            raise ConfigError(f"Project topic {self.topic!r} is reserved for the execution ledger")
        if not self.url:
            raise ConfigError(f"Project {self.topic!r} has no URL")


@dataclass
class LedgerEntry:
    """某個 topic 最近一次執行的紀錄"""
    topic: str
    last_execution_time: datetime
    last_run_succeeded: bool

    def to_dict(self) -> Dict:
        return {
            "lastExecution": self.last_execution_time.isoformat(),
            "success": self.last_run_succeeded,
        }


@dataclass
class RunOutcome:
    """單一 topic 的執行結果"""
    topic: str
    success: bool
    new_count: int = 0
    notified_count: int = 0
    sent_count: int = 0
    error: Optional[BaseException] = None

    @property
    def error_kind(self):
        if isinstance(self.error, WatcherError):
            return self.error.kind
        return None
