"""
錯誤類型模組

單次執行中可能發生的錯誤皆繼承 WatcherError，並以 ErrorKind 標記種類，
讓 Runner 與通知層可以依種類處理而不需比對字串。
"""

from enum import Enum


class ErrorKind(Enum):
    """錯誤種類"""
    FETCH = "fetch"
    EXTRACT = "extract"
    STATE_IO = "state_io"
    NOTIFICATION = "notification"


class WatcherError(Exception):
    """所有執行期錯誤的基底類別"""

    kind: ErrorKind

    def __init__(self, message: str, topic: str = None):
        super().__init__(message)
        self.message = message
        self.topic = topic

    def __str__(self) -> str:
        return self.message


class FetchError(WatcherError):
    """無法取得頁面內容（網路錯誤、逾時、機器人偵測）"""
    kind = ErrorKind.FETCH


class ExtractError(WatcherError):
    """頁面取得成功，但解析不出任何可用的物件"""
    kind = ErrorKind.EXTRACT


class StateIOError(WatcherError):
    """狀態檔存在但無法讀取或內容損毀"""
    kind = ErrorKind.STATE_IO


class NotificationError(WatcherError):
    """單一訊息發送失敗"""
    kind = ErrorKind.NOTIFICATION


class ConfigError(ValueError):
    """設定檔內容無效"""
    pass
