"""
設定檔載入模組

讀取 config.json 並填入預設值，建立一次性的 AppConfig，
之後以參數方式傳給 Runner、通知與狀態儲存元件。
"""

import json
import os
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Mapping

from core.errors import ConfigError
from core.models import FeedTarget, LEDGER_FILE_NAME


DEFAULT_CONFIG_PATH = "config.json"

# 預設值定義
DEFAULT_CONFIG = {
    "projects": [],
    "maxResultsPerRun": 5,
    "sendDelaySeconds": 1.5,
    "fetchTimeoutSeconds": 60,
    "dataDir": "data",
    "workSignalFile": "push_me",
    "runMode": "fairness",
    "pruneStale": False,
    "telegramApiToken": None,
    "chatId": None,
}

VALID_RUN_MODES = ("fairness", "all")

# 憑證的環境變數名稱，依序取第一個有值的
BOT_TOKEN_ENV_VARS = ("TELEGRAM_BOT_TOKEN", "API_TOKEN")
CHAT_ID_ENV_VARS = ("TELEGRAM_CHAT_ID", "CHAT_ID")


@dataclass
class AppConfig:
    """整體執行設定"""
    projects: List[FeedTarget] = field(default_factory=list)
    max_results_per_run: int = 5
    send_delay_seconds: float = 1.5
    fetch_timeout_seconds: float = 60
    data_dir: str = "data"
    work_signal_path: str = "push_me"
    run_mode: str = "fairness"
    prune_stale: bool = False
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    test_mode: bool = False

    def __post_init__(self):
        if self.max_results_per_run < 1:
            raise ConfigError(
                f"maxResultsPerRun must be a positive integer, got {self.max_results_per_run}"
            )
        if self.send_delay_seconds < 0:
            raise ConfigError("sendDelaySeconds must not be negative")
        if self.fetch_timeout_seconds <= 0:
            raise ConfigError("fetchTimeoutSeconds must be positive")
        if self.run_mode not in VALID_RUN_MODES:
            raise ConfigError(
                f"Unknown runMode: {self.run_mode}. Valid modes: {list(VALID_RUN_MODES)}"
            )
        seen = set()
        for project in self.projects:
            if project.topic in seen:
                raise ConfigError(f"Duplicate project topic: {project.topic}")
            seen.add(project.topic)

    @property
    def enabled_projects(self) -> List[FeedTarget]:
        """取得啟用中的追蹤目標（維持設定檔順序）"""
        return [project for project in self.projects if project.enabled]

    @property
    def ledger_path(self) -> str:
        return os.path.join(self.data_dir, LEDGER_FILE_NAME)

    @property
    def has_credentials(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)


def _parse_projects(raw_projects: Any) -> List[FeedTarget]:
    """將設定檔中的 projects 轉換為 FeedTarget 列表"""
    if not isinstance(raw_projects, list):
        raise ConfigError("'projects' must be a list")

    projects = []
    for raw in raw_projects:
        if not isinstance(raw, dict):
            raise ConfigError(f"Invalid project entry: {raw!r}")
        projects.append(
            FeedTarget(
                topic=raw.get("topic", ""),
                url=raw.get("url", ""),
                enabled=not raw.get("disabled", False),
            )
        )
    return projects


def _first_env(env: Mapping[str, str], names) -> Optional[str]:
    for name in names:
        if env.get(name):
            return env[name]
    return None


def build_config(
    config_data: Dict[str, Any],
    env: Optional[Mapping[str, str]] = None,
    force_test_mode: bool = False,
    run_mode: Optional[str] = None,
) -> AppConfig:
    """
    由設定資料與環境變數建立 AppConfig

    Args:
        config_data: 設定檔內容
        env: 環境變數對應（TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID，
             或舊名稱 API_TOKEN / CHAT_ID，優先於設定檔）
        force_test_mode: 是否強制測試模式（不發送通知）
        run_mode: 覆寫設定檔的 runMode

    Returns:
        AppConfig: 設定物件

    Raises:
        ConfigError: 設定內容無效時
    """
    env = env or {}
    merged = {**DEFAULT_CONFIG, **config_data}

    bot_token = _first_env(env, BOT_TOKEN_ENV_VARS) or merged["telegramApiToken"]
    chat_id = _first_env(env, CHAT_ID_ENV_VARS) or merged["chatId"]

    try:
        max_results = int(merged["maxResultsPerRun"])
        send_delay = float(merged["sendDelaySeconds"])
        fetch_timeout = float(merged["fetchTimeoutSeconds"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid numeric setting: {e}") from e

    config = AppConfig(
        projects=_parse_projects(merged["projects"]),
        max_results_per_run=max_results,
        send_delay_seconds=send_delay,
        fetch_timeout_seconds=fetch_timeout,
        data_dir=merged["dataDir"],
        work_signal_path=merged["workSignalFile"],
        run_mode=run_mode or merged["runMode"],
        prune_stale=bool(merged["pruneStale"]),
        telegram_bot_token=bot_token,
        telegram_chat_id=str(chat_id) if chat_id is not None else None,
    )
    # 沒有 Telegram 憑證時自動進入測試模式
    config.test_mode = force_test_mode or not config.has_credentials
    return config


def load_config(
    config_path: str = DEFAULT_CONFIG_PATH,
    env: Optional[Mapping[str, str]] = None,
    force_test_mode: bool = False,
    run_mode: Optional[str] = None,
) -> AppConfig:
    """
    載入設定檔

    Args:
        config_path: 設定檔路徑
        env: 環境變數對應
        force_test_mode: 是否強制測試模式
        run_mode: 覆寫設定檔的 runMode

    Returns:
        AppConfig: 設定物件

    Raises:
        FileNotFoundError: 當設定檔不存在時
        ConfigError: 當設定檔格式錯誤時
    """
    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e

    if not isinstance(config_data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")

    return build_config(
        config_data,
        env=env,
        force_test_mode=force_test_mode,
        run_mode=run_mode,
    )
