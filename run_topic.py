#!/usr/bin/env python3
"""
物件追蹤執行腳本

由排程系統（cron / CI workflow）呼叫，每次執行選出一個 topic
（或在 --all 模式下所有 topic），檢查新物件並發送 Telegram 通知。
"""
import argparse
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from core.config import AppConfig, DEFAULT_CONFIG_PATH, load_config
from core.dispatcher import NotificationDispatcher
from core.errors import ConfigError
from core.ledger import clear_ledger, get_entry
from core.models import RunOutcome
from core.notifier import create_notifier
from core.runner import TopicRunner
from core.scheduler import time_since
from core.storage import TopicStateStore
from scrapers.yad2.scraper import Yad2Scraper

logger = logging.getLogger(__name__)

# --reset 未指定 topic 時使用的值
RESET_ALL = "*"


def build_runner(config: AppConfig, headless: bool = True) -> TopicRunner:
    """
    依設定建立 TopicRunner 及其元件

    Args:
        config: 執行設定
        headless: 是否以無頭模式運行瀏覽器

    Returns:
        TopicRunner
    """
    scraper = Yad2Scraper(headless=headless, timeout_seconds=config.fetch_timeout_seconds)
    store = TopicStateStore(config.data_dir, config.work_signal_path)
    dispatcher = NotificationDispatcher(
        create_notifier(config),
        send_delay_seconds=config.send_delay_seconds,
        chat_id=config.telegram_chat_id,
    )
    return TopicRunner(config, scraper, store, dispatcher)


def show_status(config: AppConfig) -> None:
    """顯示各 topic 的執行狀態"""
    store = TopicStateStore(config.data_dir, config.work_signal_path)

    print(f"\n=== Status ({len(config.projects)} projects) ===")
    for project in config.projects:
        flag = "" if project.enabled else " (disabled)"
        print(f"\n{project.topic}{flag}")
        entry = get_entry(project.topic, config.ledger_path)
        if entry:
            minutes = round(time_since(entry.last_execution_time).total_seconds() / 60)
            result = "success" if entry.last_run_succeeded else "failed"
            print(f"  Last run: {entry.last_execution_time.strftime('%Y-%m-%d %H:%M:%S')} "
                  f"({minutes} minutes ago, {result})")
        else:
            print("  Last run: Never")
        print(f"  Known listings: {store.get_listing_count(project.topic)}")


def reset_ledger(config: AppConfig, topic: Optional[str] = None) -> None:
    """
    清除執行紀錄，被清除的 topic 下次會被視為從未執行

    Args:
        config: 執行設定
        topic: topic 名稱，None 則清除所有紀錄

    Raises:
        ConfigError: 指定的 topic 未設定時
    """
    if topic is not None and topic not in [p.topic for p in config.projects]:
        raise ConfigError(f"Topic {topic!r} is not configured")
    clear_ledger(topic, ledger_file=config.ledger_path)
    print(f"Cleared execution ledger for {topic or 'all topics'}")


def run(
    config: AppConfig,
    topic: Optional[str] = None,
    headless: bool = True,
) -> List[RunOutcome]:
    """
    執行一次追蹤

    Args:
        config: 執行設定
        topic: 指定要執行的 topic（略過排程選擇）
        headless: 是否以無頭模式運行瀏覽器

    Returns:
        各 topic 的執行結果
    """
    logger.info(f"Max results per run: {config.max_results_per_run}")
    runner = build_runner(config, headless=headless)

    if topic is None:
        return runner.run()

    target = next((p for p in config.enabled_projects if p.topic == topic), None)
    if target is None:
        raise ConfigError(f"Topic {topic!r} is not configured or is disabled")
    return [runner.run_topic(target)]


def main(argv: Optional[List[str]] = None) -> int:
    """主程式"""
    parser = argparse.ArgumentParser(
        description="物件追蹤執行腳本",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
範例:
  %(prog)s                     # 執行最久沒有執行的 topic
  %(prog)s --all               # 執行所有啟用中的 topic
  %(prog)s --topic rentals     # 強制執行指定的 topic
  %(prog)s --test              # 測試模式（不發送通知）
  %(prog)s --status            # 顯示各 topic 的執行狀態
  %(prog)s --reset rentals     # 清除指定 topic 的執行紀錄
        """
    )
    parser.add_argument(
        "--config", "-c",
        default=DEFAULT_CONFIG_PATH,
        help="設定檔路徑"
    )
    parser.add_argument(
        "--test", "--dry-run", "-n",
        dest="test",
        action="store_true",
        help="測試模式，不發送通知"
    )
    parser.add_argument(
        "--all", "-a",
        action="store_true",
        help="執行所有啟用中的 topic"
    )
    parser.add_argument(
        "--topic", "-t",
        help="強制執行指定的 topic，忽略排程"
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="以有頭模式運行瀏覽器（用於除錯）"
    )
    parser.add_argument(
        "--status", "-s",
        action="store_true",
        help="顯示各 topic 的執行狀態"
    )
    parser.add_argument(
        "--list", "-l",
        action="store_true",
        help="列出所有設定的 topic"
    )
    parser.add_argument(
        "--reset",
        nargs="?",
        const=RESET_ALL,
        metavar="TOPIC",
        help="清除執行紀錄（未指定 topic 時清除全部）"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="顯示除錯訊息"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)-8s - %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # 載入 .env 檔案
    load_dotenv()

    try:
        config = load_config(
            args.config,
            env=os.environ,
            force_test_mode=args.test,
            run_mode="all" if args.all else None,
        )
    except (ConfigError, FileNotFoundError) as e:
        logger.critical(f"Error loading config: {e}")
        return 2

    if args.list:
        print("Configured topics:")
        for project in config.projects:
            flag = "" if project.enabled else " (disabled)"
            print(f"  - {project.topic}{flag}: {project.url}")
        return 0

    if args.status:
        show_status(config)
        return 0

    if args.reset is not None:
        try:
            reset_ledger(config, None if args.reset == RESET_ALL else args.reset)
        except ConfigError as e:
            logger.critical(str(e))
            return 2
        return 0

    try:
        outcomes = run(config, topic=args.topic, headless=not args.headed)
    except ConfigError as e:
        logger.critical(str(e))
        return 2

    failed = [outcome for outcome in outcomes if not outcome.success]
    for outcome in failed:
        logger.error(f"Failed to complete {outcome.topic!r}: {outcome.error}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
