"""
執行流程模組

單次執行的流程：
選擇 topic → 取得頁面 → 擷取物件 → 比對狀態 → 發送通知 → 記錄結果

取得、擷取、比對任一步失敗時，會發送一則失敗通知並記錄為失敗；
記錄結果在每次執行中一定且只會執行一次。
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from core import ledger
from core.change_detector import diff, select_for_notification
from core.config import AppConfig
from core.dispatcher import NotificationDispatcher
from core.errors import ErrorKind, ExtractError, WatcherError
from core.models import FeedTarget, RunOutcome, utc_now
from core.scheduler import select_topic
from core.storage import TopicStateStore
from scrapers.base_scraper import BaseScraper

logger = logging.getLogger(__name__)


# 失敗通知中顯示的錯誤說明
FAILURE_LABELS = {
    ErrorKind.FETCH: "無法取得頁面",
    ErrorKind.EXTRACT: "找不到任何物件",
    ErrorKind.STATE_IO: "狀態檔讀寫錯誤",
    ErrorKind.NOTIFICATION: "通知發送失敗",
}
UNEXPECTED_FAILURE_LABEL = "未預期的錯誤"


def failure_label(error: BaseException) -> str:
    if isinstance(error, WatcherError):
        return FAILURE_LABELS[error.kind]
    return UNEXPECTED_FAILURE_LABEL


class TopicRunner:
    """單次執行的協調者"""

    def __init__(
        self,
        config: AppConfig,
        scraper: BaseScraper,
        store: TopicStateStore,
        dispatcher: NotificationDispatcher,
        clock: Callable = utc_now,
    ):
        self.config = config
        self.scraper = scraper
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock

    def run(self) -> List[RunOutcome]:
        """
        依設定的模式執行

        - fairness：只執行最久沒有執行的一個 topic
        - all：所有啟用中的 topic 同時執行（不同 topic 的狀態檔互不相干）

        Returns:
            各 topic 的執行結果
        """
        for project in self.config.projects:
            if not project.enabled:
                logger.info(f"Topic {project.topic!r} is disabled. Skipping.")

        candidates = self.config.enabled_projects
        if not candidates:
            logger.info("No active projects to run")
            return []

        if self.config.run_mode == "all":
            logger.info(f"Running all {len(candidates)} active projects")
            with ThreadPoolExecutor(max_workers=len(candidates)) as executor:
                return list(executor.map(self.run_topic, candidates))

        target = select_topic(
            candidates,
            ledger.load_ledger(self.config.ledger_path),
            current_time=self.clock(),
        )
        logger.info(f"Running single project: {target.topic!r}")
        return [self.run_topic(target)]

    def run_topic(self, target: FeedTarget) -> RunOutcome:
        """
        執行單一 topic，並在結束時記錄執行結果

        Raises:
            Exception: WatcherError 以外的錯誤在通知並記錄後會再次拋出
        """
        outcome: Optional[RunOutcome] = None
        try:
            outcome = self._execute(target)
            logger.info(f"Successfully completed {target.topic!r}")
            return outcome
        except WatcherError as e:
            logger.error(f"Failed to complete {target.topic!r}: {e}")
            self._report_failure(target, e)
            outcome = RunOutcome(topic=target.topic, success=False, error=e)
            return outcome
        except Exception as e:
            logger.exception(f"Unexpected error while running {target.topic!r}")
            self._report_failure(target, e)
            raise
        finally:
            self._record_outcome(target, outcome is not None and outcome.success)

    def _execute(self, target: FeedTarget) -> RunOutcome:
        topic = target.topic
        cap = self.config.max_results_per_run

        html = self.scraper.fetch_page(target.url)
        current = self.scraper.extract_listings(html)
        if not current:
            raise ExtractError(f"No listings found at {target.url}", topic=topic)
        logger.info(f"Found {len(current)} total items for {topic!r}")

        state = self.store.load(topic)
        new_records = diff(current, state)
        selected = select_for_notification(new_records, cap)

        changed = False
        if self.config.prune_stale:
            state, removed = self.store.prune_stale(state, current)
            if removed:
                logger.info(f"Pruned {len(removed)} stale listings for {topic!r}")
                changed = True
        if selected:
            logger.info(
                f"New items for {topic!r}: {len(new_records)} total, "
                f"will notify for {len(selected)}"
            )
            for index, record in enumerate(selected, start=1):
                logger.info(f"{index}. [{record.id}] {record.text[:60]}...")
            # 只記錄本次要通知的物件，超出上限的留待下次
            state, _ = self.store.merge_notified(state, selected, added_at=self.clock())
            changed = True
        else:
            logger.info(f"No new items found for {topic!r}")

        if changed:
            self.store.save(topic, state)

        sent_count = self.dispatcher.send(new_records, cap, topic)
        return RunOutcome(
            topic=topic,
            success=True,
            new_count=len(new_records),
            notified_count=len(selected),
            sent_count=sent_count,
        )

    def _report_failure(self, target: FeedTarget, error: BaseException) -> None:
        """發送失敗通知（盡力而為，失敗只記錄 log）"""
        try:
            self.dispatcher.send_failure(target.topic, failure_label(error), str(error))
        except Exception:
            logger.exception(f"Failed to send error message for {target.topic!r}")

    def _record_outcome(self, target: FeedTarget, success: bool) -> None:
        try:
            ledger.record_outcome(
                target.topic,
                success,
                run_time=self.clock(),
                ledger_file=self.config.ledger_path,
                work_signal_path=self.config.work_signal_path,
            )
        except OSError:
            logger.exception(f"Could not write execution ledger for {target.topic!r}")
