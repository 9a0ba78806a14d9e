#!/usr/bin/env python3
"""
測試 TopicRunner 執行流程
"""
import unittest
import json
import os
import tempfile
import shutil
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from core.config import AppConfig
from core.dispatcher import NotificationDispatcher
from core.errors import ErrorKind, FetchError, NotificationError, StateIOError
from core.ledger import load_ledger, record_outcome
from core.models import FeedTarget, ListingRecord
from core.notifier import NotifierSink
from core.runner import TopicRunner
from core.storage import TopicStateStore


NOW = datetime(2025, 1, 14, 12, 0, 0, tzinfo=timezone.utc)


class FakeScraper:
    """以預先設定的結果取代瀏覽器與解析"""

    def __init__(self, listings_by_url=None, fetch_errors=None, fail_with=None):
        self.listings_by_url = listings_by_url or {}
        self.fetch_errors = fetch_errors or {}
        self.fail_with = fail_with
        self.fetched = []

    def fetch_page(self, url):
        self.fetched.append(url)
        if url in self.fetch_errors:
            raise self.fetch_errors[url]
        return url

    def extract_listings(self, html):
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.listings_by_url.get(html, []))


class RecordingSink(NotifierSink):
    def __init__(self, failing_photos=()):
        self.calls = []
        self.failing_photos = set(failing_photos)

    def send_text(self, message, chat_id=None):
        self.calls.append(("text", message))

    def send_photo(self, photo_url, caption, chat_id=None):
        self.calls.append(("photo", photo_url))
        if photo_url in self.failing_photos:
            raise NotificationError("photo rejected")

    @property
    def texts(self):
        return [payload for kind, payload in self.calls if kind == "text"]

    @property
    def photos(self):
        return [payload for kind, payload in self.calls if kind == "photo"]


def make_record(listing_id: str) -> ListingRecord:
    return ListingRecord(
        id=listing_id,
        image_url=f"https://img.yad2.co.il/Pic/{listing_id}.jpg",
        url=f"https://www.yad2.co.il/realestate/item/{listing_id}",
        price="₪5,000",
        text=f"listing {listing_id}",
    )


RENTALS_URL = "https://www.yad2.co.il/realestate/rent?city=5000"
SALES_URL = "https://www.yad2.co.il/realestate/forsale?city=5000"


@patch("core.dispatcher.time.sleep")
class TestTopicRunner(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.data_dir = os.path.join(self.temp_dir, "data")
        self.signal_path = os.path.join(self.temp_dir, "push_me")
        self.rentals = FeedTarget(topic="rentals", url=RENTALS_URL)
        self.sales = FeedTarget(topic="sales", url=SALES_URL)

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def _make_runner(self, scraper, sink=None, projects=None, **config_kwargs):
        config = AppConfig(
            projects=projects or [self.rentals],
            data_dir=self.data_dir,
            work_signal_path=self.signal_path,
            send_delay_seconds=0,
            test_mode=True,
            **config_kwargs
        )
        self.config = config
        self.sink = sink or RecordingSink()
        self.store = TopicStateStore(self.data_dir, self.signal_path)
        dispatcher = NotificationDispatcher(self.sink, send_delay_seconds=0)
        return TopicRunner(config, scraper, self.store, dispatcher, clock=lambda: NOW)

    def _read_state(self, topic):
        with open(self.store.state_path(topic), "r", encoding="utf-8") as f:
            return json.load(f)

    def test_cap_persists_only_notified(self, mock_sleep):
        """測試上限 2、找到 3 筆：發送 2 筆，狀態只記錄這 2 筆"""
        records = [make_record("x1"), make_record("x2"), make_record("x3")]
        scraper = FakeScraper({RENTALS_URL: records})
        runner = self._make_runner(scraper, max_results_per_run=2)

        outcome = runner.run_topic(self.rentals)

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.new_count, 3)
        self.assertEqual(outcome.notified_count, 2)
        self.assertEqual(outcome.sent_count, 2)
        self.assertEqual(len(self.sink.photos), 2)
        self.assertIn("找到 3 筆新物件，顯示 2 筆", self.sink.texts[0])
        self.assertEqual(set(self._read_state("rentals")), {"x1", "x2"})

        # 下一次執行時 x3 仍是新物件
        self.sink.calls.clear()
        second = runner.run_topic(self.rentals)
        self.assertEqual(second.new_count, 1)
        self.assertEqual(self.sink.photos, [records[2].image_url])
        self.assertEqual(set(self._read_state("rentals")), {"x1", "x2", "x3"})

    def test_second_run_reports_nothing_new(self, mock_sleep):
        """測試沒有新物件時只發送「沒有新物件」"""
        scraper = FakeScraper({RENTALS_URL: [make_record("x1")]})
        runner = self._make_runner(scraper)
        runner.run_topic(self.rentals)

        self.sink.calls.clear()
        outcome = runner.run_topic(self.rentals)

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.new_count, 0)
        self.assertEqual(len(self.sink.calls), 1)
        self.assertIn("沒有新物件", self.sink.texts[0])

    def test_fetch_error_records_failure(self, mock_sleep):
        """測試取得失敗：記錄失敗、不修改狀態檔、只發送一則失敗通知"""
        scraper = FakeScraper(fetch_errors={RENTALS_URL: FetchError("Bot detection")})
        runner = self._make_runner(scraper)

        outcome = runner.run_topic(self.rentals)

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.error_kind, ErrorKind.FETCH)
        self.assertFalse(os.path.exists(self.store.state_path("rentals")))
        self.assertEqual(len(self.sink.calls), 1)
        self.assertIn("Bot detection", self.sink.texts[0])
        self.assertIn("❌", self.sink.texts[0])

        entry = load_ledger(self.config.ledger_path)["rentals"]
        self.assertEqual(entry.last_execution_time, NOW)
        self.assertFalse(entry.last_run_succeeded)

    def test_empty_extraction_is_extract_error(self, mock_sleep):
        """測試解析不出物件時記錄為失敗"""
        runner = self._make_runner(FakeScraper({RENTALS_URL: []}))

        outcome = runner.run_topic(self.rentals)

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.error_kind, ErrorKind.EXTRACT)
        self.assertEqual(len(self.sink.texts), 1)
        self.assertFalse(load_ledger(self.config.ledger_path)["rentals"].last_run_succeeded)

    def test_corrupt_state_is_state_io_error(self, mock_sleep):
        """測試狀態檔損毀時記錄為失敗且不覆寫狀態檔"""
        os.makedirs(self.data_dir)
        path = os.path.join(self.data_dir, "rentals.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write("{broken")
        runner = self._make_runner(FakeScraper({RENTALS_URL: [make_record("x1")]}))

        outcome = runner.run_topic(self.rentals)

        self.assertFalse(outcome.success)
        self.assertIsInstance(outcome.error, StateIOError)
        with open(path, "r", encoding="utf-8") as f:
            self.assertEqual(f.read(), "{broken")
        self.assertEqual(len(self.sink.texts), 1)

    def test_photo_failure_is_still_success(self, mock_sleep):
        """測試單筆圖片失敗改用文字後，整體仍為成功"""
        records = [make_record("x1"), make_record("x2"), make_record("x3")]
        sink = RecordingSink(failing_photos={records[1].image_url})
        runner = self._make_runner(FakeScraper({RENTALS_URL: records}), sink=sink)

        outcome = runner.run_topic(self.rentals)

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.sent_count, 3)
        self.assertTrue(any("listing x2" in text for text in sink.texts))
        self.assertTrue(load_ledger(self.config.ledger_path)["rentals"].last_run_succeeded)

    def test_unexpected_error_is_recorded_and_raised(self, mock_sleep):
        """測試未預期的錯誤仍會通知並記錄後再拋出"""
        runner = self._make_runner(FakeScraper(fail_with=RuntimeError("parser exploded")))

        with self.assertRaises(RuntimeError):
            runner.run_topic(self.rentals)

        self.assertEqual(len(self.sink.texts), 1)
        self.assertFalse(load_ledger(self.config.ledger_path)["rentals"].last_run_succeeded)

    def test_success_touches_work_signal(self, mock_sleep):
        """測試執行後建立工作訊號檔"""
        runner = self._make_runner(FakeScraper({RENTALS_URL: [make_record("x1")]}))
        runner.run_topic(self.rentals)
        self.assertTrue(os.path.exists(self.signal_path))

    def test_prune_stale(self, mock_sleep):
        """測試啟用 pruneStale 時移除不在頁面上的物件"""
        scraper = FakeScraper({RENTALS_URL: [make_record("x1"), make_record("x2")]})
        runner = self._make_runner(scraper, prune_stale=True)
        runner.run_topic(self.rentals)

        scraper.listings_by_url[RENTALS_URL] = [make_record("x2")]
        runner.run_topic(self.rentals)

        self.assertEqual(set(self._read_state("rentals")), {"x2"})

    def test_run_fairness_mode_selects_oldest(self, mock_sleep):
        """測試公平模式只執行最久沒有執行的 topic"""
        scraper = FakeScraper({RENTALS_URL: [make_record("r1")], SALES_URL: [make_record("s1")]})
        runner = self._make_runner(scraper, projects=[self.rentals, self.sales])
        record_outcome("rentals", True, run_time=NOW - timedelta(hours=1), ledger_file=self.config.ledger_path)
        record_outcome("sales", True, run_time=NOW - timedelta(hours=2), ledger_file=self.config.ledger_path)

        outcomes = runner.run()

        self.assertEqual([o.topic for o in outcomes], ["sales"])
        self.assertEqual(scraper.fetched, [SALES_URL])

    def test_run_skips_disabled_projects(self, mock_sleep):
        """測試停用的 topic 不會被選中"""
        disabled = FeedTarget(topic="rentals", url=RENTALS_URL, enabled=False)
        scraper = FakeScraper({SALES_URL: [make_record("s1")]})
        runner = self._make_runner(scraper, projects=[disabled, self.sales])

        outcomes = runner.run()

        self.assertEqual([o.topic for o in outcomes], ["sales"])

    def test_run_without_active_projects(self, mock_sleep):
        """測試沒有啟用中的 topic 時不執行任何事"""
        disabled = FeedTarget(topic="rentals", url=RENTALS_URL, enabled=False)
        runner = self._make_runner(FakeScraper(), projects=[disabled])
        self.assertEqual(runner.run(), [])
        self.assertEqual(self.sink.calls, [])

    def test_run_all_mode(self, mock_sleep):
        """測試 all 模式執行所有 topic 並各自記錄結果"""
        scraper = FakeScraper(
            {RENTALS_URL: [make_record("r1")]},
            fetch_errors={SALES_URL: FetchError("timeout")},
        )
        runner = self._make_runner(scraper, projects=[self.rentals, self.sales], run_mode="all")

        outcomes = runner.run()

        self.assertEqual({o.topic: o.success for o in outcomes}, {"rentals": True, "sales": False})
        entries = load_ledger(self.config.ledger_path)
        self.assertTrue(entries["rentals"].last_run_succeeded)
        self.assertFalse(entries["sales"].last_run_succeeded)


if __name__ == "__main__":
    unittest.main()
