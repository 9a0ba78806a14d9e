#!/usr/bin/env python3
"""
測試命令列入口
"""
import io
import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

import run_topic
from core.ledger import load_ledger, record_outcome
from core.models import RunOutcome


class TestRunTopicCli(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.data_dir = os.path.join(self.temp_dir, "data")
        self.config_path = os.path.join(self.temp_dir, "config.json")
        self.ledger_file = os.path.join(self.data_dir, "execution_meta.json")
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump({
                "projects": [
                    {"topic": "rentals", "url": "https://www.yad2.co.il/realestate/rent?city=5000"},
                    {"topic": "haifa", "url": "https://www.yad2.co.il/realestate/rent?city=4000", "disabled": True},
                ],
                "dataDir": self.data_dir,
                "workSignalFile": os.path.join(self.temp_dir, "push_me"),
            }, f)

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def test_missing_config_exits_with_2(self):
        code = run_topic.main(["--config", os.path.join(self.temp_dir, "missing.json")])
        self.assertEqual(code, 2)

    @patch("sys.stdout", new_callable=io.StringIO)
    def test_list_topics(self, mock_stdout):
        """測試 --list 列出所有 topic（含停用）"""
        code = run_topic.main(["--config", self.config_path, "--list"])

        self.assertEqual(code, 0)
        output = mock_stdout.getvalue()
        self.assertIn("rentals", output)
        self.assertIn("haifa (disabled)", output)

    @patch("sys.stdout", new_callable=io.StringIO)
    def test_status(self, mock_stdout):
        """測試 --status 顯示上次執行時間"""
        record_outcome("rentals", False, ledger_file=self.ledger_file)

        code = run_topic.main(["--config", self.config_path, "--status"])

        self.assertEqual(code, 0)
        output = mock_stdout.getvalue()
        self.assertIn("failed", output)
        self.assertIn("Last run: Never", output)

    @patch("sys.stdout", new_callable=io.StringIO)
    def test_reset_single_topic(self, mock_stdout):
        """測試 --reset 只清除指定 topic 的執行紀錄"""
        record_outcome("rentals", True, ledger_file=self.ledger_file)
        record_outcome("haifa", True, ledger_file=self.ledger_file)

        code = run_topic.main(["--config", self.config_path, "--reset", "rentals"])

        self.assertEqual(code, 0)
        self.assertEqual(set(load_ledger(self.ledger_file)), {"haifa"})

    @patch("sys.stdout", new_callable=io.StringIO)
    def test_reset_all_topics(self, mock_stdout):
        record_outcome("rentals", True, ledger_file=self.ledger_file)

        self.assertEqual(run_topic.main(["--config", self.config_path, "--reset"]), 0)
        self.assertEqual(load_ledger(self.ledger_file), {})

    def test_reset_unknown_topic_exits_with_2(self):
        record_outcome("rentals", True, ledger_file=self.ledger_file)

        self.assertEqual(run_topic.main(["--config", self.config_path, "--reset", "nope"]), 2)
        self.assertEqual(set(load_ledger(self.ledger_file)), {"rentals"})

    def test_unknown_topic_exits_with_2(self):
        """測試指定未設定或已停用的 topic"""
        self.assertEqual(run_topic.main(["--config", self.config_path, "--test", "--topic", "haifa"]), 2)
        self.assertEqual(run_topic.main(["--config", self.config_path, "--test", "--topic", "nope"]), 2)

    @patch("run_topic.run")
    def test_exit_code_reflects_failures(self, mock_run):
        """測試任一 topic 失敗時回傳 1"""
        mock_run.return_value = [RunOutcome(topic="rentals", success=False, error=RuntimeError("x"))]
        self.assertEqual(run_topic.main(["--config", self.config_path, "--test"]), 1)

        mock_run.return_value = [RunOutcome(topic="rentals", success=True)]
        self.assertEqual(run_topic.main(["--config", self.config_path, "--test"]), 0)


if __name__ == "__main__":
    unittest.main()
