"""
爬蟲基礎類別模組

定義所有網站爬蟲的共用介面和行為，包括：
- 抽象方法定義 (extract_listings, get_listing_id)
- 以 Playwright 取得頁面 HTML，並有固定的逾時上限
- User-Agent 輪換
- 將瀏覽器錯誤轉換為 FetchError
"""

import logging
import random
from abc import ABC, abstractmethod
from typing import List, Optional

from playwright.sync_api import (
    BrowserContext,
    Error as PlaywrightError,
    Page,
    TimeoutError as PlaywrightTimeoutError,
    sync_playwright,
)

from core.errors import FetchError
from core.models import ListingRecord

logger = logging.getLogger(__name__)


class BaseScraper(ABC):
    """
    爬蟲基礎類別

    所有網站特定的爬蟲都應繼承此類別並實作抽象方法。
    fetch_page 與 extract_listings 分開，讓 Runner 能區分取得失敗與解析失敗。
    """

    # 預設 User-Agent 列表，用於輪換以避免被封鎖
    DEFAULT_USER_AGENTS = [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    ]

    # 瀏覽器啟動參數
    LAUNCH_ARGS: List[str] = []

    def __init__(
        self,
        headless: bool = True,
        timeout_seconds: float = 60,
        user_agents: Optional[List[str]] = None,
    ):
        """
        初始化爬蟲

        Args:
            headless: 是否以無頭模式運行瀏覽器
            timeout_seconds: 載入頁面的逾時秒數
            user_agents: 自訂 User-Agent 列表，若為 None 則使用預設列表
        """
        self.headless = headless
        self.timeout_seconds = timeout_seconds
        self.user_agents = user_agents or self.DEFAULT_USER_AGENTS.copy()

        # 當前使用的 User-Agent
        self._current_user_agent: Optional[str] = None

    @property
    @abstractmethod
    def source_name(self) -> str:
        """
        返回來源名稱

        子類別必須實作此屬性，返回唯一的來源識別符。
        """
        pass

    @abstractmethod
    def extract_listings(self, html: str) -> List[ListingRecord]:
        """
        從頁面 HTML 擷取物件

        Args:
            html: 頁面 HTML

        Returns:
            依頁面順序排列的物件列表（可能為空）
        """
        pass

    @abstractmethod
    def get_listing_id(self, url: str) -> Optional[str]:
        """
        從物件 URL 提取物件 ID

        Returns:
            物件 ID 字串，若無法提取則返回 None
        """
        pass

    def _get_user_agent(self) -> str:
        """
        隨機選擇一個 User-Agent

        Returns:
            隨機選擇的 User-Agent 字串
        """
        self._current_user_agent = random.choice(self.user_agents)
        return self._current_user_agent

    def _new_context(self, browser) -> BrowserContext:
        """建立瀏覽器上下文，子類別可覆寫以加入語系、時區等設定"""
        return browser.new_context(user_agent=self._get_user_agent())

    def _after_load(self, page: Page) -> None:
        """頁面載入後的額外動作（例如模擬捲動），預設不做任何事"""
        pass

    def _check_blocked(self, html: str) -> None:
        """
        檢查頁面是否為阻擋頁

        Raises:
            FetchError: 被阻擋時
        """
        pass

    def fetch_page(self, url: str) -> str:
        """
        以無頭瀏覽器取得頁面 HTML

        Args:
            url: 頁面 URL

        Returns:
            頁面 HTML

        Raises:
            FetchError: 載入失敗、逾時或被阻擋時
        """
        timeout_ms = self.timeout_seconds * 1000
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(
                    headless=self.headless, args=self.LAUNCH_ARGS, timeout=timeout_ms
                )
                try:
                    context = self._new_context(browser)
                    context.set_default_timeout(timeout_ms)
                    page = context.new_page()

                    logger.info(f"Loading URL: {url}")
                    response = page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
                    self._after_load(page)
                    html = page.content()

                    if response is not None:
                        logger.info(
                            f"HTTP Response: {response.status} {response.status_text} "
                            f"({len(html)} chars)"
                        )
                finally:
                    browser.close()
        except PlaywrightTimeoutError as e:
            raise FetchError(f"Timed out after {self.timeout_seconds}s loading {url}") from e
        except PlaywrightError as e:
            raise FetchError(f"Browser error loading {url}: {e}") from e

        if not html:
            raise FetchError(f"Empty response from {url}")

        self._check_blocked(html)
        return html
