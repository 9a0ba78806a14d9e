"""
Yad2 爬蟲模組

繼承 BaseScraper，實作 Yad2 租屋搜尋結果頁的物件擷取邏輯：
- 以帶有反偵測設定的瀏覽器載入頁面
- 偵測 ShieldSquare 驗證頁
- 從含有物件圖片的連結中擷取價格、房間數、樓層、坪數
"""

import hashlib
import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup, Tag
from playwright.sync_api import BrowserContext, Page

from core.errors import FetchError
from core.models import DEFAULT_LISTING_TEXT, ListingRecord, utc_now
from scrapers.base_scraper import BaseScraper

logger = logging.getLogger(__name__)

BASE_URL = "https://www.yad2.co.il"
IMAGE_HOST_MARKER = "img.yad2.co.il/Pic/"
CAPTCHA_TITLE = "ShieldSquare Captcha"

MAX_TEXT_LENGTH = 300

# 卡片文字格式大致為 "₪ 價格 地址 類型, 區域 房間 • קומה 樓層 • 坪數 מ״ר"
PRICE_PATTERN = re.compile(r"₪\s*([\d,]+)")
ROOMS_PATTERN = re.compile(r"([\d.]+)\s*חדרים")
FLOOR_PATTERN = re.compile(r"קומה\s*\u200e*([\dקרקע]+)")
SIZE_PATTERN = re.compile(r"([\d,]+)\s*מ[״\"']?ר")
DUPLICATE_PRICE_PATTERN = re.compile(r"(₪\s*[\d,]+)\s*₪\s*[\d,]+")
ITEM_ID_PATTERN = re.compile(r"/item/([a-zA-Z0-9]+)")

CARD_CLASS_MARKERS = ("item", "card", "feed")

# 覆寫 navigator 屬性以避免被偵測為自動化瀏覽器
STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => false });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['he-IL', 'he', 'en-US', 'en'] });
window.chrome = { runtime: {} };
"""


def _has_card_class(tag: Tag) -> bool:
    classes = " ".join(tag.get("class", []))
    return any(marker in classes for marker in CARD_CLASS_MARKERS)


def clean_listing_text(raw_text: str) -> str:
    """
    整理卡片文字

    - 合併空白
    - 截斷至 300 字
    - 移除重複的價格（"₪ 12,000₪ 12,000" → "₪ 12,000"）
    - 前後兩半完全相同時只保留一半
    """
    text = re.sub(r"\s+", " ", raw_text).strip()[:MAX_TEXT_LENGTH]
    text = DUPLICATE_PRICE_PATTERN.sub(r"\1", text)

    if len(text) > 100:
        half = len(text) // 2
        if text[:half] == text[half:]:
            text = text[:half]

    return re.sub(r"\s+", " ", text).strip()


class Yad2Scraper(BaseScraper):
    """
    Yad2 爬蟲

    繼承 BaseScraper，實作 Yad2 租屋頁面特定的擷取邏輯。
    """

    LAUNCH_ARGS = [
        "--disable-blink-features=AutomationControlled",
        "--disable-dev-shm-usage",
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-web-security",
        "--disable-features=VizDisplayCompositor",
    ]

    @property
    def source_name(self) -> str:
        """返回來源名稱"""
        return "yad2"

    def get_listing_id(self, url: str) -> Optional[str]:
        """
        從物件 URL 提取物件 ID

        例如 /realestate/item/zvr626ts → zvr626ts
        """
        if not url:
            return None
        match = ITEM_ID_PATTERN.search(url)
        return match.group(1) if match else None

    def derive_listing_id(self, image_url: str) -> str:
        """沒有物件 ID 時，以圖片 URL 產生固定的 ID"""
        digest = hashlib.sha1(image_url.encode("utf-8")).hexdigest()[:16]
        return f"img-{digest}"

    def _new_context(self, browser) -> BrowserContext:
        context = browser.new_context(
            user_agent=self._get_user_agent(),
            viewport={"width": 1920, "height": 1080},
            locale="he-IL",
            timezone_id="Asia/Jerusalem",
            geolocation={"latitude": 32.0853, "longitude": 34.7818},
            permissions=["geolocation"],
        )
        context.add_init_script(STEALTH_INIT_SCRIPT)
        return context

    def _after_load(self, page: Page) -> None:
        """模擬人類操作"""
        page.wait_for_timeout(2000)
        page.mouse.move(100, 200)
        page.wait_for_timeout(500)
        page.evaluate("window.scrollBy(0, 300)")
        page.wait_for_timeout(2000)

    def _check_blocked(self, html: str) -> None:
        soup = BeautifulSoup(html, "html.parser")
        title = soup.title.get_text().strip() if soup.title else ""
        logger.info(f"Page title: {title!r}")
        if title == CAPTCHA_TITLE:
            raise FetchError("Bot detection")

    def _parse_link(self, link: Tag) -> Optional[ListingRecord]:
        """
        解析單一物件連結

        Returns:
            物件紀錄，非物件連結或沒有價格時返回 None
        """
        img = link.find("img")
        image_url = img.get("src") if img else None
        if (
            not image_url
            or IMAGE_HOST_MARKER not in image_url
            or "placeholder" in image_url
            or "logo" in image_url
        ):
            return None

        item_url = link.get("href") or ""
        if item_url and not item_url.startswith("http"):
            item_url = BASE_URL + item_url

        listing_id = self.get_listing_id(item_url) or self.derive_listing_id(image_url)

        if _has_card_class(link):
            card = link
        else:
            card = link.find_parent(_has_card_class) or link.parent
        raw_text = re.sub(r"\s+", " ", card.get_text(" ")).strip()

        price_match = PRICE_PATTERN.search(raw_text)
        if not price_match:
            # 沒有價格的多半是廣告
            return None
        rooms_match = ROOMS_PATTERN.search(raw_text)
        floor_match = FLOOR_PATTERN.search(raw_text)
        size_match = SIZE_PATTERN.search(raw_text)

        return ListingRecord(
            id=listing_id,
            image_url=image_url,
            url=item_url,
            price=f"₪{price_match.group(1)}",
            rooms=f"{rooms_match.group(1)} חדרים" if rooms_match else "",
            floor=f"קומה {floor_match.group(1)}" if floor_match else "",
            size=f"{size_match.group(1)} מ״ר" if size_match else "",
            text=clean_listing_text(raw_text) or DEFAULT_LISTING_TEXT,
            observed_at=utc_now(),
        )

    def extract_listings(self, html: str) -> List[ListingRecord]:
        """
        從搜尋結果頁擷取物件

        Args:
            html: 頁面 HTML

        Returns:
            依頁面順序排列、以 ID 去重的物件列表
        """
        soup = BeautifulSoup(html, "html.parser")
        listings = []
        seen_ids = set()

        for link in soup.find_all("a"):
            record = self._parse_link(link)
            if record is None or record.id in seen_ids:
                continue
            seen_ids.add(record.id)
            listings.append(record)

        logger.info(f"Extracted {len(listings)} items with price")
        return listings
