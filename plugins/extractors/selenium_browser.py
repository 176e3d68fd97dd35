"""Selenium-backed content extractor.

Each ``open()`` starts a fresh headless browser; the session is quit when the
pipeline closes it. Selenium is imported lazily so the rest of the system
(and the test suite) does not need a browser installed.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

from core.errors import ExtractionFailed, InvalidSelector

logger = logging.getLogger(__name__)

# Runs in the page: text of every include match that matches no exclude
# selector, in include order.
_COLLECT_SCRIPT = """
const include = arguments[0];
const exclude = arguments[1];
const results = [];
for (const inc of include) {
  for (const el of document.querySelectorAll(inc)) {
    if (!exclude.some(ex => el.matches(ex))) {
      results.push((el.textContent || '').trim());
    }
  }
}
return results;
"""


class SeleniumSession:
    """One live WebDriver. Implements the ExtractionSession protocol."""

    def __init__(self, driver: Any, mods: dict[str, Any]) -> None:
        self._driver = driver
        self._mods = mods
        self._lock = threading.RLock()

    async def navigate(self, url: str, timeout: float) -> None:
        await asyncio.to_thread(self._navigate_sync, url, timeout)

    def _navigate_sync(self, url: str, timeout: float) -> None:
        with self._lock:
            try:
                self._driver.set_page_load_timeout(timeout)
                self._driver.get(url)
            except self._mods["TimeoutException"] as exc:
                raise ExtractionFailed(f"Navigation to {url} timed out after {timeout:.0f}s") from exc
            except self._mods["WebDriverException"] as exc:
                raise ExtractionFailed(f"Failed to load {url}: {_first_line(exc)}") from exc

    async def check_selector(self, selector: str) -> None:
        await asyncio.to_thread(self._check_selector_sync, selector)

    def _check_selector_sync(self, selector: str) -> None:
        with self._lock:
            try:
                self._driver.find_elements(self._mods["By"].CSS_SELECTOR, selector)
            except self._mods["InvalidSelectorException"] as exc:
                raise InvalidSelector(selector, _first_line(exc)) from exc
            except self._mods["WebDriverException"] as exc:
                # Some drivers report bad syntax as a generic JS error
                if "selector" in str(exc).lower():
                    raise InvalidSelector(selector, _first_line(exc)) from exc
                raise ExtractionFailed(f"Selector check failed: {_first_line(exc)}") from exc

    async def collect(self, include: list[str], exclude: list[str]) -> list[str]:
        return await asyncio.to_thread(self._collect_sync, include, exclude)

    def _collect_sync(self, include: list[str], exclude: list[str]) -> list[str]:
        with self._lock:
            try:
                result = self._driver.execute_script(_COLLECT_SCRIPT, include, exclude)
            except self._mods["WebDriverException"] as exc:
                raise ExtractionFailed(f"Selector evaluation failed: {_first_line(exc)}") from exc
        return [str(item) for item in (result or [])]

    async def close(self) -> None:
        await asyncio.to_thread(self._close_sync)

    def _close_sync(self) -> None:
        with self._lock:
            if self._driver is None:
                return
            try:
                self._driver.quit()
            except Exception:
                logger.debug("Driver quit raised", exc_info=True)
            finally:
                self._driver = None


class SeleniumExtractor:
    """Implements the ContentExtractor protocol with Selenium WebDriver."""

    def __init__(self, browser: str = "chrome", headless: bool = True) -> None:
        self._browser = (browser or "chrome").strip().lower()
        self._headless = bool(headless)

    @property
    def name(self) -> str:
        return "selenium"

    async def open(self) -> SeleniumSession:
        return await asyncio.to_thread(self._open_sync)

    def _open_sync(self) -> SeleniumSession:
        try:
            mods = self._import_selenium_modules()
        except RuntimeError as exc:
            raise ExtractionFailed(str(exc)) from exc

        webdriver = mods["webdriver"]
        try:
            if self._browser == "chrome":
                options = mods["ChromeOptions"]()
                if self._headless:
                    options.add_argument("--headless=new")
                options.add_argument("--disable-dev-shm-usage")
                options.add_argument("--no-sandbox")
                driver = webdriver.Chrome(options=options)
            elif self._browser == "firefox":
                options = mods["FirefoxOptions"]()
                if self._headless:
                    options.add_argument("-headless")
                driver = webdriver.Firefox(options=options)
            else:
                raise ExtractionFailed(f"Unsupported browser '{self._browser}'. Use chrome or firefox.")
        except mods["WebDriverException"] as exc:
            raise ExtractionFailed(
                f"Failed to open Selenium browser ({self._browser}): {_first_line(exc)}"
            ) from exc

        logger.debug("Selenium browser opened (%s, headless=%s)", self._browser, self._headless)
        return SeleniumSession(driver, mods)

    @staticmethod
    def _import_selenium_modules() -> dict[str, Any]:
        try:
            from selenium import webdriver
            from selenium.common.exceptions import (
                InvalidSelectorException,
                TimeoutException,
                WebDriverException,
            )
            from selenium.webdriver.chrome.options import Options as ChromeOptions
            from selenium.webdriver.common.by import By
            from selenium.webdriver.firefox.options import Options as FirefoxOptions
        except Exception as exc:
            raise RuntimeError(
                "Selenium is not available. Install it with `pip install selenium`."
            ) from exc

        return {
            "webdriver": webdriver,
            "ChromeOptions": ChromeOptions,
            "FirefoxOptions": FirefoxOptions,
            "By": By,
            "InvalidSelectorException": InvalidSelectorException,
            "TimeoutException": TimeoutException,
            "WebDriverException": WebDriverException,
        }


def _first_line(exc: Exception) -> str:
    text = str(getattr(exc, "msg", None) or exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__
