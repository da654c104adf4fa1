from __future__ import annotations

import os
from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from contextlib import contextmanager

from loguru import logger
from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from utils.config import AppConfig

DEFAULT_WINDOW_SIZE = "1400,1000"


class BrowserStartupTimeout(TimeoutError):
    pass


def init_driver(
    headless: bool,
    window_size: str = DEFAULT_WINDOW_SIZE,
    extra_args: list[str] | None = None,
    *,
    user_agent: str | None = None,
) -> WebDriver:
    """Create and return a configured Chrome WebDriver instance."""

    opts = Options()
    if headless:
        opts.add_argument("--headless=new")
    if window_size:
        opts.add_argument(f"--window-size={window_size}")
    # Stability flags for headless/server environments
    opts.add_argument("--no-sandbox")
    opts.add_argument("--disable-dev-shm-usage")
    opts.add_argument("--disable-gpu")
    opts.add_argument("--no-first-run")
    opts.add_argument("--no-default-browser-check")
    opts.add_argument("--disable-extensions")
    if user_agent:
        opts.add_argument(f"--user-agent={user_agent}")
    for a in extra_args or []:
        opts.add_argument(a)
    return webdriver.Chrome(options=opts)


def _quit_late_driver(fut: Future) -> None:
    # A driver that finished starting after we gave up on it
    if fut.cancelled() or fut.exception() is not None:
        return
    try:
        fut.result().quit()
        logger.debug("Quit browser that started after the startup timeout")
    except Exception as e:
        logger.warning("Could not quit late browser: {}", e)


def start_driver(cfg: AppConfig) -> WebDriver:
    """Start Chrome, giving up after `cfg.browser_startup_timeout` seconds."""

    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="browser-start")
    fut = pool.submit(
        init_driver,
        cfg.headless,
        extra_args=cfg.chrome_args,
        user_agent=cfg.user_agent,
    )
    try:
        driver = fut.result(timeout=cfg.browser_startup_timeout)
    except FutureTimeout:
        fut.add_done_callback(_quit_late_driver)
        raise BrowserStartupTimeout(
            f"browser did not start within {cfg.browser_startup_timeout}s"
        ) from None
    finally:
        pool.shutdown(wait=False)
    try:
        driver.set_page_load_timeout(cfg.page_load_timeout)
    except BaseException:
        driver.quit()
        raise
    return driver


@contextmanager
def browser_session(cfg: AppConfig) -> Iterator[WebDriver]:
    """Yield a fresh driver and quit it on every exit path."""

    driver = start_driver(cfg)
    try:
        yield driver
    finally:
        try:
            driver.quit()
            logger.info("Browser closed")
        except Exception:
            logger.warning("Could not close the browser cleanly")


def open_page(driver: WebDriver, url: str, *, ready_timeout: int = 30) -> None:
    """Navigate to `url` and wait until the document body is present."""

    logger.info("Navigating to {}", url)
    driver.get(url)
    WebDriverWait(driver, ready_timeout).until(
        EC.presence_of_element_located((By.TAG_NAME, "body"))
    )
    logger.info("Page loaded successfully")


def _save_screenshot(driver: WebDriver, directory: str) -> None:
    try:
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, "homepage.png")
        driver.save_screenshot(path)
        logger.info("Saved screenshot to {}", path)
    except Exception as e:
        logger.warning("Could not save screenshot to '{}': {}", directory, e)


def fetch_rendered_html(cfg: AppConfig) -> str:
    """Render the source page in a one-off browser and return its DOM as HTML."""

    with browser_session(cfg) as driver:
        open_page(driver, cfg.base_url, ready_timeout=cfg.ready_timeout)
        if cfg.debug_screenshot_dir:
            _save_screenshot(driver, cfg.debug_screenshot_dir)
        return driver.page_source
