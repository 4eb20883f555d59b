"""
Headless Chrome session shared by browser-driven providers.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from webdriver_manager.chrome import ChromeDriverManager

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/136.0.7103.92 Safari/537.36"
)


def setup_driver(headless: bool = True) -> webdriver.Chrome:
    """Set up Chrome WebDriver with optimal settings."""
    chrome_options = Options()

    if headless:
        chrome_options.add_argument("--headless")

    chrome_options.add_argument("--window-size=1920,1080")
    chrome_options.add_argument("--start-maximized")
    chrome_options.add_argument(f"user-agent={USER_AGENT}")
    chrome_options.add_argument("--disable-blink-features=AutomationControlled")
    chrome_options.add_experimental_option("excludeSwitches", ["enable-automation"])
    chrome_options.add_experimental_option("useAutomationExtension", False)

    service = Service(ChromeDriverManager().install())
    driver = webdriver.Chrome(service=service, options=chrome_options)
    driver.execute_script("Object.defineProperty(navigator, 'webdriver', {get: () => undefined})")

    return driver


@contextmanager
def browser_session(headless: bool = True) -> Iterator[webdriver.Chrome]:
    """Yield a Chrome driver and quit it on every exit path."""
    driver = setup_driver(headless)
    logger.debug("Chrome session started")
    try:
        yield driver
    finally:
        driver.quit()
        logger.debug("Chrome session closed")
