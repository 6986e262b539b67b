import pytest
from playwright.sync_api import Error as PlaywrightError

from modules.hiring_watch.lib.api_client import ListingsClient
from modules.hiring_watch.lib.browser import HeadlessSessionDriver
from modules.hiring_watch.lib.config import Settings
from modules.hiring_watch.lib.errors import SessionLoadFailed
from modules.hiring_watch.lib.extractor import TokenExtractor


@pytest.mark.live
def test_driver_reads_storage_from_real_site():
    s = Settings()
    with HeadlessSessionDriver(s.website_url, settle_seconds=5) as driver:
        driver.load_session()
        storage = driver.read_storage()
    assert isinstance(storage.local, dict)
    assert isinstance(storage.session, dict)


@pytest.mark.live
def test_extract_and_verify_real_token():
    s = Settings(extraction_retry_delay_seconds=5)
    client = ListingsClient(s)
    try:
        cred = TokenExtractor(s, verifier=client.verify).extract_credential()
        assert cred.token.startswith("eyJ")
        assert client.search(cred.token) is not None
    finally:
        client.close()


def test_stop_is_safe_before_start_and_twice():
    driver = HeadlessSessionDriver("https://example.invalid")
    driver.stop()
    driver.stop()


class ClosingPage:
    def goto(self, url, **kwargs):
        return None

    def wait_for_timeout(self, ms):
        raise PlaywrightError("Target page, context or browser has been closed")


def test_page_closing_during_settle_is_a_load_failure():
    driver = HeadlessSessionDriver("https://example.invalid", settle_seconds=1)
    driver._page = ClosingPage()

    with pytest.raises(SessionLoadFailed) as ei:
        driver.load_session()
    assert isinstance(ei.value.__cause__, PlaywrightError)
