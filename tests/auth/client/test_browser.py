import logging
import webbrowser

from tether.auth.client.services import browser
from tether.auth.client.services.browser import open_browser


class TestOpenBrowser:
    async def test_opens_url(self, monkeypatch):
        opened = []
        monkeypatch.setattr(browser.webbrowser, "open", lambda url: opened.append(url) or True)

        await open_browser("https://auth.example.com/authorize?state=s")

        assert opened == ["https://auth.example.com/authorize?state=s"]

    async def test_failure_logs_url(self, monkeypatch, caplog):
        def broken(url):
            raise webbrowser.Error("no browser")

        monkeypatch.setattr(browser.webbrowser, "open", broken)

        with caplog.at_level(logging.WARNING):
            await open_browser("https://auth.example.com/authorize")

        assert "https://auth.example.com/authorize" in caplog.text

    async def test_headless_logs_url(self, monkeypatch, caplog):
        monkeypatch.setattr(browser.webbrowser, "open", lambda url: False)

        with caplog.at_level(logging.WARNING):
            await open_browser("https://auth.example.com/authorize")

        assert "Please open this URL" in caplog.text
