import functools
from urllib.parse import urlparse

import aiofiles
from playwright.async_api import Browser, BrowserContext, async_playwright

from .collectors import PlaywrightScraper
from .constants import COOKIES_FILE, LOGIN_URL, SESSION_FILE, USER_AGENT
from .logger import Logger
from .utils import cookies_to_netscape

LOGIN_TIMEOUT = 0  # wait for the user as long as it takes


def login_required(func):
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        self = args[0]
        if not isinstance(self, AsyncSkool):
            Logger.error(f"{login_required.__name__} can only decorate AsyncSkool class.")
            return
        if not self.loggedin:
            Logger.warning("No saved session found, continuing anonymously. Run `skool login` first for private groups.")
        return await func(*args, **kwargs)

    return wrapper


def is_logged_in_url(url: str) -> bool:
    """After a manual login the browser lands on any skool.com page that is not login or signup."""
    parsed = urlparse(url)
    if parsed.hostname != "www.skool.com":
        return False
    return "login" not in parsed.path and "signup" not in parsed.path


class AsyncSkool:
    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright = None
        self._browser: Browser | None = None

    @property
    def loggedin(self) -> bool:
        return SESSION_FILE.exists()

    async def __aenter__(self):
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()

    async def new_context(self) -> BrowserContext:
        """A browser context carrying the saved session, when there is one."""
        if self.loggedin:
            return await self._browser.new_context(storage_state=str(SESSION_FILE), user_agent=USER_AGENT)
        return await self._browser.new_context(user_agent=USER_AGENT)

    @login_required
    async def scraper(self) -> PlaywrightScraper:
        return PlaywrightScraper(await self.new_context())

    async def login(self) -> None:
        Logger.info("Please login, in the opened browser")
        Logger.info("The session is saved as soon as you land on a page past the login screen")

        context = await self._browser.new_context(user_agent=USER_AGENT)
        try:
            page = await context.new_page()
            await page.goto(LOGIN_URL)
            await page.wait_for_url(is_logged_in_url, timeout=LOGIN_TIMEOUT)

            Logger.info("Login detected. Saving session state...")
            await self._save_state(context)
        finally:
            await context.close()

        Logger.info(f"Session state saved to {SESSION_FILE}")
        Logger.info(f"Cookies saved to {COOKIES_FILE} (Netscape format)")

    async def logout(self):
        SESSION_FILE.unlink(missing_ok=True)
        COOKIES_FILE.unlink(missing_ok=True)
        Logger.info("Logged out successfully")

    async def _save_state(self, context: BrowserContext) -> None:
        await context.storage_state(path=str(SESSION_FILE))
        cookies = await context.cookies()
        async with aiofiles.open(COOKIES_FILE, "w", encoding="utf-8") as file:
            await file.write(cookies_to_netscape(cookies))
