"""
Page readers driven through a Playwright browser context.

Everything here talks to live pages; the parsing of what comes back lives in
``page_data`` and ``resources`` so it can be tested without a browser.
"""
from playwright.async_api import BrowserContext, Page

from .constants import (
    DOWNLOAD_URL_ENDPOINT,
    DOWNLOAD_URL_EXPIRE,
    PLAY_BUTTON_SELECTOR,
    RESOURCE_WRAPPER_SELECTOR,
)
from .logger import Logger
from .models import CourseLibrary, CourseTree, LessonData
from .page_data import classroom_root_url, parse_classroom, parse_course_library, parse_lesson_page, render_body
from .resources import (
    DomResource,
    is_external_url,
    merge_resources,
    parse_metadata_resources,
    resolve_download_urls,
)
from .signed_url import SignedUrlResolver

NAVIGATION_TIMEOUT = 60_000  # ms
CLASSROOM_SETTLE = 2_000  # ms
LESSON_SETTLE = 5_000  # ms

NEXT_DATA_JS = """
() => {
    const script = document.getElementById('__NEXT_DATA__');
    return script ? JSON.parse(script.innerText) : null;
}
"""

MANIFEST_PROBE_JS = """
() => {
    const entries = performance.getEntriesByType('resource')
        .filter(e => e.name.includes('m3u8') && e.name.includes('token='));
    if (entries.length > 0) return entries[entries.length - 1].name;

    const queue = [document];
    while (queue.length > 0) {
        const root = queue.shift();
        const video = root.querySelector('video');
        if (video && video.src && video.src.includes('m3u8')) return video.src;
        for (const element of root.querySelectorAll('*')) {
            if (element.shadowRoot) queue.push(element.shadowRoot);
        }
    }
    return null;
}
"""

DOM_RESOURCES_JS = """
(selector) => Array.from(document.querySelectorAll(selector)).map(wrapper => {
    const anchor = wrapper.querySelector('a');
    const label = wrapper.querySelector('span[class*="ResourceLabel"]');
    return {
        title: label ? label.textContent.trim() : null,
        url: anchor ? anchor.href : null,
    };
})
"""

DOWNLOAD_URL_JS = """
async (apiUrl) => {
    try {
        const resp = await fetch(apiUrl, { method: 'POST', credentials: 'include' });
        if (!resp.ok) return { success: false, error: `HTTP ${resp.status}` };
        const text = await resp.text();
        return { success: true, url: text.trim() };
    } catch (e) {
        return { success: false, error: String(e) };
    }
}
"""


def clean_classroom_url(url: str) -> str:
    return url.split("?")[0].split("#")[0]


async def get_next_data(page: Page) -> dict | None:
    return await page.evaluate(NEXT_DATA_JS)


class PlaywrightPlayerPage:
    """The player controls of an open lesson page."""

    def __init__(self, page: Page, selector: str = PLAY_BUTTON_SELECTOR):
        self.page = page
        self.selector = selector

    async def has_play_control(self) -> bool:
        return await self.page.evaluate("(sel) => !!document.querySelector(sel)", self.selector)

    async def trigger_play(self) -> None:
        await self.page.click(self.selector)

    async def probe_manifest(self) -> str | None:
        return await self.page.evaluate(MANIFEST_PROBE_JS)


async def scan_dom_resources(page: Page) -> list[DomResource]:
    try:
        found = await page.evaluate(DOM_RESOURCES_JS, RESOURCE_WRAPPER_SELECTOR)
    except Exception as e:
        Logger.warning(f"    ⚠️ DOM-based resource scraping failed: {e}")
        return []

    return [
        DomResource(title=item.get("title"), url=item.get("url"), is_external=is_external_url(item.get("url")))
        for item in found or []
    ]


def page_url_exchange(page: Page):
    """Exchange file ids for signed URLs from inside the page, so the session cookies ride along."""

    async def exchange(file_id: str) -> tuple[bool, str]:
        api_url = DOWNLOAD_URL_ENDPOINT.format(file_id=file_id, expire=DOWNLOAD_URL_EXPIRE)
        response = await page.evaluate(DOWNLOAD_URL_JS, api_url)
        if response.get("success"):
            return True, response.get("url") or ""
        return False, response.get("error") or "Unknown error"

    return exchange


class PlaywrightScraper:
    """Reads classrooms and lessons through its own browser context, closed by `close`."""

    def __init__(self, context: BrowserContext):
        self.context = context

    async def _open(self, url: str, settle: int) -> Page:
        page = await self.context.new_page()
        await page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT)
        await page.wait_for_timeout(settle)
        return page

    async def parse_classroom(self, url: str) -> CourseTree:
        classroom_url = clean_classroom_url(url)
        Logger.info(f"Navigating to {classroom_url}...")

        page = await self._open(classroom_url, CLASSROOM_SETTLE)
        try:
            next_data = await get_next_data(page)
        finally:
            await page.close()

        if not next_data:
            raise ValueError("Could not find __NEXT_DATA__ on classroom page")

        tree = parse_classroom(next_data, classroom_url)
        Logger.info(f"🎓 Course detected: {tree.course_name}")
        return tree

    async def parse_course_library(self, url: str) -> CourseLibrary:
        classroom_url = classroom_root_url(url)
        Logger.info(f"Navigating to {classroom_url}...")

        page = await self._open(classroom_url, CLASSROOM_SETTLE)
        try:
            next_data = await get_next_data(page)
        finally:
            await page.close()

        if not next_data:
            raise ValueError("Could not find __NEXT_DATA__ on classroom page")

        library = parse_course_library(next_data, classroom_url)
        Logger.info(f"📚 Found {len(library.courses)} courses in {library.group_name}")
        return library

    async def extract_lesson_data(self, url: str) -> LessonData:
        page = await self._open(url, LESSON_SETTLE)
        try:
            next_data = await get_next_data(page)
            if not next_data:
                raise ValueError(f"Could not find __NEXT_DATA__ for lesson at {url}")
            lesson = parse_lesson_page(next_data, url)

            resolver = SignedUrlResolver(PlaywrightPlayerPage(page))
            video_link = await resolver.resolve(lesson.video_link, lesson.video_id, lesson.page_video)

            resources = merge_resources(
                parse_metadata_resources(lesson.raw_resources),
                await scan_dom_resources(page),
            )
            await resolve_download_urls(resources, page_url_exchange(page))
        finally:
            await page.close()

        return LessonData(
            id=lesson.lesson_id or "",
            title=lesson.title or "",
            url=url,
            content_html=render_body(lesson.body),
            video_link=video_link,
            resources=resources,
        )

    async def close(self) -> None:
        await self.context.close()
