"""
Course archival: from a classroom URL to a browsable folder on disk.

``download_course`` parses the course tree, prepares the output directory,
fans the lessons out over the scheduler and keeps the course index current
through an ``IndexGate``. Rerunning it against the same folder only fetches
what is still missing.
"""
import asyncio
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Protocol
from urllib.parse import urlparse

from .constants import ASSETS_DIR, DOWNLOADS_DIR
from .errors import SoftFailure, Step, StructuralError, guarded_step
from .events import CourseCompleted, CourseStarted, EventChannel, LessonCompleted, LessonFailed
from .index import IndexGate, regenerate_group_index, regenerate_index
from .logger import Logger
from .manifest import write_course_manifest
from .models import (
    CourseLibrary,
    CourseListItem,
    CourseManifest,
    CourseTree,
    DownloadMode,
    DownloadSummary,
    Lesson,
    LessonData,
    LibrarySummary,
    Module,
    ModuleEntry,
)
from .page_data import lesson_id_from_url
from .scheduler import normalize_concurrency, run_concurrent
from .utils import AssetFetcher, download, get_url_extension, has_content, sanitize_name
from .video import VideoAcquirer
from .worker import LessonWorker


class CourseScraper(Protocol):
    async def parse_classroom(self, url: str) -> CourseTree: ...

    async def extract_lesson_data(self, url: str) -> LessonData: ...

    async def close(self) -> None: ...


class LibraryScraper(Protocol):
    async def parse_course_library(self, url: str) -> CourseLibrary: ...

    async def close(self) -> None: ...


ScraperFactory = Callable[[], Awaitable[CourseScraper]]


@dataclass
class DownloadOptions:
    url: str
    output_dir: Path | None = None
    concurrency: int | None = None
    mode: DownloadMode = DownloadMode.AUTO
    lesson_id: str | None = None
    suppress_index_logs: bool = False


class RunContext:
    """
    What the signal handlers of a run need to know.

    On SIGINT/SIGTERM the running download is cancelled; ``download_course``
    then runs one last index pass over whatever manifests exist before the
    cancellation propagates.
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self):
        self.output_dir: Path | None = None
        self.gate: IndexGate | None = None
        self.caught_signal: str | None = None
        self._task: asyncio.Task | None = None
        self._installed: list[signal.Signals] = []

    def attach(self, output_dir: Path, gate: IndexGate) -> None:
        self.output_dir = output_dir
        self.gate = gate

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        self._task = asyncio.current_task()
        for sig in self.SIGNALS:
            try:
                loop.add_signal_handler(sig, self.on_signal, sig.name)
            except (NotImplementedError, RuntimeError):
                # No loop signal support (Windows); Ctrl+C still raises KeyboardInterrupt
                Logger.debug(f"Signal handler for {sig.name} not installed")
                continue
            self._installed.append(sig)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()

    def on_signal(self, name: str) -> None:
        if self.caught_signal is not None:
            return
        self.caught_signal = name
        Logger.warning(f"🛑 Caught {name}. Regenerating index before exit...")
        if self._task is not None:
            self._task.cancel()

    async def final_index(self) -> None:
        if self.output_dir is None:
            return
        if self.gate is not None:
            await self.gate.final_pass()
            return
        async with guarded_step(Step.INDEX, str(self.output_dir)):
            await regenerate_index(self.output_dir)


def clean_url(url: str) -> str:
    """Strip shell escapes and reject anything that is not an http(s) URL."""
    cleaned = url.replace("\\", "").strip()
    parsed = urlparse(cleaned)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise StructuralError(f"Invalid URL: {url}")
    return cleaned


def resolve_target_lesson_id(url: str, mode: DownloadMode, explicit: str | None = None) -> str | None:
    """
    The lesson to download on its own, if any.

    Course mode ignores lesson ids. Otherwise an explicit id wins over the
    `md`/`lesson` query parameter of the URL.
    """
    if mode is DownloadMode.COURSE:
        return None

    target = explicit or lesson_id_from_url(url)
    if mode is DownloadMode.LESSON and not target:
        raise StructuralError("Lesson mode requires a lesson id in the URL or explicit --lesson-id option.")
    return target


def select_lesson(tree: CourseTree, lesson_id: str) -> tuple[Module, Lesson]:
    for module in tree.modules:
        for lesson in module.lessons:
            if lesson.id == lesson_id:
                return module, lesson
    raise StructuralError(f"Could not find lesson with ID {lesson_id} in this classroom.")


def default_output_dir(tree: CourseTree) -> Path:
    return DOWNLOADS_DIR / sanitize_name(tree.group_name) / sanitize_name(tree.course_name)


def build_course_manifest(tree: CourseTree, cover_path: str | None) -> CourseManifest:
    return CourseManifest(
        course_name=tree.course_name,
        group_name=tree.group_name,
        course_image_url=tree.cover_image_url,
        course_image_path=cover_path,
        modules=[
            ModuleEntry(index=module.index, title=module.title, module_dir_name=module.dir_name)
            for module in tree.modules
        ],
    )


async def download_cover(url: str, output_dir: Path, fetch: AssetFetcher) -> str | None:
    """Save the course cover under `assets/`; returns its course-relative path."""
    local_name = f"course-cover{get_url_extension(url)}"
    path = output_dir / ASSETS_DIR / local_name
    async with guarded_step(Step.COVER_IMAGE, url):
        if not has_content(path) and not await fetch(url, path):
            raise SoftFailure("Failed to download course image, continuing without it.")
        return f"{ASSETS_DIR}/{local_name}"
    return None


async def download_course(
    options: DownloadOptions,
    scraper: CourseScraper,
    fetch: AssetFetcher = download,
    videos: VideoAcquirer | None = None,
    events: EventChannel | None = None,
    context: RunContext | None = None,
) -> DownloadSummary:
    """
    Archive one course, or a single lesson of it.

    :raise StructuralError: when the course tree is unusable or the target lesson is unknown
    """
    events = events or EventChannel()
    videos = videos or VideoAcquirer()
    context = context or RunContext()

    try:
        url = clean_url(options.url)
        target_lesson_id = resolve_target_lesson_id(url, options.mode, options.lesson_id)
        classroom_url = url.split("?")[0]
        concurrency = 1 if target_lesson_id else normalize_concurrency(options.concurrency)

        Logger.info("🚀 Fetching course structure...")
        try:
            tree = await scraper.parse_classroom(classroom_url)
        except ValueError as e:
            raise StructuralError(str(e)) from e

        if not tree.modules:
            raise StructuralError("No modules found. Are you sure this is a classroom URL and you are logged in?")

        if target_lesson_id:
            Logger.info(f"📍 Single lesson mode: Finding lesson {target_lesson_id}...")
            module, lesson = select_lesson(tree, target_lesson_id)
            selected = [(module, lesson)]
            Logger.info(f"✅ Found lesson: {lesson.title}")
        else:
            selected = [(module, lesson) for module in tree.modules for lesson in module.lessons]
            Logger.info(f"✅ Found {len(tree.modules)} modules.")

        explicit_output = options.output_dir is not None
        output_dir = Path(options.output_dir) if explicit_output else default_output_dir(tree)
        output_dir.mkdir(parents=True, exist_ok=True)

        gate = IndexGate(output_dir, silent=options.suppress_index_logs)
        context.attach(output_dir, gate)

        modules_count = len({module.index for module, _ in selected})
        events.emit(
            CourseStarted(
                course_name=tree.course_name,
                group_name=tree.group_name,
                modules_count=modules_count,
                lessons_count=len(selected),
                output_dir=str(output_dir),
                target_lesson_id=target_lesson_id,
            )
        )

        worker = LessonWorker(tree, output_dir, scraper, fetch, videos, events, gate)
        counts = {"completed": 0, "failed": 0}

        def lesson_task(module: Module, lesson: Lesson):
            async def run():
                result = await worker.run(module, lesson)
                degraded = result.degrading_failure
                if degraded is not None:
                    counts["failed"] += 1
                    events.emit(LessonFailed(module.index, lesson.index, lesson.title, degraded.error))
                    return
                counts["completed"] += 1
                events.emit(
                    LessonCompleted(
                        module.index,
                        lesson.index,
                        lesson.title,
                        result.manifest.has_video,
                        result.manifest.resources_count,
                    )
                )

            return run

        def on_error(index: int, error: BaseException) -> None:
            module, lesson = selected[index]
            counts["failed"] += 1
            events.emit(LessonFailed(module.index, lesson.index, lesson.title, error))
            Logger.error(f"    ⚠️ Error processing lesson {lesson.title}: {error}", exception=error)

        try:
            cover_path = None
            if tree.cover_image_url:
                cover_path = await download_cover(tree.cover_image_url, output_dir, fetch)
            await write_course_manifest(output_dir, build_course_manifest(tree, cover_path))

            for module in {module.dir_name: module for module, _ in selected}.values():
                (output_dir / module.dir_name).mkdir(parents=True, exist_ok=True)

            await run_concurrent([lesson_task(m, l) for m, l in selected], concurrency, on_error)
        except asyncio.CancelledError:
            if context.caught_signal:
                await context.final_index()
            raise

        await gate.final_pass()
        if not explicit_output:
            async with guarded_step(Step.INDEX, str(output_dir.parent)):
                await regenerate_group_index(output_dir.parent, silent=True)

        summary = DownloadSummary(
            course_name=tree.course_name,
            group_name=tree.group_name,
            output_dir=str(output_dir),
            modules_count=modules_count,
            lessons_count=len(selected),
            completed_lessons=counts["completed"],
            failed_lessons=counts["failed"],
            target_lesson_id=target_lesson_id,
        )
        events.emit(CourseCompleted(summary))

        Logger.info("✨ All downloads complete!")
        Logger.info(f"Check your files in: {output_dir}")
        return summary
    finally:
        await scraper.close()


def filter_accessible_courses(courses: list[CourseListItem]) -> tuple[list[CourseListItem], list[CourseListItem]]:
    """Split a listing into (accessible, locked); locked covers no access and private courses."""
    accessible = [course for course in courses if not course.locked]
    locked = [course for course in courses if course.locked]
    return accessible, locked


async def download_library(
    options: DownloadOptions,
    open_scraper: ScraperFactory,
    fetch: AssetFetcher = download,
    videos: VideoAcquirer | None = None,
    events: EventChannel | None = None,
    context: RunContext | None = None,
) -> LibrarySummary:
    """
    Archive every accessible course listed on a classroom root page.

    Each course runs in course mode with its own scraper. With an explicit
    output directory courses land in `<output>/<group>/<course>`. A course
    that fails is counted and the next one starts.

    :raise StructuralError: when the listing cannot be read
    """
    url = clean_url(options.url)
    scraper = await open_scraper()
    try:
        Logger.info("🚀 Fetching course library...")
        library = await scraper.parse_course_library(url)
    except ValueError as e:
        raise StructuralError(str(e)) from e
    finally:
        await scraper.close()

    accessible, locked = filter_accessible_courses(library.courses)
    summary = LibrarySummary(
        group_name=library.group_name,
        courses_count=len(accessible),
        locked_courses=len(locked),
    )

    if locked:
        Logger.warning(f"Skipping {len(locked)} locked course{'' if len(locked) == 1 else 's'} (no access).")
    if not accessible:
        Logger.warning("No accessible courses found to download.")
        return summary

    for position, course in enumerate(accessible, 1):
        Logger.info(f"📦 Course {position}/{len(accessible)}: {course.title}")
        output_dir = None
        if options.output_dir is not None:
            output_dir = Path(options.output_dir) / sanitize_name(library.group_name) / sanitize_name(course.title)
        course_options = DownloadOptions(
            url=course.url,
            output_dir=output_dir,
            concurrency=options.concurrency,
            mode=DownloadMode.COURSE,
            suppress_index_logs=options.suppress_index_logs,
        )
        try:
            summary.courses.append(
                await download_course(course_options, await open_scraper(), fetch, videos, events, context)
            )
        except Exception as e:
            summary.failed_courses += 1
            Logger.error(f"❌ Failed to download course {course.title}: {e}", exception=e)

    if summary.failed_courses:
        Logger.warning(f"{summary.failed_courses} courses failed.")
    return summary
