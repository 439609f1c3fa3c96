import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich import box, print
from rich.table import Table
from typing_extensions import Annotated

from skool import (
    AsyncSkool,
    DownloadMode,
    DownloadOptions,
    EventChannel,
    Logger,
    RunContext,
    SkoolError,
    download_course,
    regenerate_group_index,
    regenerate_index,
)
from skool.constants import COURSE_MANIFEST, DOWNLOADS_DIR
from skool.events import CourseCompleted, CourseStarted, LessonCompleted, LessonFailed
from skool.models import LibrarySummary
from skool.page_data import is_classroom_root_url
from skool.pipeline import clean_url, download_library, resolve_target_lesson_id

app = typer.Typer(rich_markup_mode="rich")


@app.command()
def login():
    """
    Open a browser window to Login to Skool.

    The session is stored in storage_state.json and cookies.txt in the
    current directory.

    Usage:
        skool login
    """
    asyncio.run(_login())


@app.command()
def logout():
    """
    Delete the Skool session from the local storage.

    Usage:
        skool logout
    """
    asyncio.run(_logout())


@app.command()
def download(
    url: Annotated[
        str,
        typer.Argument(
            help="Classroom URL of a course, a lesson URL (with ?md=), or the classroom root to fetch every course",
            show_default=False,
        ),
    ],
    output: Annotated[
        Optional[Path],
        typer.Option(
            "--output",
            "-o",
            help="Output directory (course root). Defaults to downloads/<group>/<course>.",
            show_default=False,
        ),
    ] = None,
    concurrency: Annotated[
        int,
        typer.Option(
            "--concurrency",
            "-c",
            help="Lessons processed at the same time (1-16).",
            show_default=True,
        ),
    ] = 8,
    mode: Annotated[
        DownloadMode,
        typer.Option(
            "--mode",
            "-m",
            help="auto: single lesson when the URL carries a lesson id, course: whole course, lesson: one lesson.",
            show_default=True,
            case_sensitive=False,
        ),
    ] = DownloadMode.AUTO,
    lesson_id: Annotated[
        Optional[str],
        typer.Option(
            "--lesson-id",
            help="Explicit lesson id to download on its own.",
            show_default=False,
        ),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option(
            "--debug",
            "-d",
            help="Show detailed error information.",
            show_default=True,
        ),
    ] = False,
):
    """
    Download a Skool course from the given URL.

    Rerunning the same command resumes: files already on disk are not fetched again.
    A classroom root URL (.../classroom) downloads every accessible course of the
    group; --mode and --lesson-id are ignored then.

    Usage:
        skool download <url>
        skool download <url> --concurrency 4
        skool download <lesson-url> --mode lesson
        skool download https://www.skool.com/my-group/classroom

    Example:
        skool download https://www.skool.com/my-group/classroom/1a2b3c4d
    """
    Logger.set_debug_mode(debug)
    options = DownloadOptions(
        url=url,
        output_dir=output,
        concurrency=concurrency,
        mode=mode,
        lesson_id=lesson_id,
        suppress_index_logs=True,
    )
    try:
        # Reject a bad URL or lesson selection before a browser is started
        cleaned = clean_url(url)
        if is_classroom_root_url(cleaned):
            library = asyncio.run(_download_library(options))
            failed = library.failed_courses or library.failed_lessons
        else:
            resolve_target_lesson_id(cleaned, mode, lesson_id)
            failed = asyncio.run(_download(options)).failed_lessons
    except SkoolError as e:
        Logger.error(str(e), exception=e)
        raise typer.Exit(code=1)
    except (KeyboardInterrupt, asyncio.CancelledError):
        Logger.warning("Download interrupted.")
        raise typer.Exit(code=130)

    if failed:
        raise typer.Exit(code=1)


@app.command("regenerate-index")
def regenerate_index_command(
    course_dir: Annotated[
        Optional[Path],
        typer.Argument(
            help="Course directory. Without it every course under downloads/ is rebuilt.",
            show_default=False,
        ),
    ] = None,
):
    """
    Rebuild course index.html files from what is on disk.

    Usage:
        skool regenerate-index
        skool regenerate-index downloads/<group>/<course>
    """
    asyncio.run(_regenerate_index(course_dir))


@app.command("regenerate-group-index")
def regenerate_group_index_command(
    group_dir: Annotated[
        Path,
        typer.Argument(
            help="Group directory holding one folder per course.",
            show_default=False,
        ),
    ],
):
    """
    Rebuild the group index.html listing every downloaded course.

    Usage:
        skool regenerate-group-index downloads/<group>
    """
    result = asyncio.run(regenerate_group_index(group_dir))
    if result is None:
        raise typer.Exit(code=1)


class Reporter:
    """Prints lesson progress and the final summary from pipeline events."""

    def __init__(self, channel: EventChannel):
        channel.subscribe(self.course_started, CourseStarted)
        channel.subscribe(self.lesson_completed, LessonCompleted)
        channel.subscribe(self.lesson_failed, LessonFailed)
        channel.subscribe(self.course_completed, CourseCompleted)

    def course_started(self, event: CourseStarted):
        target = f" (lesson {event.target_lesson_id})" if event.target_lesson_id else ""
        print(
            f"[green]📚 {event.course_name}{target}: "
            f"{event.modules_count} modules, {event.lessons_count} lessons -> {event.output_dir}[/green]"
        )

    def lesson_completed(self, event: LessonCompleted):
        extras = []
        if event.has_video:
            extras.append("video")
        if event.resources_count:
            extras.append(f"{event.resources_count} resources")
        detail = f" ({', '.join(extras)})" if extras else ""
        print(f"[green]✅ [{event.module_index}.{event.lesson_index}] {event.lesson_title}{detail}[/green]")

    def lesson_failed(self, event: LessonFailed):
        print(f"[red]❌ [{event.module_index}.{event.lesson_index}] {event.lesson_title}: {event.error}[/red]")

    def course_completed(self, event: CourseCompleted):
        summary = event.summary
        table = Table(
            title=summary.course_name,
            title_style="green",
            header_style="green",
            box=box.SQUARE_DOUBLE_HEAD,
        )
        table.add_column("Group", style="green")
        table.add_column("Modules", justify="center")
        table.add_column("Lessons", justify="center")
        table.add_column("Completed", style="green", justify="center")
        table.add_column("Failed", style="red", justify="center")
        table.add_row(
            summary.group_name,
            str(summary.modules_count),
            str(summary.lessons_count),
            str(summary.completed_lessons),
            str(summary.failed_lessons),
        )
        print(table)
        print(f"[green]Output: {summary.output_dir}[/green]")


async def _login():
    # Manual login needs a visible window
    async with AsyncSkool(headless=False) as skool:
        await skool.login()


async def _logout():
    await AsyncSkool().logout()


async def _download(options: DownloadOptions):
    events = EventChannel()
    Reporter(events)
    context = RunContext()
    context.install_signal_handlers()
    try:
        async with AsyncSkool() as skool:
            scraper = await skool.scraper()
            return await download_course(options, scraper, events=events, context=context)
    finally:
        context.remove_signal_handlers()


async def _download_library(options: DownloadOptions) -> LibrarySummary:
    events = EventChannel()
    Reporter(events)
    context = RunContext()
    context.install_signal_handlers()
    try:
        async with AsyncSkool() as skool:
            summary = await download_library(options, skool.scraper, events=events, context=context)
    finally:
        context.remove_signal_handlers()

    print(
        f"[green]🏁 {summary.group_name}: {len(summary.courses)}/{summary.courses_count} courses downloaded, "
        f"{summary.locked_courses} locked, {summary.failed_courses} failed[/green]"
    )
    return summary


async def _regenerate_index(course_dir: Path | None):
    if course_dir is not None:
        if await regenerate_index(course_dir) is None:
            raise typer.Exit(code=1)
        await regenerate_group_index(course_dir.parent)
        return

    if not DOWNLOADS_DIR.is_dir():
        Logger.error(f"❌ Downloads directory not found: {DOWNLOADS_DIR}")
        raise typer.Exit(code=1)

    for group_dir in sorted(p for p in DOWNLOADS_DIR.iterdir() if p.is_dir()):
        for course_dir in sorted(p for p in group_dir.iterdir() if p.is_dir()):
            if (course_dir / COURSE_MANIFEST).exists():
                await regenerate_index(course_dir)
        await regenerate_group_index(group_dir)
