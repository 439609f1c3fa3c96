"""
Navigation pages rebuilt purely from what is on disk.

Nothing here reads in-memory run state, so the index can be rebuilt at any
time: during a run, after a crash, or by hand from the CLI.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .constants import ASSETS_DIR, INDEX_FILE, LESSON_MANIFEST
from .errors import Step, guarded_step
from .helpers import write_text_atomic
from .logger import Logger
from .manifest import read_course_manifest, read_lesson_manifest
from .templates import render_course_index, render_group_index
from .utils import split_index_prefix


@dataclass
class IndexLesson:
    index: int
    title: str
    path: str
    dir_name: str


@dataclass
class IndexModule:
    index: int
    title: str
    dir_name: str
    lessons: list[IndexLesson] = field(default_factory=list)


@dataclass
class GroupCourse:
    dir_name: str
    course_name: str
    group_name: str | None
    cover_src: str | None
    modules_count: int
    lessons_count: int
    updated_at: str | None


def _subdirs(path: Path) -> list[Path]:
    return [entry for entry in path.iterdir() if entry.is_dir() and not entry.name.startswith(".")]


def _module_dirs(course_dir: Path) -> list[Path]:
    return [entry for entry in _subdirs(course_dir) if entry.name != ASSETS_DIR]


def _is_lesson_dir(path: Path) -> bool:
    return (path / INDEX_FILE).exists() or (path / LESSON_MANIFEST).exists()


def scan_lessons(module_dir: Path, warn: bool = True) -> list[IndexLesson]:
    lessons: list[IndexLesson] = []
    for lesson_dir in _subdirs(module_dir):
        if not _is_lesson_dir(lesson_dir):
            continue

        manifest = read_lesson_manifest(lesson_dir, warn=warn)
        if manifest is not None:
            lessons.append(
                IndexLesson(
                    index=manifest.lesson_index,
                    title=manifest.title,
                    path=manifest.relative_path,
                    dir_name=lesson_dir.name,
                )
            )
            continue

        if warn:
            Logger.warning(f"⚠️ No lesson manifest in {module_dir.name}/{lesson_dir.name}, using directory name")
        index, title = split_index_prefix(lesson_dir.name)
        lessons.append(
            IndexLesson(
                index=index,
                title=title,
                path=f"{module_dir.name}/{lesson_dir.name}/{INDEX_FILE}",
                dir_name=lesson_dir.name,
            )
        )

    lessons.sort(key=lambda lesson: (lesson.index, lesson.dir_name))
    return lessons


def scan_course(course_dir: Path, warn: bool = True) -> list[IndexModule]:
    """
    Collect the modules and lessons of a course directory in display order.

    Ordering comes from the numeric directory prefix and is overridden by the
    course manifest when one exists. Modules without any lesson are left out.
    """
    course_dir = Path(course_dir)
    manifest = read_course_manifest(course_dir, warn=warn)
    known = {entry.module_dir_name: entry for entry in manifest.modules} if manifest else {}

    modules: list[IndexModule] = []
    for module_dir in _module_dirs(course_dir):
        index, title = split_index_prefix(module_dir.name)
        entry = known.get(module_dir.name)
        if entry is not None:
            index, title = entry.index, entry.title

        lessons = scan_lessons(module_dir, warn=warn)
        if lessons:
            modules.append(IndexModule(index=index, title=title, dir_name=module_dir.name, lessons=lessons))

    modules.sort(key=lambda module: (module.index, module.dir_name))
    return modules


async def regenerate_index(course_dir: str | Path, silent: bool = False) -> Path | None:
    """Rebuild `<course_dir>/index.html` from manifests and directory names."""
    course_dir = Path(course_dir)
    if not course_dir.is_dir():
        if not silent:
            Logger.error(f"❌ Course directory not found: {course_dir}")
        return None

    modules = scan_course(course_dir, warn=not silent)
    manifest = read_course_manifest(course_dir, warn=False)

    course_name = manifest.course_name if manifest else course_dir.name
    group_name = manifest.group_name if manifest and manifest.group_name else course_dir.parent.name
    cover_path = None
    if manifest and manifest.course_image_path and (course_dir / manifest.course_image_path).exists():
        cover_path = manifest.course_image_path

    html = render_course_index(course_name, group_name, cover_path, modules)
    index_path = course_dir / INDEX_FILE
    await write_text_atomic(index_path, html)

    if not silent:
        lessons_total = sum(len(module.lessons) for module in modules)
        Logger.info(f"✅ Index regenerated: {len(modules)} modules with {lessons_total} lessons -> {index_path}")
    return index_path


class IndexGate:
    """
    Serializes index passes for one course directory.

    At most one pass runs at a time. A request that arrives while another
    request is already queued is folded into the queued one, which has not
    scanned the disk yet and will therefore see the newer state.
    """

    def __init__(self, course_dir: str | Path, silent: bool = False):
        self.course_dir = Path(course_dir)
        self.silent = silent
        self.passes = 0
        self._lock = asyncio.Lock()
        self._queued = False

    async def request(self) -> bool:
        """Ask for a pass; returns False when folded into an already queued one."""
        if self._queued:
            return False
        self._queued = True
        async with self._lock:
            self._queued = False
            await self._run_pass()
        return True

    async def final_pass(self) -> None:
        """Always runs a fresh pass once every writer has settled."""
        async with self._lock:
            await self._run_pass()

    async def _run_pass(self) -> None:
        async with guarded_step(Step.INDEX, str(self.course_dir)):
            await regenerate_index(self.course_dir, silent=self.silent)
            self.passes += 1


def _count_lessons(course_dir: Path) -> tuple[int, int]:
    modules = _module_dirs(course_dir)
    lessons = 0
    for module_dir in modules:
        lessons += sum(1 for lesson_dir in _subdirs(module_dir) if _is_lesson_dir(lesson_dir))
    return len(modules), lessons


def scan_group(group_dir: Path) -> list[GroupCourse]:
    courses: list[GroupCourse] = []
    for course_dir in _subdirs(group_dir):
        manifest = read_course_manifest(course_dir, warn=False)
        modules_count, lessons_count = _count_lessons(course_dir)

        cover_src = None
        if manifest and manifest.course_image_path and (course_dir / manifest.course_image_path).exists():
            cover_src = f"{course_dir.name}/{manifest.course_image_path}"

        courses.append(
            GroupCourse(
                dir_name=course_dir.name,
                course_name=manifest.course_name if manifest else course_dir.name,
                group_name=manifest.group_name if manifest else None,
                cover_src=cover_src,
                modules_count=modules_count,
                lessons_count=lessons_count,
                updated_at=manifest.updated_at if manifest else None,
            )
        )

    # Newest first when both sides carry a timestamp, otherwise by name
    dated = sorted((c for c in courses if c.updated_at), key=lambda c: c.updated_at, reverse=True)
    undated = sorted((c for c in courses if not c.updated_at), key=lambda c: c.course_name.casefold())
    return dated + undated


async def regenerate_group_index(group_dir: str | Path, silent: bool = False) -> Path | None:
    """Rebuild `<group_dir>/index.html`, one card per downloaded course."""
    group_dir = Path(group_dir)
    if not group_dir.is_dir():
        if not silent:
            Logger.error(f"❌ Group directory not found: {group_dir}")
        return None

    courses = scan_group(group_dir)
    if not courses:
        if not silent:
            Logger.warning("No courses found to build group index.")
        return None

    group_name = next((c.group_name for c in courses if c.group_name), None) or group_dir.name
    html = render_group_index(group_name, courses, datetime.now().strftime("%Y-%m-%d"))
    index_path = group_dir / INDEX_FILE
    await write_text_atomic(index_path, html)

    if not silent:
        Logger.info(f"✅ Group index regenerated with {len(courses)} courses -> {index_path}")
    return index_path
