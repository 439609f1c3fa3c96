from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from skool.errors import SoftFailure  # noqa: E402
from skool.logger import Logger  # noqa: E402
from skool.models import CourseTree, Lesson, LessonData, Module, Resource  # noqa: E402

CLASSROOM_URL = "https://www.skool.com/acme/classroom/abcd1234"


class FakeFetcher:
    """Stands in for the HTTP media fetcher; records every request it serves."""

    def __init__(self, fail: set[str] | None = None):
        self.fail = fail or set()
        self.calls: list[tuple[str, Path]] = []

    async def __call__(self, url: str, path: Path) -> bool:
        self.calls.append((url, path))
        if url in self.fail:
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"asset:" + url.encode())
        return True


class FakeVideoRunner:
    """Stands in for yt-dlp: writes `<filename>.mp4`, or fails for the given URLs."""

    def __init__(self, fail: set[str] | None = None):
        self.fail = fail or set()
        self.calls: list[str] = []

    async def __call__(self, url, output_dir, filename="video", cookies_file=None, fragments=8):
        self.calls.append(url)
        if url in self.fail:
            raise SoftFailure(f"yt-dlp exited with 1 for {url}")
        (Path(output_dir) / f"{filename}.mp4").write_bytes(b"video:" + url.encode())


class FakeScraper:
    def __init__(self, tree: CourseTree, lessons: dict[str, LessonData], broken: set[str] | None = None):
        self.tree = tree
        self.lessons = lessons
        self.broken = broken or set()
        self.requested: list[str] = []
        self.closed = False

    async def parse_classroom(self, url: str) -> CourseTree:
        return self.tree

    async def extract_lesson_data(self, url: str) -> LessonData:
        self.requested.append(url)
        if url in self.broken:
            raise RuntimeError(f"Could not find __NEXT_DATA__ for lesson at {url}")
        return self.lessons[url]

    async def close(self) -> None:
        self.closed = True


def make_course(
    modules: int = 2,
    lessons_per_module: int = 5,
    cover: str | None = None,
    classroom_url: str = CLASSROOM_URL,
    course_name: str = "Acme Course",
):
    """A course tree plus the lesson data the scraper serves for it.

    Lessons are numbered l1..lN across modules; each has a video, one image
    and one downloadable resource.
    """
    course_modules = []
    data: dict[str, LessonData] = {}
    number = 0
    for m in range(1, modules + 1):
        lessons = []
        for i in range(1, lessons_per_module + 1):
            number += 1
            lesson_id = f"l{number}"
            url = f"{classroom_url}?md={lesson_id}"
            lessons.append(Lesson(id=lesson_id, title=f"Lesson {number}", url=url, index=i))
            data[url] = LessonData(
                id=lesson_id,
                title=f"Lesson {number}",
                url=url,
                content_html=f'<p>Body {number}</p><img src="https://cdn.example.com/img/{lesson_id}.png">',
                video_link=f"https://stream.example.com/{lesson_id}.m3u8",
                resources=[
                    Resource(
                        title=f"Notes {number}",
                        file_name=f"notes-{number}.pdf",
                        download_url=f"https://files.example.com/{lesson_id}.pdf",
                    )
                ],
            )
        course_modules.append(Module(index=m, title=f"Module {m}", lessons=lessons))

    tree = CourseTree(course_name=course_name, group_name="Acme", modules=course_modules, cover_image_url=cover)
    return tree, data


@pytest.fixture(autouse=True)
def quiet_logger():
    Logger.silent = True
    yield
    Logger.silent = False


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def video_runner() -> FakeVideoRunner:
    return FakeVideoRunner()
