"""
The unit of work for one lesson.

Steps run in a fixed order and the lesson manifest is written last, so a
lesson either has a manifest and a complete page, or it is redone on the
next run. Every asset is checked on disk before it is fetched, which keeps
a rerun cheap.
"""
import asyncio
import re
from dataclasses import dataclass, field
from html import unescape
from pathlib import Path
from typing import Protocol

from .constants import ASSETS_DIR, INDEX_FILE, RESOURCES_DIR
from .errors import DEGRADING_STEPS, SoftFailure, Step, StepOutcome, guarded_step
from .events import EventChannel, LessonStarted, LessonStatus
from .helpers import write_text_atomic
from .index import IndexGate
from .logger import Logger
from .manifest import write_lesson_manifest
from .models import CourseTree, Lesson, LessonData, LessonManifest, Module, Resource
from .templates import local_resource_href, render_lesson_page, render_resource_item
from .utils import AssetFetcher, has_content, local_image_name, sanitize_name
from .video import VideoAcquirer

IMG_SRC_PATTERN = re.compile(r'<img[^>]+src="([^">]+)"')


class LessonSource(Protocol):
    async def extract_lesson_data(self, url: str) -> LessonData: ...


@dataclass
class LessonResult:
    manifest: LessonManifest
    failures: list[StepOutcome] = field(default_factory=list)

    @property
    def degrading_failure(self) -> StepOutcome | None:
        """The soft failure, if any, that still counts the lesson as failed in the run summary."""
        return next((outcome for outcome in self.failures if outcome.step in DEGRADING_STEPS), None)


class LessonWorker:
    def __init__(
        self,
        course: CourseTree,
        output_dir: Path,
        source: LessonSource,
        fetch: AssetFetcher,
        videos: VideoAcquirer,
        events: EventChannel,
        gate: IndexGate | None = None,
    ):
        self.course = course
        self.output_dir = Path(output_dir)
        self.source = source
        self.fetch = fetch
        self.videos = videos
        self.events = events
        self.gate = gate

    def lesson_dir(self, module: Module, lesson: Lesson) -> Path:
        return self.output_dir / module.dir_name / lesson.dir_name

    def _status(self, module: Module, lesson: Lesson, message: str) -> None:
        self.events.emit(LessonStatus(module.index, lesson.index, message))

    async def run(self, module: Module, lesson: Lesson) -> LessonResult:
        lesson_dir = self.lesson_dir(module, lesson)
        failures: list[StepOutcome] = []

        self.events.emit(LessonStarted(module.index, lesson.index, lesson.title))
        Logger.info(f"📄 Processing [{module.index}.{lesson.index}] {lesson.title}")

        async with guarded_step(Step.PREPARE_DIR, lesson.title):
            lesson_dir.mkdir(parents=True, exist_ok=True)

        self._status(module, lesson, "Loading lesson data...")
        async with guarded_step(Step.FETCH_LESSON, lesson.title):
            data = await self.source.extract_lesson_data(lesson.url)

        self._status(module, lesson, "Localizing images...")
        content_html = await self.localize_images(data.content_html or "", lesson_dir, failures)

        has_video = False
        if data.video_link:
            self._status(module, lesson, "Downloading video...")
            async with guarded_step(Step.VIDEO, lesson.title) as outcome:
                has_video = await self.videos.acquire(data.video_link, lesson_dir)
            if outcome.failed:
                failures.append(outcome)

        self._status(module, lesson, "Downloading resources...")
        resource_items = await self.download_resources(data.resources, lesson_dir, failures)

        async with guarded_step(Step.RENDER_PAGE, lesson.title):
            html = render_lesson_page(
                title=data.title or lesson.title,
                group_name=self.course.group_name,
                course_name=self.course.course_name,
                module_title=module.title,
                content_html=content_html,
                has_video=has_video,
                resource_items=resource_items,
            )
            await write_text_atomic(lesson_dir / INDEX_FILE, html)

        self._status(module, lesson, "Saving metadata...")
        manifest = LessonManifest(
            lesson_id=lesson.id,
            title=lesson.title,
            module_index=module.index,
            module_title=module.title,
            lesson_index=lesson.index,
            module_dir_name=module.dir_name,
            lesson_dir_name=lesson.dir_name,
            relative_path=f"{module.dir_name}/{lesson.dir_name}/{INDEX_FILE}",
            has_video=has_video,
            resources_count=len(resource_items),
        )
        async with guarded_step(Step.WRITE_MANIFEST, lesson.title):
            await write_lesson_manifest(lesson_dir, manifest)

        if self.gate is not None:
            self._status(module, lesson, "Updating course index...")
            await self.gate.request()

        return LessonResult(manifest=manifest, failures=failures)

    async def localize_images(self, html: str, lesson_dir: Path, failures: list[StepOutcome]) -> str:
        """Download embedded images into `assets/` and point the HTML at the local copies."""
        urls = list(dict.fromkeys(IMG_SRC_PATTERN.findall(html)))
        assets_dir = lesson_dir / ASSETS_DIR
        local: dict[str, str] = {}

        for url in urls:
            if not url.startswith("http"):
                continue
            async with guarded_step(Step.LOCALIZE_IMAGE, url) as outcome:
                filename = local_image_name(url)
                path = assets_dir / filename
                if not has_content(path):
                    assets_dir.mkdir(parents=True, exist_ok=True)
                    if not await self.fetch(unescape(url), path):
                        raise SoftFailure(f"Failed to localize image: {url}")
                local[url] = f"{ASSETS_DIR}/{filename}"
            if outcome.failed:
                failures.append(outcome)

        # Only the captured src value changes; one URL may be a prefix of another
        def rewrite(match: re.Match) -> str:
            url = match.group(1)
            if url not in local:
                return match.group(0)
            tag = match.group(0)
            start, end = match.start(1) - match.start(0), match.end(1) - match.start(0)
            return f"{tag[:start]}{local[url]}{tag[end:]}"

        return IMG_SRC_PATTERN.sub(rewrite, html)

    async def download_resources(
        self, resources: list[Resource], lesson_dir: Path, failures: list[StepOutcome]
    ) -> list[str]:
        """Fetch attachments into `resources/`; return the rendered list items in input order."""
        if not resources:
            return []

        resources_dir = lesson_dir / RESOURCES_DIR
        results = await asyncio.gather(
            *(self._download_resource(resource, resources_dir, failures) for resource in resources)
        )
        return [item for item in results if item]

    async def _download_resource(
        self, resource: Resource, resources_dir: Path, failures: list[StepOutcome]
    ) -> str | None:
        if not resource.download_url:
            return None

        if resource.is_external:
            Logger.info(f"    🔗 External resource linked: {resource.title}")
            return render_resource_item(resource.title, resource.download_url, external=True)

        item = None
        async with guarded_step(Step.DOWNLOAD_RESOURCE, resource.title) as outcome:
            file_name = sanitize_name(resource.file_name or resource.title)
            path = resources_dir / file_name

            if has_content(path):
                Logger.info(f"    ⏭️  Resource already exists, skipping: {resource.title}")
            else:
                Logger.info(f"    ⬇️  Downloading resource: {resource.title}")
                resources_dir.mkdir(parents=True, exist_ok=True)
                if not await self.fetch(resource.download_url, path):
                    raise SoftFailure(f"Failed to download resource {resource.title}")
            item = render_resource_item(resource.title, local_resource_href(file_name))
        if outcome.failed:
            failures.append(outcome)
        return item
