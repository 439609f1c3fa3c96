from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .utils import sanitize_name


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DownloadMode(str, Enum):
    AUTO = "auto"
    COURSE = "course"
    LESSON = "lesson"


@dataclass
class Resource:
    title: str
    file_id: str | None = None
    file_name: str | None = None
    download_url: str | None = None
    is_external: bool = False

    @property
    def needs_resolution(self) -> bool:
        """A natively hosted file known only by its id."""
        if self.is_external or not self.file_id:
            return False
        return not (self.download_url and self.download_url.startswith("http"))


@dataclass
class Lesson:
    id: str
    title: str
    url: str
    index: int = 1

    @property
    def dir_name(self) -> str:
        return f"{self.index}-{sanitize_name(self.title)}"


@dataclass
class Module:
    index: int
    title: str
    lessons: list[Lesson] = field(default_factory=list)

    @property
    def dir_name(self) -> str:
        return f"{self.index}-{sanitize_name(self.title)}"


@dataclass
class CourseTree:
    course_name: str
    group_name: str
    modules: list[Module] = field(default_factory=list)
    cover_image_url: str | None = None

    @property
    def lessons_count(self) -> int:
        return sum(len(module.lessons) for module in self.modules)


@dataclass
class LessonData:
    id: str
    title: str
    url: str
    content_html: str = ""
    video_link: str | None = None
    resources: list[Resource] = field(default_factory=list)


@dataclass
class ModuleEntry:
    index: int
    title: str
    module_dir_name: str

    def to_dict(self) -> dict:
        return {"index": self.index, "title": self.title, "moduleDirName": self.module_dir_name}

    @classmethod
    def from_dict(cls, data: dict) -> "ModuleEntry":
        return cls(
            index=int(data["index"]),
            title=str(data["title"]),
            module_dir_name=str(data["moduleDirName"]),
        )


@dataclass
class CourseManifest:
    course_name: str
    group_name: str
    modules: list[ModuleEntry] = field(default_factory=list)
    course_image_url: str | None = None
    course_image_path: str | None = None
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        data = {
            "courseName": self.course_name,
            "groupName": self.group_name,
            "modules": [module.to_dict() for module in self.modules],
            "updatedAt": self.updated_at,
        }
        if self.course_image_url:
            data["courseImageUrl"] = self.course_image_url
        if self.course_image_path:
            data["courseImagePath"] = self.course_image_path
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CourseManifest":
        return cls(
            course_name=str(data["courseName"]),
            group_name=str(data.get("groupName") or ""),
            modules=[ModuleEntry.from_dict(m) for m in data.get("modules") or []],
            course_image_url=data.get("courseImageUrl"),
            course_image_path=data.get("courseImagePath"),
            updated_at=str(data.get("updatedAt") or ""),
        )


@dataclass
class LessonManifest:
    lesson_id: str
    title: str
    module_index: int
    module_title: str
    lesson_index: int
    module_dir_name: str
    lesson_dir_name: str
    relative_path: str
    has_video: bool = False
    resources_count: int = 0
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "lessonId": self.lesson_id,
            "title": self.title,
            "moduleIndex": self.module_index,
            "moduleTitle": self.module_title,
            "lessonIndex": self.lesson_index,
            "moduleDirName": self.module_dir_name,
            "lessonDirName": self.lesson_dir_name,
            "relativePath": self.relative_path,
            "hasVideo": self.has_video,
            "resourcesCount": self.resources_count,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LessonManifest":
        return cls(
            lesson_id=str(data.get("lessonId") or ""),
            title=str(data["title"]),
            module_index=int(data["moduleIndex"]),
            module_title=str(data.get("moduleTitle") or ""),
            lesson_index=int(data["lessonIndex"]),
            module_dir_name=str(data.get("moduleDirName") or ""),
            lesson_dir_name=str(data.get("lessonDirName") or ""),
            relative_path=str(data["relativePath"]),
            has_video=bool(data.get("hasVideo", False)),
            resources_count=int(data.get("resourcesCount") or 0),
            updated_at=str(data.get("updatedAt") or ""),
        )


@dataclass
class DownloadSummary:
    course_name: str
    group_name: str
    output_dir: str
    modules_count: int
    lessons_count: int
    completed_lessons: int = 0
    failed_lessons: int = 0
    target_lesson_id: str | None = None


@dataclass
class CourseListItem:
    """One course card of a group's classroom listing."""

    title: str
    url: str
    key: str
    id: str | None = None
    name: str | None = None
    num_modules: int | None = None
    cover_image_url: str | None = None
    has_access: bool | None = None
    privacy: int | None = None
    updated_at: str | None = None

    @property
    def locked(self) -> bool:
        return self.has_access is False or (self.privacy or 0) > 0


@dataclass
class CourseLibrary:
    group_name: str
    classroom_url: str
    courses: list[CourseListItem] = field(default_factory=list)


@dataclass
class LibrarySummary:
    group_name: str
    courses_count: int
    locked_courses: int = 0
    failed_courses: int = 0
    courses: list[DownloadSummary] = field(default_factory=list)

    @property
    def failed_lessons(self) -> int:
        return sum(summary.failed_lessons for summary in self.courses)
