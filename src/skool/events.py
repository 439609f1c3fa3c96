"""
Lifecycle events emitted by the archival pipeline.

The pipeline only publishes; the CLI (or a test) subscribes. Handlers are
called synchronously in subscription order, a failing handler is logged
and never interrupts the run.
"""
from dataclasses import dataclass
from typing import Callable

from .logger import Logger
from .models import DownloadSummary


@dataclass(frozen=True)
class CourseStarted:
    course_name: str
    group_name: str
    modules_count: int
    lessons_count: int
    output_dir: str
    target_lesson_id: str | None = None


@dataclass(frozen=True)
class LessonStarted:
    module_index: int
    lesson_index: int
    lesson_title: str


@dataclass(frozen=True)
class LessonStatus:
    module_index: int
    lesson_index: int
    message: str


@dataclass(frozen=True)
class LessonCompleted:
    module_index: int
    lesson_index: int
    lesson_title: str
    has_video: bool
    resources_count: int


@dataclass(frozen=True)
class LessonFailed:
    module_index: int
    lesson_index: int
    lesson_title: str
    error: BaseException


@dataclass(frozen=True)
class CourseCompleted:
    summary: DownloadSummary


Event = CourseStarted | LessonStarted | LessonStatus | LessonCompleted | LessonFailed | CourseCompleted
Handler = Callable[[Event], None]


class EventChannel:
    def __init__(self):
        self._handlers: list[tuple[type | None, Handler]] = []

    def subscribe(self, handler: Handler, event_type: type | None = None) -> Callable[[], None]:
        """Register `handler` for every event, or only for `event_type`. Returns an unsubscribe callable."""
        entry = (event_type, handler)
        self._handlers.append(entry)

        def unsubscribe():
            if entry in self._handlers:
                self._handlers.remove(entry)

        return unsubscribe

    def emit(self, event: Event) -> None:
        for event_type, handler in list(self._handlers):
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                handler(event)
            except Exception as e:
                Logger.error(f"Event handler failed for {type(event).__name__}: {e}", exception=e)


class EventRecorder:
    """Subscriber that keeps every event, handy for summaries and tests."""

    def __init__(self, channel: EventChannel | None = None):
        self.events: list[Event] = []
        if channel is not None:
            channel.subscribe(self)

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [event for event in self.events if isinstance(event, event_type)]
