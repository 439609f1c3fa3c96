from .async_api import AsyncSkool
from .errors import LessonError, SkoolError, SoftFailure, StructuralError, ToolNotFoundError
from .events import EventChannel
from .index import regenerate_group_index, regenerate_index
from .logger import Logger
from .models import DownloadMode, DownloadSummary
from .pipeline import DownloadOptions, RunContext, download_course, download_library

__all__ = [
    "AsyncSkool",
    "DownloadMode",
    "DownloadOptions",
    "DownloadSummary",
    "EventChannel",
    "LessonError",
    "Logger",
    "RunContext",
    "SkoolError",
    "SoftFailure",
    "StructuralError",
    "ToolNotFoundError",
    "download_course",
    "download_library",
    "regenerate_group_index",
    "regenerate_index",
]
