"""
On-disk manifests for courses and lessons.

A lesson manifest is written only after the lesson page and its assets are
in place, so its presence means "this lesson is done". Both manifests are
replaced atomically; readers never see a half written file.
"""
import json
from pathlib import Path

from .constants import COURSE_MANIFEST, LESSON_MANIFEST
from .helpers import read_json, write_json_atomic
from .logger import Logger
from .models import CourseManifest, LessonManifest


class ManifestError(Exception):
    pass


def course_manifest_path(course_dir: Path) -> Path:
    return Path(course_dir) / COURSE_MANIFEST


def lesson_manifest_path(lesson_dir: Path) -> Path:
    return Path(lesson_dir) / LESSON_MANIFEST


async def write_course_manifest(course_dir: Path, manifest: CourseManifest) -> Path:
    path = course_manifest_path(course_dir)
    await write_json_atomic(path, manifest.to_dict())
    return path


async def write_lesson_manifest(lesson_dir: Path, manifest: LessonManifest) -> Path:
    path = lesson_manifest_path(lesson_dir)
    await write_json_atomic(path, manifest.to_dict())
    return path


def _load(path: Path, factory):
    try:
        data = read_json(path)
    except (OSError, json.JSONDecodeError) as e:
        raise ManifestError(f"Unreadable manifest {path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(f"Manifest {path} is not an object")
    try:
        return factory(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ManifestError(f"Malformed manifest {path}: {e}") from e


def read_course_manifest(course_dir: Path, warn: bool = True) -> CourseManifest | None:
    """Return the course manifest, or None when it is missing or unreadable."""
    path = course_manifest_path(course_dir)
    if not path.exists():
        return None
    try:
        return _load(path, CourseManifest.from_dict)
    except ManifestError as e:
        if warn:
            Logger.warning(f"⚠️ {e}. Falling back to directory names.")
        return None


def read_lesson_manifest(lesson_dir: Path, warn: bool = True) -> LessonManifest | None:
    """Return the lesson manifest, or None when it is missing or unreadable."""
    path = lesson_manifest_path(lesson_dir)
    if not path.exists():
        return None
    try:
        return _load(path, LessonManifest.from_dict)
    except ManifestError as e:
        if warn:
            Logger.warning(f"⚠️ {e}. Falling back to directory names.")
        return None
