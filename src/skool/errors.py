"""
Failure taxonomy for an archival run.

Which failures are fatal to a lesson and which only drop one sub-artifact is
decided by ``FAILURE_POLICY`` rather than by where an exception happens to be
caught. ``guarded_step`` applies the table at each step of the lesson worker.
"""
from contextlib import asynccontextmanager
from enum import Enum

from .logger import Logger


class SkoolError(Exception):
    pass


class StructuralError(SkoolError):
    """Required course data is missing; the run cannot start."""


class LessonError(SkoolError):
    """A lesson could not be materialized; it is retried on the next run."""

    def __init__(self, step: "Step", cause: BaseException):
        super().__init__(f"{step.value}: {cause}")
        self.step = step
        self.cause = cause


class SoftFailure(SkoolError):
    """A single sub-artifact (video, image, resource) could not be produced."""


class ToolNotFoundError(SkoolError):
    pass


class Step(Enum):
    PREPARE_DIR = "prepare-dir"
    FETCH_LESSON = "fetch-lesson"
    LOCALIZE_IMAGE = "localize-image"
    VIDEO = "video"
    RESOLVE_RESOURCE = "resolve-resource"
    DOWNLOAD_RESOURCE = "download-resource"
    RENDER_PAGE = "render-page"
    WRITE_MANIFEST = "write-manifest"
    COVER_IMAGE = "cover-image"
    INDEX = "index"


class Severity(Enum):
    SOFT = "soft"
    LESSON_FATAL = "lesson-fatal"
    SWALLOW = "swallow"


FAILURE_POLICY: dict[Step, Severity] = {
    Step.PREPARE_DIR: Severity.LESSON_FATAL,
    Step.FETCH_LESSON: Severity.LESSON_FATAL,
    Step.LOCALIZE_IMAGE: Severity.SOFT,
    Step.VIDEO: Severity.SOFT,
    Step.RESOLVE_RESOURCE: Severity.SOFT,
    Step.DOWNLOAD_RESOURCE: Severity.SOFT,
    Step.RENDER_PAGE: Severity.LESSON_FATAL,
    Step.WRITE_MANIFEST: Severity.LESSON_FATAL,
    Step.COVER_IMAGE: Severity.SOFT,
    Step.INDEX: Severity.SWALLOW,
}


# Soft steps whose failure still marks the lesson as failed in the run summary.
# The page and manifest are written anyway; a rerun retries the missing piece.
DEGRADING_STEPS: frozenset[Step] = frozenset({Step.VIDEO})


def severity_of(step: Step) -> Severity:
    return FAILURE_POLICY[step]


class StepOutcome:
    """Set by ``guarded_step``; ``failed`` is True when a soft step raised."""

    def __init__(self, step: Step):
        self.step = step
        self.error: BaseException | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@asynccontextmanager
async def guarded_step(step: Step, label: str = ""):
    """
    Run a block under the failure policy of `step`.

    SOFT and SWALLOW failures are logged and absorbed, LESSON_FATAL
    failures are re-raised as ``LessonError``. Structural errors always
    propagate untouched.
    """
    outcome = StepOutcome(step)
    try:
        yield outcome
    except StructuralError:
        raise
    except LessonError:
        raise
    except Exception as e:
        severity = severity_of(step)
        if severity is Severity.LESSON_FATAL:
            raise LessonError(step, e) from e

        outcome.error = e
        what = f" {label}" if label else ""
        if severity is Severity.SOFT:
            Logger.warning(f"    ⚠️  {step.value} failed{what}: {e}")
        else:
            Logger.error(f"⚠️ {step.value} failed{what}: {e}", exception=e)
