"""
Lesson video download through the yt-dlp command line tool.
"""
import asyncio
import functools
import shutil
import sys
from pathlib import Path
from typing import Awaitable, Callable

from .constants import COOKIES_FILE, HEADERS, VIDEO_FILE, VIDEO_FRAGMENTS
from .errors import SoftFailure, ToolNotFoundError
from .logger import Logger
from .utils import has_content, human_size

VideoRunner = Callable[..., Awaitable[None]]


def find_ytdlp() -> str | None:
    found = shutil.which("yt-dlp")
    if found:
        return found
    # Installed alongside the interpreter but the venv is not activated
    candidate = Path(sys.executable).parent / ("yt-dlp.exe" if sys.platform == "win32" else "yt-dlp")
    return str(candidate) if candidate.exists() else None


def ytdlp_required(func):
    """Decorator to check that yt-dlp can be found."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        if not find_ytdlp():
            raise ToolNotFoundError("yt-dlp is required but not found in PATH")
        return await func(*args, **kwargs)
    return wrapper


def build_ytdlp_command(
    executable: str,
    url: str,
    output_dir: Path,
    filename: str = "video",
    cookies_file: Path | None = COOKIES_FILE,
    fragments: int = VIDEO_FRAGMENTS,
) -> list[str]:
    cmd = [
        executable,
        url,
        "-o", str(Path(output_dir) / f"{filename}.%(ext)s"),
        "--no-check-certificates",
        "--prefer-free-formats",
        "--concurrent-fragments", str(fragments),
        "--merge-output-format", "mp4",
        "--remux-video", "mp4",
        # Move the moov atom up front so the file plays before it is fully read
        "--postprocessor-args", "ffmpeg:-movflags +faststart",
    ]
    for name, value in HEADERS.items():
        cmd.extend(["--add-header", f"{name}:{value}"])

    if cookies_file is not None and Path(cookies_file).exists():
        cmd.extend(["--cookies", str(cookies_file)])

    return cmd


@ytdlp_required
async def ytdlp_dl(
    url: str,
    output_dir: Path,
    filename: str = "video",
    cookies_file: Path | None = COOKIES_FILE,
    fragments: int = VIDEO_FRAGMENTS,
) -> None:
    """
    Fetch `url` into `<output_dir>/<filename>.mp4` with yt-dlp.

    :raise SoftFailure: when yt-dlp exits with a non-zero status
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    cmd = build_ytdlp_command(find_ytdlp(), url, output_dir, filename, cookies_file, fragments)

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await process.communicate()

    if process.returncode != 0:
        error_msg = stderr.decode(errors="replace") if stderr else "Unknown error"
        Logger.debug(f"yt-dlp failed for URL: {url}")
        Logger.debug(f"yt-dlp return code: {process.returncode}")
        Logger.debug(f"yt-dlp error output: {error_msg[:500]}")
        raise SoftFailure(f"yt-dlp exited with {process.returncode}: {error_msg.strip()[:200]}")


class VideoAcquirer:
    def __init__(
        self,
        runner: VideoRunner = ytdlp_dl,
        cookies_file: Path | None = COOKIES_FILE,
        fragments: int = VIDEO_FRAGMENTS,
    ):
        self.runner = runner
        self.cookies_file = cookies_file
        self.fragments = fragments
        self.invocations = 0

    async def acquire(self, url: str, lesson_dir: Path) -> bool:
        """
        Make sure `lesson_dir/video.mp4` exists.

        The external tool is not invoked at all when a non-empty file is
        already there.
        """
        target = Path(lesson_dir) / VIDEO_FILE
        if has_content(target):
            Logger.info(f"    ⏭️  Video already exists ({human_size(target.stat().st_size)}), skipping download")
            return True

        Logger.info(f"    🎬 Downloading video from {url}...")
        self.invocations += 1
        await self.runner(
            url,
            Path(lesson_dir),
            filename=target.stem,
            cookies_file=self.cookies_file,
            fragments=self.fragments,
        )

        if not has_content(target):
            raise SoftFailure(f"yt-dlp finished but {target.name} is missing")
        Logger.info(f"    ✅ Video saved ({human_size(target.stat().st_size)})")
        return True
