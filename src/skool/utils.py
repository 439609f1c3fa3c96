import os
import re
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlparse

import aiofiles
import rnet
from unidecode import unidecode

from .constants import FETCH_TIMEOUT, HEADERS
from .helpers import hash_id, retry
from .logger import Logger


class AssetFetcher(Protocol):
    async def __call__(self, url: str, path: Path) -> bool: ...


def sanitize_name(value: str) -> str:
    """
    Replace characters that would break a path component.

    Example
    -------
    >>> sanitize_name("Intro: what/why?")
    "Intro- what-why-"
    """
    return re.sub(r'[/\\?%*:|"<>]', "-", value)


def normalize_title(text: str | None) -> str:
    """Comparison key for resource titles: ascii folded, lowercased, single spaced."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", unidecode(text)).strip().casefold()


def split_index_prefix(dir_name: str) -> tuple[int, str]:
    """
    Split a "<N>-<title>" directory name.

    Names without a numeric prefix sort last (999).

    >>> split_index_prefix("3-Getting Started")
    (3, "Getting Started")
    """
    match = re.match(r"^(\d+)-(.*)$", dir_name)
    if not match:
        return 999, dir_name
    return int(match.group(1)), match.group(2)


def get_url_extension(url: str, default: str = ".jpg") -> str:
    try:
        ext = os.path.splitext(urlparse(url).path)[1]
    except ValueError:
        return default
    if ext and len(ext) <= 5:
        return ext
    return default


def local_image_name(url: str) -> str:
    """Deterministic file name for an embedded image: short url hash + url basename."""
    basename = unquote(os.path.basename(urlparse(url).path)) or "image"
    return f"img_{hash_id(url)[:10]}_{sanitize_name(basename)}"


def has_content(path: Path) -> bool:
    """True when `path` is a file with non-zero size, i.e. a finished download."""
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False


def human_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def cookies_to_netscape(cookies: list[dict]) -> str:
    """Render browser cookies in the Netscape cookies.txt format read by yt-dlp."""
    lines = [
        "# Netscape HTTP Cookie File",
        "# http://curl.haxx.se/rfc/cookie_spec.html",
        "# This is a generated file!  Do not edit.",
        "",
    ]
    for cookie in cookies:
        domain = cookie["domain"]
        if not domain.startswith("."):
            domain = f".{domain}"
        secure = "TRUE" if cookie.get("secure") else "FALSE"
        expires = cookie.get("expires") or 0
        expiration = int(expires) if expires > 0 else 0
        lines.append(
            "\t".join(
                [domain, "TRUE", cookie.get("path", "/"), secure, str(expiration), cookie["name"], cookie["value"]]
            )
        )
    return "\n".join(lines) + "\n"


@retry(attempts=3, delay=1)
async def _stream_to_file(url: str, path: Path) -> None:
    client = rnet.Client(impersonate=rnet.Impersonate.Firefox139)
    response: rnet.Response = await client.get(
        url, headers=HEADERS, timeout=FETCH_TIMEOUT, allow_redirects=True
    )
    try:
        if not response.ok:
            raise Exception(f"[Bad Response: {response.status}]")

        async with aiofiles.open(path, "wb") as file:
            async with response.stream() as streamer:
                async for chunk in streamer:
                    await file.write(chunk)
    finally:
        await response.close()


async def download(url: str, path: Path, overwrite: bool = False) -> bool:
    """
    Download `url` to `path` unless a non-empty file is already there.

    The body is streamed into a sibling ``.part`` file and renamed on
    completion, so a crash never leaves a non-empty file that looks finished.

    :return bool: True when `path` holds the asset afterwards
    """
    if not overwrite and has_content(path):
        return True

    path.parent.mkdir(parents=True, exist_ok=True)
    part_path = path.with_name(f"{path.name}.part")

    try:
        await _stream_to_file(url, part_path)
        os.replace(part_path, path)
    except Exception as e:
        Logger.error(f"Downloading file {url} -> {path.name} | {e}", exception=e)
        part_path.unlink(missing_ok=True)
        return False

    return True
