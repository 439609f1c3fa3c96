"""
Lesson attachments: merging the two sources and resolving download URLs.
"""
import json
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import urlparse

from .constants import FILES_API_HOST
from .errors import Step, guarded_step
from .logger import Logger
from .models import Resource
from .utils import normalize_title

# file id -> (success, url or error message)
UrlExchange = Callable[[str], Awaitable[tuple[bool, str]]]


@dataclass
class DomResource:
    title: str | None
    url: str | None
    is_external: bool = False


def is_external_url(url: str | None) -> bool:
    """Anything not served by the provider's own file host counts as external."""
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.hostname != FILES_API_HOST and "/files/" not in parsed.path


def parse_metadata_resources(raw) -> list[Resource]:
    """
    Read resources from lesson metadata.

    `raw` is either a JSON encoded list or a list of dicts. Entries carrying
    a ``link`` but no download URL are external links.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            Logger.warning(f"    ⚠️ Failed to parse metadata resources: {e}")
            return []
    if not isinstance(raw, list):
        return []

    resources: list[Resource] = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("title"):
            continue
        download_url = item.get("downloadUrl") or item.get("download_url")
        link = item.get("link")
        is_external = bool(item.get("isExternal"))
        if link and not download_url:
            download_url = link
            is_external = True
        resources.append(
            Resource(
                title=str(item["title"]),
                file_id=item.get("file_id") or item.get("fileId"),
                file_name=item.get("file_name") or item.get("fileName"),
                download_url=download_url,
                is_external=is_external,
            )
        )
    return resources


def merge_resources(metadata: list[Resource], scanned: list[DomResource]) -> list[Resource]:
    """
    Add DOM-scanned resources whose normalized title is not already known.

    Metadata entries win on a title collision; scanned entries without a
    title or a URL are dropped.
    """
    merged = list(metadata)
    seen = {normalize_title(resource.title) for resource in merged}

    for item in scanned:
        key = normalize_title(item.title)
        if not key or key in seen or not item.url:
            continue
        seen.add(key)
        merged.append(
            Resource(
                title=item.title,
                download_url=item.url,
                file_name=item.title,
                is_external=item.is_external,
            )
        )
    return merged


async def resolve_download_urls(resources: list[Resource], exchange: UrlExchange) -> list[Resource]:
    """
    Exchange file ids for signed download URLs, in place.

    A failed exchange leaves that resource without URL; the rest of the
    lesson is unaffected.
    """
    pending = [resource for resource in resources if resource.needs_resolution]
    if pending:
        Logger.info(f"    📥 Found {len(pending)} native resources. Fetching download URLs...")

    for resource in pending:
        async with guarded_step(Step.RESOLVE_RESOURCE, resource.title):
            Logger.info(f'      🔗 Requesting download URL for "{resource.title}"...')
            ok, value = await exchange(resource.file_id)
            if not ok or not value:
                Logger.warning(f'      ⚠️ Failed to get download URL for "{resource.title}": {value}')
                continue
            resource.download_url = value.strip()
            Logger.info(f'      ✅ Got download URL for "{resource.title}"')
    return resources
