"""
Playable URL acquisition for the native (Mux) video player.

The provider only issues a signed stream URL once a play intent has been
observed, so a lesson that carries a video id but no link goes through:

    NATIVE_ID_ONLY -> INTERACTION_ATTEMPTED -> POLLING_FOR_MANIFEST -> RESOLVED
                   \\-> FALLBACK_RECONSTRUCTION -> (url) | UNRESOLVED

The page is reached only through ``PlayerPage`` so the machine can be driven
by a fake in tests.
"""
import asyncio
from enum import Enum
from typing import Awaitable, Callable, Protocol

from .constants import POLL_ATTEMPTS, POLL_INTERVAL, STREAM_URL_TEMPLATE
from .logger import Logger
from .page_data import PageVideo

Probe = Callable[[], Awaitable[str | None]]
Sleep = Callable[[float], Awaitable[None]]


class PlayerPage(Protocol):
    async def has_play_control(self) -> bool: ...

    async def trigger_play(self) -> None: ...

    async def probe_manifest(self) -> str | None: ...


class VideoState(Enum):
    NO_VIDEO = "no-video"
    DIRECT_LINK_KNOWN = "direct-link-known"
    NATIVE_ID_ONLY = "native-id-only"
    INTERACTION_ATTEMPTED = "interaction-attempted"
    POLLING_FOR_MANIFEST = "polling-for-manifest"
    RESOLVED = "resolved"
    FALLBACK_RECONSTRUCTION = "fallback-reconstruction"
    UNRESOLVED = "unresolved"


async def poll_for_manifest(
    probe: Probe,
    attempts: int = POLL_ATTEMPTS,
    interval: float = POLL_INTERVAL,
    sleep: Sleep = asyncio.sleep,
) -> tuple[str | None, int]:
    """
    Call `probe` up to `attempts` times, sleeping `interval` between calls.

    A probe that raises counts as a miss.

    :return: (first url found or None, number of probe calls made)
    """
    for attempt in range(1, attempts + 1):
        try:
            url = await probe()
        except Exception as e:
            Logger.debug(f"Manifest probe {attempt}/{attempts} failed: {e}")
            url = None
        if url:
            return url, attempt
        if attempt < attempts:
            await sleep(interval)
    return None, attempts


def reconstruct_stream_url(video_id: str | None, page_video: PageVideo | None) -> str | None:
    """Build the stream URL from the playback id and token already present in the page data."""
    if not video_id or page_video is None:
        return None
    if page_video.id != video_id:
        return None
    if not page_video.playback_id or not page_video.playback_token:
        return None
    return STREAM_URL_TEMPLATE.format(
        playback_id=page_video.playback_id,
        playback_token=page_video.playback_token,
    )


class SignedUrlResolver:
    def __init__(
        self,
        page: PlayerPage | None = None,
        attempts: int = POLL_ATTEMPTS,
        interval: float = POLL_INTERVAL,
        sleep: Sleep = asyncio.sleep,
    ):
        self.page = page
        self.attempts = attempts
        self.interval = interval
        self.sleep = sleep
        self.state: VideoState | None = None
        self.history: list[VideoState] = []
        self.poll_calls = 0

    def _enter(self, state: VideoState) -> None:
        self.state = state
        self.history.append(state)

    async def resolve(
        self,
        video_link: str | None,
        video_id: str | None = None,
        page_video: PageVideo | None = None,
    ) -> str | None:
        """Return a playable URL for the lesson video, or None if there is none to be had."""
        if video_link:
            self._enter(VideoState.DIRECT_LINK_KNOWN)
            return video_link

        if not video_id:
            self._enter(VideoState.NO_VIDEO)
            return None

        self._enter(VideoState.NATIVE_ID_ONLY)
        Logger.info(f"    ℹ️ Native videoId found: {video_id}.")

        if await self._trigger():
            self._enter(VideoState.POLLING_FOR_MANIFEST)
            url, self.poll_calls = await poll_for_manifest(
                self.page.probe_manifest, self.attempts, self.interval, self.sleep
            )
            if url:
                self._enter(VideoState.RESOLVED)
                return url
            Logger.debug(f"No stream manifest after {self.poll_calls} attempts")

        self._enter(VideoState.FALLBACK_RECONSTRUCTION)
        url = reconstruct_stream_url(video_id, page_video)
        if url:
            Logger.info("    ℹ️ Using reconstructed HLS URL from page props fallback.")
            return url

        self._enter(VideoState.UNRESOLVED)
        Logger.warning(f"    ⚠️ Could not obtain a stream URL for video {video_id}")
        return None

    async def _trigger(self) -> bool:
        if self.page is None:
            return False
        try:
            if not await self.page.has_play_control():
                return False
            Logger.info("    🖱️ Clicking play button to initialize stream...")
            await self.page.trigger_play()
        except Exception as e:
            Logger.warning(f"    ⚠️ Interaction-based extraction failed: {e}")
            return False
        self._enter(VideoState.INTERACTION_ATTEMPTED)
        return True
