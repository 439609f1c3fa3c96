from pathlib import Path

SKOOL_URL = "https://www.skool.com"
LOGIN_URL = f"{SKOOL_URL}/login"
FILES_API_HOST = "api2.skool.com"
DOWNLOAD_URL_ENDPOINT = "https://api2.skool.com/files/{file_id}/download-url?expire={expire}"
DOWNLOAD_URL_EXPIRE = 8 * 60 * 60  # seconds
STREAM_URL_TEMPLATE = "https://stream.video.skool.com/{playback_id}.m3u8?token={playback_token}"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

HEADERS = {
    "Referer": f"{SKOOL_URL}/",
    "User-Agent": USER_AGENT,
}

FETCH_TIMEOUT = 10  # seconds

SESSION_FILE = Path.cwd() / "storage_state.json"
COOKIES_FILE = Path.cwd() / "cookies.txt"
DOWNLOADS_DIR = Path.cwd() / "downloads"

DEFAULT_CONCURRENCY = 8
MAX_CONCURRENCY = 16
VIDEO_FRAGMENTS = 8

PLAY_BUTTON_SELECTOR = 'div[class*="MuxThumbnailWrapper"]'
RESOURCE_WRAPPER_SELECTOR = 'div[class*="ResourceWrapper"]'
POLL_ATTEMPTS = 10
POLL_INTERVAL = 1.0  # seconds

COURSE_MANIFEST = ".course.json"
LESSON_MANIFEST = "lesson.json"
INDEX_FILE = "index.html"
VIDEO_FILE = "video.mp4"
ASSETS_DIR = "assets"
RESOURCES_DIR = "resources"
