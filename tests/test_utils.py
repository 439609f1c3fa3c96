from pathlib import Path

from skool import utils
from skool.utils import (
    cookies_to_netscape,
    download,
    get_url_extension,
    has_content,
    local_image_name,
    normalize_title,
    sanitize_name,
    split_index_prefix,
)


def test_sanitize_name_replaces_reserved_characters() -> None:
    assert sanitize_name('a/b\\c?d%e*f:g|h"i<j>k') == "a-b-c-d-e-f-g-h-i-j-k"
    assert sanitize_name("Plain title") == "Plain title"


def test_split_index_prefix() -> None:
    assert split_index_prefix("12-Deep Dive") == (12, "Deep Dive")
    assert split_index_prefix("assets-like") == (999, "assets-like")


def test_local_image_name_is_stable_and_safe() -> None:
    url = "https://cdn.example.com/path/My%20Pic.png?w=200"

    name = local_image_name(url)

    assert name == local_image_name(url)
    assert name.startswith("img_")
    assert name.endswith("_My Pic.png")
    assert len(name.split("_")[1]) == 10
    assert local_image_name("https://cdn.example.com/").endswith("_image")


def test_get_url_extension() -> None:
    assert get_url_extension("https://c.example.com/cover.webp?x=1") == ".webp"
    assert get_url_extension("https://c.example.com/cover") == ".jpg"
    assert get_url_extension("https://c.example.com/cover.verylong") == ".jpg"


def test_has_content(tmp_path: Path) -> None:
    empty = tmp_path / "empty.bin"
    empty.write_bytes(b"")
    full = tmp_path / "full.bin"
    full.write_bytes(b"x")

    assert not has_content(empty)
    assert has_content(full)
    assert not has_content(tmp_path / "missing.bin")
    assert not has_content(tmp_path)


def test_normalize_title() -> None:
    assert normalize_title("  Café   Menu ") == "cafe menu"
    assert normalize_title(None) == ""


def test_cookies_to_netscape() -> None:
    cookies = [
        {"name": "auth", "value": "t0k", "domain": "www.skool.com", "path": "/", "secure": True, "expires": 1893456000.7},
        {"name": "s", "value": "1", "domain": ".skool.com", "path": "/", "secure": False, "expires": -1},
    ]

    text = cookies_to_netscape(cookies)
    lines = text.splitlines()

    assert lines[0] == "# Netscape HTTP Cookie File"
    assert ".www.skool.com\tTRUE\t/\tTRUE\t1893456000\tauth\tt0k" in lines
    assert ".skool.com\tTRUE\t/\tFALSE\t0\ts\t1" in lines


async def test_download_writes_through_part_file(tmp_path: Path, monkeypatch) -> None:
    seen = []

    async def fake_stream(url, path):
        seen.append(path)
        path.write_bytes(b"payload")

    monkeypatch.setattr(utils, "_stream_to_file", fake_stream)
    target = tmp_path / "assets" / "pic.png"

    assert await download("https://cdn.example.com/pic.png", target)

    assert seen == [tmp_path / "assets" / "pic.png.part"]
    assert target.read_bytes() == b"payload"
    assert not (tmp_path / "assets" / "pic.png.part").exists()


async def test_download_skips_finished_file(tmp_path: Path, monkeypatch) -> None:
    async def fail_stream(url, path):
        raise AssertionError("should not be fetched")

    monkeypatch.setattr(utils, "_stream_to_file", fail_stream)
    target = tmp_path / "pic.png"
    target.write_bytes(b"done")

    assert await download("https://cdn.example.com/pic.png", target)
    assert target.read_bytes() == b"done"


async def test_download_refetches_empty_file(tmp_path: Path, monkeypatch) -> None:
    async def fake_stream(url, path):
        path.write_bytes(b"fresh")

    monkeypatch.setattr(utils, "_stream_to_file", fake_stream)
    target = tmp_path / "pic.png"
    target.write_bytes(b"")

    assert await download("https://cdn.example.com/pic.png", target)
    assert target.read_bytes() == b"fresh"


async def test_failed_download_removes_part_file(tmp_path: Path, monkeypatch) -> None:
    async def broken_stream(url, path):
        path.write_bytes(b"half")
        raise Exception("[Bad Response: 500]")

    monkeypatch.setattr(utils, "_stream_to_file", broken_stream)
    target = tmp_path / "notes.pdf"

    assert not await download("https://files.example.com/notes.pdf", target)
    assert not target.exists()
    assert not (tmp_path / "notes.pdf.part").exists()
