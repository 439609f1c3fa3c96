import asyncio
import hashlib
import json
import os
from functools import wraps
from pathlib import Path

import aiofiles


def read_json(path: str | Path) -> dict:
    with open(path, "r", encoding="utf-8") as file:
        return json.load(file)


async def write_text_atomic(path: str | Path, content: str) -> None:
    """Write `content` to a sibling temp file, then replace `path` with it."""
    path = Path(path)
    tmp_path = path.with_name(f"{path.name}.tmp")
    async with aiofiles.open(tmp_path, "w", encoding="utf-8") as file:
        await file.write(content)
    os.replace(tmp_path, path)


async def write_json_atomic(path: str | Path, data: dict) -> None:
    await write_text_atomic(path, json.dumps(data, indent=2, ensure_ascii=False))


def hash_id(input_string: str) -> str:
    hash_object = hashlib.sha256(input_string.encode("utf-8"))
    return hash_object.hexdigest()


def retry(attempts: int = 5, delay: float = 1, backoff: bool = True):
    """Retry an async callable, backing off between attempts."""

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for i in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if i == attempts:
                        raise
                    # Rate limited responses get a longer pause
                    if "429" in str(e):
                        wait = delay * (4 * i)
                    else:
                        wait = delay * (2 * i) if backoff else delay
                    await asyncio.sleep(wait)

        return wrapper

    return decorator
