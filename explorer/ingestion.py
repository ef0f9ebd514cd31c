"""
Fetching the text of a Cinema database.

A database is a directory (local path or http(s) URL) holding ``data.csv``
and optionally ``axis_order.csv``. Both files are fetched concurrently; a
missing or unreadable ``axis_order.csv`` only means there is no axis ordering.
"""

import asyncio
from pathlib import Path
from typing import Optional, Tuple

import httpx

from .app_config import is_url
from .shared.errors import IngestionFailure
from .shared.logger import get_logger

logger = get_logger(__name__)

PRIMARY_FILE = "data.csv"
AXIS_ORDER_FILE = "axis_order.csv"


def join_location(directory: str, filename: str) -> str:
    if is_url(directory):
        return directory.rstrip("/") + "/" + filename
    return str(Path(directory) / filename)


async def fetch_text(location: str, timeout: float = 10.0) -> str:
    """Read a text file from disk or over HTTP.

    Raises:
        IngestionFailure: If the file cannot be read.
    """
    if is_url(location):
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                response = await client.get(location)
                response.raise_for_status()
                return response.text
        except httpx.HTTPError as e:
            raise IngestionFailure(location, str(e) or type(e).__name__) from e

    def _read() -> str:
        return Path(location).read_text(encoding="utf-8")

    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, _read)
    except (OSError, UnicodeDecodeError) as e:
        raise IngestionFailure(location, str(e)) from e


async def fetch_database(directory: str, timeout: float = 10.0) -> Tuple[str, Optional[str]]:
    """Fetch ``data.csv`` and ``axis_order.csv`` of a database.

    Returns:
        Tuple of (primary text, axis-ordering text or None)

    Raises:
        IngestionFailure: If ``data.csv`` cannot be read.
    """
    primary, axis = await asyncio.gather(
        fetch_text(join_location(directory, PRIMARY_FILE), timeout),
        fetch_text(join_location(directory, AXIS_ORDER_FILE), timeout),
        return_exceptions=True,
    )

    if isinstance(primary, BaseException):
        raise primary

    if isinstance(axis, IngestionFailure):
        logger.info("No axis ordering for %s: %s", directory, axis.reason)
        axis = None
    elif isinstance(axis, BaseException):
        raise axis

    return primary, axis
