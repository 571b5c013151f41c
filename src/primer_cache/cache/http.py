from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

import aiohttp

from primer_cache.cache.models import Changed, Unmodified
from primer_cache.errors import FetchError

logger = logging.getLogger(__name__)


async def conditional_get(
    session: aiohttp.ClientSession,
    url: str,
    *,
    etag: Optional[str] = None,
) -> Union[Changed, Unmodified]:
    """
    GET `url`, sending `If-None-Match` when an ETag is known.

    Returns Unmodified on 304 and Changed on 200. Other statuses, transport
    errors and bodies that are not valid UTF-8 raise FetchError.
    """
    headers = {}
    if etag:
        headers["If-None-Match"] = etag

    logger.debug("Fetching remote resource. url=%s conditional=%s", url, bool(etag))
    try:
        async with session.get(url, headers=headers) as response:
            if response.status == 304:
                return Unmodified()
            if response.status != 200:
                raise FetchError(url, status=response.status)
            try:
                content = await response.text(encoding="utf-8")
            except UnicodeDecodeError as e:
                raise FetchError(url, status=response.status) from e
            return Changed(content=content, etag=response.headers.get("ETag"))
    except asyncio.TimeoutError as e:
        raise FetchError(url) from e
    except aiohttp.ClientError as e:
        raise FetchError(url) from e
