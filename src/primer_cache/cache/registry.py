from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiohttp
from pydantic import ValidationError

from primer_cache.cache.http import conditional_get
from primer_cache.cache.io import atomic_write_text
from primer_cache.cache.meta import read_meta, write_meta
from primer_cache.cache.models import Registry, Unmodified
from primer_cache.cache.tasks import DetachedTasks
from primer_cache.cache.utils import Clock, format_rfc3339, utc_now
from primer_cache.config.models import CacheSettings
from primer_cache.errors import FetchError, RegistryError

logger = logging.getLogger(__name__)


def parse_registry(text: str) -> Registry:
    try:
        return Registry.model_validate_json(text)
    except ValidationError as e:
        raise RegistryError(f"Failed to load manifest: {e.error_count()} validation error(s)") from e


class RegistryService:
    """
    Fetches the bundle registry and keeps a verbatim copy next to the mirror.

    `get()` never touches the network when a valid local copy exists.
    """

    def __init__(
        self,
        *,
        base_dir: Path,
        session: aiohttp.ClientSession,
        settings: CacheSettings,
        clock: Clock = utc_now,
        tasks: Optional[DetachedTasks] = None,
    ) -> None:
        self._base_dir = base_dir
        self._session = session
        self._settings = settings
        self._clock = clock
        self._tasks = tasks or DetachedTasks()
        self._registry: Optional[Registry] = None

    @property
    def url(self) -> str:
        return f"{self._settings.remote_base_url.rstrip('/')}/{self._settings.registry_file}"

    @property
    def registry_path(self) -> Path:
        return self._base_dir / self._settings.registry_file

    @property
    def meta_path(self) -> Path:
        return self._base_dir / self._settings.meta_file

    async def get(self) -> Registry:
        if self._registry is not None:
            return self._registry
        cached = self._read_cached()
        if cached is not None:
            self._registry = cached
            return cached
        return await self.refresh()

    async def refresh(self) -> Registry:
        meta = read_meta(self.meta_path)
        result = await conditional_get(self._session, self.url, etag=meta.registry_etag)

        if isinstance(result, Unmodified):
            cached = self._read_cached()
            if cached is not None:
                logger.debug("Registry not modified. url=%s", self.url)
                self._registry = cached
                return cached
            logger.info("Registry reported unchanged but local copy is unusable, refetching. url=%s", self.url)
            result = await conditional_get(self._session, self.url)
            if isinstance(result, Unmodified):
                raise FetchError(self.url, status=304)

        registry = parse_registry(result.content)
        atomic_write_text(self.registry_path, result.content)

        meta = read_meta(self.meta_path)
        meta.registry_fetched_at = format_rfc3339(self._clock())
        meta.registry_etag = result.etag
        write_meta(self.meta_path, meta)

        logger.info("Registry fetched. url=%s bundles=%d", self.url, len(registry.bundles))
        self._registry = registry
        return registry

    def spawn_refresh(self) -> asyncio.Task:
        """Refresh the registry without waiting for the outcome."""
        return self._tasks.spawn(self._refresh_quietly(), name="registry-refresh")

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh()
        except Exception as e:
            logger.warning("Background registry refresh failed. error=%s", e)

    async def list_bundles(self) -> list[tuple[str, str]]:
        registry = await self.get()
        return [(name, registry.bundles[name].description) for name in sorted(registry.bundles)]

    def _read_cached(self) -> Optional[Registry]:
        if not self.registry_path.exists():
            return None
        try:
            return parse_registry(self.registry_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, RegistryError):
            logger.warning("Cached registry is unreadable. path=%s", self.registry_path, exc_info=True)
            return None
