from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Sequence

import aiohttp

from primer_cache.cache.compact import write_compact
from primer_cache.cache.fuzzy import levenshtein
from primer_cache.cache.http import conditional_get
from primer_cache.cache.io import atomic_write_text
from primer_cache.cache.meta import read_meta, write_meta
from primer_cache.cache.models import (
    BatchOutcome,
    BundleMeta,
    Changed,
    Failed,
    FetchResult,
    FileEtag,
    Registry,
)
from primer_cache.cache.registry import RegistryService
from primer_cache.cache.tasks import DetachedTasks
from primer_cache.cache.utils import Clock, file_to_topic, format_rfc3339, utc_now
from primer_cache.config.models import CacheSettings
from primer_cache.errors import ContentNotFoundError, FetchError

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3
SUBPATH_DISTANCE = 4
BUNDLE_DISTANCE = 3


def _is_plain_segment(segment: str) -> bool:
    if segment in ("", ".", "..") or "/" in segment or "\\" in segment:
        return False
    return not Path(segment).is_absolute()


def fold_results(existing: Mapping[str, FileEtag], results: Mapping[str, FetchResult]) -> BatchOutcome:
    """
    Merge per-file fetch results into a new ETag map.

    Unmodified and failed files keep whatever ETag was stored before.
    """
    outcome = BatchOutcome(etags=dict(existing))
    for rel_path, result in results.items():
        if isinstance(result, Changed):
            outcome.changed[rel_path] = result.content
            if result.etag:
                outcome.etags[rel_path] = FileEtag(etag=result.etag)
        elif isinstance(result, Failed):
            outcome.failures.append(result.error)
    return outcome


class PrimerCache:
    """
    Lazily-populated local mirror of the remote bundles.

    Resolution is purely local; `ensure` fills in missing files and the refresh
    operations revalidate installed bundles with conditional requests.
    """

    def __init__(
        self,
        *,
        base_dir: Path,
        session: aiohttp.ClientSession,
        registry: RegistryService,
        settings: CacheSettings,
        clock: Clock = utc_now,
        tasks: Optional[DetachedTasks] = None,
    ) -> None:
        self._base_dir = base_dir
        self._session = session
        self._registry = registry
        self._settings = settings
        self._clock = clock
        self._tasks = tasks or DetachedTasks()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def meta_path(self) -> Path:
        return self._base_dir / self._settings.meta_file

    def resolve(self, segments: Sequence[str]) -> str:
        return self.resolve_path(segments).read_text(encoding="utf-8")

    def resolve_path(self, segments: Sequence[str]) -> Path:
        dotted = "/".join(segments)
        if not segments or any(not _is_plain_segment(s) for s in segments):
            raise ContentNotFoundError(dotted)

        target = self._base_dir.joinpath(*segments)
        extension = self._settings.file_extension
        file_path = target if target.name.endswith(extension) else target.with_name(target.name + extension)

        root = self._base_dir.resolve()
        for candidate in (target / self._settings.index_file, file_path):
            resolved = candidate.resolve()
            # Symlinks inside the mirror must not lead out of it either.
            if resolved.is_relative_to(root) and resolved.is_file():
                return resolved

        raise ContentNotFoundError(dotted)

    async def ensure(self, bundle_name: str) -> None:
        registry = await self._registry.get()
        bundle = registry.bundles.get(bundle_name)
        if bundle is None:
            raise FetchError(self._file_url(bundle_name))

        bundle_dir = self._bundle_dir(bundle_name)
        missing = [f for f in bundle.files if not (bundle_dir / f).exists()]
        if not missing:
            return

        logger.info("Fetching bundle files. bundle=%s missing=%d", bundle_name, len(missing))
        results = await self._fetch_batch(bundle_name, missing, {})
        existing = read_meta(self.meta_path).bundles.get(bundle_name)
        outcome = fold_results(existing.etags if existing else {}, results)
        self._apply(bundle_name, outcome)

        if outcome.failures:
            raise outcome.failures[0]

    async def refresh_in_background(self, bundle_name: str) -> None:
        try:
            registry = await self._registry.get()
            bundle = registry.bundles.get(bundle_name)
            if bundle is None:
                return
            existing = read_meta(self.meta_path).bundles.get(bundle_name)
            await self._refresh_bundle(bundle_name, bundle.files, existing.etags if existing else {})
        except Exception as e:
            logger.warning("Background refresh failed. bundle=%s error=%s", bundle_name, e)

    def spawn_refresh(self, bundle_name: str) -> asyncio.Task:
        return self._tasks.spawn(self.refresh_in_background(bundle_name), name=f"refresh:{bundle_name}")

    async def drain(self, *, timeout_seconds: Optional[float] = None) -> None:
        await self._tasks.drain(timeout_seconds=timeout_seconds)

    async def refresh_all(self) -> list[str]:
        registry = await self._registry.get()
        meta = read_meta(self.meta_path)

        refreshed: list[str] = []
        for bundle_name, bundle_meta in meta.bundles.items():
            bundle = registry.bundles.get(bundle_name)
            if bundle is None:
                logger.debug("Installed bundle no longer in registry. bundle=%s", bundle_name)
                continue
            if await self._refresh_bundle(bundle_name, bundle.files, bundle_meta.etags):
                refreshed.append(bundle_name)
        return refreshed

    async def suggest_similar(self, segments: Sequence[str]) -> list[str]:
        try:
            registry = await self._registry.get()
            return self._rank_suggestions(registry, segments)
        except Exception as e:
            logger.debug("Suggestions unavailable. error=%s", e)
            return []

    def _rank_suggestions(self, registry: Registry, segments: Sequence[str]) -> list[str]:
        query = "/".join(segments).lower()
        suggestions: list[str] = []

        bundle = registry.bundles.get(segments[0]) if segments else None
        if bundle is not None:
            for rel_path in bundle.files:
                if len(suggestions) >= MAX_SUGGESTIONS:
                    break
                sub_path = file_to_topic(rel_path, self._settings.file_extension)
                if not sub_path or sub_path == "index":
                    continue
                candidate = f"{segments[0]} {sub_path.replace('/', ' ')}"
                lowered = candidate.lower()
                if query in lowered or levenshtein(query, lowered) < SUBPATH_DISTANCE:
                    suggestions.append(candidate)

        for name in registry.bundles:
            if len(suggestions) >= MAX_SUGGESTIONS:
                break
            if levenshtein(query, name.lower()) < BUNDLE_DISTANCE:
                suggestions.append(name)

        return suggestions[:MAX_SUGGESTIONS]

    async def _refresh_bundle(
        self,
        bundle_name: str,
        files: Iterable[str],
        existing: Mapping[str, FileEtag],
    ) -> bool:
        results = await self._fetch_batch(bundle_name, list(files), existing)
        outcome = fold_results(existing, results)
        for error in outcome.failures:
            logger.warning("Refresh skipped a file. bundle=%s error=%s", bundle_name, error)
        if not outcome.any_changed:
            logger.debug("Bundle up to date. bundle=%s", bundle_name)
            return False
        self._apply(bundle_name, outcome)
        logger.info("Bundle refreshed. bundle=%s changed=%d", bundle_name, len(outcome.changed))
        return True

    async def _fetch_batch(
        self,
        bundle_name: str,
        files: Sequence[str],
        etags: Mapping[str, FileEtag],
    ) -> Dict[str, FetchResult]:
        semaphore = asyncio.Semaphore(self._settings.fetch_concurrency)

        async def fetch_one(rel_path: str) -> tuple[str, FetchResult]:
            cached = etags.get(rel_path)
            async with semaphore:
                try:
                    result = await conditional_get(
                        self._session,
                        self._file_url(bundle_name, rel_path),
                        etag=cached.etag if cached else None,
                    )
                except FetchError as e:
                    return rel_path, Failed(e)
            return rel_path, result

        pairs = await asyncio.gather(*(fetch_one(f) for f in files))
        return dict(pairs)

    def _apply(self, bundle_name: str, outcome: BatchOutcome) -> None:
        """Write changed files, then record ETags and regenerate the compact index."""
        bundle_dir = self._bundle_dir(bundle_name)
        for rel_path, content in outcome.changed.items():
            atomic_write_text(bundle_dir / rel_path, content)

        if outcome.changed:
            meta = read_meta(self.meta_path)
            meta.bundles[bundle_name] = BundleMeta(
                fetched_at=format_rfc3339(self._clock()),
                etags=outcome.etags,
            )
            write_meta(self.meta_path, meta)
            write_compact(
                bundle_name,
                bundle_dir,
                extension=self._settings.file_extension,
                display_root=self._settings.display_root,
            )

    def _bundle_dir(self, bundle_name: str) -> Path:
        if not bundle_name or bundle_name in (".", "..") or "/" in bundle_name or "\\" in bundle_name:
            raise ContentNotFoundError(bundle_name)
        return self._base_dir / bundle_name

    def _file_url(self, bundle_name: str, rel_path: str = "") -> str:
        base = self._settings.remote_base_url.rstrip("/")
        if not rel_path:
            return f"{base}/{bundle_name}"
        return f"{base}/{bundle_name}/{rel_path}"
