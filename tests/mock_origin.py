from __future__ import annotations

import asyncio
import hashlib
import json
import tempfile
import unittest
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

import aiohttp
from aiohttp import web
from aiohttp.test_utils import TestServer

from primer_cache.cache import PrimerCache, RegistryService
from primer_cache.config.models import CacheSettings


def registry_body(bundles: Dict[str, Dict]) -> str:
    return json.dumps({"version": 1, "primers": bundles})


class MockOrigin:
    """Serves `/primers/<path>` with content-derived ETags and honours If-None-Match."""

    def __init__(self, files: Optional[Dict[str, Union[str, bytes]]] = None) -> None:
        # Bytes values are served as-is, str values as UTF-8 text.
        self.files: Dict[str, Union[str, bytes]] = dict(files or {})
        self.failures: Dict[str, int] = {}
        self.without_etag: Set[str] = set()
        self.requests: List[Tuple[str, Optional[str]]] = []
        self.delay_seconds = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._server: Optional[TestServer] = None

    @property
    def base_url(self) -> str:
        assert self._server is not None
        return str(self._server.make_url("/primers"))

    def etag_for(self, path: str) -> Optional[str]:
        if path in self.without_etag or path not in self.files:
            return None
        body = self.files[path]
        if isinstance(body, str):
            body = body.encode("utf-8")
        return '"' + hashlib.sha1(body).hexdigest()[:16] + '"'

    def requests_for(self, prefix: str) -> List[Tuple[str, Optional[str]]]:
        return [r for r in self.requests if r[0].startswith(prefix)]

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/primers/{tail:.*}", self._handle)
        self._server = TestServer(app)
        await self._server.start_server()

    async def close(self) -> None:
        if self._server is not None:
            await self._server.close()
            self._server = None

    async def _handle(self, request: web.Request) -> web.Response:
        path = request.match_info["tail"]
        if_none_match = request.headers.get("If-None-Match")
        self.requests.append((path, if_none_match))

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay_seconds:
                await asyncio.sleep(self.delay_seconds)
        finally:
            self.in_flight -= 1

        if path in self.failures:
            return web.Response(status=self.failures[path])
        if path not in self.files:
            return web.Response(status=404)

        etag = self.etag_for(path)
        if etag is not None and if_none_match == etag:
            return web.Response(status=304, headers={"ETag": etag})
        headers = {"ETag": etag} if etag is not None else {}
        body = self.files[path]
        if isinstance(body, bytes):
            return web.Response(body=body, content_type="text/markdown", charset="utf-8", headers=headers)
        return web.Response(text=body, headers=headers)


class OriginTestCase(unittest.IsolatedAsyncioTestCase):
    """Wires a registry and cache against a fresh MockOrigin and temp directory."""

    origin_files: Dict[str, str] = {}
    fetch_concurrency = 20

    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.base_dir = Path(self._tmp.name) / ".primer"
        self.origin = MockOrigin(self.origin_files)
        await self.origin.start()
        self.session = aiohttp.ClientSession()
        self.settings = CacheSettings(
            remote_base_url=self.origin.base_url,
            fetch_concurrency=self.fetch_concurrency,
        )
        self.registry = self.make_registry()
        self.cache = self.make_cache(self.registry)

    async def asyncTearDown(self) -> None:
        await self.cache.drain()
        await self.session.close()
        await self.origin.close()
        self._tmp.cleanup()

    def make_registry(self) -> RegistryService:
        return RegistryService(base_dir=self.base_dir, session=self.session, settings=self.settings)

    def make_cache(self, registry: RegistryService) -> PrimerCache:
        return PrimerCache(
            base_dir=self.base_dir,
            session=self.session,
            registry=registry,
            settings=self.settings,
        )
