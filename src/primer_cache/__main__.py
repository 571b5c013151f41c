from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import aiohttp

from primer_cache.cache import PrimerCache, RegistryService, generate_all_compact, write_registry
from primer_cache.cache.tasks import DetachedTasks
from primer_cache.config import YamlConfigLoader, resolve_base_dir
from primer_cache.config.models import AppConfig, ConfigLoadRequest
from primer_cache.errors import ContentNotFoundError, PrimerError
from primer_cache.logging import init_logging

logger = logging.getLogger(__name__)

DRAIN_TIMEOUT_SECONDS = 10.0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="primer-cache", description="Local mirror of remote primers")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to an optional config.yaml",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    subparsers.add_parser("list", help="List available primers")

    show_parser = subparsers.add_parser("show", help="Print a primer, fetching it when missing")
    show_parser.add_argument("path", nargs="+", help="Primer name followed by optional sub-topics")
    show_parser.add_argument(
        "--path",
        dest="path_only",
        action="store_true",
        help="Print the file location instead of its content",
    )

    subparsers.add_parser("refresh", help="Refresh the registry and every installed primer")
    subparsers.add_parser("compact", help="Regenerate compact indexes of installed primers")

    build_parser = subparsers.add_parser("build-registry", help="Generate _manifest.json for a primers directory")
    build_parser.add_argument("source_dir", help="Directory holding one sub-directory per primer")

    return parser


class App:
    """Wires the registry and content cache around one HTTP session."""

    def __init__(self, config: AppConfig, session: aiohttp.ClientSession) -> None:
        settings = config.cache
        self.base_dir = resolve_base_dir(settings)
        self.tasks = DetachedTasks()
        self.registry = RegistryService(
            base_dir=self.base_dir,
            session=session,
            settings=settings,
            tasks=self.tasks,
        )
        self.cache = PrimerCache(
            base_dir=self.base_dir,
            session=session,
            registry=self.registry,
            settings=settings,
            tasks=self.tasks,
        )

    async def list_primers(self) -> int:
        try:
            bundles = await self.registry.list_bundles()
        except PrimerError as e:
            logger.debug("Registry load failed. error=%s", e)
            sys.stderr.write("Failed to load primer manifest.\nCheck your network connection and try again.\n")
            return 1

        self.registry.spawn_refresh()

        if not bundles:
            print("No primers available.")
            return 0
        print("Available primers:\n")
        for name, description in bundles:
            suffix = f" - {description}" if description else ""
            print(f"  {name}{suffix}")
        return 0

    async def show(self, segments: Sequence[str], *, path_only: bool) -> int:
        bundle_name = segments[0]
        try:
            output = self._lookup(segments, path_only=path_only)
        except ContentNotFoundError:
            try:
                await self.cache.ensure(bundle_name)
            except PrimerError as e:
                logger.debug("Ensure failed. bundle=%s error=%s", bundle_name, e)
                sys.stderr.write(f"Failed to fetch primer: {bundle_name}\n")
            try:
                output = self._lookup(segments, path_only=path_only)
            except ContentNotFoundError as e:
                sys.stderr.write(f"{e}\n")
                suggestions = await self.cache.suggest_similar(segments)
                if suggestions:
                    sys.stderr.write("\nDid you mean:\n")
                    for suggestion in suggestions:
                        sys.stderr.write(f"  {suggestion}\n")
                sys.stderr.write("\nRun `primer-cache list` to see available primers.\n")
                return 1

        self.cache.spawn_refresh(bundle_name)
        print(output)
        return 0

    def _lookup(self, segments: Sequence[str], *, path_only: bool) -> str:
        if path_only:
            return str(self.cache.resolve_path(segments))
        return self.cache.resolve(segments)

    async def refresh(self) -> int:
        try:
            await self.registry.refresh()
            refreshed = await self.cache.refresh_all()
        except PrimerError as e:
            sys.stderr.write(f"Refresh failed: {e}\n")
            return 1
        if not refreshed:
            print("All primers up to date.")
        for name in refreshed:
            print(f"Updated: {name}")
        return 0

    async def drain(self) -> None:
        await self.tasks.drain(timeout_seconds=DRAIN_TIMEOUT_SECONDS)


async def _load_config(args: argparse.Namespace) -> AppConfig:
    loader = YamlConfigLoader()
    return await loader.load(ConfigLoadRequest(yaml_path=args.config))


async def _run_online(args: argparse.Namespace, config: AppConfig) -> int:
    timeout = aiohttp.ClientTimeout(total=config.cache.fetch_timeout_seconds)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        app = App(config, session)
        try:
            if args.command == "list":
                return await app.list_primers()
            if args.command == "show":
                return await app.show(args.path, path_only=args.path_only)
            return await app.refresh()
        finally:
            await app.drain()


async def _main_async(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    config = await _load_config(args)
    init_logging(config.logging)

    if args.command == "compact":
        base_dir = resolve_base_dir(config.cache)
        generated = generate_all_compact(
            base_dir,
            extension=config.cache.file_extension,
            display_root=config.cache.display_root,
        )
        print(f"Generated {len(generated)} compact index(es).")
        return 0

    if args.command == "build-registry":
        target = write_registry(
            Path(args.source_dir),
            registry_file=config.cache.registry_file,
            extension=config.cache.file_extension,
        )
        print(f"Wrote {target}")
        return 0

    return await _run_online(args, config)


def main(argv: Optional[Sequence[str]] = None) -> None:
    try:
        sys.exit(asyncio.run(_main_async(argv)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")


if __name__ == "__main__":
    main()
