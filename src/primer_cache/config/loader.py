from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional, Sequence

from primer_cache.config.models import AppConfig, CacheSettings, ConfigLoadRequest

BASE_DIR_ENV = "PRIMER_DIR"


def _read_yaml_config(path: Path) -> dict[str, Any]:
    try:
        import yaml  # type: ignore[import-not-found]
    except ModuleNotFoundError as e:  # pragma: no cover
        raise ModuleNotFoundError(
            "Missing dependency: PyYAML is required to load the YAML config file. Install 'PyYAML'."
        ) from e

    if not path.exists():
        return {}

    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Top-level YAML must be a mapping, got: {type(data).__name__}")
    return data


def _load_dotenv_if_present(dotenv_path: Path) -> None:
    try:
        from dotenv import load_dotenv  # type: ignore[import-not-found]
    except ModuleNotFoundError as e:  # pragma: no cover
        raise ModuleNotFoundError(
            "Missing dependency: python-dotenv is required to load .env. Install 'python-dotenv'."
        ) from e

    if not dotenv_path.exists():
        return
    load_dotenv(dotenv_path=dotenv_path, override=False)


def _env_var_name_to_segments(env_var_name: str, prefix: str) -> Sequence[str]:
    remainder = env_var_name[len(prefix) :]
    parts = [p for p in remainder.split("__") if p]
    if not parts:
        raise ValueError(f"Invalid environment variable override name: {env_var_name}")
    return [p.lower() for p in parts]


def _get_parent_mapping(config: MutableMapping[str, Any], path: Sequence[str]) -> MutableMapping[str, Any]:
    cur: MutableMapping[str, Any] = config
    for segment in path[:-1]:
        next_value = cur.setdefault(segment, {})
        if not isinstance(next_value, dict):
            dotted = ".".join(path)
            raise TypeError(f"Configuration key path does not point to a mapping: {dotted}")
        cur = next_value
    return cur


def _apply_env_overrides(config: MutableMapping[str, Any], env_prefix: str, environ: Mapping[str, str]) -> None:
    for name, value in environ.items():
        if not name.startswith(env_prefix):
            continue

        segments = _env_var_name_to_segments(name, env_prefix)
        parent = _get_parent_mapping(config, segments)

        # Unknown keys are rejected by the models (extra="forbid").
        parent[segments[-1]] = value


def resolve_base_dir(settings: CacheSettings, environ: Optional[Mapping[str, str]] = None) -> Path:
    """Explicit setting first, then PRIMER_DIR, then $HOME/.primer."""
    env = os.environ if environ is None else environ
    if settings.base_dir.strip():
        return Path(settings.base_dir).expanduser()
    override = env.get(BASE_DIR_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    home = env.get("HOME", "").strip()
    return (Path(home) if home else Path.home()) / ".primer"


class YamlConfigLoader:
    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = environ

    async def load(self, request: ConfigLoadRequest = ConfigLoadRequest()) -> AppConfig:
        config: dict[str, Any] = {}
        if request.yaml_path is not None:
            config = _read_yaml_config(Path(request.yaml_path))

        if request.dotenv_path is not None and self._environ is None:
            _load_dotenv_if_present(Path(request.dotenv_path))

        environ = os.environ if self._environ is None else self._environ
        _apply_env_overrides(config, request.env_prefix, environ)
        return AppConfig.model_validate(config)
