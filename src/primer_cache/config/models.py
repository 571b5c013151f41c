from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_REMOTE_BASE_URL = "https://raw.githubusercontent.com/cevr/primer/main/primers"


class FileRotationSettings(BaseModel):
    """Daily log rotation; `backup_count` dated files are kept."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    backup_count: int = 7


class FileLoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = ""
    rotation: FileRotationSettings = FileRotationSettings()


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = "WARNING"
    stream: Literal["stderr", "stdout"] = "stderr"
    # Per-logger overrides applied after the root level.
    library_levels: Dict[str, str] = {"aiohttp": "WARNING", "asyncio": "WARNING"}
    file: FileLoggingSettings = FileLoggingSettings()


class CacheSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Empty means PRIMER_DIR, then $HOME/.primer.
    base_dir: str = ""
    remote_base_url: str = DEFAULT_REMOTE_BASE_URL

    registry_file: str = "_manifest.json"
    meta_file: str = "_meta.json"
    file_extension: str = ".md"
    display_root: str = "~/.primer"

    fetch_concurrency: int = Field(default=20, ge=1)
    fetch_timeout_seconds: float = Field(default=30.0, gt=0)

    @property
    def index_file(self) -> str:
        return f"index{self.file_extension}"


class AppConfig(BaseModel):
    """Effective runtime configuration after applying all precedence rules."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    logging: LoggingSettings = LoggingSettings()
    cache: CacheSettings = CacheSettings()


@dataclass(frozen=True, slots=True)
class ConfigLoadRequest:
    """Where a configuration loader reads from."""

    yaml_path: Optional[str] = None
    env_prefix: str = "PRIMER__"
    dotenv_path: Optional[str] = ".env"
