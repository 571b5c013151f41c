from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from primer_cache.errors import FetchError

RegistrySchemaVersion = 1


class BundleConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    files: List[str]


class Registry(BaseModel):
    """Remote index of every available bundle and its ordered file list."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: int
    bundles: Dict[str, BundleConfig] = Field(validation_alias=AliasChoices("bundles", "primers"))


class FileEtag(BaseModel):
    etag: str


class BundleMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fetched_at: str = Field(alias="fetchedAt")
    etags: Dict[str, FileEtag] = Field(default_factory=dict)


class Meta(BaseModel):
    """
    Persisted fetch bookkeeping.

    A key in `bundles` means the bundle has been installed locally at least once.
    """

    model_config = ConfigDict(populate_by_name=True)

    registry_fetched_at: Optional[str] = Field(
        default=None,
        alias="registryFetchedAt",
        validation_alias=AliasChoices("registryFetchedAt", "manifestFetchedAt"),
    )
    registry_etag: Optional[str] = Field(
        default=None,
        alias="registryEtag",
        validation_alias=AliasChoices("registryEtag", "manifestEtag"),
    )
    bundles: Dict[str, BundleMeta] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("bundles", "primers"),
    )


@dataclass(frozen=True, slots=True)
class Changed:
    content: str
    etag: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Unmodified:
    pass


@dataclass(frozen=True, slots=True)
class Failed:
    error: FetchError


FetchResult = Union[Changed, Unmodified, Failed]


@dataclass(slots=True)
class BatchOutcome:
    etags: Dict[str, FileEtag]
    changed: Dict[str, str] = field(default_factory=dict)
    failures: List[FetchError] = field(default_factory=list)

    @property
    def any_changed(self) -> bool:
        return bool(self.changed)
