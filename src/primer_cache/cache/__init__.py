from primer_cache.cache.builder import build_registry, write_registry
from primer_cache.cache.compact import generate_all_compact, generate_compact
from primer_cache.cache.fuzzy import levenshtein
from primer_cache.cache.meta import read_meta, write_meta
from primer_cache.cache.models import BundleConfig, Changed, Failed, Meta, Registry, Unmodified
from primer_cache.cache.primer_cache import PrimerCache, fold_results
from primer_cache.cache.registry import RegistryService, parse_registry
from primer_cache.cache.tasks import DetachedTasks

__all__ = [
    "BundleConfig",
    "Changed",
    "DetachedTasks",
    "Failed",
    "Meta",
    "PrimerCache",
    "Registry",
    "RegistryService",
    "Unmodified",
    "build_registry",
    "fold_results",
    "generate_all_compact",
    "generate_compact",
    "levenshtein",
    "parse_registry",
    "read_meta",
    "write_meta",
    "write_registry",
]
