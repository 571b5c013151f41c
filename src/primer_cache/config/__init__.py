from primer_cache.config.loader import YamlConfigLoader, resolve_base_dir

__all__ = ["YamlConfigLoader", "resolve_base_dir"]
