from .catalog import load_catalog, parse_catalog
from .config_store import ConfigurationStore

__all__ = ["ConfigurationStore", "load_catalog", "parse_catalog"]
