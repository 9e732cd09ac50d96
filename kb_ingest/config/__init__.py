"""Configuration: Settings from the environment, layered over config/config.yaml."""

from kb_ingest.config.loader import load_config, load_settings
from kb_ingest.config.settings import Settings

__all__ = ["Settings", "load_config", "load_settings"]
