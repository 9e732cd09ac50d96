"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. Settings field defaults
  2. config/config.yaml  - Static defaults checked into the repo
  3. .env file           - Local developer overrides (not committed)
  4. Environment vars    - Set at deploy time

A YAML value only loses to the environment when the matching variable (or
``.env`` line) is actually present.  ``load_settings`` is what the CLI uses;
``load_config`` returns the same layering as a nested dict.
"""

from pathlib import Path
from typing import Any

import yaml

from kb_ingest.config.settings import Settings
from kb_ingest.utils.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "config/config.yaml"

# (section, key) in the YAML file -> Settings field name.
_YAML_FIELDS: dict[tuple[str, str], str] = {
    ("app", "env"): "app_env",
    ("logging", "level"): "log_level",
    ("embedding", "model"): "openai_embedding_model",
    ("embedding", "dimension"): "embedding_dimension",
    ("embedding", "batch_size"): "embedding_batch_size",
    ("embedding", "rate_limit_delay"): "embedding_rate_limit_delay",
    ("chunking", "chunk_size"): "chunk_size",
    ("chunking", "overlap"): "chunk_overlap",
    ("chunking", "separator"): "chunk_separator",
    ("vector_store", "backend"): "vector_backend",
    ("vector_store", "insert_batch_size"): "vector_insert_batch_size",
    ("vector_store", "pgvector_table"): "pgvector_table",
    ("vector_store", "chromadb_persist_dir"): "chromadb_persist_dir",
    ("vector_store", "chromadb_collection"): "chromadb_collection",
    ("storage", "metadata_db_path"): "metadata_db_path",
    ("storage", "blob_storage_dir"): "blob_storage_dir",
    ("queue", "backend"): "queue_backend",
    ("queue", "name"): "queue_name",
    ("queue", "concurrency"): "queue_concurrency",
    ("queue", "max_attempts"): "queue_max_attempts",
    ("queue", "backoff_base_seconds"): "queue_backoff_base_seconds",
    ("queue", "dedupe_in_flight"): "queue_dedupe_in_flight",
    ("queue", "poll_timeout"): "queue_poll_timeout",
    ("search", "top_k"): "search_default_top_k",
    ("search", "min_score"): "search_default_min_score",
}


def _read_yaml(path: str) -> dict:
    config_path = Path(path)
    if not config_path.exists():
        return {}
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    return data


def _yaml_values(yaml_config: dict) -> dict[str, Any]:
    """Flatten the known YAML keys into ``Settings`` field names."""
    values: dict[str, Any] = {}
    for (section, key), field in _YAML_FIELDS.items():
        block = yaml_config.get(section)
        if isinstance(block, dict) and key in block:
            values[field] = block[key]
    return values


def load_settings(path: str = DEFAULT_CONFIG_PATH, settings: Settings | None = None) -> Settings:
    """Return Settings with the YAML file filling every field the environment left unset.

    Args:
        path: Path to the YAML configuration file; a missing file is ignored.
        settings: Pre-built environment settings; ``Settings()`` when omitted.

    Raises:
        ConfigurationError: If the file is not a mapping or a value has the wrong type.
    """
    settings = settings or Settings()
    explicit = settings.model_dump(include=settings.model_fields_set)
    merged = {**_yaml_values(_read_yaml(path)), **explicit}
    try:
        return Settings.model_validate(merged)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value in {path}: {exc}") from exc


def load_config(path: str = DEFAULT_CONFIG_PATH, settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is read when omitted.

    Returns:
        The YAML mapping with every known key replaced by its resolved value.
    """
    yaml_config = _read_yaml(path)
    resolved = load_settings(path, settings)
    for (section, key), field in _YAML_FIELDS.items():
        yaml_config.setdefault(section, {})[key] = getattr(resolved, field)
    yaml_config.setdefault("embedding", {})["configured"] = bool(resolved.openai_api_key)
    return yaml_config
