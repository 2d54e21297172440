"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. config/config.yaml  -- static defaults checked into the repo
  2. .env file           -- local developer overrides (not committed)
  3. Environment vars    -- set at deploy time

``load_config()`` reads the YAML file first, then deep-merges the
Settings-derived values on top.
"""

from pathlib import Path

import yaml

from workspace_rag.config.settings import Settings, ThresholdUseCase


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Optional pre-built Settings; a fresh instance is read from
            the environment when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "env": settings.app_env,
        },
        "models": {
            "openai_base_url": settings.openai_base_url,
            "text_model": settings.openai_text_model or "gpt-4o-mini",
            "embedding_model": settings.openai_embedding_model or "text-embedding-3-small",
            "available_services": settings.get_available_model_services(),
        },
        "chunking": {
            "max_tokens": settings.chunk_max_tokens,
            "overlap_tokens": settings.chunk_overlap_tokens,
            "use_advanced": settings.use_advanced_chunking,
            "preserve_code_blocks": settings.preserve_code_blocks,
            "preserve_markdown": settings.preserve_markdown,
        },
        "retrieval": {
            "thresholds": {
                use_case.value: settings.threshold_for(use_case) for use_case in ThresholdUseCase
            },
        },
        "storage": {
            "db_path": settings.store_db_path,
            "help_content_path": settings.help_content_path,
            "chroma_persist_dir": settings.chroma_persist_dir,
            "chroma_collection": settings.chroma_collection,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
