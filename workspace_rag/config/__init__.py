"""Configuration module -- exports Settings, load_config, and a module-level singleton."""

from workspace_rag.config.loader import load_config
from workspace_rag.config.settings import Settings, ThresholdUseCase

settings = Settings()

__all__ = ["Settings", "ThresholdUseCase", "load_config", "settings"]
